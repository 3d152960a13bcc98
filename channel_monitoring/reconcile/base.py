"""Common pieces of the two model write-back protocols."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Mapping


def canonicalize_models(models: Iterable[str], model_mapping: Mapping[str, str]) -> list[str]:
    """Translate externally advertised names back to their canonical names.

    ``model_mapping`` maps canonical -> external; names without an alias
    pass through unchanged and order is preserved.
    """
    inverted = {external: canonical for canonical, external in model_mapping.items()}
    return [inverted.get(model, model) for model in models]


def join_models(models: Iterable[str]) -> str:
    return ",".join(models)


class Reconciler(ABC):
    """Writes a channel's surviving model list to its authoritative store."""

    name = "base"

    async def reconcile(
        self,
        channel_id: int,
        available_models: Iterable[str],
        model_mapping: Mapping[str, str],
    ) -> list[str]:
        """Persist the models and return the canonical names written."""
        models = canonicalize_models(available_models, model_mapping)
        await self.write_models(channel_id, models)
        return models

    @abstractmethod
    async def write_models(self, channel_id: int, models: list[str]) -> None:
        """Raise ``ReconcileError`` unless the write fully succeeded."""
