"""Per-channel collection of models that probed successfully."""

from __future__ import annotations

import asyncio


class LivenessAggregator:
    """Append-only, lock-guarded set of available model names for one channel.

    Probe tasks call :meth:`add` concurrently. The owner calls :meth:`seal`
    once every probe has been joined; only then can :meth:`models` be read.
    """

    def __init__(self, channel_id: int):
        self.channel_id = channel_id
        self._lock = asyncio.Lock()
        self._models: dict[str, None] = {}
        self._sealed = False

    async def add(self, model: str) -> None:
        async with self._lock:
            if self._sealed:
                raise RuntimeError(f"Aggregator for channel {self.channel_id} is sealed")
            self._models.setdefault(model, None)

    def seal(self) -> None:
        self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    def models(self) -> list[str]:
        """Models in completion order. Only valid after :meth:`seal`."""
        if not self._sealed:
            raise RuntimeError(f"Aggregator for channel {self.channel_id} read before all probes finished")
        return list(self._models)

    def __len__(self) -> int:
        return len(self._models)
