"""Write-back of the surviving model list per channel."""

from __future__ import annotations

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from ..config import ChannelMonitoringConfig
from ..errors import ConfigError
from .base import Reconciler, canonicalize_models, join_models
from .relational import RelationalReconciler
from .remote import RemoteManagedReconciler


def build_reconciler(
    config: ChannelMonitoringConfig,
    engine: AsyncEngine,
    client: httpx.AsyncClient,
) -> Reconciler:
    """Select the write-back protocol once, at start-up."""
    if config.remote_managed:
        if not config.base_url:
            raise ConfigError("base_url is required when oneapi_type is 'onehub'")
        return RemoteManagedReconciler(client, config.base_url, config.system_token)
    return RelationalReconciler(engine)


__all__ = [
    "Reconciler",
    "RelationalReconciler",
    "RemoteManagedReconciler",
    "build_reconciler",
    "canonicalize_models",
    "join_models",
]
