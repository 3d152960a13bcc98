"""Async SQLAlchemy engine and the lightweight table definitions of the gateway schema."""

from sqlalchemy import column, table
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ..config import ChannelMonitoringConfig


# Only the columns read or written here; the schema itself belongs to the gateway.
channels_table = table(
    "channels",
    column("id"),
    column("type"),
    column("name"),
    column("base_url"),
    column("key"),
    column("status"),
    column("model_mapping"),
    column("models"),
)

abilities_table = table(
    "abilities",
    column("channel_id"),
    column("model"),
    column("enabled"),
)


def create_engine_from_config(config: ChannelMonitoringConfig) -> AsyncEngine:
    return create_async_engine(config.database_url, echo=False, pool_pre_ping=True)
