"""Loading probe targets from the gateway's channel table."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

import structlog
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from ..errors import StoreError
from .database import channels_table


logger = structlog.get_logger(__name__)

REFRESH_CHANNEL_NAME = "refresh"

KIND_OPENAI = 1
KIND_SILICONFLOW = 40
KIND_SILICONFLOW_CUSTOM = 999

OPENAI_BASE_URL = "https://api.openai.com"
SILICONFLOW_BASE_URL = "https://api.siliconflow.cn"

# Kinds whose base URL is fixed no matter what the row says.
FORCED_BASE_URLS = {
    KIND_SILICONFLOW: SILICONFLOW_BASE_URL,
    KIND_SILICONFLOW_CUSTOM: SILICONFLOW_BASE_URL,
}
# Kinds that only fill in an empty base URL.
DEFAULT_BASE_URLS = {
    KIND_OPENAI: OPENAI_BASE_URL,
}


def mask_secret(value: str, *, keep: int = 4) -> str:
    s = str(value or "")
    if len(s) <= keep * 2:
        return "*" * len(s)
    return f"{s[:keep]}...{s[-keep:]}"


@dataclass(frozen=True)
class Channel:
    id: int
    kind: int
    name: str
    base_url: str
    key: str = field(repr=False)
    status: int = 1
    model_mapping: dict[str, str] = field(default_factory=dict)

    @property
    def is_refresh_artifact(self) -> bool:
        return self.name == REFRESH_CHANNEL_NAME

    def log_context(self) -> dict[str, Any]:
        return {"channel_id": self.id, "channel_name": self.name, "key": mask_secret(self.key)}


def resolve_base_url(kind: int, base_url: str) -> str:
    forced = FORCED_BASE_URLS.get(kind)
    if forced is not None:
        return forced
    if not base_url:
        return DEFAULT_BASE_URLS.get(kind, base_url)
    return base_url


def decode_model_mapping(raw: Any) -> dict[str, str]:
    """Decode the JSON alias map stored on a channel row.

    NULL and empty strings mean "no aliases". Anything else must be a JSON
    object of strings; otherwise ``ValueError`` is raised.
    """
    if raw is None:
        return {}
    s = str(raw).strip()
    if not s:
        return {}
    data = json.loads(s)
    if not isinstance(data, dict):
        raise ValueError("model_mapping must be a JSON object")
    mapping: dict[str, str] = {}
    for k, v in data.items():
        if not isinstance(v, str):
            raise ValueError(f"model_mapping value for {k!r} is not a string")
        mapping[str(k)] = v
    return mapping


def channel_from_row(row: Mapping[str, Any]) -> Channel:
    kind = int(row["type"] or 0)
    return Channel(
        id=int(row["id"]),
        kind=kind,
        name=str(row["name"] or ""),
        base_url=resolve_base_url(kind, str(row["base_url"] or "")),
        key=str(row["key"] or ""),
        status=int(row["status"] or 0),
        model_mapping=decode_model_mapping(row["model_mapping"]),
    )


class ChannelRepository:
    """Reads the channels to probe from the gateway database."""

    def __init__(self, engine: AsyncEngine, exclude_channel: Iterable[int] = ()):
        self.engine = engine
        self.exclude_channel = frozenset(int(cid) for cid in exclude_channel)

    async def ping(self) -> None:
        """Fail fast with ``StoreError`` when the database is unreachable."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise StoreError(f"Database connectivity check failed: {e}") from e

    async def list_channels(self) -> list[Channel]:
        c = channels_table.c
        query = select(c.id, c.type, c.name, c.base_url, c["key"], c.status, c.model_mapping)
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(query)
                rows = result.fetchall()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read channels: {e}") from e

        channels: list[Channel] = []
        for row in rows:
            try:
                channel = channel_from_row(row._mapping)
            except (TypeError, ValueError) as e:
                raise StoreError(f"Failed to decode channel {row._mapping['id']}: {e}") from e

            if channel.id in self.exclude_channel:
                logger.info("Channel excluded, skipping", channel_id=channel.id, channel_name=channel.name)
                continue
            channels.append(channel)

        logger.info(
            "Loaded channels",
            count=len(channels),
            channels=[f"{ch.name}({ch.id})" for ch in channels],
        )
        return channels
