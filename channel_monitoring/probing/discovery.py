"""Enumerating the models a channel claims to serve."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from ..config import ChannelMonitoringConfig
from ..errors import DiscoveryAbort
from ..store.channels import Channel


logger = structlog.get_logger(__name__)

SOURCE_FORCED = "forced"
SOURCE_UPSTREAM = "upstream"
SOURCE_FALLBACK = "fallback"
SOURCE_ABORTED = "aborted"


@dataclass(frozen=True)
class DiscoveryResult:
    channel_id: int
    models: tuple[str, ...]
    source: str
    reason: str | None = None

    @property
    def aborted(self) -> bool:
        return self.source == SOURCE_ABORTED


def models_url(base_url: str) -> str:
    return f"{base_url.rstrip('/')}/v1/models"


def parse_model_list(body: str) -> list[str]:
    """
    Expected shape: {"data": [{"id": "gpt-4o"}, ...]}
    """
    try:
        data = json.loads(body)
    except ValueError as e:
        raise DiscoveryAbort("decode_error", f"Model list is not valid JSON: {e}") from e
    if not isinstance(data, dict) or not isinstance(data.get("data"), list):
        raise DiscoveryAbort("decode_error", "Model list has no 'data' array")

    ids: list[str] = []
    for item in data["data"]:
        if not isinstance(item, dict) or not isinstance(item.get("id"), str):
            raise DiscoveryAbort("decode_error", f"Unexpected model list entry: {item!r}")
        ids.append(item["id"])
    return ids


class ModelDiscovery:
    """Produces the candidate model list of a channel for one cycle."""

    def __init__(self, config: ChannelMonitoringConfig, client: httpx.AsyncClient):
        self.config = config
        self.client = client
        self.exclude_model = frozenset(config.exclude_model)

    async def discover(self, channel: Channel) -> DiscoveryResult:
        if self.config.force_models:
            logger.info("Using forced model list", channel_id=channel.id, models=list(self.config.models))
            return DiscoveryResult(channel.id, tuple(self.config.models), SOURCE_FORCED)

        try:
            models = await self._fetch(channel)
        except (httpx.RequestError, httpx.InvalidURL) as e:
            logger.warning(
                "Model list request failed, using static model list",
                **channel.log_context(),
                error=f"{type(e).__name__}: {e}",
            )
            return DiscoveryResult(channel.id, tuple(self.config.models), SOURCE_FALLBACK)
        except DiscoveryAbort as e:
            logger.error("Model discovery aborted", **channel.log_context(), reason=e.reason, error=str(e))
            return DiscoveryResult(channel.id, (), SOURCE_ABORTED, reason=e.reason)

        return DiscoveryResult(channel.id, tuple(models), SOURCE_UPSTREAM)

    async def _fetch(self, channel: Channel) -> list[str]:
        resp = await self.client.get(
            models_url(channel.base_url),
            headers={"Authorization": f"Bearer {channel.key}"},
        )
        if resp.status_code != 200:
            raise DiscoveryAbort(
                "http_status",
                f"Model list returned status {resp.status_code}: {_excerpt(resp.text)}",
            )

        models: list[str] = []
        for model in parse_model_list(resp.text):
            if model in self.exclude_model:
                logger.info("Model excluded, skipping", channel_id=channel.id, model=model)
                continue
            if model not in models:
                models.append(model)
        return models


def _excerpt(body: Any, limit: int = 300) -> str:
    s = str(body or "").strip()
    return s if len(s) <= limit else s[:limit] + "..."
