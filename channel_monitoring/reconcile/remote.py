"""Read-modify-write of a channel through the gateway management API."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from ..errors import ReconcileError
from .base import Reconciler, join_models


logger = structlog.get_logger(__name__)


class RemoteManagedReconciler(Reconciler):
    """Fetches the full channel object, replaces ``models`` and PUTs it back.

    Every other field is sent back exactly as received. Never touches a database.
    """

    name = "remote"

    def __init__(self, client: httpx.AsyncClient, base_url: str, system_token: str):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.system_token = system_token

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.system_token}"}

    async def fetch_channel(self, channel_id: int) -> dict[str, Any]:
        url = f"{self.base_url}/api/channel/{channel_id}"
        try:
            resp = await self.client.get(url, headers=self._headers())
        except httpx.RequestError as e:
            raise ReconcileError(f"Fetching channel {channel_id} failed: {type(e).__name__}: {e}", channel_id) from e
        if resp.status_code != 200:
            raise ReconcileError(f"Fetching channel {channel_id} returned status {resp.status_code}", channel_id)

        try:
            body = resp.json()
        except ValueError as e:
            raise ReconcileError(f"Channel {channel_id} response is not valid JSON: {e}", channel_id) from e
        if not isinstance(body, dict) or not isinstance(body.get("data"), dict):
            raise ReconcileError(f"Channel {channel_id} response has no 'data' object", channel_id)
        if body.get("success") is False:
            raise ReconcileError(
                f"Fetching channel {channel_id} was rejected: {body.get('message') or 'no message'}", channel_id
            )
        return body["data"]

    async def update_channel(self, channel_id: int, channel: dict[str, Any]) -> None:
        url = f"{self.base_url}/api/channel/"
        try:
            resp = await self.client.put(url, json=channel, headers=self._headers())
        except httpx.RequestError as e:
            raise ReconcileError(f"Updating channel {channel_id} failed: {type(e).__name__}: {e}", channel_id) from e
        if resp.status_code != 200:
            raise ReconcileError(f"Updating channel {channel_id} returned status {resp.status_code}", channel_id)

    async def write_models(self, channel_id: int, models: list[str]) -> None:
        channel = await self.fetch_channel(channel_id)
        channel["models"] = join_models(models)
        await self.update_channel(channel_id, channel)
        logger.info("Channel models updated", channel_id=channel_id, backend=self.name, models=models)
