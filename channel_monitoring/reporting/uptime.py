"""Best-effort pushes to Uptime Kuma push monitors."""

from __future__ import annotations

import httpx
import structlog

from ..config import UptimeKumaConfig
from ..errors import ReportError


logger = structlog.get_logger(__name__)


class UptimeReporter:
    """Pushes model and channel liveness to pre-registered push URLs.

    Every failure is logged and swallowed; callers only get a bool back.
    """

    def __init__(self, config: UptimeKumaConfig, client: httpx.AsyncClient):
        self.config = config
        self.client = client

    async def report_model(self, model: str) -> bool:
        if not self.config.enabled:
            return False
        return await self._push("model", model, self.config.model_url.get(model))

    async def report_channel(self, channel_id: int) -> bool:
        if not self.config.enabled:
            return False
        return await self._push("channel", channel_id, self.config.channel_url.get(str(channel_id)))

    async def _push(self, target_type: str, target: object, url: str | None) -> bool:
        try:
            await self._get(target_type, target, url)
        except ReportError as e:
            logger.warning("Uptime push failed", target_type=target_type, target=target, error=str(e))
            return False
        logger.debug("Uptime push sent", target_type=target_type, target=target)
        return True

    async def _get(self, target_type: str, target: object, url: str | None) -> None:
        if not url:
            raise ReportError(f"No push URL registered for {target_type} {target}")
        try:
            resp = await self.client.get(url)
        except (httpx.RequestError, httpx.InvalidURL) as e:
            raise ReportError(f"{type(e).__name__}: {e}") from e
        if resp.status_code != 200:
            raise ReportError(f"Push returned status {resp.status_code}")
