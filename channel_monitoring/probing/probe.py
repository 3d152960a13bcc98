"""Live completion probes against a channel's models."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Iterable

import httpx
import structlog

from ..config import ChannelMonitoringConfig
from ..reporting.uptime import UptimeReporter
from ..store.channels import Channel
from .aggregator import LivenessAggregator


logger = structlog.get_logger(__name__)

COMPLETIONS_PATH = "/v1/chat/completions"
PROBE_PROMPT = "Hello! Reply in short"


@dataclass(frozen=True)
class ProbeResult:
    channel_id: int
    model: str
    available: bool
    reason: str
    status_code: int | None = None
    elapsed_ms: float = 0.0
    error: str | None = None


def build_completions_url(base_url: str) -> str:
    """Normalize a channel base URL into its chat completions endpoint.

    ``https://x``, ``https://x/v1`` and ``https://x/v1/chat`` all become
    ``https://x/v1/chat/completions``; a URL that already names the
    completions path is returned as is.
    """
    if COMPLETIONS_PATH in base_url:
        return base_url
    url = base_url.rstrip("/")
    if not url.endswith("/chat"):
        if not url.endswith("/v1"):
            url += "/v1"
        url += "/chat"
    return url + "/completions"


def build_probe_payload(model: str) -> dict:
    return {
        "model": model,
        "messages": [{"role": "user", "content": PROBE_PROMPT}],
    }


class ProbeEngine:
    """Issues one synthetic completion request per (channel, model)."""

    def __init__(
        self,
        config: ChannelMonitoringConfig,
        client: httpx.AsyncClient,
        reporter: UptimeReporter,
    ):
        self.client = client
        self.reporter = reporter
        self.timeout = float(config.probe_timeout_seconds)
        self.concurrency = int(config.probe_concurrency)

    async def probe(self, channel: Channel, model: str) -> ProbeResult:
        url = build_completions_url(channel.base_url)
        logger.debug("Probing model", channel_id=channel.id, channel_name=channel.name, model=model)

        started = time.perf_counter()
        try:
            resp = await self.client.post(
                url,
                json=build_probe_payload(model),
                headers={"Authorization": f"Bearer {channel.key}"},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            return self._failed(channel, model, "timeout", started, error=f"{type(e).__name__}: {e}")
        except (httpx.RequestError, httpx.InvalidURL) as e:
            return self._failed(channel, model, "transport_error", started, error=f"{type(e).__name__}: {e}")

        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 3)
        if resp.status_code != 200:
            return self._failed(
                channel,
                model,
                "http_status",
                started,
                status_code=resp.status_code,
                error=resp.text[:300],
            )

        logger.info(
            "Model probe succeeded",
            channel_id=channel.id,
            channel_name=channel.name,
            model=model,
            elapsed_ms=elapsed_ms,
        )
        await self.reporter.report_model(model)
        await self.reporter.report_channel(channel.id)
        return ProbeResult(channel.id, model, True, "ok", status_code=200, elapsed_ms=elapsed_ms)

    def _failed(
        self,
        channel: Channel,
        model: str,
        reason: str,
        started: float,
        *,
        status_code: int | None = None,
        error: str | None = None,
    ) -> ProbeResult:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 3)
        logger.warning(
            "Model probe failed",
            channel_id=channel.id,
            channel_name=channel.name,
            model=model,
            reason=reason,
            status_code=status_code,
            error=error,
        )
        return ProbeResult(
            channel.id, model, False, reason, status_code=status_code, elapsed_ms=elapsed_ms, error=error
        )

    async def probe_all(self, channel: Channel, models: Iterable[str]) -> LivenessAggregator:
        """Probe every model concurrently and return the sealed aggregate."""
        aggregator = LivenessAggregator(channel.id)
        semaphore = asyncio.Semaphore(self.concurrency) if self.concurrency > 0 else None

        async def _one(model: str) -> None:
            if semaphore is None:
                result = await self.probe(channel, model)
            else:
                async with semaphore:
                    result = await self.probe(channel, model)
            if result.available:
                await aggregator.add(model)

        await asyncio.gather(*(_one(model) for model in models))
        aggregator.seal()
        return aggregator
