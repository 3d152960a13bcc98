"""Command line entry point for the channel monitor."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
from typing import Optional

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncEngine

from .config import ChannelMonitoringConfig, load_config
from .errors import ConfigError, StoreError
from .probing.discovery import ModelDiscovery
from .probing.probe import ProbeEngine
from .reconcile import build_reconciler
from .reporting.uptime import UptimeReporter
from .scheduler.cycle_coordinator import CycleCoordinator
from .store.channels import ChannelRepository
from .store.database import create_engine_from_config


logger = structlog.get_logger(__name__)


def configure_logging(log_level: str) -> None:
    level = getattr(logging, str(log_level).upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    # Bearer tokens travel in headers and push URLs; keep transport chatter out.
    logging.basicConfig(level=level)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def build_coordinator(
    config: ChannelMonitoringConfig,
    engine: AsyncEngine,
    client: httpx.AsyncClient,
) -> CycleCoordinator:
    reporter = UptimeReporter(config.uptime_kuma, client)
    return CycleCoordinator(
        config=config,
        repository=ChannelRepository(engine, config.exclude_channel),
        discovery=ModelDiscovery(config, client),
        probe_engine=ProbeEngine(config, client, reporter),
        reconciler=build_reconciler(config, engine, client),
    )


async def _wait_for_shutdown() -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops: fall back to KeyboardInterrupt.
            pass
    await stop.wait()


async def run(config: ChannelMonitoringConfig, once: bool) -> int:
    engine = create_engine_from_config(config)
    try:
        async with httpx.AsyncClient(
            headers={"User-Agent": config.user_agent},
            timeout=config.http_timeout_seconds,
        ) as client:
            coordinator = build_coordinator(config, engine, client)
            await coordinator.repository.ping()

            if once:
                report = await coordinator.run_cycle()
                return 0 if report is not None and report.ok else 1

            await coordinator.start()
            try:
                await _wait_for_shutdown()
            finally:
                await coordinator.stop()
            return 0
    finally:
        await engine.dispose()


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Probe gateway channels and prune dead models")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to YAML config (default: $CHANNEL_MONITORING_CONFIG or config/channel_monitoring.yaml)",
    )
    parser.add_argument("--once", action="store_true", help="Run one probe cycle and exit")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (INFO, WARNING, ...); overrides the config file",
    )
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        configure_logging(args.log_level or os.getenv("LOG_LEVEL", "INFO"))
        logger.error("Failed to load configuration", error=str(e))
        return 2

    configure_logging(args.log_level or config.log_level)
    logger.info("Configuration loaded",
                oneapi_type=config.oneapi_type,
                time_period=config.time_period,
                force_models=config.force_models)

    try:
        return asyncio.run(run(config, once=bool(args.once)))
    except ConfigError as e:
        logger.error("Invalid configuration", error=str(e))
        return 2
    except StoreError as e:
        logger.error("Database connection failed", error=str(e))
        return 1
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
