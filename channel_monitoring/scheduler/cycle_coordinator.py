"""Coordination of probe cycles across the channel fleet."""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog

from ..config import ChannelMonitoringConfig
from ..errors import ReconcileError, StoreError
from ..probing.discovery import ModelDiscovery
from ..probing.probe import ProbeEngine
from ..reconcile.base import Reconciler
from ..store.channels import Channel, ChannelRepository
from .job_scheduler import JobScheduler


logger = structlog.get_logger(__name__)

CYCLE_JOB_ID = "channel_probe_cycle"

OUTCOME_RECONCILED = "reconciled"
OUTCOME_DISCOVERY_ABORTED = "discovery_aborted"
OUTCOME_RECONCILE_FAILED = "reconcile_failed"
OUTCOME_ERROR = "error"


class CycleState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass
class ChannelOutcome:
    channel_id: int
    channel_name: str
    outcome: str
    discovery_source: Optional[str] = None
    candidate_models: List[str] = field(default_factory=list)
    available_models: List[str] = field(default_factory=list)
    written_models: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class CycleReport:
    started_at: datetime
    finished_at: Optional[datetime] = None
    channels_loaded: int = 0
    load_error: Optional[str] = None
    outcomes: Dict[int, ChannelOutcome] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.load_error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "channels_loaded": self.channels_loaded,
            "load_error": self.load_error,
            "outcomes": {cid: o.outcome for cid, o in self.outcomes.items()},
        }


class CycleCoordinator:
    """Runs the load -> discover -> probe -> reconcile pipeline for every channel."""

    def __init__(
        self,
        config: ChannelMonitoringConfig,
        repository: ChannelRepository,
        discovery: ModelDiscovery,
        probe_engine: ProbeEngine,
        reconciler: Reconciler,
        scheduler: Optional[JobScheduler] = None,
    ):
        self.config = config
        self.repository = repository
        self.discovery = discovery
        self.probe_engine = probe_engine
        self.reconciler = reconciler
        self.scheduler = scheduler or JobScheduler()

        self.state = CycleState.IDLE
        self.last_report: Optional[CycleReport] = None

    async def start(self):
        """Start the scheduler and register the periodic probe cycle."""
        await self.scheduler.start()
        self.scheduler.add_interval_job(
            job_id=CYCLE_JOB_ID,
            func=self.run_cycle,
            seconds=self.config.interval_seconds,
            description="Probe all channels and reconcile their models",
        )
        status = self.scheduler.get_job_status(CYCLE_JOB_ID) or {}
        logger.info("Cycle coordinator started",
                    time_period=self.config.time_period,
                    backend=self.reconciler.name,
                    next_run=status.get("next_run"))

    async def stop(self):
        await self.scheduler.stop()
        logger.info("Cycle coordinator stopped")

    async def run_cycle(self) -> Optional[CycleReport]:
        """Execute one full fleet pass. Returns ``None`` if a cycle is already running."""
        if self.state is CycleState.RUNNING:
            logger.warning("Probe cycle already running, skipping tick")
            return None

        self.state = CycleState.RUNNING
        report = CycleReport(started_at=datetime.now(timezone.utc))
        logger.info("Starting probe cycle")
        try:
            try:
                channels = await self.repository.list_channels()
            except StoreError as e:
                report.load_error = str(e)
                logger.error("Failed to load channels, cycle aborted", error=str(e))
                return report

            report.channels_loaded = len(channels)
            targets = [ch for ch in channels if not ch.is_refresh_artifact]
            outcomes = await asyncio.gather(*(self._check_channel_safe(ch) for ch in targets))
            report.outcomes = {o.channel_id: o for o in outcomes}
            return report
        finally:
            report.finished_at = datetime.now(timezone.utc)
            self.last_report = report
            self.state = CycleState.IDLE
            logger.info("Probe cycle finished", **report.to_dict())

    async def _check_channel_safe(self, channel: Channel) -> ChannelOutcome:
        try:
            return await self.check_channel(channel)
        except Exception as e:
            logger.exception("Channel pipeline crashed", channel_id=channel.id, channel_name=channel.name)
            return ChannelOutcome(channel.id, channel.name, OUTCOME_ERROR, error=f"{type(e).__name__}: {e}")

    async def check_channel(self, channel: Channel) -> ChannelOutcome:
        """Discover, probe and reconcile a single channel."""
        outcome = ChannelOutcome(channel.id, channel.name, OUTCOME_DISCOVERY_ABORTED)

        discovered = await self.discovery.discover(channel)
        outcome.discovery_source = discovered.source
        outcome.candidate_models = list(discovered.models)
        if discovered.aborted:
            outcome.error = discovered.reason
            return outcome

        aggregator = await self.probe_engine.probe_all(channel, discovered.models)
        outcome.available_models = aggregator.models()

        try:
            outcome.written_models = await self.reconciler.reconcile(
                channel.id, outcome.available_models, channel.model_mapping
            )
        except ReconcileError as e:
            outcome.outcome = OUTCOME_RECONCILE_FAILED
            outcome.error = str(e)
            logger.error("Failed to update channel models",
                         channel_id=channel.id,
                         channel_name=channel.name,
                         error=str(e))
            return outcome

        outcome.outcome = OUTCOME_RECONCILED
        logger.info("Channel available models",
                    channel_id=channel.id,
                    channel_name=channel.name,
                    available=outcome.available_models,
                    written=outcome.written_models)
        return outcome
