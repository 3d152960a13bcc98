"""Interval scheduling of probe cycles using APScheduler."""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger


logger = structlog.get_logger(__name__)


class JobScheduler:
    """Manages scheduled jobs on the running asyncio event loop."""

    def __init__(self):
        self.scheduler = AsyncIOScheduler()
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self.running = False

    async def start(self):
        """Start the job scheduler."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        self.scheduler.start()
        self.running = True
        logger.info("Job scheduler started")

    async def stop(self):
        """Stop the job scheduler."""
        if not self.running:
            return

        self.scheduler.shutdown(wait=False)
        self.running = False
        logger.info("Job scheduler stopped")

    def add_interval_job(
        self,
        job_id: str,
        func: Callable,
        seconds: float,
        args: Optional[tuple] = None,
        kwargs: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None,
        run_immediately: bool = True,
    ):
        """Add an interval job that never runs concurrently with itself.

        Ticks that fire while the previous run is still going are dropped,
        and missed ticks are coalesced into one.
        """
        if job_id in self.jobs:
            logger.warning("Job already exists, replacing", job_id=job_id)
            self.remove_job(job_id)

        trigger = IntervalTrigger(seconds=seconds)
        extra: Dict[str, Any] = {}
        if run_immediately:
            # Passing next_run_time=None would add the job paused.
            extra["next_run_time"] = datetime.now(timezone.utc)

        job = self.scheduler.add_job(
            func=func,
            trigger=trigger,
            id=job_id,
            args=args or (),
            kwargs=kwargs or {},
            name=description or job_id,
            max_instances=1,
            coalesce=True,
            **extra,
        )

        self.jobs[job_id] = {
            "job": job,
            "type": "interval",
            "seconds": seconds,
            "description": description,
            "added_at": datetime.now(timezone.utc),
        }

        logger.info("Added interval job",
                    job_id=job_id,
                    interval_seconds=seconds,
                    description=description)

    def remove_job(self, job_id: str) -> bool:
        """Remove a scheduled job."""
        if job_id not in self.jobs:
            logger.warning("Job not found", job_id=job_id)
            return False

        self.scheduler.remove_job(job_id)
        del self.jobs[job_id]
        logger.info("Removed job", job_id=job_id)
        return True

    def get_job_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Get status information for a job."""
        if job_id not in self.jobs:
            return None

        job_info = self.jobs[job_id]
        scheduler_job = self.scheduler.get_job(job_id)
        if scheduler_job is None:
            return None

        return {
            "job_id": job_id,
            "name": scheduler_job.name,
            "type": job_info["type"],
            "interval_seconds": job_info["seconds"],
            "next_run": scheduler_job.next_run_time.isoformat() if scheduler_job.next_run_time else None,
            "added_at": job_info["added_at"].isoformat(),
            "description": job_info.get("description"),
        }

