"""Scheduler module for orchestrating probe cycles."""

from .cycle_coordinator import ChannelOutcome, CycleCoordinator, CycleReport, CycleState
from .job_scheduler import JobScheduler

__all__ = ["ChannelOutcome", "CycleCoordinator", "CycleReport", "CycleState", "JobScheduler"]
