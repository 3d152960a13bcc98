"""Uptime reporting for probed models and channels."""

from .uptime import UptimeReporter

__all__ = ["UptimeReporter"]
