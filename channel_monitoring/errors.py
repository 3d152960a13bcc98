"""Exception hierarchy for the channel monitoring system."""

from typing import Optional


class ChannelMonitoringError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(ChannelMonitoringError):
    """Configuration could not be loaded or failed validation."""


class StoreError(ChannelMonitoringError):
    """The channel store could not be read or a row could not be decoded."""


class DiscoveryAbort(ChannelMonitoringError):
    """The model-listing endpoint answered, but not usefully.

    Unlike a transport failure (which falls back to the static model list)
    this skips the channel for the current cycle.
    """

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason


class ReconcileError(ChannelMonitoringError):
    """Writing the surviving model list back failed for one channel."""

    def __init__(self, message: str, channel_id: Optional[int] = None):
        super().__init__(message)
        self.channel_id = channel_id


class ReportError(ChannelMonitoringError):
    """An uptime push failed. Always logged, never propagated."""
