"""Model discovery, liveness probing and result aggregation."""

from .aggregator import LivenessAggregator
from .discovery import DiscoveryResult, ModelDiscovery
from .probe import ProbeEngine, ProbeResult, build_completions_url

__all__ = [
    "DiscoveryResult",
    "LivenessAggregator",
    "ModelDiscovery",
    "ProbeEngine",
    "ProbeResult",
    "build_completions_url",
]
