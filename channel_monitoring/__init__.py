"""Periodic liveness prober and model-list reconciler for API gateway channels."""

__version__ = "0.1.0"
