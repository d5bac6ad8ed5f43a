"""Monitoring utilities."""

from rankzone.monitoring.logging import configure_logging
from rankzone.monitoring.metrics import Metrics

__all__ = [
    "configure_logging",
    "Metrics",
]
