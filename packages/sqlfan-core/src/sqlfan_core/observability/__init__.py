"""
Observability package для sqlfan
"""

from sqlfan_core.observability.logging import LoggerConfig, setup_logging
from sqlfan_core.observability.metrics import METRICS_REGISTRY, render_latest, sample

__all__ = [
    # Logging
    "setup_logging",
    "LoggerConfig",
    # Metrics
    "METRICS_REGISTRY",
    "render_latest",
    "sample",
]
