"""
Observability module.
Contains logging, metrics, and tracing setup.
"""

from pgqueue.observability.logging import job_log_context, setup_logging
from pgqueue.observability.metrics import (
    MetricsCollector,
    get_metrics,
    setup_metrics,
)
from pgqueue.observability.tracing import get_tracer, instrument_sqlalchemy, setup_tracing

__all__ = [
    "setup_logging",
    "job_log_context",
    "setup_metrics",
    "get_metrics",
    "MetricsCollector",
    "setup_tracing",
    "instrument_sqlalchemy",
    "get_tracer",
]
