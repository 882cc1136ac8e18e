"""
Observability module.
Contains logging, metrics, and tracing setup.
"""

from dnstest_queue.observability.logging import job_log_context, setup_logging
from dnstest_queue.observability.metrics import (
    MetricsCollector,
    get_metrics,
    setup_metrics,
)
from dnstest_queue.observability.tracing import (
    get_tracer,
    instrument_engine,
    job_span,
    setup_tracing,
)

__all__ = [
    "setup_logging",
    "job_log_context",
    "setup_metrics",
    "get_metrics",
    "MetricsCollector",
    "setup_tracing",
    "instrument_engine",
    "get_tracer",
    "job_span",
]
