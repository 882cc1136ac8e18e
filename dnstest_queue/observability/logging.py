"""
Structured logging for queue processes.

Modules log through the standard library (`logging.getLogger(__name__)` with
`extra=`). setup_logging() routes those records through structlog so every
line carries the process role, the job being handled and the active trace.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from opentelemetry import trace

from dnstest_queue.config import Settings, get_settings

# Third party loggers that drown out queue events below WARNING
QUIET_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "asyncpg", "alembic")


def add_trace_ids(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Attach the ids of the current OpenTelemetry span, if one is recording."""
    span = trace.get_current_span()
    if span.is_recording():
        ctx = span.get_span_context()
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def _renderer(settings: Settings) -> Any:
    if settings.log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def setup_logging(process_name: str | None = None) -> None:
    """
    Configure structured logging for a queue process.

    Args:
        process_name: Role of the process (worker, supervisor), added to every record.
    """
    settings = get_settings()

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        add_trace_ids,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.ExtraAdder(),
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                _renderer(settings),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.log_level.upper())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.contextvars.clear_contextvars()
    if process_name:
        structlog.contextvars.bind_contextvars(
            process=process_name,
            service=settings.otel_service_name,
        )


@contextmanager
def job_log_context(hash_id: str, **fields: Any) -> Iterator[None]:
    """
    Tag every record logged inside the block with the job identity.

    Fields bound outside the block, such as the process role, are kept.
    """
    with structlog.contextvars.bound_contextvars(hash_id=hash_id, **fields):
        yield
