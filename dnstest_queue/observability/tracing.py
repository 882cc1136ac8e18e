"""
OpenTelemetry tracing.

Library code opens spans through get_tracer() unconditionally. Until a process
calls setup_tracing() those spans come from the API's no-op provider.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Span, Tracer
from sqlalchemy.ext.asyncio import AsyncEngine

from dnstest_queue import __version__
from dnstest_queue.config import get_settings

_tracer: Tracer | None = None


def setup_tracing(process_name: str, console: bool = False) -> Tracer:
    """
    Install a tracer provider exporting to the configured OTLP collector.

    Args:
        process_name: Role of the process, recorded as a resource attribute.
        console: Also print finished spans, for local debugging.
    """
    global _tracer

    settings = get_settings()
    provider = TracerProvider(
        resource=Resource.create(
            {
                "service.name": settings.otel_service_name,
                "service.version": __version__,
                "dnstest.process": process_name,
            }
        )
    )
    exporter = OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint, insecure=True)
    provider.add_span_processor(BatchSpanProcessor(exporter))
    if console:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    _tracer = provider.get_tracer(__name__, __version__)
    return _tracer


def instrument_engine(engine: AsyncEngine) -> None:
    """Emit a child span for every statement the job store sends."""
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


def get_tracer() -> Tracer:
    """Get the process tracer, or the globally registered one before setup."""
    return _tracer or trace.get_tracer(__name__, __version__)


@contextmanager
def job_span(name: str, hash_id: str, **attributes: Any) -> Iterator[Span]:
    """Open a span about one job. Attributes that are None are left out."""
    with get_tracer().start_as_current_span(name) as span:
        span.set_attribute("dnstest.hash_id", hash_id)
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(f"dnstest.{key}", value)
        yield span
