"""
OpenTelemetry tracing integration.

- Tracer provider setup with optional OTLP export
- `trace_span` decorator for sync and async callables
- Span status and exception recording
"""

import asyncio
import functools
from collections.abc import Callable
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import NoOpTracer, Span, Status, StatusCode

from .logging import get_logger

logger = get_logger(__name__)


class TracingManager:
    """Manages OpenTelemetry tracing configuration and utilities."""

    def __init__(self, service_name: str = "sentiflow", service_version: str = "0.1.0"):
        self.service_name = service_name
        self.service_version = service_version
        self.tracer_provider: TracerProvider | None = None
        self.tracer: trace.Tracer = NoOpTracer()
        self._initialized = False

    def initialize(self, otlp_endpoint: str | None = None) -> None:
        """Install an SDK tracer provider, exporting over OTLP when an endpoint is given."""
        if self._initialized:
            return

        resource = Resource.create(
            {
                "service.name": self.service_name,
                "service.version": self.service_version,
            }
        )
        self.tracer_provider = TracerProvider(resource=resource)

        if otlp_endpoint:
            exporter = OTLPSpanExporter(endpoint=otlp_endpoint)
            self.tracer_provider.add_span_processor(BatchSpanProcessor(exporter))
            logger.info("OTLP span export enabled", endpoint=otlp_endpoint)

        trace.set_tracer_provider(self.tracer_provider)
        self.tracer = trace.get_tracer(self.service_name, self.service_version)
        self._initialized = True

    @contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
        kind: trace.SpanKind = trace.SpanKind.INTERNAL,
    ):
        """Context manager for creating spans."""
        with self.tracer.start_as_current_span(name, kind=kind) as span:
            for key, value in (attributes or {}).items():
                span.set_attribute(key, str(value))
            try:
                yield span
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

    def shutdown(self) -> None:
        if self.tracer_provider:
            self.tracer_provider.shutdown()
        self._initialized = False


# Global tracing manager
_tracing_manager: TracingManager | None = None


def setup_tracing(
    service_name: str = "sentiflow",
    service_version: str = "0.1.0",
    otlp_endpoint: str | None = None,
) -> TracingManager:
    """Setup and initialize the global tracing manager."""
    global _tracing_manager
    _tracing_manager = TracingManager(service_name, service_version)
    _tracing_manager.initialize(otlp_endpoint=otlp_endpoint)
    return _tracing_manager


def get_tracing_manager() -> TracingManager:
    """Get global tracing manager; spans are no-ops until setup_tracing() runs."""
    global _tracing_manager
    if _tracing_manager is None:
        _tracing_manager = TracingManager()
    return _tracing_manager


def _annotate_result(span: Span, result: Any) -> None:
    if hasattr(result, "success"):
        span.set_attribute("result.success", bool(result.success))
    if hasattr(result, "status"):
        span.set_attribute("result.status", str(getattr(result.status, "value", result.status)))


def trace_span(
    name: str | None = None,
    attributes: dict[str, Any] | None = None,
    kind: trace.SpanKind = trace.SpanKind.INTERNAL,
):
    """Decorator for automatic span creation."""

    def decorator(func: Callable) -> Callable:
        span_name = name or f"{func.__module__}.{func.__qualname__}"
        span_attributes = {
            "function.name": func.__name__,
            "function.module": func.__module__,
            **(attributes or {}),
        }

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            with get_tracing_manager().span(span_name, span_attributes, kind) as span:
                result = await func(*args, **kwargs)
                _annotate_result(span, result)
                span.set_status(Status(StatusCode.OK))
                return result

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            with get_tracing_manager().span(span_name, span_attributes, kind) as span:
                result = func(*args, **kwargs)
                _annotate_result(span, result)
                span.set_status(Status(StatusCode.OK))
                return result

        return async_wrapper if asyncio.iscoroutinefunction(func) else sync_wrapper

    return decorator


def add_span_attributes(**attributes):
    """Add attributes to the current span."""
    current_span = trace.get_current_span()
    if current_span.is_recording():
        for key, value in attributes.items():
            current_span.set_attribute(key, str(value))
