"""
Performance probing: structured timing logs, Prometheus metrics and OpenTelemetry spans.
"""

import contextlib
import time
from typing import Any

from opentelemetry import trace
from prometheus_client import CollectorRegistry, Counter, Histogram

from .logging import get_logger

log = get_logger("sentiflow.probe")

tracer = trace.get_tracer("sentiflow")

# Dedicated registry so the /metrics endpoint only exposes sentiflow series
REGISTRY = CollectorRegistry()
REQS = Counter("sentiflow_ops_total", "Total probed operations", ["op", "ok"], registry=REGISTRY)
LAT = Histogram(
    "sentiflow_op_latency_seconds",
    "Probed operation latency",
    ["op"],
    registry=REGISTRY,
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 60.0, 300.0, 900.0),
)

# Per-trace timings, keyed by trace ID then operation
_METRICS_STORE: dict[str, dict[str, Any]] = {}


@contextlib.contextmanager
def probe(op: str, trace_id: str | None = None, **labels):
    """
    Performance probe context manager.

    Args:
        op: Operation name (e.g., "orchestrator.execution")
        trace_id: Optional trace ID for correlation
        **labels: Additional labels written to the log line and the trace store
    """
    start_time = time.perf_counter()
    ok = "true"
    error_type = None

    with tracer.start_as_current_span(op):
        try:
            yield
        except BaseException as e:
            # CancelledError included: a deadline-cancelled call is not a success
            ok = "false"
            error_type = type(e).__name__
            raise
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000

            log.info(
                f'op={op} ms={duration_ms:.1f} trace={trace_id or "-"} ok={ok}'
                + (f" error={error_type}" if error_type else "")
                + "".join(f" {k}={v}" for k, v in labels.items())
            )

            REQS.labels(op=op, ok=ok).inc()
            LAT.labels(op=op).observe(duration_ms / 1000.0)

            if trace_id:
                _METRICS_STORE.setdefault(trace_id, {})[op] = {
                    "duration_ms": duration_ms,
                    "success": ok == "true",
                    "error_type": error_type,
                    "labels": labels,
                    "timestamp": time.time(),
                }


def get_trace_metrics(trace_id: str) -> dict[str, Any]:
    """Get all metrics for a specific trace ID."""
    return _METRICS_STORE.get(trace_id, {})


def clear_trace_metrics(trace_id: str) -> None:
    """Clear metrics for a specific trace ID."""
    _METRICS_STORE.pop(trace_id, None)
