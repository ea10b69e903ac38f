"""
Observability for sentiflow: structured logging, probes, metrics and tracing.

Usage:
    >>> from sentiflow.observability.logging import get_logger
    >>> from sentiflow.observability.probe import probe
    >>>
    >>> logger = get_logger(__name__)
    >>>
    >>> with probe("task.invoke", trace_id=execution_id, step="Classify"):
    ...     output = await capability.invoke(payload)
"""

from .logging import get_logger, get_trace_id, set_trace_id, setup_logging
from .metrics import get_metrics_collector
from .probe import get_trace_metrics, probe
from .tracing import get_tracing_manager, setup_tracing, trace_span

__all__ = [
    "get_logger",
    "get_trace_id",
    "set_trace_id",
    "setup_logging",
    "get_metrics_collector",
    "get_trace_metrics",
    "probe",
    "get_tracing_manager",
    "setup_tracing",
    "trace_span",
]
