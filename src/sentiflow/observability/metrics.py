"""
OpenTelemetry metrics for workflow executions and task invocations.

Keeps in-process aggregates alongside the OTel instruments so the API can
report per-step success rates without querying an exporter.
"""

from collections import defaultdict
from typing import Any

from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.metrics import Counter, Histogram, Meter, NoOpMeter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource

from .logging import get_logger

logger = get_logger(__name__)


class MetricsCollector:
    """Centralized metrics collection and management."""

    def __init__(self, meter: Meter):
        self.meter = meter
        self._counters: dict[str, Counter] = {}
        self._histograms: dict[str, Histogram] = {}

        self._task_calls: dict[str, int] = defaultdict(int)
        self._task_successes: dict[str, int] = defaultdict(int)
        self._task_duration_totals: dict[str, float] = defaultdict(float)
        self._executions: dict[str, int] = defaultdict(int)

        self._setup_default_metrics()

    def _setup_default_metrics(self):
        self._counters["task_calls_total"] = self.meter.create_counter(
            "sentiflow_task_calls_total", description="Total number of task invocations", unit="1"
        )
        self._counters["task_failures_total"] = self.meter.create_counter(
            "sentiflow_task_failures_total",
            description="Total number of failed task invocations",
            unit="1",
        )
        self._histograms["task_duration"] = self.meter.create_histogram(
            "sentiflow_task_duration_seconds",
            description="Task invocation duration in seconds",
            unit="s",
        )
        self._counters["executions_total"] = self.meter.create_counter(
            "sentiflow_executions_total", description="Total workflow executions", unit="1"
        )
        self._histograms["execution_duration"] = self.meter.create_histogram(
            "sentiflow_execution_duration_seconds",
            description="Workflow execution duration",
            unit="s",
        )

    def counter(self, name: str, description: str = "", unit: str = "1") -> Counter:
        """Get or create a counter metric."""
        if name not in self._counters:
            self._counters[name] = self.meter.create_counter(
                f"sentiflow_{name}", description=description, unit=unit
            )
        return self._counters[name]

    def histogram(self, name: str, description: str = "", unit: str = "1") -> Histogram:
        """Get or create a histogram metric."""
        if name not in self._histograms:
            self._histograms[name] = self.meter.create_histogram(
                f"sentiflow_{name}", description=description, unit=unit
            )
        return self._histograms[name]

    def record_task_call(self, step: str, duration: float, success: bool):
        """Record one capability invocation made by a task step."""
        attributes = {"step": step, "success": str(success).lower()}

        self._counters["task_calls_total"].add(1, attributes)
        if not success:
            self._counters["task_failures_total"].add(1, attributes)
        self._histograms["task_duration"].record(duration, attributes)

        self._task_calls[step] += 1
        if success:
            self._task_successes[step] += 1
        self._task_duration_totals[step] += duration

    def record_execution(self, workflow: str, duration: float, status: str):
        """Record a finished workflow execution."""
        attributes = {"workflow": workflow, "status": status}

        self._counters["executions_total"].add(1, attributes)
        self._histograms["execution_duration"].record(duration, attributes)
        self._executions[status] += 1

    def get_summary(self) -> dict[str, Any]:
        """Aggregated per-step and per-status figures."""
        steps = {}
        for step, calls in self._task_calls.items():
            steps[step] = {
                "calls": calls,
                "successes": self._task_successes[step],
                "success_rate": self._task_successes[step] / calls if calls else 0.0,
                "avg_duration": self._task_duration_totals[step] / calls if calls else 0.0,
            }
        return {"steps": steps, "executions": dict(self._executions)}


# Global metrics collector instance
_metrics_collector: MetricsCollector | None = None


def create_meter(
    service_name: str = "sentiflow",
    service_version: str = "0.1.0",
    otlp_endpoint: str | None = None,
) -> Meter:
    """SDK-backed meter, exporting over OTLP when an endpoint is given."""
    readers = []
    if otlp_endpoint:
        readers.append(PeriodicExportingMetricReader(OTLPMetricExporter(endpoint=otlp_endpoint)))
        logger.info("OTLP metric export enabled", endpoint=otlp_endpoint)

    provider = MeterProvider(
        resource=Resource.create(
            {"service.name": service_name, "service.version": service_version}
        ),
        metric_readers=readers,
    )
    return provider.get_meter(service_name, service_version)


def setup_metrics(meter: Meter) -> MetricsCollector:
    """Setup global metrics collector."""
    global _metrics_collector
    _metrics_collector = MetricsCollector(meter)
    return _metrics_collector


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector, creating a no-op backed one on first use."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector(NoOpMeter("sentiflow"))
    return _metrics_collector


def counter(name: str, description: str = "", unit: str = "1") -> Counter:
    """Get or create a counter metric."""
    return get_metrics_collector().counter(name, description, unit)


def histogram(name: str, description: str = "", unit: str = "1") -> Histogram:
    """Get or create a histogram metric."""
    return get_metrics_collector().histogram(name, description, unit)
