"""
Pipeline orchestrator: runs one workflow execution per request.

Every call to `start_execution` compiles a fresh state machine from the
shared definition, so concurrent executions never touch each other's
payload or state. The whole run is bounded by a single deadline.
"""

from typing import Any

from ..observability.logging import get_logger, set_trace_id
from ..observability.metrics import get_metrics_collector
from ..observability.probe import clear_trace_metrics, get_trace_metrics, probe
from ..observability.tracing import add_span_attributes, trace_span
from .execution import Execution, ExecutionResult
from .workflow import WorkflowDefinition

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15 * 60


class Orchestrator:
    """Executes a workflow definition synchronously, request by request."""

    def __init__(self, definition: WorkflowDefinition, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.definition = definition
        self.timeout = timeout

    @classmethod
    def from_container(cls, container) -> "Orchestrator":
        return cls(
            definition=container.get("workflow"),
            timeout=container.settings.workflow.timeout_seconds,
        )

    @trace_span("orchestrator.start_execution")
    async def start_execution(self, payload: dict[str, Any]) -> ExecutionResult:
        """
        Run the workflow for `payload` and return its terminal result.

        Task failures and deadline expiry come back as a failed result;
        only programming errors in the definition raise.
        """
        execution = Execution(workflow=self.definition.name, payload=dict(payload), timeout=self.timeout)
        execution_id = execution.execution_id
        set_trace_id(execution_id)
        add_span_attributes(execution_id=execution_id, workflow=self.definition.name)

        machine = self.definition.build_state_machine(
            deadline=execution.deadline,
            on_state_change=lambda state: setattr(execution, "current_state", state),
        )
        machine.context.metadata["execution_id"] = execution_id

        logger.info(
            "Execution started",
            execution_id=execution_id,
            workflow=self.definition.name,
            timeout=self.timeout,
        )

        try:
            with probe("orchestrator.execution", trace_id=execution_id, workflow=self.definition.name):
                await machine.start(execution.payload)
                await machine.run_to_completion(max_steps=len(self.definition.steps) + 1)

            if machine.error:
                execution.fail(machine.error)
            else:
                execution.succeed(machine.context.data)

            result = execution.to_result(machine.get_state_history())
            result.timings_ms = {
                op.removeprefix("task."): round(data["duration_ms"], 3)
                for op, data in get_trace_metrics(execution_id).items()
                if op.startswith("task.")
            }
        finally:
            clear_trace_metrics(execution_id)

        get_metrics_collector().record_execution(
            self.definition.name, result.duration, result.status.value
        )
        logger.info(
            "Execution finished",
            execution_id=execution_id,
            status=result.status.value,
            path="->".join(result.state_history),
            duration=f"{result.duration:.3f}",
            task_calls=len(result.timings_ms),
        )
        return result

    async def health_check(self) -> dict[str, bool]:
        """Health of every capability the workflow uses, keyed by capability name."""
        status = {}
        for capability in self.definition.capabilities():
            check = getattr(capability, "health_check", None)
            status[capability.name] = bool(await check()) if check else True
        return status
