"""
State implementations compiled from workflow step descriptors.
"""

import time
from typing import TYPE_CHECKING, Any

from ..capabilities.base import CapabilityError, FailureReason, ensure_payload
from ..observability.logging import get_logger
from ..observability.metrics import get_metrics_collector
from ..observability.probe import probe
from .execution import TaskFailure
from .state_machine import State, StateContext, StateType

if TYPE_CHECKING:
    from .workflow import ChoiceStep, TaskStep

logger = get_logger(__name__)


class TaskState(State):
    """Invokes one capability; its output replaces the execution payload."""

    def __init__(self, step: "TaskStep", next_state: str, initial: bool = False):
        super().__init__(step.name, StateType.INITIAL if initial else StateType.INTERMEDIATE)
        self.step = step
        self.next_state = next_state

    async def execute(self, context: StateContext) -> str:
        payload = dict(context.data)
        step_input = self.step.input_builder(payload) if self.step.input_builder else payload
        capability = self.step.capability

        start_time = time.time()
        success = False
        try:
            with probe(
                f"task.{self.name}",
                trace_id=context.metadata.get("execution_id"),
                step=self.name,
                capability=capability.name,
            ):
                output = ensure_payload(await capability.invoke(step_input), capability.name)
            success = True
        except CapabilityError as e:
            return self._handle_failure(context, payload, e)
        except Exception as e:
            # Adapter bugs surface as invocation errors rather than crashing the run
            error = CapabilityError(
                f"{type(e).__name__}: {e}", FailureReason.INVOCATION_ERROR
            )
            return self._handle_failure(context, payload, error)
        finally:
            get_metrics_collector().record_task_call(self.name, time.time() - start_time, success)

        context.replace(output)
        return self.next_state

    def _handle_failure(
        self, context: StateContext, payload: dict[str, Any], error: CapabilityError
    ) -> str:
        if self.step.catch is None:
            raise TaskFailure(self.name, error.message, error.to_dict()) from error

        logger.warning(
            f"Step '{self.name}' failed, routing to '{self.step.catch}'",
            reason=error.reason.value,
        )
        context.replace({**payload, "error": error.to_dict()})
        return self.step.catch


class ChoiceState(State):
    """Picks the first rule whose predicate holds, else the default successor."""

    def __init__(self, step: "ChoiceStep", initial: bool = False):
        super().__init__(step.name, StateType.INITIAL if initial else StateType.INTERMEDIATE)
        self.step = step

    async def execute(self, context: StateContext) -> str:
        for rule in self.step.rules:
            try:
                matched = rule.predicate(context.data)
            except Exception as e:
                # Unreadable branch input counts as "no match"
                logger.warning(f"Rule '{rule.label}' in '{self.name}' could not be evaluated: {e}")
                matched = False
            if matched:
                logger.debug(f"Choice '{self.name}' matched '{rule.label}' -> {rule.next}")
                return rule.next

        logger.debug(f"Choice '{self.name}' took default -> {self.step.default}")
        return self.step.default


class SucceedState(State):
    """Terminal success; the payload is left as it was on entry."""

    def __init__(self, name: str):
        super().__init__(name, StateType.FINAL)

    async def execute(self, context: StateContext) -> None:
        return None


class FailState(State):
    """Terminal failure state the machine routes errors to."""

    def __init__(self, name: str = "Failed"):
        super().__init__(name, StateType.ERROR)

    async def on_entry(self, context: StateContext) -> None:
        await super().on_entry(context)
        error = context.metadata.get("error", {})
        logger.error(
            f"Execution failed in state '{error.get('state')}': {error.get('message')}",
            cause=error.get("cause"),
        )

    async def execute(self, context: StateContext) -> None:
        return None
