"""
Execution records and the two outcome shapes a caller can observe.
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ExecutionStatus(Enum):
    """Terminal status of an execution."""

    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"


class FailureCause(Enum):
    """Why an execution failed."""

    TASK_FAILED = "task_failed"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class ExecutionError:
    """Structured failure descriptor returned to the caller."""

    cause: FailureCause
    state: str | None
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "cause": self.cause.value,
            "state": self.state,
            "message": self.message,
            "details": self.details,
        }


class TaskFailure(Exception):
    """Raised by a task state whose capability could not produce output."""

    def __init__(self, state: str, message: str, details: dict[str, Any] | None = None):
        super().__init__(f"{state}: {message}")
        self.state = state
        self.message = message
        self.details = details or {}

    def to_error(self) -> ExecutionError:
        return ExecutionError(
            cause=FailureCause.TASK_FAILED,
            state=self.state,
            message=self.message,
            details=self.details,
        )


@dataclass
class ExecutionResult:
    """Outcome of one execution: success with payload, or failure with cause."""

    execution_id: str
    workflow: str
    status: ExecutionStatus
    output: dict[str, Any] | None = None
    error: ExecutionError | None = None
    state_history: list[str] = field(default_factory=list)
    duration: float = 0.0
    timings_ms: dict[str, float] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status == ExecutionStatus.SUCCEEDED

    def to_dict(self) -> dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "workflow": self.workflow,
            "status": self.status.value,
            "output": self.output,
            "error": self.error.to_dict() if self.error else None,
            "state_history": list(self.state_history),
            "duration": self.duration,
            "timings_ms": dict(self.timings_ms),
        }


@dataclass
class Execution:
    """
    One run of a workflow for one input payload.

    Lives only until its result has been handed back to the caller.
    """

    workflow: str
    payload: dict[str, Any]
    timeout: float
    execution_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started_at: float = field(default_factory=time.time)
    current_state: str | None = None
    status: ExecutionStatus = ExecutionStatus.RUNNING
    error: ExecutionError | None = None

    @property
    def deadline(self) -> float:
        return self.started_at + self.timeout

    def elapsed(self) -> float:
        return time.time() - self.started_at

    def succeed(self, payload: dict[str, Any]) -> None:
        self.payload = payload
        self.status = ExecutionStatus.SUCCEEDED

    def fail(self, error: ExecutionError) -> None:
        self.error = error
        self.status = (
            ExecutionStatus.TIMED_OUT if error.cause == FailureCause.TIMEOUT else ExecutionStatus.FAILED
        )

    def to_result(self, state_history: list[str]) -> ExecutionResult:
        if self.status == ExecutionStatus.RUNNING:
            raise RuntimeError(f"Execution {self.execution_id} has not reached a terminal state")
        return ExecutionResult(
            execution_id=self.execution_id,
            workflow=self.workflow,
            status=self.status,
            output=self.payload if self.status == ExecutionStatus.SUCCEEDED else None,
            error=self.error,
            state_history=state_history,
            duration=self.elapsed(),
        )
