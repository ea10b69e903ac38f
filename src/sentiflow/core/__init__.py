"""
Workflow execution core: definitions, state machine and orchestrator.
"""

from .execution import (
    Execution,
    ExecutionError,
    ExecutionResult,
    ExecutionStatus,
    FailureCause,
    TaskFailure,
)
from .orchestrator import Orchestrator
from .state_machine import State, StateContext, StateMachine, StateType, Transition
from .workflow import (
    ChoiceRule,
    ChoiceStep,
    SucceedStep,
    TaskStep,
    WorkflowDefinition,
    build_triage_workflow,
    lookup_field,
    string_equals,
)

__all__ = [
    "Execution",
    "ExecutionError",
    "ExecutionResult",
    "ExecutionStatus",
    "FailureCause",
    "TaskFailure",
    "Orchestrator",
    "State",
    "StateContext",
    "StateMachine",
    "StateType",
    "Transition",
    "ChoiceRule",
    "ChoiceStep",
    "SucceedStep",
    "TaskStep",
    "WorkflowDefinition",
    "build_triage_workflow",
    "lookup_field",
    "string_equals",
]
