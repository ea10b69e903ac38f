"""
Workflow definitions as ordered step descriptors.

A definition is an immutable list of steps. Task steps fall through to the
step that follows them unless they name a successor; choice steps route on
pluggable predicates over the payload. Each execution compiles the
definition into its own `StateMachine`.

    >>> workflow = WorkflowDefinition(
    ...     "triage",
    ...     [
    ...         TaskStep("FetchRecord", record_store),
    ...         TaskStep("Classify", classifier),
    ...         ChoiceStep(
    ...             "Branch",
    ...             rules=(ChoiceRule(string_equals("emotion", "NEGATIVE"), "Notify"),),
    ...             default="Success",
    ...         ),
    ...         TaskStep("Notify", notifier, next="Success"),
    ...         SucceedStep("Success"),
    ...     ],
    ... )
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from ..capabilities.base import CapabilityProtocol
from .state_machine import StateMachine, Transition
from .states import ChoiceState, FailState, SucceedState, TaskState

Payload = dict[str, Any]
Predicate = Callable[[Payload], bool]

_MISSING = object()

FETCH_RECORD = "FetchRecord"
CLASSIFY = "Classify"
BRANCH = "Branch"
NOTIFY = "Notify"
SUCCESS = "Success"


def lookup_field(payload: Payload, path: str, default: Any = None) -> Any:
    """
    Read a field by name or dotted path (``"emotion"``, ``"$.emotion"``,
    ``"result.label"``). Missing segments yield `default`.
    """
    if path in payload:
        return payload[path]

    current: Any = payload
    for segment in path.removeprefix("$.").split("."):
        if not isinstance(current, dict) or segment not in current:
            return default
        current = current[segment]
    return current


def string_equals(field: str, value: str) -> Predicate:
    """Exact, case-sensitive string equality; absent or non-string fields never match."""

    def predicate(payload: Payload) -> bool:
        actual = lookup_field(payload, field, _MISSING)
        return isinstance(actual, str) and actual == value

    predicate.__name__ = f"{field}=={value!r}"
    return predicate


@dataclass(frozen=True)
class TaskStep:
    """Invoke a capability with the payload (or a value derived from it)."""

    name: str
    capability: CapabilityProtocol
    next: str | None = None
    input_builder: Callable[[Payload], Payload] | None = None
    catch: str | None = None


@dataclass(frozen=True)
class ChoiceRule:
    predicate: Predicate
    next: str
    description: str | None = None

    @property
    def label(self) -> str:
        return self.description or getattr(self.predicate, "__name__", "rule")


@dataclass(frozen=True)
class ChoiceStep:
    """Route to the first matching rule's target, else to `default`."""

    name: str
    rules: tuple[ChoiceRule, ...]
    default: str


@dataclass(frozen=True)
class SucceedStep:
    name: str


Step = TaskStep | ChoiceStep | SucceedStep


class WorkflowDefinition:
    """Validated, immutable workflow graph."""

    def __init__(self, name: str, steps: Sequence[Step], failure_state: str = "Failed"):
        if not steps:
            raise ValueError(f"Workflow '{name}' has no steps")

        self.name = name
        self.steps: tuple[Step, ...] = tuple(steps)
        self.failure_state = failure_state
        self._by_name: dict[str, Step] = {}

        for step in self.steps:
            if step.name in self._by_name or step.name == failure_state:
                raise ValueError(f"Duplicate state name '{step.name}' in workflow '{name}'")
            self._by_name[step.name] = step

        self._successors = {step.name: self._resolve_successors(i) for i, step in enumerate(steps)}
        self._validate()

    @property
    def start_at(self) -> str:
        return self.steps[0].name

    def _resolve_successors(self, index: int) -> list[str]:
        step = self.steps[index]
        if isinstance(step, SucceedStep):
            return []
        if isinstance(step, ChoiceStep):
            return [rule.next for rule in step.rules] + [step.default]

        targets = [self._next_of(index)]
        if step.catch:
            targets.append(step.catch)
        return targets

    def _next_of(self, index: int) -> str:
        step = self.steps[index]
        if step.next:
            return step.next
        if index + 1 >= len(self.steps):
            raise ValueError(f"Task step '{step.name}' is last and names no successor")
        return self.steps[index + 1].name

    def _validate(self) -> None:
        if not any(isinstance(step, SucceedStep) for step in self.steps):
            raise ValueError(f"Workflow '{self.name}' has no success state")

        for name, targets in self._successors.items():
            for target in targets:
                if target not in self._by_name:
                    raise ValueError(f"State '{name}' routes to unknown state '{target}'")

        # Kahn's algorithm; whatever is left over sits on a cycle
        in_degree = dict.fromkeys(self._by_name, 0)
        for targets in self._successors.values():
            for target in set(targets):
                in_degree[target] += 1

        ready = [name for name, degree in in_degree.items() if degree == 0]
        visited = 0
        while ready:
            name = ready.pop()
            visited += 1
            for target in set(self._successors[name]):
                in_degree[target] -= 1
                if in_degree[target] == 0:
                    ready.append(target)

        if visited != len(self._by_name):
            raise ValueError(f"Circular transition detected in workflow '{self.name}'")

    def capabilities(self) -> list[CapabilityProtocol]:
        return [step.capability for step in self.steps if isinstance(step, TaskStep)]

    def build_state_machine(
        self,
        deadline: float | None = None,
        on_state_change: Callable[[str], None] | None = None,
    ) -> StateMachine:
        """Compile a fresh state machine for one execution."""
        machine = StateMachine(self.name, self.start_at, deadline, on_state_change)

        for index, step in enumerate(self.steps):
            initial = index == 0
            if isinstance(step, TaskStep):
                machine.add_state(TaskState(step, self._next_of(index), initial=initial))
            elif isinstance(step, ChoiceStep):
                machine.add_state(ChoiceState(step, initial=initial))
            else:
                machine.add_state(SucceedState(step.name))

            for target in dict.fromkeys(self._successors[step.name]):
                machine.add_transition(Transition(step.name, target))

        machine.add_state(FailState(self.failure_state))
        return machine

    def describe(self) -> dict[str, Any]:
        """Plain-data view of the graph."""
        states = {}
        for step in self.steps:
            entry: dict[str, Any] = {"type": type(step).__name__.removesuffix("Step").lower()}
            if isinstance(step, TaskStep):
                entry["capability"] = step.capability.name
                entry["next"] = self._successors[step.name][0]
                if step.catch:
                    entry["catch"] = step.catch
            elif isinstance(step, ChoiceStep):
                entry["rules"] = [{"condition": r.label, "next": r.next} for r in step.rules]
                entry["default"] = step.default
            states[step.name] = entry
        return {"name": self.name, "start_at": self.start_at, "states": states}


def build_triage_workflow(
    record_store: CapabilityProtocol,
    classifier: CapabilityProtocol,
    notifier: CapabilityProtocol,
    name: str = "sentiment-triage",
    branch_field: str = "emotion",
    branch_value: str = "NEGATIVE",
) -> WorkflowDefinition:
    """FetchRecord -> Classify -> Branch -> (Notify | Success)."""
    return WorkflowDefinition(
        name,
        [
            TaskStep(FETCH_RECORD, record_store),
            TaskStep(CLASSIFY, classifier),
            ChoiceStep(
                BRANCH,
                rules=(
                    ChoiceRule(
                        string_equals(branch_field, branch_value),
                        NOTIFY,
                        description=f"{branch_field} == {branch_value}",
                    ),
                ),
                default=SUCCESS,
            ),
            TaskStep(NOTIFY, notifier, next=SUCCESS),
            SucceedStep(SUCCESS),
        ],
    )
