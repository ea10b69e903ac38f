"""
Tests for the state machine driving a single execution.

Tests cover:
- Lifecycle: start, step, stop
- Transition validation
- Failure routing to the error state
- Deadline enforcement
"""

import asyncio
import time

import pytest

from sentiflow.core.execution import FailureCause, TaskFailure
from sentiflow.core.state_machine import State, StateContext, StateMachine, StateType, Transition


class MockState(State):
    """Concrete State that returns a fixed successor."""

    def __init__(
        self,
        name: str,
        state_type: StateType = StateType.INTERMEDIATE,
        next_state: str | None = None,
        delay: float = 0.0,
        error: Exception | None = None,
    ):
        super().__init__(name, state_type)
        self.next_state = next_state
        self.delay = delay
        self.error = error
        self.executions = 0

    async def execute(self, context: StateContext) -> str | None:
        self.executions += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        context.set("visited", [*context.get("visited", []), self.name])
        return self.next_state


def linear_machine(deadline=None, **overrides):
    machine = StateMachine("test", "a", deadline=deadline)
    states = {
        "a": MockState("a", StateType.INITIAL, next_state="b"),
        "b": MockState("b", next_state="done"),
        "done": MockState("done", StateType.FINAL),
        "failed": MockState("failed", StateType.ERROR),
    }
    states.update(overrides)
    for state in states.values():
        machine.add_state(state)
    machine.add_transition(Transition("a", "b"))
    machine.add_transition(Transition("b", "done"))
    return machine


class TestStateContext:
    def test_get_set_update(self):
        context = StateContext()
        context.set("age", "34")
        context.update({"text": "hi"})

        assert context.get("age") == "34"
        assert context.get("missing", "x") == "x"
        assert context.data == {"age": "34", "text": "hi"}

    def test_replace_copies_payload(self):
        context = StateContext(data={"old": True})
        new = {"fresh": 1}
        context.replace(new)
        new["fresh"] = 2

        assert context.data == {"fresh": 1}


class TestLifecycle:
    """Start, run and stop."""

    async def test_runs_to_final_state(self):
        machine = linear_machine()

        await machine.start({"age": "34"})
        context = await machine.run_to_completion()

        assert not machine.is_running
        assert machine.current_state == "done"
        assert machine.error is None
        assert machine.get_state_history() == ["a", "b", "done"]
        assert context.data == {"age": "34", "visited": ["a", "b"]}

    async def test_start_twice_raises(self):
        machine = linear_machine()
        await machine.start()

        with pytest.raises(RuntimeError, match="already running"):
            await machine.start()

    async def test_unknown_initial_state_raises(self):
        machine = StateMachine("test", "nowhere")

        with pytest.raises(ValueError):
            await machine.start()

    async def test_step_before_start_is_noop(self):
        assert await linear_machine().step() is False

    async def test_state_change_callback(self):
        seen = []
        machine = linear_machine()
        machine.on_state_change = seen.append

        await machine.start()
        await machine.run_to_completion()

        assert seen == ["a", "b", "done"]

    async def test_max_steps_stops_machine(self):
        machine = StateMachine("loop", "a")
        machine.add_state(MockState("a", StateType.INITIAL, next_state="b"))
        machine.add_state(MockState("b", next_state="a"))
        machine.add_transition(Transition("a", "b"))
        machine.add_transition(Transition("b", "a"))

        await machine.start()
        await machine.run_to_completion(max_steps=3)

        assert not machine.is_running
        assert len(machine.get_state_history()) == 4


class TestTransitions:
    async def test_undeclared_transition_raises(self):
        machine = linear_machine(a=MockState("a", StateType.INITIAL, next_state="done"))
        await machine.start()

        with pytest.raises(RuntimeError, match="No valid transition"):
            await machine.step()

    async def test_missing_successor_raises(self):
        machine = linear_machine(a=MockState("a", StateType.INITIAL))
        await machine.start()

        with pytest.raises(RuntimeError, match="returned no successor"):
            await machine.step()

    async def test_transition_to_unknown_state(self):
        machine = linear_machine()
        await machine.start()

        with pytest.raises(ValueError):
            await machine.transition_to("ghost")

    async def test_transition_to_undeclared_edge_stays_put(self):
        machine = linear_machine()
        await machine.start()

        assert await machine.transition_to("done") is False
        assert machine.current_state == "a"
        assert machine.get_state_history() == ["a"]


class TestFailureRouting:
    """Errors leave the machine in its error state with a structured cause."""

    async def test_task_failure_routes_to_error_state(self):
        failure = TaskFailure("b", "record missing", {"reason": "not_found"})
        machine = linear_machine(b=MockState("b", next_state="done", error=failure))

        await machine.start()
        await machine.run_to_completion()

        assert machine.current_state == "failed"
        assert machine.error.cause == FailureCause.TASK_FAILED
        assert machine.error.state == "b"
        assert machine.error.details == {"reason": "not_found"}
        assert machine.context.metadata["error"]["message"] == "record missing"

    async def test_unexpected_exception_is_task_failure(self):
        machine = linear_machine(b=MockState("b", error=ZeroDivisionError("boom")))

        await machine.start()
        await machine.run_to_completion()

        assert machine.error.cause == FailureCause.TASK_FAILED
        assert machine.error.message == "boom"

    async def test_no_error_state_still_stops(self):
        machine = StateMachine("bare", "a")
        machine.add_state(MockState("a", StateType.INITIAL, error=RuntimeError("x")))

        await machine.start()
        await machine.run_to_completion()

        assert not machine.is_running
        assert machine.error is not None
        assert machine.current_state == "a"

    async def test_restart_clears_previous_error(self):
        machine = linear_machine(a=MockState("a", StateType.INITIAL, error=RuntimeError("x")))
        await machine.start()
        await machine.run_to_completion()
        assert machine.error is not None

        machine.states["a"] = MockState("a", StateType.INITIAL, next_state="b")
        await machine.start()

        assert machine.error is None


class TestDeadline:
    async def test_deadline_interrupts_running_state(self):
        slow = MockState("b", next_state="done", delay=5)
        machine = linear_machine(deadline=time.time() + 0.1, b=slow)

        await machine.start()
        await machine.run_to_completion()

        assert machine.error.cause == FailureCause.TIMEOUT
        assert machine.error.state == "b"
        assert machine.current_state == "failed"

    async def test_expired_deadline_skips_execution(self):
        state = MockState("a", StateType.INITIAL, next_state="b")
        machine = linear_machine(deadline=time.time() - 1, a=state)

        await machine.start()
        await machine.run_to_completion()

        assert state.executions == 0
        assert machine.error.cause == FailureCause.TIMEOUT
        assert machine.error.state == "a"
