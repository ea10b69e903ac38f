"""
State machine driving one workflow execution.

- Explicit states with entry/exit hooks
- Declared transitions; moves along undeclared edges are rejected
- A whole-run deadline shared by every state
- Failure routing to a single error state with a structured cause
"""

import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..observability.logging import get_logger
from .execution import ExecutionError, FailureCause, TaskFailure
from .runtime_patterns import with_timeout

logger = get_logger(__name__)


class StateType(Enum):
    """Types of states in the state machine."""

    INITIAL = "initial"
    INTERMEDIATE = "intermediate"
    FINAL = "final"
    ERROR = "error"


@dataclass
class StateContext:
    """Payload flowing between states plus execution metadata."""

    data: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value

    def update(self, data: dict[str, Any]) -> None:
        self.data.update(data)

    def replace(self, data: dict[str, Any]) -> None:
        """Swap in a new payload; a task's output replaces the previous one wholesale."""
        self.data = dict(data)


class State(ABC):
    """Abstract base class for state machine states."""

    def __init__(self, name: str, state_type: StateType = StateType.INTERMEDIATE):
        self.name = name
        self.state_type = state_type
        self.entry_time: float | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state_type in (StateType.FINAL, StateType.ERROR)

    @abstractmethod
    async def execute(self, context: StateContext) -> str | None:
        """
        Execute the state logic.
        Returns the name of the next state, or None for terminal states.
        """
        ...

    async def on_entry(self, context: StateContext) -> None:
        self.entry_time = time.time()
        logger.debug(f"Entering state: {self.name}")

    async def on_exit(self, context: StateContext) -> None:
        if self.entry_time:
            duration = time.time() - self.entry_time
            logger.debug(f"Exiting state: {self.name} (duration: {duration:.3f}s)")

    def __str__(self) -> str:
        return f"State({self.name})"


@dataclass
class Transition:
    """Declared edge between two states."""

    from_state: str
    to_state: str


class StateMachine:
    """
    Finite state machine for a single workflow execution.

    A machine instance belongs to exactly one execution; concurrent
    executions each get their own instance.
    """

    def __init__(
        self,
        name: str,
        initial_state: str,
        deadline: float | None = None,
        on_state_change: Callable[[str], None] | None = None,
    ):
        self.name = name
        self.initial_state = initial_state
        self.deadline = deadline
        self.on_state_change = on_state_change
        self.current_state: str | None = None
        self.states: dict[str, State] = {}
        self.transitions: list[Transition] = []
        self.state_history: list[str] = []
        self.context = StateContext()
        self.error: ExecutionError | None = None
        self.is_running = False

    def add_state(self, state: State) -> None:
        self.states[state.name] = state

    def add_transition(self, transition: Transition) -> None:
        self.transitions.append(transition)

    def get_valid_transitions(self, from_state: str) -> list[Transition]:
        """Get all transitions declared out of a given state."""
        return [t for t in self.transitions if t.from_state == from_state]

    async def start(self, initial_context: dict[str, Any] | None = None) -> None:
        """Start the state machine in its initial state."""
        if self.is_running:
            raise RuntimeError("State machine is already running")

        if self.initial_state not in self.states:
            raise ValueError(f"Initial state '{self.initial_state}' not found")

        self.is_running = True
        self.error = None
        self.context.replace(initial_context or {})
        self._enter(self.initial_state)

        logger.info(f"Starting state machine '{self.name}' in state '{self.initial_state}'")
        await self.states[self.initial_state].on_entry(self.context)

    def _enter(self, state_name: str) -> None:
        self.current_state = state_name
        self.state_history.append(state_name)
        if self.on_state_change:
            self.on_state_change(state_name)

    async def step(self) -> bool:
        """
        Execute one step of the state machine.
        Returns True if the machine should continue, False if finished.
        """
        if not self.is_running or not self.current_state:
            return False

        state = self.states[self.current_state]
        if state.is_terminal:
            await self.stop()
            return False

        try:
            if self.deadline is not None:
                next_state = await with_timeout(state.execute(self.context), self.deadline)
            else:
                next_state = await state.execute(self.context)
        except TimeoutError:
            logger.warning(f"Deadline exceeded in state '{state.name}'")
            await self._transition_to_error(
                ExecutionError(
                    cause=FailureCause.TIMEOUT,
                    state=state.name,
                    message=f"Execution deadline exceeded while in state '{state.name}'",
                )
            )
            return False
        except TaskFailure as e:
            logger.warning(f"Task failed in state '{state.name}': {e.message}")
            await self._transition_to_error(e.to_error())
            return False
        except Exception as e:
            logger.error(f"Error executing state '{state.name}': {e}")
            await self._transition_to_error(
                ExecutionError(cause=FailureCause.TASK_FAILED, state=state.name, message=str(e))
            )
            return False

        if not next_state:
            raise RuntimeError(f"Non-terminal state '{state.name}' returned no successor")

        if not await self.transition_to(next_state):
            raise RuntimeError(f"No valid transition from '{state.name}' to '{next_state}'")

        if self.states[next_state].is_terminal:
            await self.stop()
            return False

        return True

    async def transition_to(self, state_name: str) -> bool:
        """Transition to a specific state along a declared transition."""
        if not self.current_state:
            raise RuntimeError("State machine not started")

        if state_name not in self.states:
            raise ValueError(f"State '{state_name}' not found")

        valid_transitions = [
            t for t in self.get_valid_transitions(self.current_state) if t.to_state == state_name
        ]

        if not valid_transitions:
            logger.warning(f"No valid transition from '{self.current_state}' to '{state_name}'")
            return False

        await self._execute_transition(valid_transitions[0])
        return True

    async def _execute_transition(self, transition: Transition) -> None:
        old_state = self.current_state
        new_state = transition.to_state

        logger.debug(f"Transitioning from '{old_state}' to '{new_state}'")

        if old_state and old_state in self.states:
            await self.states[old_state].on_exit(self.context)

        self._enter(new_state)
        await self.states[new_state].on_entry(self.context)

    async def _transition_to_error(self, error: ExecutionError) -> None:
        """Record the failure and move to the error state."""
        self.error = error
        self.context.metadata["error"] = error.to_dict()

        error_states = [
            name for name, state in self.states.items() if state.state_type == StateType.ERROR
        ]

        if error_states:
            await self._execute_transition(
                Transition(from_state=self.current_state or "unknown", to_state=error_states[0])
            )
        else:
            logger.error(f"No error state defined, stopping state machine: {error.message}")

        await self.stop()

    async def run_to_completion(self, max_steps: int = 100) -> StateContext:
        """Run the state machine until completion or max steps."""
        step_count = 0

        while self.is_running and step_count < max_steps:
            if not await self.step():
                break
            step_count += 1

        if self.is_running:
            logger.warning(f"State machine '{self.name}' stopped after {max_steps} steps")
            await self.stop()

        return self.context

    async def stop(self) -> None:
        """Stop the state machine."""
        if not self.is_running:
            return

        logger.info(f"Stopping state machine '{self.name}' in state '{self.current_state}'")

        if self.current_state and self.current_state in self.states:
            await self.states[self.current_state].on_exit(self.context)

        self.is_running = False

    def get_state_history(self) -> list[str]:
        return self.state_history.copy()
