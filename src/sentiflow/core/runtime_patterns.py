"""
Deadline primitives shared by the state machine and the orchestrator.

Deadlines are absolute `time.time()` values so the remaining budget shrinks
across every step of an execution instead of being reset per call.
"""

import asyncio
import time
from collections.abc import Awaitable
from typing import TypeVar

T = TypeVar("T")


def remaining_budget(deadline: float) -> float:
    """Calculate remaining time budget from absolute deadline."""
    return max(0.0, deadline - time.time())


def is_expired(deadline: float) -> bool:
    return remaining_budget(deadline) <= 0


async def with_timeout(coro: Awaitable[T], deadline: float) -> T:
    """
    Await `coro`, cancelling it once `deadline` passes.

    Raises TimeoutError when the deadline has already passed or elapses
    while waiting; the cancelled operation's result is never observed.
    """
    budget = remaining_budget(deadline)
    if budget <= 0:
        # Close the coroutine so it does not warn about never being awaited
        if asyncio.iscoroutine(coro):
            coro.close()
        raise TimeoutError("Deadline exceeded before execution")

    return await asyncio.wait_for(coro, timeout=budget)
