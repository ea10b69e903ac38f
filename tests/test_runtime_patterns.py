"""
Tests for deadline helpers.
"""

import asyncio
import time

import pytest

from sentiflow.core.runtime_patterns import is_expired, remaining_budget, with_timeout


class TestRemainingBudget:
    def test_future_deadline(self):
        budget = remaining_budget(time.time() + 10)
        assert 9 < budget <= 10

    def test_past_deadline_is_zero(self):
        assert remaining_budget(time.time() - 5) == 0.0
        assert is_expired(time.time() - 5)
        assert not is_expired(time.time() + 5)


class TestWithTimeout:
    async def test_returns_result_within_budget(self):
        async def work():
            await asyncio.sleep(0.01)
            return "done"

        assert await with_timeout(work(), time.time() + 1) == "done"

    async def test_raises_when_deadline_elapses(self):
        cancelled = False

        async def work():
            nonlocal cancelled
            try:
                await asyncio.sleep(5)
            except asyncio.CancelledError:
                cancelled = True
                raise

        with pytest.raises(TimeoutError):
            await with_timeout(work(), time.time() + 0.05)

        assert cancelled

    async def test_expired_deadline_never_starts_work(self):
        started = False

        async def work():
            nonlocal started
            started = True

        with pytest.raises(TimeoutError, match="before execution"):
            await with_timeout(work(), time.time() - 1)

        assert not started
