"""
Unit tests for core.looper module.

Tests:
- State threading across iterations
- Failure policy (unchanged state, consecutive failure limit)
- Sleep length derived from the interval and step duration
- Cooperative stop (interrupts the sleep, never the step)
- Shutdown exceptions propagate
"""

import asyncio
from unittest.mock import patch

import pytest

from nightbridge.core.looper import Looper


class StepClock:
    """Monotonic clock advanced explicitly by the step under test."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestInit:
    """Looper construction."""

    def test_negative_interval_rejected(self) -> None:
        async def step(state: int) -> int:
            return state

        with pytest.raises(ValueError, match="interval"):
            Looper(interval=-1, step=step, name="test")

    def test_negative_failure_limit_rejected(self) -> None:
        async def step(state: int) -> int:
            return state

        with pytest.raises(ValueError, match="max_consecutive_failures"):
            Looper(interval=1, step=step, name="test", max_consecutive_failures=-1)

    def test_initial_flags(self) -> None:
        async def step(state: int) -> int:
            return state

        looper = Looper(interval=1, step=step, name="test")
        assert looper.is_running is True
        assert looper.iterations == 0
        assert looper.consecutive_failures == 0
        assert looper.failure_limit_reached is False


class TestStateThreading:
    """Each step receives the previous step's result."""

    @pytest.mark.asyncio
    async def test_threads_state(self) -> None:
        seen: list[int] = []

        async def step(state: int) -> int:
            seen.append(state)
            return state + 1

        looper = Looper(interval=60, step=step, name="test")

        async def mock_wait(timeout: float) -> bool:
            return looper.iterations >= 3

        with patch.object(looper, "wait", mock_wait):
            final = await looper.loop(0)

        assert seen == [0, 1, 2]
        assert final == 3

    @pytest.mark.asyncio
    async def test_failed_step_keeps_state(self) -> None:
        seen: list[int] = []

        async def step(state: int) -> int:
            seen.append(state)
            if len(seen) == 2:
                raise RuntimeError("transient")
            return state + 1

        looper = Looper(interval=60, step=step, name="test")

        async def mock_wait(timeout: float) -> bool:
            return looper.iterations >= 4

        with patch.object(looper, "wait", mock_wait):
            final = await looper.loop(0)

        assert seen == [0, 1, 1, 2]
        assert final == 3
        assert looper.consecutive_failures == 0


class TestFailurePolicy:
    """Consecutive failure accounting."""

    @pytest.mark.asyncio
    async def test_stops_on_max_failures(self) -> None:
        calls = 0

        async def step(state: int) -> int:
            nonlocal calls
            calls += 1
            raise RuntimeError("down")

        looper = Looper(interval=60, step=step, name="test", max_consecutive_failures=3)

        async def mock_wait(timeout: float) -> bool:
            return False

        with patch.object(looper, "wait", mock_wait):
            final = await looper.loop(7)

        assert calls == 3
        assert final == 7
        assert looper.failure_limit_reached is True

    @pytest.mark.asyncio
    async def test_unlimited_failures_when_zero(self) -> None:
        async def step(state: int) -> int:
            raise RuntimeError("down")

        looper = Looper(interval=60, step=step, name="test")

        async def mock_wait(timeout: float) -> bool:
            return looper.consecutive_failures >= 10

        with patch.object(looper, "wait", mock_wait):
            await looper.loop(0)

        assert looper.consecutive_failures == 10
        assert looper.failure_limit_reached is False

    @pytest.mark.asyncio
    async def test_success_resets_failures(self) -> None:
        outcomes = iter([RuntimeError("a"), RuntimeError("b"), None, RuntimeError("c")])

        async def step(state: int) -> int:
            outcome = next(outcomes)
            if outcome is not None:
                raise outcome
            return state

        looper = Looper(interval=60, step=step, name="test", max_consecutive_failures=3)

        async def mock_wait(timeout: float) -> bool:
            return looper.iterations >= 4

        with patch.object(looper, "wait", mock_wait):
            await looper.loop(0)

        assert looper.consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_cancelled_error_propagates(self) -> None:
        async def step(state: int) -> int:
            raise asyncio.CancelledError

        looper = Looper(interval=60, step=step, name="test")
        with pytest.raises(asyncio.CancelledError):
            await looper.loop(0)

    @pytest.mark.asyncio
    async def test_failure_logged(self, caplog) -> None:
        async def step(state: int) -> int:
            raise RuntimeError("boom")

        looper = Looper(interval=60, step=step, name="test", max_consecutive_failures=1)
        await looper.loop(0)

        assert "run_cycle_error" in caplog.text
        assert "max_consecutive_failures_reached" in caplog.text


class TestSleep:
    """Sleep between iterations."""

    @pytest.mark.asyncio
    async def test_sleep_is_interval_minus_elapsed(self) -> None:
        clock = StepClock()

        async def step(state: int) -> int:
            clock.now += 2.5
            return state

        looper = Looper(interval=10, step=step, name="test", clock=clock)
        timeouts: list[float] = []

        async def mock_wait(timeout: float) -> bool:
            timeouts.append(timeout)
            return True

        with patch.object(looper, "wait", mock_wait):
            await looper.loop(0)

        assert timeouts == [7.5]

    @pytest.mark.asyncio
    async def test_no_sleep_after_slow_step(self) -> None:
        clock = StepClock()

        async def step(state: int) -> int:
            clock.now += 25
            return state

        looper = Looper(interval=10, step=step, name="test", clock=clock)
        timeouts: list[float] = []

        async def mock_wait(timeout: float) -> bool:
            timeouts.append(timeout)
            return True

        with patch.object(looper, "wait", mock_wait):
            await looper.loop(0)

        assert timeouts == [0.0]


class TestStop:
    """Cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_stop_interrupts_sleep(self) -> None:
        async def step(state: int) -> int:
            return state + 1

        looper = Looper(interval=3600, step=step, name="test")
        task = asyncio.create_task(looper.loop(0))
        await asyncio.sleep(0.05)

        looper.stop()
        final = await asyncio.wait_for(task, timeout=1.0)

        assert final == 1
        assert looper.is_running is False

    @pytest.mark.asyncio
    async def test_stop_does_not_cancel_step(self) -> None:
        entered = asyncio.Event()
        release = asyncio.Event()

        async def step(state: int) -> int:
            entered.set()
            await release.wait()
            return state + 100

        looper = Looper(interval=3600, step=step, name="test")
        task = asyncio.create_task(looper.loop(0))
        await entered.wait()

        looper.stop()
        release.set()
        final = await asyncio.wait_for(task, timeout=1.0)

        assert final == 100

    @pytest.mark.asyncio
    async def test_stopped_before_start_runs_nothing(self) -> None:
        calls = 0

        async def step(state: int) -> int:
            nonlocal calls
            calls += 1
            return state

        looper = Looper(interval=1, step=step, name="test")
        looper.stop()

        assert await looper.loop(5) == 5
        assert calls == 0

    @pytest.mark.asyncio
    async def test_reset_allows_restart(self) -> None:
        async def step(state: int) -> int:
            return state

        looper = Looper(interval=1, step=step, name="test")
        looper.stop()
        looper.reset()
        assert looper.is_running is True

    @pytest.mark.asyncio
    async def test_wait_returns_false_on_timeout(self) -> None:
        async def step(state: int) -> int:
            return state

        looper = Looper(interval=1, step=step, name="test")
        assert await looper.wait(0.01) is False
