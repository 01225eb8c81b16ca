"""
Generic, stateful, cancellable polling scheduler.

A [Looper][nightbridge.core.looper.Looper] repeatedly awaits a step
function, feeding each invocation the state returned by the previous one.
Iterations never overlap: the next one starts only after the current step
has completed and the remainder of the polling interval has elapsed.

Step-failure policy:
    A step that raises is logged and counted as a consecutive failure; the
    loop then continues with the **unchanged** state after the normal
    interval, so the failed cycle is retried with the same inputs. When
    ``max_consecutive_failures`` is positive and reached, the loop stops.
    ``CancelledError``, ``KeyboardInterrupt`` and ``SystemExit`` always
    propagate.

Cancellation:
    [stop()][nightbridge.core.looper.Looper.stop] is cooperative. It
    interrupts the sleep between iterations but never an in-flight step.

Examples:
    ```python
    async def step(cursor: int) -> int:
        return cursor + 1

    looper = Looper(interval=60.0, step=step, name="counter")
    task = asyncio.create_task(looper.loop(0))
    ...
    looper.stop()
    final = await task
    ```
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Generic, TypeVar

from .logger import Logger
from .metrics import CYCLE_DURATION_SECONDS, SERVICE_COUNTER, SERVICE_GAUGE


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable


StateT = TypeVar("StateT")


class Looper(Generic[StateT]):
    """Sequential polling loop threading a state value across cycles.

    Attributes:
        name: Label used in logs and as the ``service`` metrics label.
        interval: Target seconds between the starts of two iterations.
        max_consecutive_failures: Stop after this many failed steps in a
            row (``0`` = never stop because of failures).
    """

    def __init__(
        self,
        interval: float,
        step: Callable[[StateT], Awaitable[StateT]],
        name: str,
        *,
        max_consecutive_failures: int = 0,
        metrics_enabled: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval < 0:
            raise ValueError(f"interval must be non-negative, got {interval}")
        if max_consecutive_failures < 0:
            raise ValueError("max_consecutive_failures must be non-negative")

        self.name = name
        self.interval = interval
        self.max_consecutive_failures = max_consecutive_failures
        self._step = step
        self._metrics_enabled = metrics_enabled
        self._clock = clock
        self._logger = Logger(name)
        self._stop_event = asyncio.Event()
        self._iterations = 0
        self._consecutive_failures = 0

    @property
    def is_running(self) -> bool:
        """Whether no stop has been requested."""
        return not self._stop_event.is_set()

    @property
    def iterations(self) -> int:
        """Number of steps started so far (successful or not)."""
        return self._iterations

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def failure_limit_reached(self) -> bool:
        """Whether the last steps failed ``max_consecutive_failures`` times in a row."""
        return 0 < self.max_consecutive_failures <= self._consecutive_failures

    def stop(self) -> None:
        """Request termination at the next iteration boundary.

        Safe to call from signal handlers. An in-flight step runs to
        completion; a pending inter-iteration sleep is cut short.
        """
        self._stop_event.set()

    def reset(self) -> None:
        """Clear a previous stop request so the looper can run again."""
        self._stop_event.clear()
        self._consecutive_failures = 0

    async def wait(self, timeout: float) -> bool:  # noqa: ASYNC109
        """Sleep up to *timeout* seconds, waking early on ``stop()``.

        Returns:
            True if a stop was requested, False if the timeout elapsed.
        """
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
            return True
        except TimeoutError:
            return False

    async def loop(self, initial_state: StateT) -> StateT:
        """Run steps until stopped or the failure limit is reached.

        Args:
            initial_state: State passed to the first step.

        Returns:
            The state produced by the last successful step (or
            ``initial_state`` if none succeeded).
        """
        self._logger.info(
            "loop_started",
            interval=self.interval,
            max_consecutive_failures=self.max_consecutive_failures,
        )
        if self._metrics_enabled:
            SERVICE_GAUGE.labels(service=self.name, name="consecutive_failures").set(0)

        state = initial_state
        while self.is_running:
            started = self._clock()
            self._iterations += 1

            try:
                state = await self._step(state)
            except (asyncio.CancelledError, KeyboardInterrupt, SystemExit):
                raise
            except Exception as e:  # Intentionally broad: cycle error boundary
                if self._record_failure(e):
                    break
            else:
                self._record_success(self._clock() - started)

            remaining = max(0.0, self.interval - (self._clock() - started))
            if await self.wait(remaining):
                break

        self._logger.info("loop_stopped", iterations=self._iterations)
        return state

    def _record_success(self, duration: float) -> None:
        self._consecutive_failures = 0
        self._logger.info(
            "cycle_completed",
            duration_s=round(duration, 3),
            next_cycle_s=round(max(0.0, self.interval - duration), 3),
        )
        if self._metrics_enabled:
            CYCLE_DURATION_SECONDS.labels(service=self.name).observe(duration)
            SERVICE_COUNTER.labels(service=self.name, name="cycles_success").inc()
            SERVICE_GAUGE.labels(service=self.name, name="consecutive_failures").set(0)
            SERVICE_GAUGE.labels(service=self.name, name="last_cycle_timestamp").set(time.time())

    def _record_failure(self, error: Exception) -> bool:
        """Log a failed step; return True when the loop must stop."""
        self._consecutive_failures += 1
        self._logger.error(
            "run_cycle_error",
            error=str(error),
            error_type=type(error).__name__,
            consecutive_failures=self._consecutive_failures,
        )
        if self._metrics_enabled:
            SERVICE_COUNTER.labels(service=self.name, name="cycles_failed").inc()
            SERVICE_COUNTER.labels(service=self.name, name=f"errors_{type(error).__name__}").inc()
            SERVICE_GAUGE.labels(service=self.name, name="consecutive_failures").set(
                self._consecutive_failures
            )

        if self.failure_limit_reached:
            self._logger.critical(
                "max_consecutive_failures_reached",
                failures=self._consecutive_failures,
                limit=self.max_consecutive_failures,
            )
            return True
        return False
