"""Retry policies for the polling phases.

Each phase (discovery, scale invocation, confirmation) owns a
``RetryPolicy`` that is turned into a tenacity ``Retrying`` controller when
the phase starts. The clock and sleep capability are injectable so the
phases can be driven by simulated time in tests.
"""

from __future__ import annotations

import functools
import operator
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from tenacity import (
    RetryCallState,
    Retrying,
    stop_after_attempt,
    stop_when_event_set,
    wait_fixed,
)
from tenacity.retry import retry_base
from tenacity.stop import stop_base

from kube_scaler.core.exceptions import RunCancelled

Clock = Callable[[], float]
Sleeper = Callable[[float], None]


class CancellationToken:
    """Cooperative cancellation signal shared by the phases of one run."""

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def event(self) -> threading.Event:
        return self._event

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def wait(self, seconds: float) -> None:
        """Sleep for ``seconds``, returning early if the token is cancelled."""
        self._event.wait(seconds)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelled("run cancelled")


class stop_at_deadline(stop_base):
    """Stop once the next wait would end at or after the phase deadline.

    The deadline is measured on ``clock`` from the moment the stop
    condition is created, i.e. from the start of the phase.
    """

    def __init__(self, timeout: float, interval: float, clock: Clock):
        self.timeout = timeout
        self.interval = interval
        self.clock = clock
        self.started_at = clock()

    def elapsed(self) -> float:
        return self.clock() - self.started_at

    def __call__(self, retry_state: RetryCallState) -> bool:
        return self.elapsed() + self.interval >= self.timeout


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-interval retry bounded by a deadline, an attempt budget, or both."""

    interval: float
    timeout: Optional[float] = None
    max_attempts: Optional[int] = None

    def __post_init__(self) -> None:
        if self.timeout is None and self.max_attempts is None:
            raise ValueError("RetryPolicy needs a timeout or max_attempts")
        if self.interval < 0:
            raise ValueError("interval must not be negative")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def controller(
        self,
        *,
        retry: retry_base,
        clock: Clock = time.monotonic,
        sleep: Optional[Sleeper] = None,
        cancel_token: Optional[CancellationToken] = None,
        before_sleep: Optional[Callable[[RetryCallState], None]] = None,
        on_exhausted: Optional[Callable[[RetryCallState], Any]] = None,
    ) -> Retrying:
        """Build a tenacity controller for one phase.

        Args:
            retry: Predicate deciding whether an attempt's outcome is retried.
            clock: Monotonic clock used for the deadline.
            sleep: Sleep capability; defaults to the cancellation token's
                interruptible wait, or ``time.sleep`` without a token.
            cancel_token: Stops the loop at its next decision point.
            before_sleep: Hook called before every wait.
            on_exhausted: Produces the phase result when the budget runs out.

        Returns:
            A ``Retrying`` instance; call it with the attempt function.
        """
        stops = []
        if self.timeout is not None:
            stops.append(stop_at_deadline(self.timeout, self.interval, clock))
        if self.max_attempts is not None:
            stops.append(stop_after_attempt(self.max_attempts))
        if cancel_token is not None:
            stops.append(stop_when_event_set(cancel_token.event))

        if sleep is None:
            sleep = cancel_token.wait if cancel_token is not None else time.sleep

        return Retrying(
            stop=functools.reduce(operator.or_, stops),
            wait=wait_fixed(self.interval),
            retry=retry,
            sleep=sleep,
            before_sleep=before_sleep,
            retry_error_callback=on_exhausted,
        )
