"""Plumbing shared by the discovery, invocation and confirmation phases."""

from __future__ import annotations

import time
from typing import Callable, Optional

from tenacity import RetryCallState, retry_if_exception

from kube_scaler.core.exceptions import RunCancelled
from kube_scaler.core.progress import ProgressLog
from kube_scaler.core.retry import Clock, RetryPolicy, Sleeper

# Receives the running attempt count as each attempt starts
AttemptCounter = Callable[[int], None]


def _is_transient(error: BaseException) -> bool:
    return not isinstance(error, RunCancelled)


# Any failure inside an attempt is retried, except cancellation
retry_if_transient = retry_if_exception(_is_transient)


class Phase:
    """A retrying phase driven by a ``RetryPolicy``.
    
    Args:
        policy: Interval and budget of the phase.
        clock: Monotonic clock for deadlines and timestamps.
        sleep: Sleep capability; None uses the run's cancellation token.
    """
    
    name = "phase"
    
    def __init__(
        self,
        policy: RetryPolicy,
        *,
        clock: Clock = time.monotonic,
        sleep: Optional[Sleeper] = None,
    ):
        self.policy = policy
        self._clock = clock
        self._sleep = sleep
    
    def _elapsed_since(self, started_at: float) -> float:
        return self._clock() - started_at
    
    def _log_failed_attempt(
        self,
        progress: ProgressLog,
        retry_state: RetryCallState,
        context: str,
        started_at: float,
    ) -> None:
        outcome = retry_state.outcome
        if outcome is None or not outcome.failed:
            return
        progress.exception(
            f"{self.name} attempt {retry_state.attempt_number} for {context} failed "
            f"after {self._elapsed_since(started_at):.1f}s",
            outcome.exception(),
        )
