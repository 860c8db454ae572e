"""Invocation of the scale command.

Each attempt opens a new cluster session, runs the scale command and
copies its output into the progress log. Anything that goes wrong during
an attempt is logged and the whole attempt is retried until the scale
deadline passes.
"""

from __future__ import annotations

import logging
import time
from contextlib import ExitStack, closing
from dataclasses import dataclass
from typing import Callable, Optional

from tenacity import RetryCallState

from kube_scaler.cluster.client import ClusterClientFactory
from kube_scaler.cluster.runner import ScaleCommandRunner, scale_session
from kube_scaler.core.models import ClusterResourceRef, ScaleRequest
from kube_scaler.core.progress import ProgressLog
from kube_scaler.core.retry import CancellationToken, Clock, RetryPolicy, Sleeper
from kube_scaler.orchestrator.base import AttemptCounter, Phase, retry_if_transient

logger = logging.getLogger(__name__)

RunnerFactory = Callable[[], ScaleCommandRunner]


@dataclass
class Invocation:
    """Result of the invocation phase."""
    
    succeeded: bool
    attempts: int


class ScaleInvoker(Phase):
    """Issues the scale command, retrying whole attempts on failure."""
    
    name = "scale"
    
    def __init__(
        self,
        policy: RetryPolicy,
        client_factory: ClusterClientFactory,
        runner_factory: RunnerFactory,
        *,
        clock: Clock = time.monotonic,
        sleep: Optional[Sleeper] = None,
    ):
        """Initialize the invoker.
        
        Args:
            policy: Interval and deadline of the phase.
            client_factory: Creates the cluster session for each attempt.
            runner_factory: Creates the command runner for each attempt.
            clock: Monotonic clock for the deadline.
            sleep: Sleep capability; None uses the cancellation token.
        """
        super().__init__(policy, clock=clock, sleep=sleep)
        self.client_factory = client_factory
        self.runner_factory = runner_factory
    
    def invoke(
        self,
        request: ScaleRequest,
        resource: ClusterResourceRef,
        progress: ProgressLog,
        cancel_token: Optional[CancellationToken] = None,
        on_attempt: Optional[AttemptCounter] = None,
    ) -> Invocation:
        """Scale ``resource`` to the requested replica count.
        
        An attempt succeeds when the command completes and its output has
        been drained without error. Output of failed attempts is still
        written to the progress log.
        
        Raises:
            RunCancelled: If the run is cancelled before an attempt.
        """
        token = cancel_token or CancellationToken()
        target = request.target_replica_count
        context = f"{resource.kind.cli_name}/{resource.id} in {resource.namespace}"
        started_at = self._clock()
        attempts = 0
        
        def attempt() -> bool:
            nonlocal attempts
            token.raise_if_cancelled()
            attempts += 1
            if on_attempt is not None:
                on_attempt(attempts)
            progress.line(f"scaling {context} to {target} (attempt {attempts})")
            
            with ExitStack() as stack:
                client = stack.enter_context(closing(self.client_factory.create(request)))
                output = stack.enter_context(
                    scale_session(self.runner_factory(), target, resource.id, resource.namespace, client)
                )
                for chunk in output:
                    progress.write(chunk)
            return True
        
        def before_sleep(retry_state: RetryCallState) -> None:
            self._log_failed_attempt(progress, retry_state, context, started_at)
            progress.line(f"wait {self.policy.interval:g} seconds, then try scale again")
        
        def exhausted(retry_state: RetryCallState) -> bool:
            self._log_failed_attempt(progress, retry_state, context, started_at)
            return False
        
        retrying = self.policy.controller(
            retry=retry_if_transient,
            clock=self._clock,
            sleep=self._sleep or token.wait,
            cancel_token=token,
            before_sleep=before_sleep,
            on_exhausted=exhausted,
        )
        succeeded = retrying(attempt)
        
        if not succeeded:
            token.raise_if_cancelled()
            progress.line(f"could not get scale of {context} executed")
        
        logger.debug(f"Scale of {context} finished after {attempts} attempt(s): {succeeded}")
        return Invocation(succeeded=succeeded, attempts=attempts)
