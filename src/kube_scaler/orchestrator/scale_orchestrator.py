"""Scale orchestrator.

Drives one scale run through three phases:

    DISCOVERING -> INVOKING -> CONFIRMING -> DONE

Each phase absorbs the cluster's eventual consistency inside its own retry
loop, so the state machine itself only moves forward and never re-enters
a state. Whatever happens, ``run`` resolves to an ``OrchestrationResult``.
"""

from __future__ import annotations

import logging
import time
from contextlib import closing
from dataclasses import dataclass, field
from enum import Enum
from typing import BinaryIO, Callable, Dict, Optional

from kube_scaler.cluster.auth import CredentialResolver
from kube_scaler.cluster.client import ClusterClient, ClusterClientFactory
from kube_scaler.cluster.runner import ApiScaleRunner, BinaryScaleRunner, ScaleCommandRunner
from kube_scaler.core.config import ScalerConfig
from kube_scaler.core.exceptions import (
    ConfirmationTimeout,
    DiscoveryTimeout,
    InvocationExhausted,
    ResourceVanished,
    RunCancelled,
    ScalerError,
)
from kube_scaler.core.models import (
    ClusterResourceRef,
    OrchestrationOutcome,
    OrchestrationResult,
    ScaleRequest,
)
from kube_scaler.core.progress import ProgressLog
from kube_scaler.core.retry import CancellationToken, Clock, Sleeper
from kube_scaler.orchestrator.confirmer import ConfirmationStatus, ScaleConfirmer
from kube_scaler.orchestrator.invoker import ScaleInvoker
from kube_scaler.orchestrator.locator import ResourceLocator

logger = logging.getLogger(__name__)


class OrchestrationState(str, Enum):
    """States of a scale run."""
    
    DISCOVERING = "discovering"
    INVOKING = "invoking"
    CONFIRMING = "confirming"
    DONE = "done"


# Outcome reported when a phase fails in a way its retry loop did not absorb
_FAILURE_BY_STATE = {
    OrchestrationState.DISCOVERING: OrchestrationOutcome.NOT_FOUND_AND_NON_ZERO_REQUESTED,
    OrchestrationState.INVOKING: OrchestrationOutcome.SCALE_COMMAND_FAILED,
    OrchestrationState.CONFIRMING: OrchestrationOutcome.CONFIRMATION_TIMED_OUT,
}

_CONFIRMATION_OUTCOMES = {
    ConfirmationStatus.CONFIRMED: OrchestrationOutcome.SUCCESS,
    ConfirmationStatus.VANISHED: OrchestrationOutcome.RESOURCE_VANISHED,
    ConfirmationStatus.TIMED_OUT: OrchestrationOutcome.CONFIRMATION_TIMED_OUT,
}

_ERRORS_BY_OUTCOME = {
    OrchestrationOutcome.NOT_FOUND_AND_NON_ZERO_REQUESTED: DiscoveryTimeout,
    OrchestrationOutcome.SCALE_COMMAND_FAILED: InvocationExhausted,
    OrchestrationOutcome.RESOURCE_VANISHED: ResourceVanished,
    OrchestrationOutcome.CONFIRMATION_TIMED_OUT: ConfirmationTimeout,
}


@dataclass
class _Run:
    """Mutable bookkeeping for a single run."""
    
    request: ScaleRequest
    client: ClusterClient
    progress: ProgressLog
    token: CancellationToken
    resource: Optional[ClusterResourceRef] = None
    outcome: Optional[OrchestrationOutcome] = None
    error: Optional[str] = None
    counters: Dict[str, int] = field(default_factory=dict)
    
    def counter(self, name: str) -> Callable[[int], None]:
        """Callback that stores a phase counter each time it advances."""
        def record(count: int) -> None:
            self.counters[name] = count
        return record


class ScaleOrchestrator:
    """Sequences discovery, invocation and confirmation for one request."""
    
    def __init__(
        self,
        locator: ResourceLocator,
        invoker: ScaleInvoker,
        confirmer: ScaleConfirmer,
        client_factory: ClusterClientFactory,
        credential_resolver: Optional[CredentialResolver] = None,
        stream: Optional[BinaryIO] = None,
    ):
        """Initialize the orchestrator.
        
        Args:
            locator: Discovery phase.
            invoker: Scale command phase.
            confirmer: Confirmation phase.
            client_factory: Creates the cluster client used for discovery
                and confirmation.
            credential_resolver: Derives the token when the request has none.
            stream: Optional binary stream echoing the progress log.
        """
        self.locator = locator
        self.invoker = invoker
        self.confirmer = confirmer
        self.client_factory = client_factory
        self.credential_resolver = credential_resolver
        self.stream = stream
        
        self._handlers: Dict[OrchestrationState, Callable[[_Run], OrchestrationState]] = {
            OrchestrationState.DISCOVERING: self._discover,
            OrchestrationState.INVOKING: self._invoke,
            OrchestrationState.CONFIRMING: self._confirm,
        }
    
    def run(
        self,
        request: ScaleRequest,
        cancel_token: Optional[CancellationToken] = None,
        progress: Optional[ProgressLog] = None,
    ) -> OrchestrationResult:
        """Scale the requested deployment and confirm the new replica count.
        
        Args:
            request: What to scale and to how many replicas.
            cancel_token: Lets another thread stop the run early.
            progress: Progress log to append to; a new one by default.
            
        Returns:
            The terminal outcome, per-phase counters and the progress text.
        """
        progress = progress or ProgressLog(self.stream)
        token = cancel_token or CancellationToken()
        progress.line(
            f"scaling {request.kind.value} {request.deployment_prefix}* in "
            f"{request.namespace} to {request.target_replica_count}"
        )
        
        try:
            if self.credential_resolver is not None:
                request = request.with_auth_token(
                    self.credential_resolver.derive_auth(request.auth_token)
                )
            client = self.client_factory.create(request)
        except Exception as e:
            logger.error(f"Failed to create cluster client for {request.api_endpoint}: {e}")
            progress.exception("could not get cluster client", e)
            return self._result(
                progress,
                OrchestrationOutcome.CLIENT_UNAVAILABLE,
                error=str(e),
            )
        
        run = _Run(request=request, client=client, progress=progress, token=token)
        state = OrchestrationState.DISCOVERING
        
        with closing(client):
            while state is not OrchestrationState.DONE:
                try:
                    state = self._handlers[state](run)
                except RunCancelled:
                    progress.line(f"run cancelled while {state.value}")
                    run.outcome = OrchestrationOutcome.CANCELLED
                    state = OrchestrationState.DONE
                except Exception as e:
                    logger.exception(f"Unexpected failure while {state.value}")
                    progress.exception(f"unexpected failure while {state.value}", e)
                    run.outcome = _FAILURE_BY_STATE[state]
                    run.error = str(e)
                    state = OrchestrationState.DONE
        
        return self._result(
            progress,
            run.outcome,
            resource=run.resource,
            error=run.error,
            **run.counters,
        )
    
    def _discover(self, run: _Run) -> OrchestrationState:
        discovery = self.locator.locate(
            run.request,
            run.client,
            run.progress,
            run.token,
            on_attempt=run.counter("discovery_attempts"),
        )
        
        if discovery.found:
            run.resource = discovery.resource
            return OrchestrationState.INVOKING
        
        if run.request.scale_to_zero:
            run.progress.line("nothing to scale down; treating missing resource as scaled to 0")
            run.outcome = OrchestrationOutcome.NOT_FOUND_BUT_ZERO_REQUESTED
        else:
            self._fail(
                run,
                OrchestrationOutcome.NOT_FOUND_AND_NON_ZERO_REQUESTED,
                f"no {run.request.kind.value} matching {run.request.deployment_prefix} "
                f"after {discovery.attempts} attempt(s)",
            )
        return OrchestrationState.DONE
    
    def _invoke(self, run: _Run) -> OrchestrationState:
        invocation = self.invoker.invoke(
            run.request,
            run.resource,
            run.progress,
            run.token,
            on_attempt=run.counter("invocation_attempts"),
        )
        
        if invocation.succeeded:
            return OrchestrationState.CONFIRMING
        
        self._fail(
            run,
            OrchestrationOutcome.SCALE_COMMAND_FAILED,
            f"scale of {run.resource.id} failed after {invocation.attempts} attempt(s)",
        )
        return OrchestrationState.DONE
    
    def _confirm(self, run: _Run) -> OrchestrationState:
        confirmation = self.confirmer.confirm(
            run.resource,
            run.request.target_replica_count,
            run.client,
            run.progress,
            run.token,
            on_read=run.counter("confirmation_reads"),
        )
        outcome = _CONFIRMATION_OUTCOMES[confirmation.status]
        if outcome is OrchestrationOutcome.SUCCESS:
            run.outcome = outcome
        else:
            self._fail(
                run,
                outcome,
                f"{run.resource.id} did not confirm {run.request.target_replica_count} "
                f"replicas after {confirmation.reads} read(s)",
            )
        return OrchestrationState.DONE
    
    @staticmethod
    def _fail(run: _Run, outcome: OrchestrationOutcome, message: str) -> None:
        error: ScalerError = _ERRORS_BY_OUTCOME[outcome](message)
        run.progress.line(f"{type(error).__name__}: {error}")
        run.outcome = outcome
        run.error = str(error)
    
    @staticmethod
    def _result(
        progress: ProgressLog,
        outcome: OrchestrationOutcome,
        **kwargs,
    ) -> OrchestrationResult:
        result = OrchestrationResult(outcome=outcome, **kwargs)
        progress.line(
            f"finished: {outcome.value} (discovery retries={result.discovery_retries}, "
            f"invocation retries={result.invocation_retries}, "
            f"confirmation reads={result.confirmation_reads})"
        )
        result.log_text = progress.text
        return result


def build_orchestrator(
    config: ScalerConfig,
    stream: Optional[BinaryIO] = None,
    *,
    clock: Clock = time.monotonic,
    sleep: Optional[Sleeper] = None,
) -> ScaleOrchestrator:
    """Wire an orchestrator from configuration."""
    cluster = config.cluster
    client_factory = ClusterClientFactory(cluster)
    
    def runner_factory() -> ScaleCommandRunner:
        if cluster.runner == "binary":
            return BinaryScaleRunner(binary_path=cluster.binary_path, kind=cluster.resource_kind)
        return ApiScaleRunner(kind=cluster.resource_kind)
    
    return ScaleOrchestrator(
        locator=ResourceLocator(config.retry.discovery_policy(), clock=clock, sleep=sleep),
        invoker=ScaleInvoker(
            config.retry.scale_policy(),
            client_factory,
            runner_factory,
            clock=clock,
            sleep=sleep,
        ),
        confirmer=ScaleConfirmer(config.retry.confirm_policy(), clock=clock, sleep=sleep),
        client_factory=client_factory,
        credential_resolver=CredentialResolver(cluster.token_path),
        stream=stream,
    )
