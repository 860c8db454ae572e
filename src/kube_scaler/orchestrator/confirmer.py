"""Confirmation that the scale took effect."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from tenacity import RetryCallState, retry_if_result

from kube_scaler.cluster.client import ClusterClient
from kube_scaler.core.models import ClusterResourceRef, ReplicaObservation
from kube_scaler.core.progress import ProgressLog
from kube_scaler.core.retry import CancellationToken
from kube_scaler.orchestrator.base import AttemptCounter, Phase, retry_if_transient

logger = logging.getLogger(__name__)

_TIMED_OUT = object()


class ConfirmationStatus(str, Enum):
    CONFIRMED = "confirmed"
    VANISHED = "vanished"
    TIMED_OUT = "timed_out"


@dataclass
class Confirmation:
    """Result of the confirmation phase."""
    
    status: ConfirmationStatus
    reads: int
    last_observation: Optional[ReplicaObservation] = None


class ScaleConfirmer(Phase):
    """Polls the live replica count until it matches the target."""
    
    name = "confirmation"
    
    def confirm(
        self,
        resource: ClusterResourceRef,
        target_replica_count: int,
        client: ClusterClient,
        progress: ProgressLog,
        cancel_token: Optional[CancellationToken] = None,
        on_read: Optional[AttemptCounter] = None,
    ) -> Confirmation:
        """Read the replica count until it equals ``target_replica_count``.
        
        A resource that no longer exists ends the phase at once as
        ``VANISHED``; running out of reads gives ``TIMED_OUT``.
        
        Raises:
            RunCancelled: If the run is cancelled before a read.
        """
        token = cancel_token or CancellationToken()
        context = f"{resource.kind.value} {resource.id}"
        started_at = self._clock()
        reads = 0
        last: Optional[ReplicaObservation] = None
        
        def read() -> Optional[ReplicaObservation]:
            nonlocal reads, last
            token.raise_if_cancelled()
            reads += 1
            if on_read is not None:
                on_read(reads)
            descriptor = client.get_resource(resource.kind, resource.id, resource.namespace)
            if descriptor is None:
                progress.line(f"{context} disappeared !!")
                return None
            last = ReplicaObservation(
                resource_id=resource.id,
                replicas=descriptor.current_replicas,
                observed_at=self._clock(),
            )
            progress.line(f"current replica count {last.replicas}")
            return last
        
        def not_converged(observation: Optional[ReplicaObservation]) -> bool:
            return observation is not None and observation.replicas != target_replica_count
        
        def before_sleep(retry_state: RetryCallState) -> None:
            self._log_failed_attempt(progress, retry_state, context, started_at)
        
        def exhausted(retry_state: RetryCallState) -> object:
            self._log_failed_attempt(progress, retry_state, context, started_at)
            return _TIMED_OUT
        
        retrying = self.policy.controller(
            retry=retry_if_result(not_converged) | retry_if_transient,
            clock=self._clock,
            sleep=self._sleep or token.wait,
            cancel_token=token,
            before_sleep=before_sleep,
            on_exhausted=exhausted,
        )
        observation = retrying(read)
        
        if observation is _TIMED_OUT:
            token.raise_if_cancelled()
            progress.line(
                f"{context} did not reach {target_replica_count} replicas after {reads} read(s)"
            )
            status = ConfirmationStatus.TIMED_OUT
        elif observation is None:
            status = ConfirmationStatus.VANISHED
        else:
            status = ConfirmationStatus.CONFIRMED
        
        logger.debug(f"Confirmation of {context} finished after {reads} read(s): {status.value}")
        return Confirmation(status=status, reads=reads, last_observation=last)
