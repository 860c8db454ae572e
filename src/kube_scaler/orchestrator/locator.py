"""Discovery of the resource to scale.

The resource is found by name prefix. The cluster may still be creating
it (for example right after a build), so the namespace is listed until a
match appears or the discovery deadline passes.

Known limitation: one matching resource per run is assumed. When several
names share the prefix, whichever the cluster lists first wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from tenacity import RetryCallState, retry_if_result

from kube_scaler.cluster.client import ClusterClient
from kube_scaler.core.models import ClusterResourceRef, ScaleRequest
from kube_scaler.core.progress import ProgressLog
from kube_scaler.core.retry import CancellationToken
from kube_scaler.orchestrator.base import AttemptCounter, Phase, retry_if_transient

logger = logging.getLogger(__name__)


@dataclass
class Discovery:
    """Result of the discovery phase."""
    
    resource: Optional[ClusterResourceRef]
    attempts: int
    
    @property
    def found(self) -> bool:
        return self.resource is not None


class ResourceLocator(Phase):
    """Finds the first resource whose name starts with the deployment prefix."""
    
    name = "discovery"
    
    def locate(
        self,
        request: ScaleRequest,
        client: ClusterClient,
        progress: ProgressLog,
        cancel_token: Optional[CancellationToken] = None,
        on_attempt: Optional[AttemptCounter] = None,
    ) -> Discovery:
        """Look for the resource, retrying until it appears or time runs out.
        
        When nothing matches and the request scales to zero, the search
        stops after the first attempt: a missing resource already has no
        replicas.
        
        Args:
            request: The run's scale request.
            client: Cluster client used for listing.
            progress: Progress log of the run.
            cancel_token: Optional cancellation signal.
            on_attempt: Called with the attempt count as each attempt starts.
            
        Returns:
            The discovered resource (or None) and the number of attempts.
            
        Raises:
            RunCancelled: If the run is cancelled before an attempt.
        """
        token = cancel_token or CancellationToken()
        kind = request.kind.value
        context = f"{kind} {request.deployment_prefix}* in {request.namespace}"
        started_at = self._clock()
        attempts = 0
        
        def find() -> Optional[ClusterResourceRef]:
            nonlocal attempts
            token.raise_if_cancelled()
            attempts += 1
            if on_attempt is not None:
                on_attempt(attempts)
            progress.line(
                f"looking for {context} (attempt {attempts}, "
                f"{self._elapsed_since(started_at):.0f}s elapsed)"
            )
            resources = client.list_resources(request.kind, request.namespace)
            for resource_id in resources:
                if resource_id.startswith(request.deployment_prefix):
                    progress.line(f"key into scale is {resource_id}")
                    return ClusterResourceRef(
                        id=resource_id,
                        namespace=request.namespace,
                        kind=request.kind,
                    )
            return None
        
        def should_keep_looking(resource: Optional[ClusterResourceRef]) -> bool:
            return resource is None and not request.scale_to_zero
        
        def before_sleep(retry_state: RetryCallState) -> None:
            self._log_failed_attempt(progress, retry_state, context, started_at)
            progress.line(
                f"wait {self.policy.interval:g} seconds, then look for {kind} again"
            )
        
        def exhausted(retry_state: RetryCallState) -> None:
            self._log_failed_attempt(progress, retry_state, context, started_at)
            return None
        
        retrying = self.policy.controller(
            retry=retry_if_result(should_keep_looking) | retry_if_transient,
            clock=self._clock,
            sleep=self._sleep or token.wait,
            cancel_token=token,
            before_sleep=before_sleep,
            on_exhausted=exhausted,
        )
        resource = retrying(find)
        
        if resource is None:
            token.raise_if_cancelled()
            progress.line(f"did not find any {kind} for {request.deployment_prefix}")
        
        logger.debug(f"Discovery finished after {attempts} attempt(s): {resource}")
        return Discovery(resource=resource, attempts=attempts)
