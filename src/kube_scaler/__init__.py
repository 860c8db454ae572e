"""Kube Scaler - scale a deployment from a build pipeline and confirm it.

This package provides:
- Resource discovery by name prefix, tolerant of slow resource creation
- Scale command invocation with whole-attempt retries
- Confirmation polling of the live replica count
- A forward-only orchestrator that always resolves to success or failure
"""

__version__ = "0.1.0"

# Core components
from kube_scaler.core.config import (
    ClusterConfig,
    RetryPolicyConfig,
    ScalerConfig,
    load_config,
)
from kube_scaler.core.models import (
    ClusterResourceRef,
    OrchestrationOutcome,
    OrchestrationResult,
    ReplicaObservation,
    ResourceDescriptor,
    ResourceKind,
    ScaleRequest,
    parse_replica_count,
)
from kube_scaler.core.progress import ProgressLog
from kube_scaler.core.retry import CancellationToken, RetryPolicy

# Cluster components
from kube_scaler.cluster.auth import CredentialResolver
from kube_scaler.cluster.client import (
    ClusterClient,
    ClusterClientFactory,
    KubernetesClusterClient,
)
from kube_scaler.cluster.runner import (
    ApiScaleRunner,
    BinaryScaleRunner,
    ScaleCommandRunner,
    scale_session,
)

# Orchestrator components
from kube_scaler.orchestrator import (
    ResourceLocator,
    ScaleConfirmer,
    ScaleInvoker,
    ScaleOrchestrator,
    build_orchestrator,
)

__all__ = [
    # Version
    "__version__",
    
    # Config
    "ClusterConfig",
    "RetryPolicyConfig",
    "ScalerConfig",
    "load_config",
    
    # Models
    "ClusterResourceRef",
    "OrchestrationOutcome",
    "OrchestrationResult",
    "ReplicaObservation",
    "ResourceDescriptor",
    "ResourceKind",
    "ScaleRequest",
    "parse_replica_count",
    
    # Runtime plumbing
    "ProgressLog",
    "CancellationToken",
    "RetryPolicy",
    
    # Cluster
    "CredentialResolver",
    "ClusterClient",
    "ClusterClientFactory",
    "KubernetesClusterClient",
    "ApiScaleRunner",
    "BinaryScaleRunner",
    "ScaleCommandRunner",
    "scale_session",
    
    # Orchestrator
    "ResourceLocator",
    "ScaleConfirmer",
    "ScaleInvoker",
    "ScaleOrchestrator",
    "build_orchestrator",
]
