"""Scale orchestration: discovery, invocation and confirmation."""

from kube_scaler.orchestrator.confirmer import Confirmation, ConfirmationStatus, ScaleConfirmer
from kube_scaler.orchestrator.invoker import Invocation, ScaleInvoker
from kube_scaler.orchestrator.locator import Discovery, ResourceLocator
from kube_scaler.orchestrator.scale_orchestrator import (
    OrchestrationState,
    ScaleOrchestrator,
    build_orchestrator,
)

__all__ = [
    "Confirmation",
    "ConfirmationStatus",
    "ScaleConfirmer",
    "Invocation",
    "ScaleInvoker",
    "Discovery",
    "ResourceLocator",
    "OrchestrationState",
    "ScaleOrchestrator",
    "build_orchestrator",
]
