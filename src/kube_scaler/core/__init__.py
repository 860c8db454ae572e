"""Core components of the scaler."""

from kube_scaler.core.config import ScalerConfig
from kube_scaler.core.models import OrchestrationOutcome, ScaleRequest
from kube_scaler.core.progress import ProgressLog
from kube_scaler.core.retry import CancellationToken, RetryPolicy

__all__ = [
    "ScalerConfig",
    "OrchestrationOutcome",
    "ScaleRequest",
    "ProgressLog",
    "CancellationToken",
    "RetryPolicy",
]
