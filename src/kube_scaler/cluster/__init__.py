"""Cluster API collaborators."""

from kube_scaler.cluster.auth import CredentialResolver
from kube_scaler.cluster.client import ClusterClient, ClusterClientFactory, KubernetesClusterClient
from kube_scaler.cluster.runner import ApiScaleRunner, BinaryScaleRunner, ScaleCommandRunner

__all__ = [
    "CredentialResolver",
    "ClusterClient",
    "ClusterClientFactory",
    "KubernetesClusterClient",
    "ApiScaleRunner",
    "BinaryScaleRunner",
    "ScaleCommandRunner",
]
