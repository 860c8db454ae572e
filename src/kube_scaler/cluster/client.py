"""Cluster API client used by the scaler phases.

``ClusterClient`` is the narrow interface the phases depend on;
``KubernetesClusterClient`` implements it with the official kubernetes
Python client. Every instance carries its own API configuration, so the
endpoint and bearer token are fixed for the lifetime of the client.
"""

from __future__ import annotations

import abc
import logging
from typing import Any, Dict, Optional

from kubernetes import client as k8s_client
from kubernetes.client.rest import ApiException

from kube_scaler.core.config import ClusterConfig
from kube_scaler.core.exceptions import ClusterClientError
from kube_scaler.core.models import ResourceDescriptor, ResourceKind, ScaleRequest

logger = logging.getLogger(__name__)


class ClusterClient(abc.ABC):
    """Operations the scaler needs from the cluster API."""

    api_endpoint: str
    auth_token: str
    verify_ssl: bool

    @abc.abstractmethod
    def list_resources(self, kind: ResourceKind, namespace: str) -> Dict[str, ResourceDescriptor]:
        """List resources of ``kind`` in ``namespace``, keyed by name."""

    @abc.abstractmethod
    def get_resource(
        self,
        kind: ResourceKind,
        name: str,
        namespace: str,
    ) -> Optional[ResourceDescriptor]:
        """Read one resource, or None if it does not exist."""

    @abc.abstractmethod
    def scale(self, kind: ResourceKind, name: str, namespace: str, replicas: int) -> None:
        """Set the desired replica count of a resource."""

    def close(self) -> None:
        """Release connections held by the client."""


class KubernetesClusterClient(ClusterClient):
    """``ClusterClient`` backed by the kubernetes API client."""
    
    def __init__(
        self,
        api_endpoint: str,
        auth_token: str = "",
        verify_ssl: bool = False,
        ca_cert_path: Optional[str] = None,
    ):
        """Initialize the client.
        
        Args:
            api_endpoint: Cluster API URL.
            auth_token: Bearer token; anonymous when empty.
            verify_ssl: Whether to verify the server certificate.
            ca_cert_path: Optional CA bundle for verification.
        """
        self.api_endpoint = api_endpoint
        self.auth_token = auth_token
        self.verify_ssl = verify_ssl
        
        configuration = k8s_client.Configuration()
        configuration.host = api_endpoint
        configuration.verify_ssl = verify_ssl
        if ca_cert_path:
            configuration.ssl_ca_cert = ca_cert_path
        if auth_token:
            configuration.api_key = {"authorization": auth_token}
            configuration.api_key_prefix = {"authorization": "Bearer"}
        
        self._api_client = k8s_client.ApiClient(configuration)
        self._core_api = k8s_client.CoreV1Api(self._api_client)
        self._apps_api = k8s_client.AppsV1Api(self._api_client)
    
    def list_resources(self, kind: ResourceKind, namespace: str) -> Dict[str, ResourceDescriptor]:
        try:
            if kind is ResourceKind.DEPLOYMENT:
                result = self._apps_api.list_namespaced_deployment(namespace=namespace)
            else:
                result = self._core_api.list_namespaced_replication_controller(namespace=namespace)
        except ApiException as e:
            raise ClusterClientError(
                f"Failed to list {kind.value} in {namespace}: {e.reason}", status=e.status
            ) from e
        except Exception as e:
            raise ClusterClientError(f"Failed to list {kind.value} in {namespace}: {e}") from e
        
        return {
            item.metadata.name: self._describe(kind, item, namespace)
            for item in (result.items or [])
        }
    
    def get_resource(
        self,
        kind: ResourceKind,
        name: str,
        namespace: str,
    ) -> Optional[ResourceDescriptor]:
        try:
            if kind is ResourceKind.DEPLOYMENT:
                item = self._apps_api.read_namespaced_deployment(name=name, namespace=namespace)
            else:
                item = self._core_api.read_namespaced_replication_controller(
                    name=name,
                    namespace=namespace,
                )
        except ApiException as e:
            if e.status == 404:
                return None
            raise ClusterClientError(
                f"Failed to read {kind.value} {name}: {e.reason}", status=e.status
            ) from e
        except Exception as e:
            raise ClusterClientError(f"Failed to read {kind.value} {name}: {e}") from e
        
        return self._describe(kind, item, namespace)
    
    def scale(self, kind: ResourceKind, name: str, namespace: str, replicas: int) -> None:
        body = {"spec": {"replicas": replicas}}
        try:
            if kind is ResourceKind.DEPLOYMENT:
                self._apps_api.patch_namespaced_deployment_scale(
                    name=name,
                    namespace=namespace,
                    body=body,
                )
            else:
                self._core_api.patch_namespaced_replication_controller_scale(
                    name=name,
                    namespace=namespace,
                    body=body,
                )
        except ApiException as e:
            raise ClusterClientError(
                f"Failed to scale {kind.value} {name}: {e.reason}", status=e.status
            ) from e
        except Exception as e:
            raise ClusterClientError(f"Failed to scale {kind.value} {name}: {e}") from e
        logger.info(f"Scaled {kind.value} {namespace}/{name} to {replicas}")
    
    def close(self) -> None:
        self._api_client.close()
    
    @staticmethod
    def _describe(kind: ResourceKind, item: Any, namespace: str) -> ResourceDescriptor:
        status = item.status
        spec = item.spec
        return ResourceDescriptor(
            name=item.metadata.name,
            namespace=item.metadata.namespace or namespace,
            kind=kind,
            current_replicas=(status.replicas if status else None) or 0,
            desired_replicas=(spec.replicas if spec else None) or 0,
        )


class ClusterClientFactory:
    """Creates a fresh cluster client for a request."""
    
    def __init__(self, config: Optional[ClusterConfig] = None):
        self.config = config or ClusterConfig()
    
    def create(self, request: ScaleRequest) -> ClusterClient:
        logger.debug(f"Creating cluster client for {request.api_endpoint}")
        return KubernetesClusterClient(
            api_endpoint=request.api_endpoint,
            auth_token=request.auth_token,
            verify_ssl=self.config.verify_ssl,
            ca_cert_path=self.config.ca_cert_path,
        )
