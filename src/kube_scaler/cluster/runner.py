"""Scale command runners.

A runner issues the scale command for one attempt and exposes the
command's output as an iterator of byte chunks. ``scale_session`` wraps an
attempt so the output stream is closed and the runner stopped however the
attempt ends.
"""

from __future__ import annotations

import abc
import logging
import subprocess
from contextlib import contextmanager
from typing import Iterator, List, Optional

from kube_scaler.cluster.client import ClusterClient
from kube_scaler.core.exceptions import ScaleCommandError
from kube_scaler.core.models import ResourceKind

logger = logging.getLogger(__name__)


class ScaleCommandRunner(abc.ABC):
    """Runs one scale command against the cluster."""

    @abc.abstractmethod
    def run(
        self,
        target_replica_count: int,
        resource_id: str,
        namespace: str,
        client: ClusterClient,
    ) -> Iterator[bytes]:
        """Start the command and return its output stream."""

    @abc.abstractmethod
    def stop(self) -> None:
        """Stop the command if it is still running."""


class ApiScaleRunner(ScaleCommandRunner):
    """Scales through the cluster API's scale subresource."""

    def __init__(self, kind: ResourceKind = ResourceKind.REPLICATION_CONTROLLER):
        self.kind = kind

    def run(
        self,
        target_replica_count: int,
        resource_id: str,
        namespace: str,
        client: ClusterClient,
    ) -> Iterator[bytes]:
        return self._scale(target_replica_count, resource_id, namespace, client)

    def _scale(
        self,
        target_replica_count: int,
        resource_id: str,
        namespace: str,
        client: ClusterClient,
    ) -> Iterator[bytes]:
        yield (
            f"scaling {self.kind.cli_name}/{resource_id} in {namespace} "
            f"to {target_replica_count}\n"
        ).encode()
        client.scale(self.kind, resource_id, namespace, target_replica_count)
        yield f'{self.kind.cli_name} "{resource_id}" scaled\n'.encode()

    def stop(self) -> None:
        pass


class BinaryScaleRunner(ScaleCommandRunner):
    """Scales by executing an ``oc``/``kubectl`` compatible binary."""

    def __init__(
        self,
        binary_path: str = "oc",
        kind: ResourceKind = ResourceKind.REPLICATION_CONTROLLER,
        stop_timeout: float = 5.0,
    ):
        self.binary_path = binary_path
        self.kind = kind
        self.stop_timeout = stop_timeout
        self._process: Optional[subprocess.Popen] = None

    def build_command(
        self,
        target_replica_count: int,
        resource_id: str,
        namespace: str,
        client: ClusterClient,
    ) -> List[str]:
        command = [
            self.binary_path,
            "scale",
            f"{self.kind.cli_name}/{resource_id}",
            f"--replicas={target_replica_count}",
            f"--namespace={namespace}",
            f"--server={client.api_endpoint}",
        ]
        if client.auth_token:
            command.append(f"--token={client.auth_token}")
        if not client.verify_ssl:
            command.append("--insecure-skip-tls-verify=true")
        return command

    def run(
        self,
        target_replica_count: int,
        resource_id: str,
        namespace: str,
        client: ClusterClient,
    ) -> Iterator[bytes]:
        command = self.build_command(target_replica_count, resource_id, namespace, client)
        logger.debug(f"Running {self.binary_path} scale for {namespace}/{resource_id}")
        self._process = subprocess.Popen(
            command,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )
        return self._stream(self._process)

    def _stream(self, process: subprocess.Popen) -> Iterator[bytes]:
        for chunk in iter(process.stdout.readline, b""):
            yield chunk
        returncode = process.wait()
        if returncode != 0:
            raise ScaleCommandError(
                f"{self.binary_path} scale exited with status {returncode}",
                returncode=returncode,
            )

    def stop(self) -> None:
        process, self._process = self._process, None
        if process is None:
            return
        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=self.stop_timeout)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()
        if process.stdout is not None:
            process.stdout.close()


@contextmanager
def scale_session(
    runner: ScaleCommandRunner,
    target_replica_count: int,
    resource_id: str,
    namespace: str,
    client: ClusterClient,
) -> Iterator[Iterator[bytes]]:
    """Run one scale attempt, always releasing the stream and the runner."""
    stream: Optional[Iterator[bytes]] = None
    try:
        stream = runner.run(target_replica_count, resource_id, namespace, client)
        yield stream
    finally:
        try:
            close = getattr(stream, "close", None)
            if close is not None:
                close()
        except Exception as e:
            logger.warning(f"Failed to close scale output for {resource_id}: {e}")
        try:
            runner.stop()
        except Exception as e:
            logger.warning(f"Failed to stop scale runner for {resource_id}: {e}")
