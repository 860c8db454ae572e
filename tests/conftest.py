"""Shared fixtures and fakes for scaler tests."""

from __future__ import annotations

from typing import Iterator, List, Optional, Sequence, Union

import pytest

from kube_scaler.cluster.client import ClusterClient
from kube_scaler.cluster.runner import ScaleCommandRunner
from kube_scaler.core.models import ResourceDescriptor, ResourceKind, ScaleRequest
from kube_scaler.core.progress import ProgressLog
from kube_scaler.core.retry import CancellationToken, RetryPolicy
from kube_scaler.orchestrator import (
    ResourceLocator,
    ScaleConfirmer,
    ScaleInvoker,
    ScaleOrchestrator,
)


class FakeClock:
    """Simulated monotonic clock; ``sleep`` advances time instantly."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


Listing = Union[Sequence[str], Exception]
Read = Union[int, None, Exception]


class FakeClusterClient(ClusterClient):
    """Cluster client replaying scripted listings and replica reads.

    The last scripted listing or read repeats once the script runs out.
    """

    def __init__(
        self,
        listings: Optional[List[Listing]] = None,
        reads: Optional[List[Read]] = None,
    ):
        self.api_endpoint = "https://cluster.test:8443"
        self.auth_token = "token"
        self.verify_ssl = False
        self.listings = listings if listings is not None else [[]]
        self.reads = reads if reads is not None else [0]
        self.list_calls = 0
        self.get_calls = 0
        self.scaled: List[tuple] = []
        self.closed = False

    @staticmethod
    def _next(script: list, index: int):
        return script[min(index, len(script) - 1)]

    def list_resources(self, kind, namespace):
        listing = self._next(self.listings, self.list_calls)
        self.list_calls += 1
        if isinstance(listing, Exception):
            raise listing
        return {name: ResourceDescriptor(name, namespace, kind) for name in listing}

    def get_resource(self, kind, name, namespace):
        value = self._next(self.reads, self.get_calls)
        self.get_calls += 1
        if isinstance(value, Exception):
            raise value
        if value is None:
            return None
        return ResourceDescriptor(name, namespace, kind, current_replicas=value, desired_replicas=value)

    def scale(self, kind, name, namespace, replicas):
        self.scaled.append((kind, name, namespace, replicas))

    def close(self):
        self.closed = True


class FakeClientFactory:
    def __init__(self, client: FakeClusterClient, error: Optional[Exception] = None):
        self.client = client
        self.error = error
        self.requests: List[ScaleRequest] = []

    def create(self, request: ScaleRequest) -> FakeClusterClient:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.client


class FakeRunner(ScaleCommandRunner):
    """Runner that emits ``chunks`` and then optionally fails."""

    def __init__(self, chunks: Sequence[bytes] = (b"scaled\n",), error: Optional[Exception] = None):
        self.chunks = list(chunks)
        self.error = error
        self.calls: List[tuple] = []
        self.stopped = False

    def run(self, target_replica_count, resource_id, namespace, client) -> Iterator[bytes]:
        self.calls.append((target_replica_count, resource_id, namespace))
        return self._stream()

    def _stream(self) -> Iterator[bytes]:
        yield from self.chunks
        if self.error is not None:
            raise self.error

    def stop(self) -> None:
        self.stopped = True


class RunnerScript:
    """Runner factory handing out scripted runners, one per attempt."""

    def __init__(self, runners: List[FakeRunner]):
        self.runners = runners
        self.created: List[FakeRunner] = []

    def __call__(self) -> FakeRunner:
        runner = self.runners[min(len(self.created), len(self.runners) - 1)]
        if runner in self.created:
            runner = FakeRunner(runner.chunks, runner.error)
        self.created.append(runner)
        return runner


DISCOVERY_POLICY = RetryPolicy(interval=10, timeout=180)
SCALE_POLICY = RetryPolicy(interval=10, timeout=60)
CONFIRM_POLICY = RetryPolicy(interval=1, max_attempts=5)


def make_request(prefix: str = "frontend", replicas: int = 3, token: str = "token") -> ScaleRequest:
    return ScaleRequest(
        api_endpoint="https://cluster.test:8443",
        namespace="test",
        deployment_prefix=prefix,
        target_replica_count=replicas,
        auth_token=token,
        kind=ResourceKind.REPLICATION_CONTROLLER,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def progress():
    return ProgressLog()


@pytest.fixture
def token():
    return CancellationToken()


@pytest.fixture
def make_orchestrator(clock):
    """Build an orchestrator over fakes driven by the simulated clock."""

    def _make(client, runners=None, credential_resolver=None, factory_error=None, sleep=None):
        factory = FakeClientFactory(client, error=factory_error)
        script = RunnerScript(runners or [FakeRunner()])
        sleep = sleep or clock.sleep
        orchestrator = ScaleOrchestrator(
            locator=ResourceLocator(DISCOVERY_POLICY, clock=clock, sleep=sleep),
            invoker=ScaleInvoker(SCALE_POLICY, factory, script, clock=clock, sleep=sleep),
            confirmer=ScaleConfirmer(CONFIRM_POLICY, clock=clock, sleep=sleep),
            client_factory=factory,
            credential_resolver=credential_resolver,
        )
        return orchestrator, factory, script

    return _make
