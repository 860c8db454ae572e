"""Value types shared by the scaler phases."""

from __future__ import annotations

import dataclasses
import string
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ResourceKind(str, Enum):
    """Kinds of scalable resource the scaler can discover."""

    REPLICATION_CONTROLLER = "ReplicationController"
    DEPLOYMENT = "Deployment"

    @property
    def cli_name(self) -> str:
        """Resource name as understood by ``oc``/``kubectl``."""
        return self.value.lower()


_DIGITS = {
    8: string.octdigits,
    10: string.digits,
    16: string.hexdigits,
}


INT_MIN = -(2**31)
INT_MAX = 2**31 - 1


def parse_replica_count(value: str) -> int:
    """Parse a string-encoded integer.

    Accepts an optional sign followed by a decimal number, a hexadecimal
    number prefixed with ``0x``, ``0X`` or ``#``, or an octal number with a
    leading ``0``.

    Raises:
        ValueError: If the value is not a well-formed integer or does not
            fit in a signed 32-bit int.
    """
    if not value:
        raise ValueError("Zero length string")

    index = 0
    negative = False
    if value[0] in "+-":
        negative = value[0] == "-"
        index = 1

    if value.startswith(("0x", "0X"), index):
        radix = 16
        index += 2
    elif value.startswith("#", index):
        radix = 16
        index += 1
    elif value.startswith("0", index) and len(value) > index + 1:
        radix = 8
        index += 1
    else:
        radix = 10

    digits = value[index:]
    if not digits or not all(c in _DIGITS[radix] for c in digits):
        raise ValueError(f"Not an integer: {value!r}")

    number = int(digits, radix)
    if negative:
        number = -number
    if not INT_MIN <= number <= INT_MAX:
        raise ValueError(f"Out of range: {value!r}")
    return number


@dataclass(frozen=True)
class ScaleRequest:
    """Immutable description of a single scale run."""

    api_endpoint: str
    namespace: str
    deployment_prefix: str
    target_replica_count: int
    auth_token: str = field(default="", repr=False)
    kind: ResourceKind = ResourceKind.REPLICATION_CONTROLLER

    def __post_init__(self) -> None:
        for name in ("api_endpoint", "namespace", "deployment_prefix"):
            if not getattr(self, name):
                raise ValueError(f"{name} must not be empty")
        if self.target_replica_count < 0:
            raise ValueError("target_replica_count must not be negative")

    @property
    def scale_to_zero(self) -> bool:
        return self.target_replica_count == 0

    def with_auth_token(self, token: str) -> "ScaleRequest":
        """Return a copy of this request carrying ``token``."""
        return dataclasses.replace(self, auth_token=token)


@dataclass(frozen=True)
class ClusterResourceRef:
    """A resource found by the locator for one run."""

    id: str
    namespace: str
    kind: ResourceKind = ResourceKind.REPLICATION_CONTROLLER


@dataclass
class ResourceDescriptor:
    """What the cluster reports about a scalable resource."""

    name: str
    namespace: str
    kind: ResourceKind
    current_replicas: int = 0
    desired_replicas: int = 0


@dataclass(frozen=True)
class ReplicaObservation:
    """A single read of a resource's live replica count."""

    resource_id: str
    replicas: int
    observed_at: float


class OrchestrationOutcome(str, Enum):
    """Terminal result of an orchestration run."""

    SUCCESS = "success"
    NOT_FOUND_BUT_ZERO_REQUESTED = "not_found_but_zero_requested"
    NOT_FOUND_AND_NON_ZERO_REQUESTED = "not_found_and_non_zero_requested"
    SCALE_COMMAND_FAILED = "scale_command_failed"
    RESOURCE_VANISHED = "resource_vanished"
    CONFIRMATION_TIMED_OUT = "confirmation_timed_out"
    CANCELLED = "cancelled"
    CLIENT_UNAVAILABLE = "client_unavailable"

    @property
    def succeeded(self) -> bool:
        return self in (
            OrchestrationOutcome.SUCCESS,
            OrchestrationOutcome.NOT_FOUND_BUT_ZERO_REQUESTED,
        )


@dataclass
class OrchestrationResult:
    """Outcome of a run together with per-phase counters and the log."""

    outcome: OrchestrationOutcome
    resource: Optional[ClusterResourceRef] = None
    discovery_attempts: int = 0
    invocation_attempts: int = 0
    confirmation_reads: int = 0
    log_text: str = ""
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome.succeeded

    @property
    def discovery_retries(self) -> int:
        return max(self.discovery_attempts - 1, 0)

    @property
    def invocation_retries(self) -> int:
        return max(self.invocation_attempts - 1, 0)
