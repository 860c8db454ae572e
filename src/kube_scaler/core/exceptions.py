"""Exception hierarchy for the scaler.

Phase-level exceptions describe why an orchestration run failed. They are
recorded on the result and in the progress log; ``ScaleOrchestrator.run``
never lets them escape to its caller.
"""

from __future__ import annotations

from typing import Optional


class ScalerError(Exception):
    """Base class for all scaler errors."""


class ConfigurationError(ScalerError):
    """Raised when step configuration fails validation."""

    def __init__(self, errors: dict[str, str]):
        self.errors = errors
        details = "; ".join(f"{field}: {message}" for field, message in errors.items())
        super().__init__(f"Invalid configuration: {details}")


class ClusterClientError(ScalerError):
    """A cluster API call failed for a reason other than "not found"."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class TransientTransportError(ScalerError):
    """A single attempt of a phase failed and may be retried."""


class ScaleCommandError(TransientTransportError):
    """The scale command exited unsuccessfully."""

    def __init__(self, message: str, returncode: Optional[int] = None):
        super().__init__(message)
        self.returncode = returncode


class DiscoveryTimeout(ScalerError):
    """No matching resource appeared before the discovery deadline."""


class InvocationExhausted(ScalerError):
    """The scale command never succeeded before its deadline."""


class ResourceVanished(ScalerError):
    """The resource disappeared while the scale was being confirmed."""


class ConfirmationTimeout(ScalerError):
    """The resource never reported the requested replica count."""


class RunCancelled(ScalerError):
    """The run was cancelled through its cancellation token."""
