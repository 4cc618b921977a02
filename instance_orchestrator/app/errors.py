"""Typed failures raised by the orchestrator core.

Each error carries a stable ``code`` and the HTTP status the API layer maps
it to, so callers can tell the kinds apart without parsing messages.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class OrchestratorError(Exception):
    """Base class for every failure surfaced by the orchestrator."""

    code = "orchestrator_error"
    status_code = 500

    def __init__(self, message: str = "", *, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message or self.code
        self.details = details or {}
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        return {"detail": self.message, "error": self.code, "details": self.details}


class InvalidArgumentError(OrchestratorError):
    """Malformed caller input."""

    code = "invalid_argument"
    status_code = 400


class ResourceNotFoundError(OrchestratorError):
    """The instance id is unknown to the provider."""

    code = "not_found"
    status_code = 404

    def __init__(self, instance_id: str, message: str = "") -> None:
        self.instance_id = instance_id
        super().__init__(message or f"Instance not found: {instance_id}", details={"instanceId": instance_id})


class WaitTimeoutError(OrchestratorError):
    """Target state not reached before the deadline.

    The instance may still get there later; callers can poll again.
    """

    code = "timeout"
    status_code = 408

    def __init__(self, message: str, *, outcome: Any = None) -> None:
        self.outcome = outcome
        super().__init__(message, details=_outcome_details(outcome))


class WatchFailureError(OrchestratorError):
    """The instance entered a state from which the target is unreachable."""

    code = "watch_failed"
    status_code = 409

    def __init__(self, message: str, *, outcome: Any = None) -> None:
        self.outcome = outcome
        super().__init__(message, details=_outcome_details(outcome))


class WaitCancelledError(OrchestratorError):
    code = "cancelled"
    status_code = 499

    def __init__(self, message: str, *, outcome: Any = None) -> None:
        self.outcome = outcome
        super().__init__(message, details=_outcome_details(outcome))


class UpstreamLookupError(OrchestratorError):
    """The managed-parameter lookup for an AMI id failed."""

    code = "upstream_lookup_failed"
    status_code = 502


class UpstreamEmptyResponseError(OrchestratorError):
    """The language model returned no content."""

    code = "upstream_empty_response"
    status_code = 502


class MalformedModelOutputError(OrchestratorError):
    """Model output is not a valid provisioning request document."""

    code = "malformed_model_output"
    status_code = 422

    def __init__(self, diagnostic: str, *, raw_output: str = "") -> None:
        self.diagnostic = diagnostic
        self.raw_output = raw_output
        super().__init__(
            f"Model output is not a valid provisioning request: {diagnostic}",
            details={"diagnostic": diagnostic},
        )


class ProviderError(OrchestratorError):
    """Any other control-plane failure, propagated without retry."""

    code = "provider_error"
    status_code = 502

    def __init__(self, message: str, *, provider_code: str = "") -> None:
        self.provider_code = provider_code
        super().__init__(message, details={"providerCode": provider_code} if provider_code else None)


def _outcome_details(outcome: Any) -> Dict[str, Any]:
    if outcome is None:
        return {}
    descriptor = getattr(outcome, "descriptor", None)
    return {
        "instanceId": getattr(outcome, "instance_id", None),
        "targetState": getattr(outcome, "target_state", None),
        "lastState": descriptor.state if descriptor is not None else None,
        "attempts": getattr(outcome, "attempts", None),
    }
