"""
Platform-wide exception hierarchy.

Every service in ``qc_platform.services`` raises these types and nothing
else for business-rule failures. Blueprints register handlers against them
once and get consistent HTTP status codes everywhere.

Usage:
    from qc_platform.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="InspectionInstance", resource_id=42)
    raise MissingMandatoryItems(["1.2", "3.10"])
"""

from __future__ import annotations


class NotFoundError(Exception):
    """Raised when a template, phase, instance, item or project does not exist.

    Args:
        resource: Human-readable entity name (e.g. "ChecklistTemplate").
        resource_id: The key that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional structured breakdown for API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class InvalidStatus(ValidationError):
    """An item result outside PENDING / OK / NOT_OK / NA."""

    def __init__(self, status, allowed) -> None:
        self.status = status
        super().__init__(
            f"Invalid item status {status!r}",
            details={"status": status, "allowed": sorted(allowed)},
        )


class EmptySignature(ValidationError):
    """Signing without a signature image."""

    def __init__(self) -> None:
        super().__init__("A signature image is required to sign an inspection")


class MissingComments(ValidationError):
    """Reject / rework decisions must carry reviewer comments."""

    def __init__(self, action: str) -> None:
        super().__init__(f"Comments are required for '{action}'", details={"action": action})


class MissingMandatoryItems(ValidationError):
    """Submit gate: mandatory items are still PENDING.

    ``codes`` lists the offending item codes in natural code order.
    """

    def __init__(self, codes: list[str]) -> None:
        self.codes = list(codes)
        super().__init__(
            f"{len(self.codes)} mandatory item(s) are not completed: {', '.join(self.codes)}",
            details={"codes": self.codes},
        )


class InvalidTransition(Exception):
    """Raised when a lifecycle action is not legal from the current status.

    Maps to HTTP 409.
    """

    def __init__(self, action: str, current_status: str, reason: str | None = None) -> None:
        self.action = action
        self.current_status = current_status
        msg = f"Cannot '{action}' inspection in status {current_status}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class InstanceTerminal(Exception):
    """Raised on any mutation of an APPROVED or REJECTED instance.

    Maps to HTTP 409.
    """

    def __init__(self, instance_id, status: str) -> None:
        self.instance_id = instance_id
        self.status = status
        super().__init__(f"Inspection {instance_id} is {status} and can no longer be changed")


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique catalog value.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class ConcurrencyConflict(Exception):
    """Raised when a stale write is detected (optimistic concurrency).

    ``expected`` / ``actual`` carry the row versions when they are known.
    Maps to HTTP 409; the caller should reload and retry.
    """

    def __init__(self, resource: str, resource_id, expected: int | None = None,
                 actual: int | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.expected = expected
        self.actual = actual
        msg = f"{resource} id={resource_id} was modified concurrently"
        if expected is not None:
            msg += f" (expected version {expected}, found {actual})"
        super().__init__(msg)


class ExternalServiceError(Exception):
    """Raised when the Attachment Store or the AI Insight Provider fails.

    Maps to HTTP 502.
    """

    def __init__(self, service: str, message: str) -> None:
        self.service = service
        super().__init__(f"{service}: {message}")
