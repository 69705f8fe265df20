"""
Platform-wide exception hierarchy.

Services raise these canonical types; the blueprint error handlers map
them to HTTP status codes once, so every endpoint answers consistently.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError, WorkflowError

    raise NotFoundError(resource="Demande", resource_id="abc")
    raise ValidationError("subject is required", details={"subject": "..."})
    raise WorkflowError(WorkflowError.INVALID_TRANSITION, "...", details={...})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Demande").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Maps to HTTP 400 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
                 Keys are field names; values are error descriptions.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class WorkflowError(Exception):
    """Raised by the demande lifecycle engine when a transition is refused.

    Single structured type carrying a stable machine-readable ``code`` and a
    ``details`` payload (e.g. the statuses reachable from the current one).
    Always raised before any mutation of the demande.

    Codes:
        INVALID_TRANSITION   (from, to) is not an edge of the graph → 400
        PRECONDITION_FAILED  required field missing, or terminal source → 400
        PERMISSION_DENIED    role missing or not allowed for the edge → 403
    """

    INVALID_TRANSITION = "INVALID_TRANSITION"
    PRECONDITION_FAILED = "PRECONDITION_FAILED"
    PERMISSION_DENIED = "PERMISSION_DENIED"

    CODES = frozenset({INVALID_TRANSITION, PRECONDITION_FAILED, PERMISSION_DENIED})

    def __init__(self, code: str, message: str, details: dict | None = None) -> None:
        if code not in self.CODES:
            raise ValueError(f"Unknown workflow error code: {code}")
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": str(self), "details": self.details}
