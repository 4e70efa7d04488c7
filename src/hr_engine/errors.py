"""Error taxonomy shared by the services and the HTTP layer.

Each error carries a stable ``code`` and the HTTP status it maps to, so
route handlers never translate errors by hand.
"""

from __future__ import annotations

from typing import Any


class HREngineError(Exception):
    """Base class for all domain errors."""

    code = "ERROR"
    status_code = 500

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(HREngineError):
    """Malformed or missing input."""

    code = "VALIDATION_ERROR"
    status_code = 400


class AuthenticationError(HREngineError):
    """Caller could not be authenticated."""

    code = "UNAUTHENTICATED"
    status_code = 401


class PermissionDeniedError(HREngineError):
    """Caller is authenticated but lacks the role for the action."""

    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(HREngineError):
    """Referenced entity does not exist."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            f"{entity} not found",
            details={"entity": entity, "id": str(entity_id)},
        )


class ConflictError(HREngineError):
    """Duplicate linkage or uniqueness violation."""

    code = "CONFLICT"
    status_code = 409


class InvalidStateError(HREngineError):
    """State machine guard violated."""

    code = "INVALID_STATE"
    status_code = 409

    def __init__(
        self,
        message: str,
        *,
        from_status: str | None = None,
        to_status: str | None = None,
    ):
        self.from_status = from_status
        self.to_status = to_status
        details = {}
        if from_status is not None:
            details["from_status"] = from_status
        if to_status is not None:
            details["to_status"] = to_status
        super().__init__(message, details=details)


class UpstreamError(HREngineError):
    """Identity or storage dependency failed."""

    code = "UPSTREAM_ERROR"
    status_code = 502


class UnexpectedError(HREngineError):
    """Catch-all surfaced to callers without internal detail."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str = "An unexpected error occurred"):
        super().__init__(message)
