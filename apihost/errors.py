"""apihost error types.

Error codes are stable strings for programmatic handling; every error
renders as ``{"error": {"code", "message", "request_id", "details"}}``.
"""

from __future__ import annotations

from typing import Any


class ApiHostError(Exception):
    """Base error for all apihost exceptions."""

    code: str = "internal_error"
    message: str = "An internal error occurred"
    status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.__class__.message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self, request_id: str | None = None) -> dict[str, Any]:
        """Render the error envelope returned to clients."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "request_id": request_id,
                "details": self.details,
            }
        }


class ValidationError(ApiHostError):
    """Request validation error (400)."""

    code = "validation_error"
    message = "Validation error"
    status_code = 400


class PayloadTooLargeError(ValidationError):
    """Uploaded payload exceeds the size ceiling (413)."""

    code = "payload_too_large"
    message = "Payload too large"
    status_code = 413


class UnauthorizedError(ApiHostError):
    """Missing, invalid or expired credential (401)."""

    code = "unauthorized"
    message = "Authentication required"
    status_code = 401


class ForbiddenError(ApiHostError):
    """Caller is not the owner of the resource or key (403)."""

    code = "forbidden"
    message = "Permission denied"
    status_code = 403


class NotFoundError(ApiHostError):
    """Resource not found (404)."""

    code = "not_found"
    message = "Resource not found"
    status_code = 404


class ConflictError(ApiHostError):
    """Concurrent modification lost the race, or uniqueness violated (409)."""

    code = "conflict"
    message = "Conflict"
    status_code = 409


class PreconditionFailedError(ApiHostError):
    """Lifecycle transition not allowed from the current state (412)."""

    code = "precondition_failed"
    message = "Precondition failed"
    status_code = 412


class SandboxUnavailableError(ApiHostError):
    """Execution backend unreachable or crashed (503).

    Distinct from a user program exiting non-zero, which is a successful
    sandbox run.
    """

    code = "sandbox_unavailable"
    message = "Execution sandbox unavailable"
    status_code = 503
