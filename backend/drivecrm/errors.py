"""DriveCRM error taxonomy.

Every error carries a stable machine-readable ``kind`` and the HTTP status the
API layer answers with. Lead/user/comment lookups outside the caller's tenant
raise ``NotFoundError`` exactly like a missing record.
"""
from typing import Any, Dict, Optional


class CRMError(Exception):
    """Base exception for DriveCRM."""

    kind = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.kind, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(CRMError):
    """Malformed input: empty comment, malformed metadata, bad time string."""

    kind = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(CRMError):
    """Record absent or outside the caller's tenant."""

    kind = "NOT_FOUND"
    status_code = 404


class ConflictError(CRMError):
    """Duplicate email within a tenant, duplicate status name, lost update."""

    kind = "CONFLICT"
    status_code = 400


class InvalidStateError(CRMError):
    """Operation not allowed from the record's current state."""

    kind = "INVALID_STATE"
    status_code = 400


class QuotaExceededError(CRMError):
    """Tenant lead/user quota or plan state rejects the operation."""

    kind = "QUOTA_EXCEEDED"
    status_code = 400


class AuthorizationError(CRMError):
    """Role or tenant mismatch."""

    kind = "FORBIDDEN"
    status_code = 403
