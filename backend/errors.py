"""
backend/errors.py

Error taxonomy for the MRV core.

Lifecycle, authorization and identity code raise these; only the HTTP
boundary (backend/main.py) translates them into responses. Each class carries
the status code it maps to and a short machine-readable kind.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class MRVError(Exception):
    """Base class for every classified failure."""

    status_code = 500
    kind = "error"
    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None, extra: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.extra = extra or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"detail": self.message, "error": self.kind}
        body.update(self.extra)
        return body


class UnauthenticatedError(MRVError):
    status_code = 401
    kind = "unauthenticated"
    default_message = "Access denied. No token provided."


class InvalidTokenError(MRVError):
    status_code = 401
    kind = "invalid_token"
    default_message = "Invalid token"


class AccountDeactivatedError(MRVError):
    status_code = 401
    kind = "account_deactivated"
    default_message = "Account is deactivated"


class AccountLockedError(MRVError):
    status_code = 423
    kind = "account_locked"
    default_message = "Account is temporarily locked due to too many failed login attempts"


class ForbiddenError(MRVError):
    status_code = 403
    kind = "forbidden"
    default_message = "Access denied"


class NotFoundError(MRVError):
    status_code = 404
    kind = "not_found"
    default_message = "Resource not found"


class ValidationError(MRVError):
    status_code = 400
    kind = "validation"
    default_message = "Validation failed"


class InvalidStatusError(ValidationError):
    kind = "invalid_status"
    default_message = "Invalid status"


class ConflictError(MRVError):
    status_code = 409
    kind = "conflict"
    default_message = "Resource already exists"


class StorageError(MRVError):
    """Evidence upload/delete failed at the object store."""

    status_code = 502
    kind = "storage_failure"
    default_message = "Evidence storage failed"
