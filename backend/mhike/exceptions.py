"""
M-Hike API: Custom Exception Hierarchy
========================================

What:  Application-specific exceptions for each failure the API can report.
How:   Each exception carries a user-safe message and an optional context
       dict. Global exception handlers (registered in main.py) turn them
       into structured JSON error responses with the right status code.
Who:   Raised by services, the upload receiver and the auth layer.

Exception Hierarchy:
    MHikeError (base)
    ├── UploadRejected           → 400 Bad Request (bad MIME type or size)
    ├── ValidationFailed         → 400 Bad Request (domain rule violated)
    ├── AuthenticationFailed     → 401 Unauthorized
    ├── Forbidden                → 403 Forbidden (ownership mismatch)
    ├── NotFound                 → 404 Not Found
    ├── Conflict                 → 409 Conflict (uniqueness violation)
    ├── StorageError             → 500 Internal Server Error
    └── DatabaseError            → 500 Internal Server Error

Cleanup failures never raise: the storage layer logs a StorageError's
details and carries on, since the database outcome already decided the
response.
"""

from typing import Any, Dict, List, Optional


class MHikeError(Exception):
    """
    Base exception for all M-Hike application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, NOT returned for 5xx errors)
    """

    status_code: int = 500
    error_code: str = "server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class UploadRejected(MHikeError):
    """
    Raised by the upload receiver when a file part is refused.

    When:    MIME type outside the allow-list, or size above the limit.
    Guarantee: raised before any database interaction, and the rejected
             bytes are not left on storage.
    """

    status_code = 400
    error_code = "upload_rejected"

    def __init__(
        self,
        message: str = "Uploaded file was rejected",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class ValidationFailed(MHikeError):
    """
    Raised when client input breaks a domain rule.

    Carries a list of per-field errors in the same shape the API has
    always returned: [{"field": "email", "msg": "Valid email is required"}].
    """

    status_code = 400
    error_code = "validation_error"

    def __init__(
        self,
        message: str = "Validation failed",
        errors: Optional[List[Dict[str, str]]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        self.errors = errors or []
        if self.errors:
            ctx["errors"] = self.errors
        super().__init__(message=message, context=ctx)

    @classmethod
    def for_field(cls, field: str, msg: str) -> "ValidationFailed":
        return cls(message=msg, errors=[{"field": field, "msg": msg}])


class AuthenticationFailed(MHikeError):
    """Missing, malformed or expired credentials, or a wrong password."""

    status_code = 401
    error_code = "authentication_failed"

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class Forbidden(MHikeError):
    """The authenticated user does not own the resource being changed."""

    status_code = 403
    error_code = "forbidden"

    def __init__(
        self,
        message: str = "You are not allowed to perform this action",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFound(MHikeError):
    """
    Raised when a requested row does not exist.

    SQLAlchemy returns None for missing records; services convert that into
    NotFound so the handler can answer 404 without HTTP code in services.
    """

    status_code = 404
    error_code = "not_found"

    def __init__(
        self,
        resource: str = "Resource",
        resource_id: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"{resource} not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id is not None:
            ctx["resource_id"] = str(resource_id)
        super().__init__(message=message, context=ctx)


class Conflict(MHikeError):
    """
    A uniqueness constraint rejected the write.

    When:    Duplicate username or email, either caught by the pre-check or by
             the database itself when two requests race.
    """

    status_code = 409
    error_code = "conflict"

    def __init__(
        self,
        message: str = "Resource already exists",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class StorageError(MHikeError):
    """
    A filesystem write or delete failed.

    Surfaces as a 500 only when writing an upload fails. Delete failures are
    logged by the storage layer and never raised.
    """

    status_code = 500
    error_code = "storage_error"

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(MHikeError):
    """
    A database operation failed for a reason other than a known constraint.

    The message returned to the client is always generic. SQL text and
    driver errors are logged server-side only.
    """

    status_code = 500
    error_code = "server_error"

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
