"""
Spike Server — Custom Exception Hierarchy
==========================================

What:  Application-specific exceptions for expected failure scenarios.
How:   Each exception class carries a message, an optional context dict, and the
       HTTP status + business code it maps to. Exception handlers (registered by
       main.py) turn them into response envelopes.
Who:   Raised by services, repositories and route handlers.
When:  During request processing when recoverable errors occur. Unexpected
       faults are NOT modelled here; they propagate to the Recovery stage.

Exception Hierarchy:
    SpikeError (base)                  → 500 / 10000
    ├── ValidationError                → 400 / 10001
    ├── AuthenticationError            → 401 / 10001
    │   └── InvalidCredentialsError
    ├── UserInactiveError              → 403 / 10001
    ├── NotFoundError                  → 404 / 10001
    │   └── UserNotFoundError
    ├── ConflictError                  → 409 / 10001
    │   └── UserExistsError
    ├── RequestTimeoutError            → 504 / 10002
    └── DatabaseError                  → 500 / 10000
"""

from typing import Any, Dict, Optional

from spike.resp import Code


class SpikeError(Exception):
    """
    Base exception for all Spike application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
        http_status / code: Envelope mapping used by the exception handlers
    """

    http_status: int = 500
    code: int = Code.INTERNAL_ERROR
    default_message: str = "internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(SpikeError):
    """
    Raised when client input fails a business-rule check.

    What:    The client sent data that can be corrected (length, format, missing field).
    HTTP:    400 Bad Request, code 10001
    """

    http_status = 400
    code = Code.INVALID_PARAM
    default_message = "invalid parameter"

    def __init__(
        self,
        message: Optional[str] = None,
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(SpikeError):
    http_status = 401
    code = Code.INVALID_PARAM
    default_message = "invalid username or password"


class InvalidCredentialsError(AuthenticationError):
    """Password did not match the stored hash."""


class UserInactiveError(SpikeError):
    """The account exists but has been deactivated (soft-deleted)."""

    http_status = 403
    code = Code.INVALID_PARAM
    default_message = "user is inactive"


class NotFoundError(SpikeError):
    """
    Raised when a requested resource does not exist.

    Repositories return None for missing rows; the service layer converts
    None → NotFoundError so handlers never test for None themselves.
    """

    http_status = 404
    code = Code.INVALID_PARAM
    default_message = "resource not found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=f"{resource} not found", context=ctx)


class UserNotFoundError(NotFoundError):
    def __init__(self, user_ref: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        super().__init__(resource="user", resource_id=user_ref, context=context)


class ConflictError(SpikeError):
    http_status = 409
    code = Code.INVALID_PARAM
    default_message = "resource already exists"


class UserExistsError(ConflictError):
    default_message = "username or email already exists"


class RequestTimeoutError(SpikeError):
    """
    Raised when a request's deadline expired before the work finished.

    HTTP:    504 Gateway Timeout, code 10002
    """

    http_status = 504
    code = Code.TIMEOUT
    default_message = "request timeout"


class DatabaseError(SpikeError):
    """
    Raised when database operations fail unexpectedly.

    Security Note:
        The message returned to the client is always generic. Driver errors,
        SQL text and constraint names go into `context`, which is logged only.
    """

    default_message = "a database error occurred"
