"""
Error taxonomy and normalization.

Every failure that can reach a caller is expressed as one of a closed set of
``AppError`` variants:

    NotFound | ValidationError | Unauthorized | Forbidden | Conflict
    | TooManyRequests | Internal

Failures raised by libraries (SQLAlchemy, PyJWT, FastAPI request validation,
Starlette routing) are mapped onto the same shape by ``normalize`` so the API
boundary only ever deals with a ``NormalizedError``.

Usage:
    normalized = normalize(exc)
    # NormalizedError(status_code=404, message="Resource not found", ...)

    # Log an unexpected exception with request context
    capture_exception(logger, exc, context={"post_id": 12})
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Union

import jwt
from fastapi.exceptions import RequestValidationError
from sqlalchemy import exc as sa_exc
from starlette.exceptions import HTTPException as StarletteHTTPException

from inkwell.core.context import get_context_dict

__all__ = [
    "FieldError",
    "AppError",
    "NotFound",
    "MalformedIdentifier",
    "ValidationError",
    "UploadTooLarge",
    "UnexpectedUploadField",
    "Unauthorized",
    "TokenInvalid",
    "TokenExpired",
    "Forbidden",
    "Conflict",
    "StaleVersion",
    "TooManyRequests",
    "Internal",
    "StorageUnavailable",
    "NormalizedError",
    "normalize",
    "capture_exception",
]


class FieldError(NamedTuple):
    field: str
    message: str


class AppError(Exception):
    """Base of the closed error hierarchy. Subclasses set status and default message."""

    status_code: int = 500
    default_message: str = "Server Error"
    kind: str = "internal"

    def __init__(self, message: Optional[str] = None, headers: Optional[Dict[str, str]] = None):
        self.message = message or self.default_message
        self.headers = headers
        super().__init__(self.message)

    @property
    def detail(self) -> Optional[Dict[str, Any]]:
        return None


class NotFound(AppError):
    status_code = 404
    default_message = "Resource not found"
    kind = "not_found"


class MalformedIdentifier(NotFound):
    """An identifier that cannot name any record (e.g. ``/api/posts/abc``)."""

    def __init__(self, raw: Any):
        self.raw = raw
        super().__init__()


class ValidationError(AppError):
    """Client-correctable input problem carrying field-level messages."""

    status_code = 400
    default_message = "Validation failed"
    kind = "validation"

    def __init__(self, errors: Union[str, Sequence[FieldError], None] = None, field_name: str = "body"):
        if isinstance(errors, str):
            self.errors: List[FieldError] = [FieldError(field_name, errors)]
        else:
            self.errors = list(errors or [])
        message = ", ".join(e.message for e in self.errors) if self.errors else None
        super().__init__(message)

    @property
    def detail(self) -> Optional[Dict[str, Any]]:
        if not self.errors:
            return None
        return {"fields": [{"field": e.field, "message": e.message} for e in self.errors]}


class UploadTooLarge(ValidationError):
    def __init__(self):
        super().__init__("File too large", field_name="featuredImage")


class UnexpectedUploadField(ValidationError):
    def __init__(self, field_name: str = "featuredImage"):
        super().__init__("Too many files or invalid field name", field_name=field_name)


class Unauthorized(AppError):
    """
    Authentication failure. ``reason`` is for logs only and never reaches the
    response body.
    """

    status_code = 401
    default_message = "Not authenticated"
    kind = "unauthorized"

    def __init__(self, message: Optional[str] = None, reason: str = "missing"):
        self.reason = reason
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class TokenInvalid(Unauthorized):
    default_message = "Invalid token"

    def __init__(self, reason: str = "invalid"):
        super().__init__(reason=reason)


class TokenExpired(Unauthorized):
    default_message = "Token expired"

    def __init__(self):
        super().__init__(reason="expired")


class Forbidden(AppError):
    status_code = 403
    default_message = "Not authorized to perform this action"
    kind = "forbidden"


class Conflict(AppError):
    """Uniqueness or state conflict."""

    status_code = 400
    default_message = "Duplicate field value entered"
    kind = "conflict"


class StaleVersion(Conflict):
    status_code = 409

    def __init__(self, current_version: int, submitted_version: int):
        self.current_version = current_version
        self.submitted_version = submitted_version
        super().__init__("Post was modified by another request; reload and try again")

    @property
    def detail(self) -> Optional[Dict[str, Any]]:
        return {"current_version": self.current_version}


class TooManyRequests(AppError):
    status_code = 429
    default_message = "Too many requests, please try again later"
    kind = "rate_limited"

    def __init__(self, message: Optional[str] = None, retry_after: int = 60):
        self.retry_after = retry_after
        super().__init__(message)
        self.headers = {"Retry-After": str(retry_after)}


class Internal(AppError):
    status_code = 500
    default_message = "Server Error"
    kind = "internal"


class StorageUnavailable(Internal):
    default_message = "Database connection failed"


@dataclass(frozen=True)
class NormalizedError:
    """Uniform ``{status_code, message, detail}`` shape sent to callers."""

    status_code: int
    message: str
    kind: str = "internal"
    detail: Optional[Dict[str, Any]] = None
    headers: Optional[Dict[str, str]] = field(default=None, compare=False)


def _field_name(loc: Sequence[Any]) -> str:
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "form", "header")]
    return ".".join(parts) or "body"


def _from_request_validation(exc: RequestValidationError) -> ValidationError:
    errors = []
    for err in exc.errors():
        name = _field_name(err.get("loc", ()))
        errors.append(FieldError(name, f"{name}: {err.get('msg', 'invalid value')}"))
    return ValidationError(errors)


def normalize(exc: BaseException) -> NormalizedError:
    """Map any raised exception to the caller-facing error shape."""
    if isinstance(exc, RequestValidationError):
        exc = _from_request_validation(exc)
    elif isinstance(exc, jwt.ExpiredSignatureError):
        exc = TokenExpired()
    elif isinstance(exc, jwt.PyJWTError):
        exc = TokenInvalid(reason=type(exc).__name__)
    elif isinstance(exc, sa_exc.IntegrityError):
        exc = Conflict()
    elif isinstance(exc, (sa_exc.OperationalError, sa_exc.DisconnectionError, sa_exc.TimeoutError)):
        exc = StorageUnavailable()

    if isinstance(exc, AppError):
        return NormalizedError(
            status_code=exc.status_code,
            message=exc.message,
            kind=exc.kind,
            detail=exc.detail,
            headers=exc.headers,
        )

    if isinstance(exc, StarletteHTTPException):
        headers = dict(exc.headers) if exc.headers else None
        kind = "not_found" if exc.status_code == 404 else "http"
        return NormalizedError(
            status_code=exc.status_code,
            message=str(exc.detail),
            kind=kind,
            headers=headers,
        )

    return NormalizedError(status_code=500, message="Server Error")


def capture_exception(
    logger: Any,
    exc: BaseException,
    context: Optional[Dict[str, Any]] = None,
    event: str = "Exception captured",
) -> None:
    """
    Log an exception with its stack trace and the current request context.

    Args:
        logger: structlog logger to write to
        exc: Exception to capture
        context: Additional context dict (e.g., {"post_id": 12})
        event: Log event name
    """
    enriched_context = {
        **get_context_dict(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "error_type": type(exc).__name__,
        **(context or {}),
    }
    logger.error(event, exc_info=exc, **enriched_context)
