"""
Exception handlers that turn every failure into a normalized JSON response.

The log entry and the response body are built separately: logs get the
method, path, caller and (for 5xx) the stack trace; the body gets only the
normalized message, plus the stack when running in development.
"""

import dataclasses
import traceback
from typing import Any, Dict

import jwt
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from inkwell.core.errors import AppError, NormalizedError, capture_exception, normalize
from inkwell.core.rate_limit import get_client_ip


class ErrorNormalizer:
    def __init__(self, logger: Any, expose_internals: bool = False):
        self.logger = logger
        self.expose_internals = expose_internals

    def normalize(self, request: Request, exc: BaseException) -> NormalizedError:
        normalized = normalize(exc)
        if (
            isinstance(exc, StarletteHTTPException)
            and exc.status_code == 404
            and exc.detail == "Not Found"
        ):
            normalized = dataclasses.replace(normalized, message=f"Route {request.url.path} not found")
        return normalized

    def report(self, request: Request, exc: BaseException, normalized: NormalizedError) -> None:
        identity = getattr(request.state, "identity", None)
        context = {
            # Unclassified errors arrive after the request middleware cleared its context
            "request_id": getattr(request.state, "request_id", None),
            "method": request.method,
            "path": request.url.path,
            "user_id": identity.id if identity else "anonymous",
            "client_ip": get_client_ip(request),
            "status_code": normalized.status_code,
            "error_kind": normalized.kind,
        }
        if normalized.status_code >= 500:
            capture_exception(self.logger, exc, context=context, event="Request failed")
        else:
            self.logger.warning(
                "Request rejected",
                error=normalized.message,
                error_type=type(exc).__name__,
                **context,
            )

    def render(self, exc: BaseException, normalized: NormalizedError) -> JSONResponse:
        body: Dict[str, Any] = {"success": False, "error": normalized.message}
        if normalized.detail:
            body["detail"] = normalized.detail
        if self.expose_internals:
            body["type"] = type(exc).__name__
            body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return JSONResponse(status_code=normalized.status_code, content=body, headers=normalized.headers)

    async def handle(self, request: Request, exc: Exception) -> JSONResponse:
        normalized = self.normalize(request, exc)
        self.report(request, exc, normalized)
        return self.render(exc, normalized)


def install_exception_handlers(app: FastAPI, normalizer: ErrorNormalizer) -> None:
    for exc_class in (
        AppError,
        RequestValidationError,
        StarletteHTTPException,
        SQLAlchemyError,
        jwt.PyJWTError,
        Exception,
    ):
        app.add_exception_handler(exc_class, normalizer.handle)
