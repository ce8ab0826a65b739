from typing import Any, NoReturn, Optional

import structlog
from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from inkwell.core.config import Settings
from inkwell.core.context import set_user_id
from inkwell.core.errors import Unauthorized
from inkwell.core.identity import Identity
from inkwell.core.jwt import decode_access_token
from inkwell.core.rate_limit import RateLimiter, get_client_ip
from inkwell.db import get_session
from inkwell.services.category_repository import CategoryRepository
from inkwell.services.post_repository import PostRepository, SQLPostRepository
from inkwell.services.uploads import LocalBlobStore, check_upload_fields
from inkwell.services.user_repository import UserRepository

# Declared for the OpenAPI schema; the gate reads the header itself
bearer_scheme = HTTPBearer(auto_error=False)


class AuthenticationGate:
    """
    Verifies the bearer credential on protected requests.

    On success the caller's Identity is attached to ``request.state.identity``
    and bound into the logging context. Every failure is logged at warning
    with its reason, path and client address, then raised as ``Unauthorized``.
    """

    def __init__(self, settings: Settings, logger: Any):
        self.settings = settings
        self.logger = logger

    @staticmethod
    def extract_token(request: Request) -> Optional[str]:
        header = request.headers.get("Authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return None
        return token.strip()

    def authenticate(self, request: Request) -> Identity:
        token = self.extract_token(request)
        if not token:
            self._reject(request, Unauthorized("No token, authorization denied", reason="missing"))

        try:
            claims = decode_access_token(self.settings, token)
        except Unauthorized as e:
            self._reject(request, e)

        identity = Identity.from_claims(claims)
        request.state.identity = identity
        set_user_id(identity.id)
        structlog.contextvars.bind_contextvars(user_id=identity.id)

        self.logger.debug(
            "User authenticated",
            user_id=identity.id,
            username=identity.username,
            path=request.url.path,
        )
        return identity

    def _reject(self, request: Request, error: Unauthorized) -> NoReturn:
        self.logger.warning(
            "Authentication failed",
            reason=error.reason,
            path=request.url.path,
            method=request.method,
            client_ip=get_client_ip(request),
        )
        raise error


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_app_logger(request: Request) -> Any:
    return request.app.state.logger


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_blob_store(request: Request) -> LocalBlobStore:
    return request.app.state.blob_store


def require_identity(
    request: Request,
    _credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> Identity:
    """Dependency for protected routes."""
    gate: AuthenticationGate = request.app.state.auth_gate
    return gate.authenticate(request)


def get_post_repository(session: Session = Depends(get_session)) -> PostRepository:
    return SQLPostRepository(session)


def get_category_repository(session: Session = Depends(get_session)) -> CategoryRepository:
    return CategoryRepository(session)


def get_user_repository(session: Session = Depends(get_session)) -> UserRepository:
    return UserRepository(session)


async def get_featured_image(request: Request):
    """The single ``featuredImage`` upload of a multipart request, or None."""
    if not request.headers.get("content-type", "").startswith("multipart/form-data"):
        return None
    form = await request.form()
    image = check_upload_fields(form)
    if image is None or not image.filename:
        return None
    return image
