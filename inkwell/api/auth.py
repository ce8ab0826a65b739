from typing import Any

from fastapi import APIRouter, Depends, Request, status

from inkwell.api import deps
from inkwell.core.config import Settings
from inkwell.core.errors import NotFound, TooManyRequests, Unauthorized
from inkwell.core.identity import Identity
from inkwell.core.jwt import create_access_token
from inkwell.core.rate_limit import RateLimiter, get_client_ip
from inkwell.schemas import LoginResponse, UserCreate, UserLogin, UserOut
from inkwell.services.user_repository import UserRepository

router = APIRouter()


@router.post("/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def register_user(
    user_in: UserCreate,
    users: UserRepository = Depends(deps.get_user_repository),
) -> Any:
    user = users.create(user_in.username, user_in.email, user_in.password)
    return UserOut.from_model(user)


@router.post("/login", response_model=LoginResponse)
def login(
    request: Request,
    credentials: UserLogin,
    users: UserRepository = Depends(deps.get_user_repository),
    settings: Settings = Depends(deps.get_settings),
    rate_limiter: RateLimiter = Depends(deps.get_rate_limiter),
    logger: Any = Depends(deps.get_app_logger),
) -> Any:
    # Rate limiting per client address, lockout after repeated failures
    ip = get_client_ip(request)
    is_limited, retry_after = rate_limiter.is_rate_limited(
        ip,
        max_requests=settings.LOGIN_RATE_LIMIT,
        window_seconds=settings.LOGIN_RATE_WINDOW_SECONDS,
    )
    if is_limited:
        raise TooManyRequests(
            f"Too many login attempts. Please try again in {retry_after} seconds.",
            retry_after=retry_after,
        )

    rate_limiter.record_request(ip)

    user = users.authenticate(credentials.email, credentials.password)
    if user is None:
        is_locked, remaining = rate_limiter.record_failed_login(ip)
        logger.warning("Login failed", client_ip=ip, locked=is_locked)
        if is_locked:
            raise TooManyRequests(
                f"Account locked due to too many failed attempts. Try again in {remaining} seconds.",
                retry_after=remaining,
            )
        raise Unauthorized("Invalid credentials", reason="bad_credentials")

    rate_limiter.record_successful_login(ip)

    token = create_access_token(settings, user.id, user.username, user.email)
    logger.info("User logged in", user_id=user.id)
    return LoginResponse(token=token, user=UserOut.from_model(user))


@router.get("/me", response_model=UserOut)
def get_current_user_info(
    identity: Identity = Depends(deps.require_identity),
    users: UserRepository = Depends(deps.get_user_repository),
) -> Any:
    """Current user from the bearer token."""
    try:
        user = users.get_by_id(identity.id)
    except NotFound:
        # Valid token for an account that has since been removed
        raise Unauthorized("User no longer exists", reason="unknown_user")
    return UserOut.from_model(user)
