from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from inkwell.core.config import Settings
from inkwell.core.errors import TokenExpired, TokenInvalid


def create_access_token(
    settings: Settings,
    user_id: int,
    username: str,
    email: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    now = datetime.now(timezone.utc)
    if expires_delta is not None:
        expire = now + expires_delta
    else:
        expire = now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {
        "sub": str(user_id),
        "id": user_id,
        "username": username,
        "email": email,
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(settings: Settings, token: str) -> Dict[str, Any]:
    """
    Verify a token and return its claims.

    Raises:
        TokenExpired: signature valid but ``exp`` is in the past
        TokenInvalid: malformed, wrong signature, or missing identity claims
    """
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpired()
    except jwt.PyJWTError as e:
        raise TokenInvalid(reason=f"{type(e).__name__}: {e}")

    if not isinstance(payload.get("id"), int) or not payload.get("username"):
        raise TokenInvalid(reason="missing identity claims")
    return payload
