# plantstore/auth/tokens.py
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

import jwt

from plantstore.config import settings
from plantstore.exceptions import AuthenticationError


class TokenExpiredError(AuthenticationError):
    code = "TOKEN_EXPIRED"

    def __init__(self, message: str = "Token expired. Please log in again") -> None:
        super().__init__(message)


class InvalidTokenError(AuthenticationError):
    code = "INVALID_TOKEN"

    def __init__(self, message: str = "Invalid token. Please log in again") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class TokenClaims:
    id: int
    jti: Optional[str]
    iat: int


def issue_token(
    user_id: int,
    jti: Optional[str] = None,
    expires_in: Union[int, timedelta, None] = None,
) -> str:
    """Sign a bearer token for ``user_id``; ``jti`` ties it to one login session."""
    if expires_in is None:
        expires_in = settings.ACCESS_TOKEN_EXPIRE_SECONDS
    if not isinstance(expires_in, timedelta):
        expires_in = timedelta(seconds=expires_in)
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int((now + expires_in).timestamp()),
    }
    if jti:
        payload["jti"] = jti
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str) -> TokenClaims:
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["sub", "iat", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpiredError()
    except jwt.PyJWTError:
        raise InvalidTokenError()

    try:
        user_id = int(payload["sub"])
        issued_at = int(payload["iat"])
    except (TypeError, ValueError):
        raise InvalidTokenError()
    return TokenClaims(id=user_id, jti=payload.get("jti"), iat=issued_at)
