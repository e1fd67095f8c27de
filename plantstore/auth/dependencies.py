# plantstore/auth/dependencies.py
"""
Authentication and authorization gates, as FastAPI dependencies.

``authenticate_request`` runs a fixed sequence of guards; each one is a
terminal failure and later guards only run once the earlier ones hold, so
lockout or global-logout state is never revealed for a token that does not
even verify.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import BackgroundTasks, Depends, Request, Response
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from plantstore.auth.sessions import SessionLedger, touch_session
from plantstore.auth.tokens import TokenClaims, verify_token
from plantstore.config import settings
from plantstore.database import get_db
from plantstore.exceptions import AccountLockedError, AuthenticationError, AuthorizationError, NotFoundError
from plantstore.models import User
from plantstore.time_utils import as_utc, utcnow

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/swagger-login", auto_error=False)

# (method, path) pairs that may be called without any token
ANONYMOUS_ROUTES = frozenset({("POST", "/api/analytics/event")})

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


@dataclass
class AuthContext:
    user: User
    claims: TokenClaims


def extract_token(request: Request, bearer: Optional[str]) -> Optional[str]:
    if bearer:
        return bearer
    return request.cookies.get(settings.TOKEN_COOKIE_NAME) or None


def authenticate_request(
    request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
    bearer: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> Optional[AuthContext]:
    token = extract_token(request, bearer)
    if not token:
        if (request.method, request.url.path) in ANONYMOUS_ROUTES:
            request.state.user = None
            return None
        raise AuthenticationError("Not authorized, no token provided")

    claims = verify_token(token)

    user = db.get(User, claims.id)
    if user is None:
        raise AuthenticationError("Unauthorized - Invalid token")

    if claims.jti:
        session = SessionLedger(db, user).find_session(claims.jti)
        if session is None:
            raise AuthenticationError("Session not found. Please log in again")
        if session.revoked:
            raise AuthenticationError("Session has been revoked. Please log in again")

    if settings.REQUIRE_EMAIL_VERIFICATION and not user.is_verified:
        raise AuthenticationError("Please verify your email first")

    password_changed_at = as_utc(user.password_changed_at)
    if password_changed_at and claims.iat < password_changed_at.timestamp():
        raise AuthenticationError("User recently changed password. Please log in again")

    locked_until = as_utc(user.locked_until)
    if locked_until and locked_until > utcnow():
        raise AccountLockedError("Account is temporarily locked. Please try again later")

    last_logout = as_utc(user.last_logout)
    if last_logout and claims.iat <= int(last_logout.timestamp()):
        raise AuthenticationError("Token invalid (logged out). Please log in again")

    request.state.user = user
    for header, value in NO_CACHE_HEADERS.items():
        response.headers[header] = value
    if claims.jti:
        background_tasks.add_task(touch_session, user.id, claims.jti)
    return AuthContext(user=user, claims=claims)


def get_auth_context(context: Optional[AuthContext] = Depends(authenticate_request)) -> AuthContext:
    if context is None:
        raise AuthenticationError("Not authorized, no token provided")
    return context


def get_current_user(context: AuthContext = Depends(get_auth_context)) -> User:
    return context.user


def require_admin(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> User:
    """Privilege check on an already authenticated user, re-read from the database."""
    fresh = db.get(User, user.id, populate_existing=True)
    if fresh is None:
        raise NotFoundError("User not found")
    if not fresh.is_admin:
        raise AuthorizationError("Not authorized as an admin")
    return fresh
