from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from fastapi import Request
from sqlalchemy.orm import Session

from plantstore.auth.sessions import LOGOUT_EPSILON, SessionLedger
from plantstore.auth.tokens import TokenClaims, issue_token
from plantstore.auth.utils import (
    create_one_time_token,
    extract_request_context,
    hash_one_time_token,
    hash_password,
    looks_prehashed,
    password_policy_error,
    sanitize_name,
)
from plantstore.config import settings
from plantstore.exceptions import (
    AccountLockedError,
    AuthenticationError,
    ConflictError,
    ValidationError,
)
from plantstore.models import User
from plantstore.observability import get_logger
from plantstore.time_utils import as_utc, utcnow

logger = get_logger(__name__)

PREHASHED_MESSAGE = (
    "Invalid password format. Password appears to be hashed. Please enter your plain text password."
)


@dataclass
class LoginResult:
    user: User
    token: str
    jti: str


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def _check_new_password(password: str) -> None:
    if looks_prehashed(password):
        raise ValidationError(PREHASHED_MESSAGE)
    problem = password_policy_error(password)
    if problem:
        raise ValidationError(problem)


def _start_session(db: Session, user: User, request: Optional[Request]) -> LoginResult:
    ip, ua = extract_request_context(request) if request else (None, "")
    ledger = SessionLedger(db, user)
    jti = ledger.create_session(user_agent=ua, ip=ip)
    ledger.cleanup()
    ledger.prune(settings.MAX_SESSIONS)
    return LoginResult(user=user, token=issue_token(user.id, jti=jti), jti=jti)


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == normalize_email(email)).first()


def create_user(db: Session, name: str, email: str, password: str, role=None) -> User:
    """Persist a new account with an irreversibly hashed password (not committed)."""
    _check_new_password(password)
    email = normalize_email(email)
    if get_user_by_email(db, email) is not None:
        raise ConflictError("User already exists", field="email")
    user = User(name=sanitize_name(name), email=email, password_hash=hash_password(password))
    if role is not None:
        user.role = role
    db.add(user)
    db.flush()
    return user


def register_user(db: Session, name: str, email: str, password: str, request: Optional[Request] = None):
    """
    Create the account, open its first session and issue a verification token.
    Returns (LoginResult, raw_verification_token).
    """
    user = create_user(db, name, email, password)
    raw_verification, verification_hash = create_one_time_token()
    user.verification_token = verification_hash
    result = _start_session(db, user, request)
    db.commit()
    db.refresh(user)
    logger.info("user_registered", user_id=user.id)
    return result, raw_verification


def authenticate_user(email: str, password: str, db: Session, request: Optional[Request] = None) -> LoginResult:
    if looks_prehashed(password):
        raise ValidationError(PREHASHED_MESSAGE)

    user = get_user_by_email(db, email)
    now = utcnow()

    # ---- user not found ----
    if not user:
        logger.info("login_failed", reason="no_user")
        raise AuthenticationError("Invalid email or password")

    # ---- account locked ----
    locked_until = as_utc(user.locked_until)
    if locked_until and locked_until > now:
        logger.info("login_failed", user_id=user.id, reason="locked")
        raise AccountLockedError("Account is temporarily locked. Please try again later")
    if locked_until:
        # lock window elapsed; start counting afresh
        user.locked_until = None
        user.login_attempts = 0

    # ---- password verification ----
    if not user.match_password(password):
        user.login_attempts = (user.login_attempts or 0) + 1
        reason = "wrong_password"
        if user.login_attempts >= settings.MAX_FAILED_ATTEMPTS:
            user.locked_until = now + timedelta(seconds=settings.LOCK_TIME_SECONDS)
            reason = "locked_after_max_attempts"
            logger.warning("account_locked", user_id=user.id, until=user.locked_until.isoformat())
        db.commit()
        logger.info("login_failed", user_id=user.id, reason=reason, attempts=user.login_attempts)
        raise AuthenticationError("Invalid email or password")

    # ---- success: reset lock/attempts ----
    user.login_attempts = 0
    user.locked_until = None
    user.last_login = now

    result = _start_session(db, user, request)
    db.commit()
    db.refresh(user)
    logger.info("login_succeeded", user_id=user.id)
    return result


def logout_user(db: Session, user: User, claims: TokenClaims) -> None:
    """Revoke the session behind the token, or every session when it carries no jti."""
    ledger = SessionLedger(db, user)
    if claims.jti:
        ledger.revoke(claims.jti)
    else:
        ledger.revoke_all()
    db.commit()
    logger.info("user_logged_out", user_id=user.id, all_sessions=not claims.jti)


def request_password_reset(db: Session, email: str) -> Optional[str]:
    """Returns the raw reset token, or None when no account matches."""
    user = get_user_by_email(db, email)
    if user is None:
        logger.info("password_reset_unknown_email")
        return None
    raw, token_hash = create_one_time_token()
    user.reset_password_token = token_hash
    user.reset_password_expires = utcnow() + timedelta(seconds=settings.PASSWORD_RESET_EXPIRE_SECONDS)
    db.commit()
    logger.info("password_reset_requested", user_id=user.id)
    return raw


def _store_new_password(user: User, password: str) -> None:
    user.password_hash = hash_password(password)
    user.password_changed_at = utcnow() - LOGOUT_EPSILON


def reset_password(db: Session, raw_token: str, password: str) -> User:
    _check_new_password(password)
    user = db.query(User).filter(User.reset_password_token == hash_one_time_token(raw_token)).first()
    expires = as_utc(user.reset_password_expires) if user else None
    if not user or not expires or expires <= utcnow():
        raise ValidationError("Invalid or expired token")

    _store_new_password(user, password)
    user.reset_password_token = None
    user.reset_password_expires = None
    user.login_attempts = 0
    user.locked_until = None
    SessionLedger(db, user).revoke_all()
    db.commit()
    logger.info("password_reset_completed", user_id=user.id)
    return user


def change_password(
    db: Session, user: User, current_password: str, new_password: str, request: Optional[Request] = None
) -> LoginResult:
    """
    Tokens issued before the change stop working, so every session is revoked
    and the caller gets a fresh one.
    """
    if not user.match_password(current_password):
        raise AuthenticationError("Current password is incorrect")
    _check_new_password(new_password)
    _store_new_password(user, new_password)
    SessionLedger(db, user).revoke_all()
    result = _start_session(db, user, request)
    db.commit()
    logger.info("password_changed", user_id=user.id)
    return result


def verify_email(db: Session, raw_token: str) -> User:
    user = db.query(User).filter(User.verification_token == hash_one_time_token(raw_token)).first()
    if not user:
        raise ValidationError("Invalid verification token")
    user.is_verified = True
    user.verification_token = None
    db.commit()
    logger.info("email_verified", user_id=user.id)
    return user


def update_profile(db: Session, user: User, name: Optional[str] = None, email: Optional[str] = None) -> User:
    if name:
        user.name = sanitize_name(name)
    if email and normalize_email(email) != user.email:
        if get_user_by_email(db, email) is not None:
            raise ConflictError("Email already in use", field="email")
        user.email = normalize_email(email)
    db.commit()
    db.refresh(user)
    return user
