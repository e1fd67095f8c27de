# plantstore/auth/utils.py
import hashlib
import re
import secrets
from typing import Optional

from fastapi import Request
from passlib.context import CryptContext

from plantstore.config import settings

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 72
PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$")

# bcrypt ($2a$/$2b$/$2y$) and argon2 encodings
PREHASHED_PATTERN = re.compile(r"^(\$2[aby]\$\d{2}\$.{53}|\$argon2(id|i|d)\$)")

_TAG_PATTERN = re.compile(r"<[^>]*>")


# -------- passwords --------
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def looks_prehashed(password: str) -> bool:
    """True when the client sent something that is already a password hash."""
    return bool(PREHASHED_PATTERN.match(password or ""))


def password_policy_error(password: str) -> Optional[str]:
    if len(password) < PASSWORD_MIN_LENGTH or len(password) > PASSWORD_MAX_LENGTH:
        return f"Password must be between {PASSWORD_MIN_LENGTH} and {PASSWORD_MAX_LENGTH} characters long"
    if not PASSWORD_PATTERN.match(password):
        return (
            "Password must contain at least one uppercase letter, one lowercase letter, "
            "one number and one special character"
        )
    return None


def sanitize_name(name: str) -> str:
    return _TAG_PATTERN.sub("", name or "").replace("<", "").replace(">", "").strip()


# -------- opaque one-time tokens (reset / verification) --------
def generate_jti() -> str:
    return secrets.token_hex(16)


def create_one_time_token() -> tuple[str, str]:
    """
    Returns (raw_token, token_hash).
    The raw value goes to the user, only the hash is stored.
    """
    raw = secrets.token_hex(32)
    return raw, hash_one_time_token(raw)


def hash_one_time_token(raw: str) -> str:
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


# -------- request context --------
def get_client_ip(request: Request) -> Optional[str]:
    """
    Client address, honouring the first X-Forwarded-For hop only when the
    deployment sits behind a trusted proxy (TRUST_PROXY).
    """
    if settings.TRUST_PROXY:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def extract_request_context(request: Request) -> tuple[Optional[str], str]:
    """Returns (ip, user_agent)."""
    return get_client_ip(request), request.headers.get("user-agent", "")
