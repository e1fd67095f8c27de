# plantstore/auth/sessions.py
"""
Session ledger: one row per successful login, referenced from issued tokens
by ``jti``.

Revocation is terminal; a revoked row is only ever garbage collected by
``cleanup`` once it has been idle for SESSION_RETENTION_DAYS. Ledger methods
only stage changes, the caller owns the commit.
"""
from datetime import timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from plantstore.auth.utils import generate_jti
from plantstore.config import settings
from plantstore.database import SessionLocal
from plantstore.exceptions import NotFoundError
from plantstore.models import User, UserSession
from plantstore.observability import get_logger
from plantstore.time_utils import utcnow

logger = get_logger(__name__)

# keeps tokens from a login in the same second as the logout valid (iat is whole seconds)
LOGOUT_EPSILON = timedelta(seconds=1)


def _last_activity():
    return func.coalesce(UserSession.last_used_at, UserSession.created_at)


class SessionLedger:
    def __init__(self, db: Session, user: User) -> None:
        self.db = db
        self.user = user

    def _query(self):
        return self.db.query(UserSession).filter(UserSession.user_id == self.user.id)

    def create_session(self, user_agent: Optional[str] = None, ip: Optional[str] = None) -> str:
        jti = generate_jti()
        while self.find_session(jti) is not None:
            jti = generate_jti()
        now = utcnow()
        self.db.add(
            UserSession(
                user_id=self.user.id,
                jti=jti,
                user_agent=user_agent or "",
                ip=ip,
                created_at=now,
                last_used_at=now,
                revoked=False,
            )
        )
        self.db.flush()
        return jti

    def find_session(self, jti: str) -> Optional[UserSession]:
        return self._query().filter(UserSession.jti == jti).first()

    def list_sessions(self) -> list[UserSession]:
        return self._query().order_by(_last_activity().desc(), UserSession.id.desc()).all()

    def revoke(self, jti: str) -> UserSession:
        session = self.find_session(jti)
        if session is None:
            raise NotFoundError("Session not found")
        # revoking twice is a no-op
        if not session.revoked:
            session.revoked = True
            session.last_used_at = utcnow()
        return session

    def revoke_all(self) -> int:
        now = utcnow()
        count = (
            self._query()
            .filter(UserSession.revoked.is_(False))
            .update({UserSession.revoked: True, UserSession.last_used_at: now}, synchronize_session="fetch")
        )
        self.user.last_logout = now - LOGOUT_EPSILON
        return count

    def touch(self, jti: str) -> None:
        session = self.find_session(jti)
        if session is not None:
            session.last_used_at = utcnow()

    def prune(self, max_sessions: Optional[int] = None) -> int:
        """Keep only the ``max_sessions`` most recently used sessions."""
        if max_sessions is None:
            max_sessions = settings.MAX_SESSIONS
        if self._query().count() <= max_sessions:
            return 0
        keep_ids = [
            row.id
            for row in self.db.query(UserSession.id)
            .filter(UserSession.user_id == self.user.id)
            .order_by(_last_activity().desc(), UserSession.id.desc())
            .limit(max_sessions)
        ]
        return (
            self._query()
            .filter(UserSession.id.notin_(keep_ids))
            .delete(synchronize_session="fetch")
        )

    def cleanup(self) -> int:
        """Drop sessions that are revoked and idle past the retention window."""
        cutoff = utcnow() - timedelta(days=settings.SESSION_RETENTION_DAYS)
        return (
            self._query()
            .filter(UserSession.revoked.is_(True), _last_activity() < cutoff)
            .delete(synchronize_session="fetch")
        )

    def stats(self) -> dict:
        total = self._query().count()
        revoked = self._query().filter(UserSession.revoked.is_(True)).count()
        return {"active": total - revoked, "revoked": revoked, "total": total}


def touch_session(user_id: int, jti: str) -> None:
    """
    Background bookkeeping after an authenticated request: bump lastUsedAt
    and garbage collect stale revoked sessions. Never raises.
    """
    db = SessionLocal()
    try:
        user = db.get(User, user_id)
        if user is None:
            return
        ledger = SessionLedger(db, user)
        ledger.touch(jti)
        ledger.cleanup()
        db.commit()
    except Exception:
        db.rollback()
        logger.warning("session_touch_failed", user_id=user_id, exc_info=True)
    finally:
        db.close()
