from datetime import timedelta

import pytest

from plantstore.auth import sessions
from plantstore.auth.services import create_user
from plantstore.auth.sessions import SessionLedger, touch_session
from plantstore.exceptions import NotFoundError
from plantstore.models import UserSession
from plantstore.time_utils import as_utc, utcnow


@pytest.fixture
def user(db):
    user = create_user(db, "Jane Doe", "jane@x.com", "Secret123!")
    db.commit()
    return user


def test_create_session_is_active_and_unique(db, user):
    ledger = SessionLedger(db, user)
    first = ledger.create_session(user_agent="pytest", ip="127.0.0.1")
    second = ledger.create_session()
    db.commit()

    assert first != second
    session = ledger.find_session(first)
    assert session.revoked is False
    assert session.user_agent == "pytest"
    assert ledger.stats() == {"active": 2, "revoked": 0, "total": 2}


def test_revoke_is_terminal_and_repeatable(db, user):
    ledger = SessionLedger(db, user)
    jti = ledger.create_session()
    ledger.revoke(jti)
    db.commit()

    # second revoke is a no-op
    ledger.revoke(jti)
    db.commit()
    assert ledger.find_session(jti).revoked is True
    assert ledger.stats()["revoked"] == 1


def test_revoke_unknown_session(db, user):
    with pytest.raises(NotFoundError):
        SessionLedger(db, user).revoke("does-not-exist")


def test_revoke_all_sets_last_logout_in_the_past(db, user):
    ledger = SessionLedger(db, user)
    for _ in range(3):
        ledger.create_session()
    before = utcnow()
    assert ledger.revoke_all() == 3
    db.commit()

    assert ledger.stats() == {"active": 0, "revoked": 3, "total": 3}
    assert as_utc(user.last_logout) <= before - timedelta(milliseconds=900)


def test_prune_keeps_most_recent_sessions(db, user):
    ledger = SessionLedger(db, user)
    jtis = [ledger.create_session() for _ in range(60)]
    db.commit()

    assert ledger.prune(50) == 10
    db.commit()

    remaining = {s.jti for s in ledger.list_sessions()}
    assert len(remaining) == 50
    assert remaining == set(jtis[10:])


def test_prune_under_limit_is_noop(db, user):
    ledger = SessionLedger(db, user)
    ledger.create_session()
    assert ledger.prune(50) == 0


def test_cleanup_only_drops_old_revoked_sessions(db, user):
    ledger = SessionLedger(db, user)
    old_revoked = ledger.create_session()
    old_active = ledger.create_session()
    recent_revoked = ledger.create_session()
    long_ago = utcnow() - timedelta(days=45)
    for jti in (old_revoked, old_active):
        session = ledger.find_session(jti)
        session.created_at = long_ago
        session.last_used_at = long_ago
    ledger.find_session(old_revoked).revoked = True
    ledger.revoke(recent_revoked)
    db.commit()

    assert ledger.cleanup() == 1
    db.commit()
    assert ledger.find_session(old_revoked) is None
    assert ledger.find_session(old_active) is not None
    assert ledger.find_session(recent_revoked) is not None


def test_list_sessions_most_recent_first(db, user):
    ledger = SessionLedger(db, user)
    older = ledger.create_session()
    newer = ledger.create_session()
    ledger.find_session(older).last_used_at = utcnow() - timedelta(hours=1)
    db.commit()

    assert [s.jti for s in ledger.list_sessions()] == [newer, older]


def test_touch_session_updates_last_used(db, user):
    ledger = SessionLedger(db, user)
    jti = ledger.create_session()
    stale = utcnow() - timedelta(hours=2)
    ledger.find_session(jti).last_used_at = stale
    db.commit()

    touch_session(user.id, jti)

    db.expire_all()
    assert as_utc(ledger.find_session(jti).last_used_at) > stale


def test_touch_session_never_raises(db, user, monkeypatch):
    jti = SessionLedger(db, user).create_session()
    db.commit()

    def boom(self, jti):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(sessions.SessionLedger, "touch", boom)
    touch_session(user.id, jti)


def test_sessions_are_scoped_to_their_user(db, user):
    other = create_user(db, "John Roe", "john@x.com", "Secret123!")
    jti = SessionLedger(db, other).create_session()
    db.commit()

    assert SessionLedger(db, user).find_session(jti) is None
    assert db.query(UserSession).count() == 1
