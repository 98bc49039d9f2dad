from datetime import timedelta

import pytest

from sqlalchemy import delete

from vivista.models.session import UserSession
from vivista.services.session_sweeper import purge_once
from vivista.services.sessions import SessionManager, new_session_token
from vivista.utils.time import utcnow


def test_issue_and_validate(sessions, make_user):
    user_id = make_user("alice")

    token = sessions.issue(user_id)

    assert sessions.validate(token) == user_id


def test_tokens_are_full_entropy_and_distinct(sessions, make_user):
    user_id = make_user("alice")

    tokens = {sessions.issue(user_id) for _ in range(20)}

    assert len(tokens) == 20
    # 32 random bytes, url-safe base64 without padding
    assert all(len(t) == 43 for t in tokens)
    assert len(new_session_token()) == 43


@pytest.mark.parametrize("token", ["", None, "does-not-exist"])
def test_unknown_token_is_invalid(sessions, token):
    assert sessions.validate(token) is None


def test_sliding_expiry(sessions, clock, db, make_user):
    user_id = make_user("alice")
    t0 = clock()
    token = sessions.issue(user_id)

    clock.advance(minutes=59)
    assert sessions.validate(token) == user_id
    expiry = db.query(UserSession.expiry).filter(UserSession.token == token).scalar()
    assert expiry == t0 + timedelta(minutes=59) + timedelta(hours=1)

    clock.now = expiry + timedelta(seconds=1)
    assert sessions.validate(token) is None
    assert db.query(UserSession).filter(UserSession.token == token).count() == 0


def test_validation_exactly_at_expiry_is_invalid(sessions, clock, make_user):
    token = sessions.issue(make_user("alice"))

    clock.advance(hours=1)

    assert sessions.validate(token) is None


def test_purged_session_stays_deleted(sessions, clock, make_user):
    token = sessions.issue(make_user("alice"))
    clock.advance(hours=2)
    assert sessions.validate(token) is None

    # Moving the clock back must not bring the row back
    clock.advance(hours=-2)
    assert sessions.validate(token) is None


def test_issue_retries_on_collision(db, clock, make_user):
    user_id = make_user("alice")
    tokens = iter(["dup", "dup", "fresh"])
    manager = SessionManager(db, clock=clock, token_factory=lambda: next(tokens))

    assert manager.issue(user_id) == "dup"
    assert manager.issue(user_id) == "fresh"


def test_issue_gives_up_after_repeated_collisions(db, clock, make_user):
    user_id = make_user("alice")
    manager = SessionManager(db, clock=clock, token_factory=lambda: "same")
    manager.issue(user_id)

    with pytest.raises(RuntimeError):
        manager.issue(user_id)


def test_purge_expired_removes_only_expired(sessions, clock, db, make_user):
    user_id = make_user("alice")
    old = sessions.issue(user_id)
    clock.advance(minutes=45)
    fresh = sessions.issue(user_id)
    clock.advance(minutes=30)

    assert sessions.purge_expired() == 1
    remaining = {row.token for row in db.query(UserSession).all()}
    assert remaining == {fresh}
    assert old not in remaining


def test_sweeper_pass_purges_with_its_own_session(session_factory, db, make_user):
    user_id = make_user("alice")
    db.add_all([
        UserSession(token="stale", user_id=user_id, expiry=utcnow() - timedelta(minutes=1)),
        UserSession(token="live", user_id=user_id, expiry=utcnow() + timedelta(minutes=30)),
    ])
    db.commit()

    assert purge_once(session_factory, window_minutes=60) == 1

    db.expire_all()
    assert [row.token for row in db.query(UserSession).all()] == ["live"]


def test_renewal_does_not_revive_session_purged_concurrently(session_factory, db, clock, make_user):
    user_id = make_user("alice")
    token = SessionManager(db, clock=clock).issue(user_id)

    def purge_from_other_connection():
        # Runs after validate() has read the row and before its conditional update
        other = session_factory()
        try:
            other.execute(delete(UserSession).where(UserSession.token == token))
            other.commit()
        finally:
            other.close()
        return clock()

    racing = SessionManager(db, clock=purge_from_other_connection)

    assert racing.validate(token) is None
    db.expire_all()
    assert db.query(UserSession).filter(UserSession.token == token).count() == 0
    assert SessionManager(db, clock=clock).validate(token) is None
