from datetime import timedelta

from sqlalchemy.exc import OperationalError, SQLAlchemyError

from cajpro.auth import service, sessions
from cajpro.auth.sessions import cleanup_expired_sessions, issue_session
from cajpro.auth.tokens import generate_session_token
from cajpro.database import utcnow
from cajpro.models.session import UserSession
from cajpro.models.user import User


def _add_session(db, user_id: str, *, expires_in: timedelta, is_active: bool = True) -> UserSession:
    now = utcnow()
    session = UserSession(
        user_id=user_id,
        token=generate_session_token(),
        created_at=now,
        expires_at=now + expires_in,
        is_active=is_active,
    )
    db.add(session)
    db.commit()
    return session


def _remaining_tokens(db) -> set[str]:
    return {row.token for row in db.query(UserSession.token).all()}


def test_generate_session_token_is_fixed_length_hex() -> None:
    tokens = {generate_session_token() for _ in range(20)}

    assert len(tokens) == 20
    for token in tokens:
        assert len(token) == 64
        int(token, 16)


def test_issue_session_leaves_one_active_session(db, registered) -> None:
    user = db.query(User).filter(User.id == registered.user.id).one()
    now = utcnow()

    new_session = issue_session(db, user, now, user_agent='x' * 600)
    db.commit()

    active = (
        db.query(UserSession)
        .filter(UserSession.user_id == user.id, UserSession.is_active.is_(True))
        .all()
    )
    assert [session.id for session in active] == [new_session.id]
    assert new_session.expires_at == now + timedelta(days=7)
    assert len(new_session.user_agent) == 512


def test_cleanup_removes_expired_and_revoked_sessions(db, registered) -> None:
    user_id = registered.user.id
    expired = _add_session(db, user_id, expires_in=timedelta(hours=-1), is_active=False)
    expired_but_active = _add_session(db, user_id, expires_in=timedelta(seconds=-1))
    revoked = _add_session(db, user_id, expires_in=timedelta(days=3), is_active=False)
    expired_token, expired_active_token, revoked_token = expired.token, expired_but_active.token, revoked.token

    removed = cleanup_expired_sessions(db)

    assert removed == 3
    remaining = _remaining_tokens(db)
    assert registered.token in remaining
    assert expired_token not in remaining
    assert expired_active_token not in remaining
    assert revoked_token not in remaining
    assert service.validate_session(db, registered.token).id == user_id


def test_cleanup_treats_expiry_boundary_as_expired(db, registered) -> None:
    session = db.query(UserSession).filter(UserSession.token == registered.token).one()

    assert cleanup_expired_sessions(db, now=session.expires_at) == 1
    assert _remaining_tokens(db) == set()


def test_cleanup_with_nothing_to_do(db, registered) -> None:
    assert cleanup_expired_sessions(db) == 0
    assert _remaining_tokens(db) == {registered.token}


def test_cleanup_continues_past_a_failing_row(db, registered, monkeypatch, caplog) -> None:
    user_id = registered.user.id
    stuck = _add_session(db, user_id, expires_in=timedelta(days=1), is_active=False)
    other = _add_session(db, user_id, expires_in=timedelta(days=-1))
    stuck_id, stuck_token, other_token = stuck.id, stuck.token, other.token

    original_delete = sessions._delete_session

    def flaky_delete(db_session, session_id):
        if session_id == stuck_id:
            raise OperationalError('DELETE FROM sessions', {}, Exception('row locked'))
        original_delete(db_session, session_id)

    monkeypatch.setattr(sessions, '_delete_session', flaky_delete)

    with caplog.at_level('ERROR', logger='cajpro.auth.sessions'):
        removed = cleanup_expired_sessions(db)

    assert removed == 1
    remaining = _remaining_tokens(db)
    assert stuck_token in remaining
    assert other_token not in remaining
    assert registered.token in remaining
    assert f'failed to delete session {stuck_id}' in caplog.text


def test_cleanup_never_raises_when_store_is_down(db, registered, monkeypatch, caplog) -> None:
    def broken_query(*args, **kwargs):
        raise SQLAlchemyError('database is gone')

    monkeypatch.setattr(db, 'query', broken_query)

    with caplog.at_level('ERROR', logger='cajpro.auth.sessions'):
        assert cleanup_expired_sessions(db) == 0

    assert 'could not list reclaimable sessions' in caplog.text
