"""Session lifecycle: issue, look up, revoke and reclaim bearer-token sessions.

Functions here never commit on their own except ``cleanup_expired_sessions``;
callers decide the transaction boundary so that multi-step operations such as
login stay atomic.
"""

import logging
from datetime import datetime

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cajpro.auth.tokens import generate_session_token, session_expiry
from cajpro.database import utcnow
from cajpro.models.profile import Profile  # noqa: F401
from cajpro.models.session import UserSession
from cajpro.models.user import User

logger = logging.getLogger(__name__)

MAX_USER_AGENT_LENGTH = 512


def revoke_user_sessions(db: Session, user_id: str) -> int:
    return (
        db.query(UserSession)
        .filter(UserSession.user_id == user_id, UserSession.is_active.is_(True))
        .update({UserSession.is_active: False}, synchronize_session='fetch')
    )


def issue_session(
    db: Session,
    user: User,
    now: datetime,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> UserSession:
    """Replace every active session of ``user`` with a single new one."""
    revoke_user_sessions(db, user.id)

    new_session = UserSession(
        user_id=user.id,
        token=generate_session_token(),
        created_at=now,
        expires_at=session_expiry(now),
        is_active=True,
        ip_address=ip_address,
        user_agent=user_agent[:MAX_USER_AGENT_LENGTH] if user_agent else None,
    )
    db.add(new_session)
    db.flush()
    return new_session


def find_session_user(db: Session, token: str, now: datetime) -> User | None:
    return (
        db.query(User)
        .join(UserSession, UserSession.user_id == User.id)
        .filter(
            UserSession.token == token,
            UserSession.is_active.is_(True),
            UserSession.expires_at > now,
            User.is_active.is_(True),
        )
        .first()
    )


def deactivate_session(db: Session, token: str) -> int:
    return (
        db.query(UserSession)
        .filter(UserSession.token == token, UserSession.is_active.is_(True))
        .update({UserSession.is_active: False}, synchronize_session='fetch')
    )


def _delete_session(db: Session, session_id: str) -> None:
    db.query(UserSession).filter(UserSession.id == session_id).delete(synchronize_session=False)


def cleanup_expired_sessions(db: Session, now: datetime | None = None) -> int:
    """Delete sessions that are revoked or past expiry; best effort, never raises.

    Returns the number of rows removed.
    """
    now = now or utcnow()

    try:
        reclaimable_ids = [
            row.id
            for row in db.query(UserSession.id).filter(
                or_(UserSession.is_active.is_(False), UserSession.expires_at <= now)
            ).all()
        ]
    except SQLAlchemyError:
        logger.exception('Session cleanup could not list reclaimable sessions.')
        db.rollback()
        return 0

    removed = 0
    for session_id in reclaimable_ids:
        try:
            with db.begin_nested():
                _delete_session(db, session_id)
            removed += 1
        except SQLAlchemyError:
            logger.exception('Session cleanup failed to delete session %s; continuing.', session_id)

    try:
        db.commit()
    except SQLAlchemyError:
        logger.exception('Session cleanup could not commit.')
        db.rollback()
        return 0

    if removed:
        logger.info('Session cleanup removed %d session(s).', removed)
    return removed
