"""Session authentication service: register, login, validate, logout.

All multi-step writes run in one transaction on the ``db`` session passed in.
Storage failures are logged here in full and re-raised as ``StoreUnavailable``
with a generic message; nothing is retried.
"""

import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from cajpro.auth.errors import DuplicateEmail, InvalidCredentials, StoreUnavailable
from cajpro.auth.passwords import burn_verification, check_password_policy, hash_password, verify_password
from cajpro.auth.schemas import AuthResult, UserPublic, clean_email
from cajpro.auth.sessions import deactivate_session, find_session_user, issue_session, revoke_user_sessions
from cajpro.database import utcnow
from cajpro.models.profile import Profile
from cajpro.models.user import User

logger = logging.getLogger(__name__)


def _store_failure(db: Session, action: str) -> StoreUnavailable:
    logger.exception('Store failure during %s.', action)
    try:
        db.rollback()
    except SQLAlchemyError:
        logger.exception('Rollback failed after store failure during %s.', action)
    return StoreUnavailable()


def find_user_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(func.lower(User.email) == func.lower(email.strip())).first()


def _email_taken(db: Session, email: str) -> bool:
    try:
        return find_user_by_email(db, email) is not None
    except SQLAlchemyError:
        logger.exception('Could not recheck email after a registration conflict.')
        db.rollback()
        return False


def register_user(
    db: Session,
    email: str,
    password: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AuthResult:
    email = clean_email(email)
    check_password_policy(password)

    try:
        existing = find_user_by_email(db, email)
    except SQLAlchemyError as exc:
        raise _store_failure(db, 'registration') from exc
    if existing is not None:
        raise DuplicateEmail()

    password_hash = hash_password(password)
    now = utcnow()

    try:
        user = User(
            email=email,
            password_hash=password_hash,
            is_admin=False,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        db.add(user)
        db.flush()

        db.add(Profile(user_id=user.id, created_at=now, updated_at=now))
        new_session = issue_session(db, user, now, ip_address=ip_address, user_agent=user_agent)
        result = AuthResult(
            user=UserPublic.model_validate(user),
            token=new_session.token,
            expires_at=new_session.expires_at,
        )
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if _email_taken(db, email):
            # A concurrent registration won the unique email index.
            raise DuplicateEmail() from exc
        raise _store_failure(db, 'registration') from exc
    except SQLAlchemyError as exc:
        raise _store_failure(db, 'registration') from exc

    logger.info('Registered user %s.', result.user.id)
    return result


def login_user(
    db: Session,
    email: str,
    password: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AuthResult:
    password = password or ''
    lookup_email = (email or '').strip()

    try:
        user = find_user_by_email(db, lookup_email) if lookup_email else None
    except SQLAlchemyError as exc:
        raise _store_failure(db, 'login') from exc

    if user is None or not user.is_active:
        burn_verification(password)
        raise InvalidCredentials()

    if not verify_password(password, user.password_hash):
        raise InvalidCredentials()

    now = utcnow()
    try:
        # Row lock serialises concurrent logins for the same user.
        locked_user = (
            db.query(User)
            .filter(User.id == user.id)
            .with_for_update()
            .populate_existing()
            .one()
        )
        if not locked_user.is_active:
            db.rollback()
            raise InvalidCredentials()

        new_session = issue_session(db, locked_user, now, ip_address=ip_address, user_agent=user_agent)
        locked_user.last_sign_in_at = now
        locked_user.updated_at = now
        db.flush()

        result = AuthResult(
            user=UserPublic.model_validate(locked_user),
            token=new_session.token,
            expires_at=new_session.expires_at,
        )
        db.commit()
    except SQLAlchemyError as exc:
        raise _store_failure(db, 'login') from exc

    logger.info('User %s logged in.', result.user.id)
    return result


def validate_session(db: Session, token: str | None) -> UserPublic | None:
    """Return the owner of ``token`` if its session is usable, otherwise None."""
    if not token:
        return None

    try:
        user = find_session_user(db, token, utcnow())
    except SQLAlchemyError as exc:
        raise _store_failure(db, 'session validation') from exc

    if user is None:
        return None
    return UserPublic.model_validate(user)


def logout_user(db: Session, token: str | None) -> bool:
    if not token:
        return True

    try:
        revoked = deactivate_session(db, token)
        db.commit()
    except SQLAlchemyError as exc:
        raise _store_failure(db, 'logout') from exc

    if revoked:
        logger.info('Session revoked by logout.')
    return True


def get_user_by_id(db: Session, user_id: str) -> UserPublic | None:
    try:
        user = db.query(User).filter(User.id == user_id, User.is_active.is_(True)).first()
    except SQLAlchemyError as exc:
        raise _store_failure(db, 'user lookup') from exc

    if user is None:
        return None
    return UserPublic.model_validate(user)


def change_password(db: Session, user_id: str, current_password: str, new_password: str) -> None:
    """Replace the password and revoke every session; the user must log in again."""
    try:
        user = db.query(User).filter(User.id == user_id, User.is_active.is_(True)).first()
    except SQLAlchemyError as exc:
        raise _store_failure(db, 'password change') from exc

    if user is None or not verify_password(current_password or '', user.password_hash):
        raise InvalidCredentials('Current password is incorrect.')

    check_password_policy(new_password)
    new_hash = hash_password(new_password)

    try:
        user.password_hash = new_hash
        user.updated_at = utcnow()
        revoke_user_sessions(db, user.id)
        db.commit()
    except SQLAlchemyError as exc:
        raise _store_failure(db, 'password change') from exc

    logger.info('Password changed for user %s; sessions revoked.', user_id)
