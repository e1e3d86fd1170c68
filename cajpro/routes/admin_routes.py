import logging
import math
from calendar import monthrange
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cajpro.auth.dependencies import require_admin
from cajpro.auth.schemas import UserPublic
from cajpro.auth.sessions import revoke_user_sessions
from cajpro.database import database_unavailable, get_db, utcnow
from cajpro.models.profile import Profile
from cajpro.models.user import User

router = APIRouter(tags=['admin'])

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100
ACTIVE_WINDOW_DAYS = 30


class AdminUserResponse(BaseModel):
    id: str
    email: str
    full_name: str
    avatar_url: str | None = None
    is_admin: bool
    is_active: bool
    last_sign_in_at: datetime | None = None
    created_at: datetime


class UserListResponse(BaseModel):
    users: list[AdminUserResponse]
    total: int
    pages: int


class UserStatsResponse(BaseModel):
    total_users: int
    active_users: int
    new_users_today: int
    new_users_this_week: int
    new_users_this_month: int


class UpdateUserStatusRequest(BaseModel):
    is_active: bool


class UpdateUserRoleRequest(BaseModel):
    is_admin: bool


def to_admin_user(user: User, profile: Profile | None) -> AdminUserResponse:
    return AdminUserResponse(
        id=user.id,
        email=user.email,
        full_name=(profile.full_name if profile else None) or '',
        avatar_url=profile.avatar_url if profile else None,
        is_admin=user.is_admin,
        is_active=user.is_active,
        last_sign_in_at=user.last_sign_in_at,
        created_at=user.created_at,
    )


def escape_like(term: str) -> str:
    return term.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


def search_users(db: Session, page: int, limit: int, search: str = '') -> UserListResponse:
    query = db.query(User, Profile).outerjoin(Profile, Profile.user_id == User.id)

    term = search.strip()
    if term:
        pattern = func.lower(f'%{escape_like(term)}%')
        query = query.filter(
            or_(
                func.lower(User.email).like(pattern, escape='\\'),
                func.lower(Profile.full_name).like(pattern, escape='\\'),
            )
        )

    total = query.count()
    rows = (
        query.order_by(User.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return UserListResponse(
        users=[to_admin_user(user, profile) for user, profile in rows],
        total=total,
        pages=math.ceil(total / limit) if total else 0,
    )


def one_month_before(day: datetime) -> datetime:
    year, month = (day.year, day.month - 1) if day.month > 1 else (day.year - 1, 12)
    return day.replace(year=year, month=month, day=min(day.day, monthrange(year, month)[1]))


def user_stats(db: Session, now: datetime | None = None) -> UserStatsResponse:
    """Account totals; "active" means signed in during the last 30 days."""
    now = now or utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)

    def created_since(start: datetime) -> int:
        return db.query(func.count(User.id)).filter(User.created_at >= start).scalar()

    return UserStatsResponse(
        total_users=db.query(func.count(User.id)).scalar(),
        active_users=(
            db.query(func.count(User.id))
            .filter(User.last_sign_in_at > today - timedelta(days=ACTIVE_WINDOW_DAYS))
            .scalar()
        ),
        new_users_today=created_since(today),
        new_users_this_week=created_since(today - timedelta(days=7)),
        new_users_this_month=created_since(one_month_before(today)),
    )


def get_user_or_404(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='User not found.',
        )
    return user


def set_user_active(db: Session, user: User, is_active: bool) -> int:
    """Toggle the active flag; deactivation revokes the user's sessions too."""
    user.is_active = is_active
    user.updated_at = utcnow()
    revoked = revoke_user_sessions(db, user.id) if not is_active else 0
    db.commit()
    db.refresh(user)
    return revoked


def ensure_not_self(current_user: UserPublic, user_id: str) -> None:
    if current_user.id == user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Administrators cannot change their own account this way.',
        )


@router.get('/users', response_model=UserListResponse)
def list_users(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    search: str = Query(default=''),
    current_user: UserPublic = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        return search_users(db, page, limit, search)
    except SQLAlchemyError as exc:
        raise database_unavailable('listing users') from exc


@router.get('/users/stats', response_model=UserStatsResponse)
def get_user_stats(current_user: UserPublic = Depends(require_admin), db: Session = Depends(get_db)):
    try:
        return user_stats(db)
    except SQLAlchemyError as exc:
        raise database_unavailable('loading user statistics') from exc


@router.patch('/users/{user_id}/status', response_model=UserPublic)
def update_user_status(
    user_id: str,
    data: UpdateUserStatusRequest,
    current_user: UserPublic = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ensure_not_self(current_user, user_id)

    try:
        user = get_user_or_404(db, user_id)
        revoked = set_user_active(db, user, data.is_active)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable('updating user status') from exc

    logger.info(
        'Admin %s set user %s active=%s (%d session(s) revoked).',
        current_user.id,
        user_id,
        data.is_active,
        revoked,
    )
    return UserPublic.model_validate(user)


@router.patch('/users/{user_id}/role', response_model=UserPublic)
def update_user_role(
    user_id: str,
    data: UpdateUserRoleRequest,
    current_user: UserPublic = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ensure_not_self(current_user, user_id)

    try:
        user = get_user_or_404(db, user_id)
        user.is_admin = data.is_admin
        user.updated_at = utcnow()
        db.commit()
        db.refresh(user)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable('updating user role') from exc

    logger.info('Admin %s set user %s is_admin=%s.', current_user.id, user_id, data.is_admin)
    return UserPublic.model_validate(user)
