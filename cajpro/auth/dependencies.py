from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from cajpro.auth import service
from cajpro.auth.errors import (
    AuthError,
    DuplicateEmail,
    InvalidCredentials,
    InvalidEmail,
    StoreUnavailable,
    WeakPassword,
)
from cajpro.auth.schemas import UserPublic
from cajpro.core import config
from cajpro.database import get_db

ERROR_STATUS_CODES = {
    DuplicateEmail: status.HTTP_409_CONFLICT,
    WeakPassword: status.HTTP_400_BAD_REQUEST,
    InvalidEmail: status.HTTP_400_BAD_REQUEST,
    InvalidCredentials: status.HTTP_401_UNAUTHORIZED,
    StoreUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def to_http_exception(exc: AuthError) -> HTTPException:
    status_code = ERROR_STATUS_CODES.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return HTTPException(status_code=status_code, detail=exc.message)


def get_session_token(request: Request) -> str | None:
    token = request.cookies.get(config.AUTH_COOKIE_NAME)
    if token:
        return token

    authorization = request.headers.get('authorization')
    if authorization and authorization.lower().startswith('bearer '):
        return authorization[7:].strip() or None

    return None


def get_optional_user(request: Request, db: Session = Depends(get_db)) -> UserPublic | None:
    try:
        return service.validate_session(db, get_session_token(request))
    except StoreUnavailable as exc:
        raise to_http_exception(exc) from exc


def get_current_user(current_user: UserPublic | None = Depends(get_optional_user)) -> UserPublic:
    if current_user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Authentication required.',
        )
    return current_user


def require_admin(current_user: UserPublic = Depends(get_current_user)) -> UserPublic:
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Administrator permissions are required.',
        )
    return current_user
