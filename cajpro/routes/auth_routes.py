from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from cajpro.auth import service
from cajpro.auth.dependencies import get_current_user, get_optional_user, get_session_token, to_http_exception
from cajpro.auth.errors import AuthError, InvalidCredentials
from cajpro.auth.schemas import (
    AuthResult,
    ChangePasswordRequest,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    SessionStatusResponse,
    UserPublic,
)
from cajpro.auth.tokens import session_max_age_seconds
from cajpro.core import config
from cajpro.database import get_db

router = APIRouter(tags=['auth'])


def client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


def set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=config.AUTH_COOKIE_NAME,
        value=token,
        max_age=session_max_age_seconds(),
        path='/',
        httponly=True,
        secure=config.COOKIE_SECURE,
        samesite=config.COOKIE_SAMESITE,
    )


def clear_auth_cookie(response: Response) -> None:
    response.delete_cookie(
        key=config.AUTH_COOKIE_NAME,
        path='/',
        httponly=True,
        secure=config.COOKIE_SECURE,
        samesite=config.COOKIE_SAMESITE,
    )


@router.post('/register', response_model=AuthResult, status_code=status.HTTP_201_CREATED)
def register(data: RegisterRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    try:
        result = service.register_user(
            db,
            data.email,
            data.password,
            ip_address=client_ip(request),
            user_agent=request.headers.get('user-agent'),
        )
    except AuthError as exc:
        raise to_http_exception(exc) from exc

    set_auth_cookie(response, result.token)
    return result


@router.post('/login', response_model=AuthResult)
def login(data: LoginRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    try:
        result = service.login_user(
            db,
            data.email,
            data.password,
            ip_address=client_ip(request),
            user_agent=request.headers.get('user-agent'),
        )
    except AuthError as exc:
        raise to_http_exception(exc) from exc

    set_auth_cookie(response, result.token)
    return result


@router.post('/logout', response_model=MessageResponse)
def logout(request: Request, response: Response, db: Session = Depends(get_db)):
    try:
        service.logout_user(db, get_session_token(request))
    except AuthError as exc:
        raise to_http_exception(exc) from exc

    clear_auth_cookie(response)
    return MessageResponse(success=True, message='Logged out.')


@router.get('/session', response_model=SessionStatusResponse)
def session_status(current_user: UserPublic | None = Depends(get_optional_user)):
    return SessionStatusResponse(authenticated=current_user is not None, user=current_user)


@router.get('/me', response_model=UserPublic)
def me(current_user: UserPublic = Depends(get_current_user)):
    return current_user


@router.post('/change-password', response_model=MessageResponse)
def change_password(
    data: ChangePasswordRequest,
    response: Response,
    current_user: UserPublic = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        service.change_password(db, current_user.id, data.current_password, data.new_password)
    except InvalidCredentials as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message) from exc
    except AuthError as exc:
        raise to_http_exception(exc) from exc

    clear_auth_cookie(response)
    return MessageResponse(
        success=True,
        message='Password changed successfully. Please log in again with your new password.',
    )
