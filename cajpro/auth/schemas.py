from datetime import datetime

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, field_validator, model_validator

from cajpro.auth.errors import InvalidEmail

MAX_EMAIL_LENGTH = 255


def clean_email(value: str | None) -> str:
    """Trim and syntax-check an address, keeping the case it was typed in."""
    candidate = (value or '').strip()
    if not candidate or len(candidate) > MAX_EMAIL_LENGTH:
        raise InvalidEmail()
    try:
        validate_email(candidate, check_deliverability=False)
    except EmailNotValidError as exc:
        raise InvalidEmail() from exc
    return candidate


class RegisterRequest(BaseModel):
    email: str
    password: str

    @field_validator('email')
    @classmethod
    def validate_email_field(cls, value: str) -> str:
        try:
            return clean_email(value)
        except InvalidEmail as exc:
            raise ValueError(exc.message) from exc


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator('email')
    @classmethod
    def strip_email(cls, value: str) -> str:
        return value.strip()


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str
    confirm_password: str

    @model_validator(mode='after')
    def check_confirmation(self) -> 'ChangePasswordRequest':
        if self.new_password != self.confirm_password:
            raise ValueError('New passwords do not match.')
        return self


class UserPublic(BaseModel):
    id: str
    email: str
    is_admin: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime
    last_sign_in_at: datetime | None = None

    class Config:
        from_attributes = True


class AuthResult(BaseModel):
    user: UserPublic
    token: str
    expires_at: datetime


class SessionStatusResponse(BaseModel):
    authenticated: bool
    user: UserPublic | None = None


class MessageResponse(BaseModel):
    success: bool
    message: str | None = None
