from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cajpro.auth.dependencies import get_current_user
from cajpro.auth.schemas import UserPublic
from cajpro.database import database_unavailable, get_db, utcnow
from cajpro.models.profile import DEFAULT_EXPERTISE_LEVEL, Profile

router = APIRouter(tags=['profile'])

EXPERTISE_LEVELS = ('beginner', 'intermediate', 'advanced', 'expert')
MAX_FULL_NAME_LENGTH = 255
MAX_BIO_LENGTH = 2000
MAX_PHONE_LENGTH = 32


class ProfileResponse(BaseModel):
    user_id: str
    full_name: str = ''
    avatar_url: str | None = None
    bio: str = ''
    location: str = ''
    website: str = ''
    expertise_level: str = DEFAULT_EXPERTISE_LEVEL
    phone: str = ''
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True

    @field_validator('full_name', 'bio', 'location', 'website', 'expertise_level', 'phone', mode='before')
    @classmethod
    def fill_missing_text(cls, value, info):
        if value is None:
            return cls.model_fields[info.field_name].default
        return value


class UpdateProfileRequest(BaseModel):
    full_name: str = ''
    bio: str = ''
    location: str = ''
    website: str = ''
    expertise_level: str = DEFAULT_EXPERTISE_LEVEL
    phone: str = ''

    @field_validator('full_name', 'bio', 'location', 'website', 'phone')
    @classmethod
    def strip_text(cls, value: str) -> str:
        return value.strip()

    @field_validator('full_name')
    @classmethod
    def validate_full_name(cls, value: str) -> str:
        if len(value) > MAX_FULL_NAME_LENGTH:
            raise ValueError(f'Full name must be {MAX_FULL_NAME_LENGTH} characters or fewer.')
        return value

    @field_validator('bio')
    @classmethod
    def validate_bio(cls, value: str) -> str:
        if len(value) > MAX_BIO_LENGTH:
            raise ValueError(f'Bio must be {MAX_BIO_LENGTH} characters or fewer.')
        return value

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, value: str) -> str:
        if len(value) > MAX_PHONE_LENGTH:
            raise ValueError(f'Phone must be {MAX_PHONE_LENGTH} characters or fewer.')
        return value

    @field_validator('website')
    @classmethod
    def validate_website(cls, value: str) -> str:
        if value and not value.lower().startswith(('http://', 'https://')):
            raise ValueError('Website must start with http:// or https://.')
        return value

    @field_validator('expertise_level')
    @classmethod
    def validate_expertise_level(cls, value: str) -> str:
        normalized = value.strip().lower() or DEFAULT_EXPERTISE_LEVEL
        if normalized not in EXPERTISE_LEVELS:
            raise ValueError('Invalid expertise level.')
        return normalized


def load_profile(db: Session, user_id: str) -> ProfileResponse:
    profile = db.query(Profile).filter(Profile.user_id == user_id).first()
    if profile is None:
        return ProfileResponse(user_id=user_id)
    return ProfileResponse.model_validate(profile)


def upsert_profile(db: Session, user_id: str, data: UpdateProfileRequest) -> Profile:
    now = utcnow()
    profile = db.query(Profile).filter(Profile.user_id == user_id).first()
    if profile is None:
        profile = Profile(user_id=user_id, created_at=now)
        db.add(profile)

    profile.full_name = data.full_name
    profile.bio = data.bio
    profile.location = data.location
    profile.website = data.website
    profile.expertise_level = data.expertise_level
    profile.phone = data.phone
    profile.updated_at = now

    db.commit()
    db.refresh(profile)
    return profile


@router.get('', response_model=ProfileResponse)
def get_my_profile(current_user: UserPublic = Depends(get_current_user), db: Session = Depends(get_db)):
    try:
        return load_profile(db, current_user.id)
    except SQLAlchemyError as exc:
        raise database_unavailable('loading a profile') from exc


@router.put('', response_model=ProfileResponse)
def update_my_profile(
    data: UpdateProfileRequest,
    current_user: UserPublic = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        profile = upsert_profile(db, current_user.id, data)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable('updating a profile') from exc

    return ProfileResponse.model_validate(profile)
