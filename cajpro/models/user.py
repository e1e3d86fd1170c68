"""User model definitions."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, Index, String, func
from sqlalchemy.orm import relationship

from cajpro.database import Base, utcnow


class User(Base):
    """Represents an account; soft-deactivated, never deleted in normal use."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    last_sign_in_at = Column(DateTime, nullable=True)

    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")
    profile = relationship("Profile", back_populates="user", uselist=False, cascade="all, delete-orphan")


# Email keeps the case it was registered with; uniqueness ignores case.
Index("uq_users_email_lower", func.lower(User.email), unique=True)
