"""Profile model definitions."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from cajpro.database import Base, utcnow

DEFAULT_EXPERTISE_LEVEL = "beginner"


class Profile(Base):
    """Supplementary per-user data, created alongside the user."""
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    full_name = Column(String(255), default="", nullable=False)
    avatar_url = Column(Text, nullable=True)
    bio = Column(Text, default="", nullable=False)
    location = Column(String(255), default="")
    website = Column(String(255), default="")
    expertise_level = Column(String(32), default=DEFAULT_EXPERTISE_LEVEL)
    phone = Column(String(32), default="")
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User", back_populates="profile")
