"""
Authentication models for the identity service.

This module defines:
- SQLAlchemy models for users and login activity
- Plain records (Credential, ActivityRecord) that stores hand back to the service
"""
import enum
from typing import Optional
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from pydantic import BaseModel, ConfigDict

from identity.base_microservice import Base

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

class ActivityType(str, enum.Enum):
    SIGNUP = "signup"
    LOGIN = "login"

class User(Base):
    """Stored credential: identity fields plus the password hash."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    # Stored normalized (stripped, lower-cased); the unique index backs the service-level check
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    # Relationships
    activities = relationship("LoginActivity", back_populates="user", cascade="all, delete-orphan")

class LoginActivity(Base):
    """Append-only audit entry for a signup or login."""
    __tablename__ = "login_activity"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    activity_type = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    user = relationship("User", back_populates="activities")

class NewUserProfile(BaseModel):
    """Validated, normalized identity fields for a user about to be stored."""
    first_name: str
    last_name: str
    email: str

class Credential(BaseModel):
    """A persisted user as seen by the service. Holds the hash; never returned to clients."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    first_name: str
    last_name: str
    email: str
    hashed_password: str
    created_at: Optional[datetime] = None

class ActivityRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    user_id: int
    activity_type: ActivityType
    created_at: datetime
