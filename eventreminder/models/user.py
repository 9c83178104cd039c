"""
User and event models. Users and their events are written by the account and
event-management API; the reminder dispatcher only reads them.
"""
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from eventreminder.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventStatus(str, Enum):
    OUTSTANDING = "outstanding"
    RESOLVED = "resolved"


class EventPriority(str, Enum):
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    phone_number = Column(String, nullable=False)  # local format, country code added at send time
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    events = relationship("Event", back_populates="user", cascade="all, delete-orphan")


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    due_at = Column(DateTime(timezone=True), nullable=False)  # stored as UTC
    description = Column(Text, nullable=True)
    status = Column(String, nullable=False, default=EventStatus.OUTSTANDING.value)
    priority = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    user = relationship("User", back_populates="events")

    __table_args__ = (
        Index("ix_events_status_user", "status", "user_id"),
    )
