"""Database module for the Medication Reminder Service.

This module defines SQLAlchemy models and database session management.
IMPORTANT: scheduled_time and every other instant is stored as a
timezone-aware DateTime in UTC, NOT a string.
"""

from sqlalchemy import (
    create_engine, Column, String, DateTime, JSON, Boolean, Integer, Text,
    ForeignKey, Enum as SQLEnum, Index, UniqueConstraint
)
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker
import enum

from config import settings

# SQLAlchemy Base
Base = declarative_base()


class ScheduleStatusEnum(enum.Enum):
    """Status values for a single dose instance"""
    PENDING = "pending"
    TAKEN = "taken"
    MISSED = "missed"


class FrequencyEnum(enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"


class SmsStatusEnum(enum.Enum):
    SENT = "sent"
    FAILED = "failed"


class UserProfile(Base):
    """User profile - name and SMS escalation preferences."""

    __tablename__ = "user_profiles"

    id = Column(String, primary_key=True, doc="Unique user ID (UUID)")
    name = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    sms_notifications_enabled = Column(Boolean, nullable=False, default=False)
    sms_reminder_time = Column(String, nullable=True, doc="Preferred HH:MM for SMS digests")
    missed_reminder_threshold = Column(
        Integer,
        nullable=True,
        doc="Misses before family is alerted; NULL means the service default"
    )
    created_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self):
        return f"<UserProfile(id={self.id}, name={self.name}, sms={self.sms_notifications_enabled})>"


class Medicine(Base):
    """Medicine definition that schedule items are generated from."""

    __tablename__ = "medicines"

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    dosage = Column(String, nullable=False)
    frequency = Column(SQLEnum(FrequencyEnum), nullable=False, default=FrequencyEnum.DAILY)
    times = Column(JSON, nullable=False, default=list, doc="Times of day as 'HH:MM' strings")
    instructions = Column(String, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class ScheduleItem(Base):
    """One concrete dose instance for a medicine on a specific day/time."""

    __tablename__ = "schedule"

    id = Column(String, primary_key=True, doc="Unique schedule item ID (UUID)")
    user_id = Column(String, ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False)
    medicine_id = Column(String, ForeignKey("medicines.id", ondelete="CASCADE"), nullable=False)
    medicine_name = Column(String, nullable=False)
    dosage = Column(String, nullable=False)

    # CRITICAL: DateTime object, NOT string!
    scheduled_time = Column(DateTime(timezone=True), nullable=False)
    status = Column(SQLEnum(ScheduleStatusEnum), nullable=False, default=ScheduleStatusEnum.PENDING)
    taken_time = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index('idx_schedule_user_time', 'user_id', 'scheduled_time'),
    )

    def __repr__(self):
        return (
            f"<ScheduleItem(id={self.id}, medicine={self.medicine_name}, "
            f"at={self.scheduled_time}, status={self.status.value})>"
        )


class ReminderAttempt(Base):
    """Miss counter for one schedule item, reset when the dose is taken."""

    __tablename__ = "reminder_attempts"

    id = Column(String, primary_key=True)
    schedule_id = Column(String, ForeignKey("schedule.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String, ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False)
    medicine_id = Column(String, nullable=False)
    missed_count = Column(Integer, nullable=False, default=0)
    last_missed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint('schedule_id', 'user_id', name='uq_attempt_schedule_user'),
    )


class Contact(Base):
    """Family contact alerted by SMS."""

    __tablename__ = "contacts"

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)
    relationship = Column(String, nullable=True)
    is_primary = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class SmsLog(Base):
    """Delivery outcome of one SMS to one contact."""

    __tablename__ = "sms_logs"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    message = Column(Text, nullable=False)
    status = Column(SQLEnum(SmsStatusEnum), nullable=False)
    family_sms_type = Column(String, nullable=True)
    to_phone = Column(String, nullable=True)
    provider_response = Column(Text, nullable=True, doc="JSON-encoded provider response or error")
    schedule_id = Column(String, nullable=True, doc="Breaching schedule item (threshold alerts only)")
    missed_count = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index('idx_sms_breach', 'schedule_id', 'family_sms_type', 'missed_count'),
    )


# Database Engine Setup
engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if "sqlite" in settings.DATABASE_URL else {},
    echo=False  # Set to True for SQL debugging
)

# Session Factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Database session dependency for FastAPI.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Create all tables
Base.metadata.create_all(bind=engine)
