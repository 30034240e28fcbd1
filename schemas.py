"""Pydantic schemas for the Medication Reminder Service.

This module defines request and response schemas for API validation, and the
ScheduleItem value the reminder session works with.
IMPORTANT: every datetime is normalized to a timezone-aware UTC value. SQLite
hands back naive datetimes, which are UTC by construction.
"""

import enum
import re
from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, BeforeValidator, Field, field_validator

PHONE_PATTERN = r'^\+?[1-9]\d{1,14}$'
TIME_OF_DAY_PATTERN = r'^([01]\d|2[0-3]):[0-5]\d$'


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _enum_value(value):
    return value.value if isinstance(value, enum.Enum) else value


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]
EnumValue = Annotated[str, BeforeValidator(_enum_value)]
StatusValue = Annotated[Literal["pending", "taken", "missed"], BeforeValidator(_enum_value)]


class UserCreate(BaseModel):
    """Schema for creating a user profile."""

    name: str = Field(..., min_length=1, max_length=200)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    sms_notifications_enabled: bool = False
    sms_reminder_time: Optional[str] = Field(None, pattern=TIME_OF_DAY_PATTERN)
    missed_reminder_threshold: Optional[int] = Field(
        None,
        ge=1,
        description="Misses before family contacts are alerted (default 3)"
    )


class UserUpdate(BaseModel):
    """All fields optional - only provided fields will be updated."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    sms_notifications_enabled: Optional[bool] = None
    sms_reminder_time: Optional[str] = Field(None, pattern=TIME_OF_DAY_PATTERN)
    missed_reminder_threshold: Optional[int] = Field(None, ge=1)


class UserResponse(BaseModel):
    id: str
    name: str
    phone: Optional[str] = None
    sms_notifications_enabled: bool
    sms_reminder_time: Optional[str] = None
    missed_reminder_threshold: Optional[int] = None
    created_at: UtcDatetime

    class Config:
        from_attributes = True


class MedicineCreate(BaseModel):
    """Schema for adding a medicine; its schedule is generated on creation."""

    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200, examples=["Metformin"])
    dosage: str = Field(..., min_length=1, max_length=100, examples=["500mg"])
    frequency: Literal["daily", "weekly"] = "daily"
    times: List[str] = Field(..., min_length=1, examples=[["08:00", "20:00"]])
    instructions: Optional[str] = None
    active: bool = True

    @field_validator("times")
    @classmethod
    def validate_times(cls, value: List[str]) -> List[str]:
        for item in value:
            if not re.match(TIME_OF_DAY_PATTERN, item):
                raise ValueError(f"invalid time of day '{item}', expected HH:MM")
        return value


class MedicineResponse(BaseModel):
    id: str
    user_id: str
    name: str
    dosage: str
    frequency: EnumValue
    times: List[str]
    instructions: Optional[str] = None
    active: bool
    created_at: UtcDatetime

    class Config:
        from_attributes = True


class MedicineActiveUpdate(BaseModel):
    """Pause (false) or resume (true) a medicine's reminders."""

    active: bool


class ScheduleItem(BaseModel):
    """One dose instance as seen by the reminder session.

    Built from ORM rows on the server and from JSON on the client.
    """

    id: str
    medicine_id: str
    medicine_name: str
    dosage: str
    scheduled_time: UtcDatetime
    status: StatusValue = "pending"
    taken_time: Optional[UtcDatetime] = None
    created_at: Optional[UtcDatetime] = None

    class Config:
        from_attributes = True


class AttemptIncrement(BaseModel):
    schedule_id: str = Field(..., min_length=1)
    medicine_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)


class AttemptReset(BaseModel):
    schedule_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)


class ReminderAttemptResponse(BaseModel):
    schedule_id: str
    user_id: str
    medicine_id: str
    missed_count: int
    last_missed_at: Optional[UtcDatetime] = None

    class Config:
        from_attributes = True


class MissedReminderResponse(BaseModel):
    schedule_id: str
    medicine_id: str
    medicine_name: str
    missed_count: int


class ContactCreate(BaseModel):
    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(..., pattern=PHONE_PATTERN, examples=["+919876543210"])
    email: Optional[str] = None
    relationship: Optional[str] = None
    primary: bool = False


class ContactResponse(BaseModel):
    id: str
    user_id: str
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    relationship: Optional[str] = None
    is_primary: bool
    created_at: UtcDatetime

    class Config:
        from_attributes = True


class InstantSmsRequest(BaseModel):
    """Body of the dismiss-triggered family alert."""

    user_id: str = Field(..., min_length=1)
    medicine_name: str = Field(..., min_length=1)
    dosage: str = Field(..., min_length=1)


class EscalationResult(BaseModel):
    """Outcome of one instant escalation.

    status is "skipped" when SMS is disabled, unconfigured or there is nobody
    to alert; that is a no-op, not an error.
    """

    status: Literal["sent", "skipped"]
    reason: Optional[str] = None
    attempted: int = 0
    sent: int = 0
    failed: int = 0


class SweepResult(BaseModel):
    users_scanned: int = 0
    breaches: int = 0
    attempted: int = 0
    sent: int = 0
    failed: int = 0
    duplicates_skipped: int = 0
    failed_users: List[str] = Field(default_factory=list)


class SmsLogResponse(BaseModel):
    id: str
    user_id: str
    message: str
    status: EnumValue
    family_sms_type: Optional[str] = None
    to_phone: Optional[str] = None
    schedule_id: Optional[str] = None
    missed_count: Optional[int] = None
    created_at: UtcDatetime

    class Config:
        from_attributes = True


class AdherenceStats(BaseModel):
    """Taken vs missed doses over a period; rate is a whole percentage."""

    total: int = 0
    taken: int = 0
    missed: int = 0
    adherence_rate: int = 0


class MedicineStats(AdherenceStats):
    medicine_id: str
    name: str


class AdherenceReport(BaseModel):
    user_id: str
    period: Literal["week", "month"]
    overall: AdherenceStats
    medicines: List[MedicineStats] = Field(default_factory=list)
