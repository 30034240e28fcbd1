"""CRUD operations for the Medication Reminder Service.

This module is the persistence side of the reminder system: users, medicines,
the per-day schedule, reminder-attempt counters, family contacts and SMS
delivery logs.
IMPORTANT: All datetime parameters and return values are datetime objects, NOT
strings. Every instant is written in UTC.
"""

from sqlalchemy import and_
from sqlalchemy.orm import Session
from typing import List, Optional, Tuple
import json
import uuid
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from config import settings
from database import (
    Contact, FrequencyEnum, Medicine, ReminderAttempt, ScheduleItem,
    ScheduleStatusEnum, SmsLog, SmsStatusEnum, UserProfile
)
from logger_config import setup_logger

logger = setup_logger(__name__, 'crud.log')


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def create_user(db: Session, user_data: dict) -> UserProfile:
    """Create a user profile.

    Args:
        db: Database session
        user_data: Dictionary with profile fields
            - name: str
            - phone: Optional[str]
            - sms_notifications_enabled: Optional[bool]
            - sms_reminder_time: Optional[str]
            - missed_reminder_threshold: Optional[int]

    Returns:
        UserProfile: Created profile
    """
    user = UserProfile(
        id=user_data.get('id') or str(uuid.uuid4()),
        name=user_data['name'],
        phone=user_data.get('phone'),
        sms_notifications_enabled=user_data.get('sms_notifications_enabled', False),
        sms_reminder_time=user_data.get('sms_reminder_time'),
        missed_reminder_threshold=user_data.get('missed_reminder_threshold'),
        created_at=_utcnow()
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def get_user(db: Session, user_id: str) -> Optional[UserProfile]:
    """Get a user profile by ID.

    Args:
        db: Database session
        user_id: User ID

    Returns:
        Optional[UserProfile]: The profile, None if not found
    """
    return db.query(UserProfile).filter(UserProfile.id == user_id).first()


def update_user(db: Session, user_id: str, updates: dict) -> Optional[UserProfile]:
    """Update profile fields; keys with None values are ignored."""
    user = get_user(db, user_id)
    if not user:
        return None

    for key, value in updates.items():
        if value is not None:
            setattr(user, key, value)

    db.commit()
    db.refresh(user)
    return user


def get_sms_enabled_users(db: Session) -> List[UserProfile]:
    """Get every user who opted in to SMS notifications.

    Returns:
        List[UserProfile]: Users the escalation sweep scans
    """
    return db.query(UserProfile).filter(
        UserProfile.sms_notifications_enabled.is_(True)
    ).all()


def create_medicine(db: Session, medicine_data: dict, now: Optional[datetime] = None) -> Medicine:
    """Create a medicine and generate its upcoming schedule items.

    Args:
        db: Database session
        medicine_data: Dictionary with medicine fields
            - user_id: str
            - name: str
            - dosage: str
            - frequency: "daily" or "weekly"
            - times: List[str] of "HH:MM"
            - instructions: Optional[str]
            - active: Optional[bool]
        now: Reference instant (defaults to the current time)

    Returns:
        Medicine: Created medicine
    """
    frequency = medicine_data.get('frequency', 'daily')
    if isinstance(frequency, str):
        frequency = FrequencyEnum[frequency.upper()]

    medicine = Medicine(
        id=str(uuid.uuid4()),
        user_id=medicine_data['user_id'],
        name=medicine_data['name'],
        dosage=medicine_data['dosage'],
        frequency=frequency,
        times=list(medicine_data['times']),
        instructions=medicine_data.get('instructions'),
        active=medicine_data.get('active', True),
        created_at=_utcnow()
    )
    db.add(medicine)
    db.flush()

    count = generate_schedule_items(db, medicine, now=now)
    db.commit()
    db.refresh(medicine)
    logger.info(f"Medicine {medicine.id} ({medicine.name}) created with {count} schedule item(s)")
    return medicine


def generate_schedule_items(
    db: Session,
    medicine: Medicine,
    now: Optional[datetime] = None,
    days_ahead: Optional[int] = None
) -> int:
    """Add one pending ScheduleItem per (day, time of day) for a medicine.

    Days are calendar days in settings.TIMEZONE, from today through
    today + days_ahead. Weekly medicines only get today's weekday. Times that
    have already passed today are skipped. So are slots that already have
    an item, which makes regenerating after a pause safe. The caller commits.

    Returns:
        int: Number of items added
    """
    if not medicine.active:
        return 0

    tz = ZoneInfo(settings.TIMEZONE)
    now_local = (now or _utcnow()).astimezone(tz)
    today = now_local.date()
    days = settings.SCHEDULE_DAYS_AHEAD if days_ahead is None else days_ahead
    created_at = _utcnow()
    existing = {
        _to_utc(scheduled) for (scheduled,) in
        db.query(ScheduleItem.scheduled_time).filter(ScheduleItem.medicine_id == medicine.id)
    }

    count = 0
    for offset in range(days + 1):
        day = today + timedelta(days=offset)
        if medicine.frequency == FrequencyEnum.WEEKLY and day.weekday() != today.weekday():
            continue

        for time_of_day in medicine.times:
            hours, minutes = (int(part) for part in time_of_day.split(':'))
            scheduled_local = datetime.combine(day, time(hours, minutes), tzinfo=tz)
            if day == today and scheduled_local <= now_local:
                continue
            if scheduled_local.astimezone(timezone.utc) in existing:
                continue

            db.add(ScheduleItem(
                id=str(uuid.uuid4()),
                user_id=medicine.user_id,
                medicine_id=medicine.id,
                medicine_name=medicine.name,
                dosage=medicine.dosage,
                scheduled_time=scheduled_local.astimezone(timezone.utc),
                status=ScheduleStatusEnum.PENDING,
                created_at=created_at
            ))
            count += 1

    return count


def get_medicines(db: Session, user_id: str) -> List[Medicine]:
    """Get a user's medicines, newest first.

    Args:
        db: Database session
        user_id: Owning user

    Returns:
        List[Medicine]: Active and inactive medicines
    """
    return db.query(Medicine).filter(
        Medicine.user_id == user_id
    ).order_by(Medicine.created_at.desc()).all()


def get_medicine(db: Session, medicine_id: str, user_id: str) -> Optional[Medicine]:
    return db.query(Medicine).filter(
        Medicine.id == medicine_id,
        Medicine.user_id == user_id
    ).first()


def delete_medicine(db: Session, medicine_id: str, user_id: str) -> bool:
    """Delete a medicine together with its schedule items and their missed counters.

    Args:
        db: Database session
        medicine_id: Medicine ID
        user_id: Owning user

    Returns:
        bool: True if deleted, False if not found
    """
    medicine = get_medicine(db, medicine_id, user_id)
    if not medicine:
        return False

    db.query(ReminderAttempt).filter(
        ReminderAttempt.medicine_id == medicine_id,
        ReminderAttempt.user_id == user_id
    ).delete(synchronize_session=False)
    removed = db.query(ScheduleItem).filter(
        ScheduleItem.medicine_id == medicine_id,
        ScheduleItem.user_id == user_id
    ).delete(synchronize_session=False)
    db.delete(medicine)
    db.commit()
    logger.info(f"Medicine {medicine_id} deleted with {removed} schedule item(s)")
    return True


def set_medicine_active(
    db: Session,
    medicine_id: str,
    user_id: str,
    active: bool,
    now: Optional[datetime] = None
) -> Optional[Medicine]:
    """Pause or resume a medicine.

    Pausing removes its pending doses from `now` on, so no further reminders
    fire; doses already taken or missed are kept. Resuming generates the
    schedule again from `now`. Setting the current value changes nothing.

    Args:
        db: Database session
        medicine_id: Medicine ID
        user_id: Owning user
        active: New state
        now: Reference instant (defaults to the current time)

    Returns:
        Optional[Medicine]: Updated medicine, None if not found
    """
    medicine = get_medicine(db, medicine_id, user_id)
    if not medicine:
        return None
    if medicine.active == active:
        return medicine

    now = now or _utcnow()
    medicine.active = active
    if active:
        count = generate_schedule_items(db, medicine, now=now)
        logger.info(f"Medicine {medicine_id} resumed with {count} schedule item(s)")
    else:
        removed = db.query(ScheduleItem).filter(
            ScheduleItem.medicine_id == medicine_id,
            ScheduleItem.status == ScheduleStatusEnum.PENDING,
            ScheduleItem.scheduled_time >= _to_utc(now)
        ).delete(synchronize_session=False)
        logger.info(f"Medicine {medicine_id} paused, {removed} pending item(s) removed")

    db.commit()
    db.refresh(medicine)
    return medicine


def day_bounds(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Return [start, end) of the current calendar day in UTC.

    The day is the one containing `now` in settings.TIMEZONE.
    """
    tz = ZoneInfo(settings.TIMEZONE)
    local_day = (now or _utcnow()).astimezone(tz).date()
    start = datetime.combine(local_day, time.min, tzinfo=tz)
    end = datetime.combine(local_day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def list_today_schedule(db: Session, user_id: str, now: Optional[datetime] = None) -> List[ScheduleItem]:
    """Get today's dose instances for a user, ascending by scheduled time.

    Args:
        db: Database session
        user_id: Owning user
        now: Reference instant that selects "today" (defaults to now)

    Returns:
        List[ScheduleItem]: Items of every status, earliest first
    """
    start, end = day_bounds(now)
    return db.query(ScheduleItem).filter(
        ScheduleItem.user_id == user_id,
        ScheduleItem.scheduled_time >= start,
        ScheduleItem.scheduled_time < end
    ).order_by(ScheduleItem.scheduled_time.asc()).all()


def get_schedule_history(
    db: Session,
    user_id: str,
    period: str = "week",
    now: Optional[datetime] = None
) -> List[ScheduleItem]:
    """Get decided (taken or missed) items for the last week or month, newest first."""
    _, end = day_bounds(now)
    days = 7 if period == "week" else 30
    start, _ = day_bounds((now or _utcnow()) - timedelta(days=days))

    return db.query(ScheduleItem).filter(
        ScheduleItem.user_id == user_id,
        ScheduleItem.scheduled_time >= start,
        ScheduleItem.scheduled_time < end,
        ScheduleItem.status != ScheduleStatusEnum.PENDING
    ).order_by(ScheduleItem.scheduled_time.desc()).all()


def _adherence(items: List[ScheduleItem]) -> dict:
    taken = sum(1 for item in items if item.status == ScheduleStatusEnum.TAKEN)
    missed = sum(1 for item in items if item.status == ScheduleStatusEnum.MISSED)
    total = len(items)
    # whole percent, halves rounded up
    rate = (taken * 200 + total) // (2 * total) if total else 0
    return {'total': total, 'taken': taken, 'missed': missed, 'adherence_rate': rate}


def get_adherence_stats(
    db: Session,
    user_id: str,
    period: str = "week",
    now: Optional[datetime] = None
) -> dict:
    """Adherence report over the same decided doses as get_schedule_history.

    Args:
        db: Database session
        user_id: Owning user
        period: "week" or "month"
        now: Reference instant (defaults to the current time)

    Returns:
        dict: user_id, period, overall counts and rate, and one entry per
            medicine (every medicine the user has), best adherence first
    """
    history = get_schedule_history(db, user_id, period, now)

    by_medicine = {}
    for item in history:
        by_medicine.setdefault(item.medicine_id, []).append(item)

    medicines = [
        {'medicine_id': medicine.id, 'name': medicine.name, **_adherence(by_medicine.get(medicine.id, []))}
        for medicine in get_medicines(db, user_id)
    ]
    medicines.sort(key=lambda stats: stats['adherence_rate'], reverse=True)

    return {
        'user_id': user_id,
        'period': period,
        'overall': _adherence(history),
        'medicines': medicines,
    }


def get_schedule_item(db: Session, schedule_id: str, user_id: Optional[str] = None) -> Optional[ScheduleItem]:
    """Get one schedule item, optionally scoped to its owner.

    Args:
        db: Database session
        schedule_id: Schedule item ID
        user_id: When given, the item must belong to this user

    Returns:
        Optional[ScheduleItem]: The item, None if not found
    """
    query = db.query(ScheduleItem).filter(ScheduleItem.id == schedule_id)
    if user_id is not None:
        query = query.filter(ScheduleItem.user_id == user_id)
    return query.first()


def mark_taken(db: Session, schedule_id: str, user_id: str) -> Optional[ScheduleItem]:
    """Mark a dose as taken, recording the taken time.

    A snoozed (missed) item that is re-prompted and then taken moves from
    missed to taken here.

    Returns:
        Optional[ScheduleItem]: Updated item, None if not found
    """
    item = get_schedule_item(db, schedule_id, user_id)
    if not item:
        return None

    item.status = ScheduleStatusEnum.TAKEN
    item.taken_time = _utcnow()
    db.commit()
    db.refresh(item)
    return item


def mark_missed(db: Session, schedule_id: str, user_id: str) -> Optional[ScheduleItem]:
    """Mark a pending dose as missed.

    Taken is final: a dose that was already taken is not changed.

    Args:
        db: Database session
        schedule_id: Schedule item ID
        user_id: Owning user

    Returns:
        Optional[ScheduleItem]: Updated item, None if not found

    Raises:
        ValueError: If the dose was already taken
    """
    item = get_schedule_item(db, schedule_id, user_id)
    if not item:
        return None

    if item.status == ScheduleStatusEnum.TAKEN:
        logger.warning(f"Schedule item {schedule_id} is already taken, not marking it missed")
        raise ValueError(f"Schedule item {schedule_id} is already taken")

    item.status = ScheduleStatusEnum.MISSED
    db.commit()
    db.refresh(item)
    return item


def get_reminder_attempt(db: Session, schedule_id: str, user_id: str) -> Optional[ReminderAttempt]:
    """Get the missed-count row for a schedule item, None if it was never missed."""
    return db.query(ReminderAttempt).filter(
        ReminderAttempt.schedule_id == schedule_id,
        ReminderAttempt.user_id == user_id
    ).first()


def increment_missed_reminder(db: Session, schedule_id: str, medicine_id: str, user_id: str) -> ReminderAttempt:
    """Add exactly one miss to the item's counter, creating the row on first miss.

    Returns:
        ReminderAttempt: Counter after the increment
    """
    now = _utcnow()
    attempt = get_reminder_attempt(db, schedule_id, user_id)

    if attempt:
        attempt.missed_count = attempt.missed_count + 1
        attempt.last_missed_at = now
        attempt.updated_at = now
    else:
        attempt = ReminderAttempt(
            id=str(uuid.uuid4()),
            schedule_id=schedule_id,
            user_id=user_id,
            medicine_id=medicine_id,
            missed_count=1,
            last_missed_at=now,
            created_at=now,
            updated_at=now
        )
        db.add(attempt)

    db.commit()
    db.refresh(attempt)
    logger.info(f"Missed count for schedule {schedule_id} is now {attempt.missed_count}")
    return attempt


def reset_missed_reminder(db: Session, schedule_id: str, user_id: str) -> Optional[ReminderAttempt]:
    """Reset the item's counter to zero. Idempotent; no row means nothing to reset."""
    attempt = get_reminder_attempt(db, schedule_id, user_id)
    if not attempt:
        return None

    attempt.missed_count = 0
    attempt.last_missed_at = None
    attempt.updated_at = _utcnow()
    db.commit()
    db.refresh(attempt)
    return attempt


def get_missed_reminders(db: Session, user_id: str, threshold: int = 3) -> List[dict]:
    """Counters at or above the threshold for a user, joined with medicine names."""
    rows = db.query(ReminderAttempt, ScheduleItem).join(
        ScheduleItem, ScheduleItem.id == ReminderAttempt.schedule_id
    ).filter(
        ReminderAttempt.user_id == user_id,
        ReminderAttempt.missed_count >= threshold
    ).all()

    return [
        {
            'schedule_id': attempt.schedule_id,
            'medicine_id': attempt.medicine_id,
            'missed_count': attempt.missed_count,
            'medicine_name': item.medicine_name or "Unknown Medicine",
        }
        for attempt, item in rows
    ]


def get_threshold_breaches(
    db: Session,
    user_id: str,
    start: datetime,
    end: datetime,
    threshold: int
) -> List[Tuple[ScheduleItem, ReminderAttempt]]:
    """Schedule items in [start, end] whose missed count reached the threshold.

    Returns:
        List of (ScheduleItem, ReminderAttempt) pairs, earliest item first
    """
    return db.query(ScheduleItem, ReminderAttempt).join(
        ReminderAttempt,
        and_(
            ReminderAttempt.schedule_id == ScheduleItem.id,
            ReminderAttempt.user_id == ScheduleItem.user_id
        )
    ).filter(
        ScheduleItem.user_id == user_id,
        ScheduleItem.scheduled_time >= _to_utc(start),
        ScheduleItem.scheduled_time <= _to_utc(end),
        ReminderAttempt.missed_count >= threshold
    ).order_by(ScheduleItem.scheduled_time.asc()).all()


def add_contact(db: Session, contact_data: dict) -> Contact:
    """Add a family contact.

    Raises:
        ValueError: If the user already has settings.MAX_CONTACTS_PER_USER contacts
    """
    user_id = contact_data['user_id']
    existing = db.query(Contact).filter(Contact.user_id == user_id).count()
    if existing >= settings.MAX_CONTACTS_PER_USER:
        raise ValueError(f"A user can have at most {settings.MAX_CONTACTS_PER_USER} contacts")

    contact = Contact(
        id=str(uuid.uuid4()),
        user_id=user_id,
        name=contact_data['name'],
        phone=contact_data.get('phone'),
        email=contact_data.get('email'),
        relationship=contact_data.get('relationship'),
        is_primary=contact_data.get('primary', False),
        created_at=_utcnow()
    )
    db.add(contact)
    db.commit()
    db.refresh(contact)
    return contact


def get_contacts(db: Session, user_id: str) -> List[Contact]:
    """Get a user's family contacts.

    Args:
        db: Database session
        user_id: Owning user

    Returns:
        List[Contact]: Primary contact first, then oldest first
    """
    return db.query(Contact).filter(
        Contact.user_id == user_id
    ).order_by(Contact.is_primary.desc(), Contact.created_at.asc()).all()


def delete_contact(db: Session, contact_id: str, user_id: str) -> bool:
    """Delete a user's contact.

    Args:
        db: Database session
        contact_id: Contact ID
        user_id: Owning user

    Returns:
        bool: True if deleted, False if not found
    """
    contact = db.query(Contact).filter(
        Contact.id == contact_id,
        Contact.user_id == user_id
    ).first()
    if not contact:
        return False

    db.delete(contact)
    db.commit()
    return True


def create_sms_log(
    db: Session,
    user_id: str,
    message: str,
    status: str,
    provider_response: Optional[dict] = None,
    family_sms_type: Optional[str] = None,
    to_phone: Optional[str] = None,
    schedule_id: Optional[str] = None,
    missed_count: Optional[int] = None
) -> SmsLog:
    """Persist the outcome of one SMS send ("sent" or "failed")."""
    log = SmsLog(
        id=str(uuid.uuid4()),
        user_id=user_id,
        message=message,
        status=SmsStatusEnum[status.upper()],
        family_sms_type=family_sms_type,
        to_phone=to_phone,
        provider_response=json.dumps(provider_response or {}, default=str),
        schedule_id=schedule_id,
        missed_count=missed_count,
        created_at=_utcnow()
    )
    db.add(log)
    db.commit()
    db.refresh(log)
    return log


def get_sms_logs(db: Session, user_id: Optional[str] = None, limit: int = 50) -> List[SmsLog]:
    """Get SMS delivery logs, newest first.

    Args:
        db: Database session
        user_id: Only this user's logs when given, all logs otherwise
        limit: Maximum number of results

    Returns:
        List[SmsLog]: Logged sends
    """
    query = db.query(SmsLog)
    if user_id:
        query = query.filter(SmsLog.user_id == user_id)
    return query.order_by(SmsLog.created_at.desc()).limit(limit).all()


def has_threshold_alert(db: Session, schedule_id: str, missed_count: int, family_sms_type: str) -> bool:
    """Whether a breach alert was already logged for this item at this count."""
    return db.query(SmsLog).filter(
        SmsLog.schedule_id == schedule_id,
        SmsLog.missed_count == missed_count,
        SmsLog.family_sms_type == family_sms_type
    ).first() is not None
