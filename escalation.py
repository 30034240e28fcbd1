"""Family SMS escalation for missed doses.

Two independent paths alert a user's contacts:

- the instant path, run once per Dismiss, tells every contact that a reminder
  was dismissed;
- the threshold sweep, run every few minutes by the background worker, alerts
  contacts about doses whose missed count reached the user's threshold.

Both send one SMS per contact and persist one sms_logs row per send, so a
failure for one contact never hides or blocks the others.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import crud
from config import settings
from logger_config import setup_logger
from schemas import EscalationResult, SweepResult

logger = setup_logger(__name__, 'escalation.log')

DISMISSED_TEMPLATE = "{user} has dismissed a reminder for {medicine} ({dosage}). Please check on them."
MISSED_TEMPLATE = "{user} has missed {count} doses of {medicine} ({dosage}). Please check on them."

FAMILY_NOTIFICATION = "family_notification"
MISSED_THRESHOLD = "missed_threshold"


def _deliver(
    db: Session,
    gateway,
    user_id: str,
    to_phone: str,
    message: str,
    family_sms_type: str,
    schedule_id: Optional[str] = None,
    missed_count: Optional[int] = None
) -> bool:
    """Send one SMS and log its outcome. Returns True when sent."""
    try:
        result = gateway.send(to_phone, gateway.from_number, message)
        success = result.success
        response = result.response if result.success else {"error": result.error, **result.response}
    except Exception as e:
        logger.error(f"Error sending SMS to {to_phone} for user {user_id}: {str(e)}")
        success = False
        response = {"error": str(e), "type": type(e).__name__}

    crud.create_sms_log(
        db,
        user_id=user_id,
        message=message,
        status="sent" if success else "failed",
        provider_response=response,
        family_sms_type=family_sms_type,
        to_phone=to_phone,
        schedule_id=schedule_id,
        missed_count=missed_count
    )
    return success


def send_instant_sms(db: Session, gateway, user_id: str, medicine_name: str, dosage: str) -> EscalationResult:
    """Alert every contact of a user that a reminder was dismissed.

    Missing user, SMS disabled, unconfigured gateway and no contacts are
    no-ops reported as "skipped".

    Args:
        db: Database session
        gateway: SMS gateway (see sms_gateway.TwilioSmsGateway)
        user_id: User who dismissed the reminder
        medicine_name: Medicine of the dismissed dose
        dosage: Dosage of the dismissed dose

    Returns:
        EscalationResult: Counts of attempted, sent and failed messages
    """
    user = crud.get_user(db, user_id)
    if not user or not user.sms_notifications_enabled:
        logger.info(f"Instant SMS skipped for user {user_id}: user not found or SMS disabled")
        return EscalationResult(status="skipped", reason="sms_disabled")

    if not gateway.is_configured:
        logger.warning("Instant SMS skipped: SMS gateway is not configured")
        return EscalationResult(status="skipped", reason="sms_not_configured")

    contacts = crud.get_contacts(db, user_id)
    if not contacts:
        logger.info(f"Instant SMS skipped for user {user_id}: no family contacts")
        return EscalationResult(status="skipped", reason="no_contacts")

    message = DISMISSED_TEMPLATE.format(user=user.name, medicine=medicine_name, dosage=dosage)
    result = EscalationResult(status="sent")

    for contact in contacts:
        if not contact.phone:
            continue

        result.attempted += 1
        try:
            delivered = _deliver(db, gateway, user_id, contact.phone, message, FAMILY_NOTIFICATION)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Could not log instant SMS to contact {contact.id}: {str(e)}")
            delivered = False

        if delivered:
            result.sent += 1
        else:
            result.failed += 1

    logger.info(
        f"Instant SMS for user {user_id} ({medicine_name}): "
        f"{result.sent} sent, {result.failed} failed"
    )
    return result


def run_escalation_sweep(
    db: Session,
    gateway,
    now: Optional[datetime] = None,
    window_minutes: Optional[int] = None,
    dedupe: Optional[bool] = None
) -> SweepResult:
    """Alert contacts about doses whose missed count reached the user's threshold.

    Looks at every SMS-enabled user's schedule items in [now - window, now].
    Each (breaching item x contact) pair gets one SMS. With dedupe enabled a
    breach already logged at the same missed count is not sent again.

    Returns:
        SweepResult: Aggregate counts for the run
    """
    now = now or datetime.now(timezone.utc)
    window = settings.SWEEP_WINDOW_MINUTES if window_minutes is None else window_minutes
    dedupe = settings.ESCALATION_DEDUPE_ENABLED if dedupe is None else dedupe
    start = now - timedelta(minutes=window)

    result = SweepResult()

    if not gateway.is_configured:
        logger.warning("Escalation sweep skipped: SMS gateway is not configured")
        return result

    users = crud.get_sms_enabled_users(db)
    for user in users:
        result.users_scanned += 1
        threshold = user.missed_reminder_threshold or settings.DEFAULT_MISSED_THRESHOLD

        try:
            breaches = crud.get_threshold_breaches(db, user.id, start, now, threshold)
            if not breaches:
                continue

            result.breaches += len(breaches)
            contacts = crud.get_contacts(db, user.id)
            if not contacts:
                logger.warning(f"No contacts found for user {user.id}; {len(breaches)} breach(es) not sent")
                continue

            for item, attempt in breaches:
                if dedupe and crud.has_threshold_alert(db, item.id, attempt.missed_count, MISSED_THRESHOLD):
                    result.duplicates_skipped += 1
                    continue

                message = MISSED_TEMPLATE.format(
                    user=user.name,
                    count=attempt.missed_count,
                    medicine=item.medicine_name,
                    dosage=item.dosage
                )
                for contact in contacts:
                    if not contact.phone:
                        continue

                    result.attempted += 1
                    try:
                        delivered = _deliver(
                            db, gateway, user.id, contact.phone, message, MISSED_THRESHOLD,
                            schedule_id=item.id, missed_count=attempt.missed_count
                        )
                    except SQLAlchemyError as e:
                        db.rollback()
                        logger.error(f"Could not log threshold SMS to contact {contact.id}: {str(e)}")
                        delivered = False

                    if delivered:
                        result.sent += 1
                    else:
                        result.failed += 1

        except SQLAlchemyError as e:
            db.rollback()
            result.failed_users.append(user.id)
            logger.error(f"Escalation sweep failed for user {user.id}: {str(e)}", exc_info=True)
            continue

    logger.info(
        f"Escalation sweep: {result.users_scanned} user(s), {result.breaches} breach(es), "
        f"{result.sent} sent, {result.failed} failed, {result.duplicates_skipped} duplicate(s) skipped"
    )
    return result
