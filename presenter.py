"""Reminder presenter: the user's take / snooze / dismiss decisions.

Each action persists its outcome first (schedule status, then the missed
counter) and only then renders feedback and clears the slot. When the
backend call fails the user gets an error toast and the reminder stays
active so the action can be retried.
"""

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from config import settings
from logger_config import setup_logger
from messages import format_message
from reminder_state import ActiveReminder, ReminderSlot, ReminderState
from schemas import ScheduleItem
from services import AlarmService, NotificationService, VoiceService
from store_client import BackendError

logger = setup_logger(__name__, 'presenter.log')


class ReminderCommand(str, Enum):
    TAKE = "take"
    SNOOZE = "snooze"
    DISMISS = "dismiss"


class ReminderPresenter:
    def __init__(
        self,
        user_id: str,
        store,
        slot: ReminderSlot,
        voice: VoiceService,
        notifications: NotificationService,
        alarm: AlarmService,
        tracker=None,
        escalation=None,
        snooze_delay: Optional[float] = None,
        max_snooze_reprompts: Optional[int] = None
    ):
        self.user_id = user_id
        self.store = store
        self.tracker = tracker or store
        self.escalation = escalation or store
        self.slot = slot
        self.voice = voice
        self.notifications = notifications
        self.alarm = alarm
        self.snooze_delay = settings.SNOOZE_DELAY_SECONDS if snooze_delay is None else snooze_delay
        self.max_snooze_reprompts = (
            settings.MAX_SNOOZE_REPROMPTS if max_snooze_reprompts is None else max_snooze_reprompts
        )
        self.snooze_counts: Dict[str, int] = {}
        self._snooze_tasks: Dict[str, asyncio.Task] = {}

    @property
    def active_reminder(self) -> Optional[ActiveReminder]:
        return self.slot.active

    async def execute(self, command: ReminderCommand) -> bool:
        """Dispatch a command. Returns True when the action completed."""
        handlers = {
            ReminderCommand.TAKE: self.on_take,
            ReminderCommand.SNOOZE: self.on_snooze,
            ReminderCommand.DISMISS: self.on_dismiss,
        }
        return await handlers[ReminderCommand(command)]()

    def _action_failed(self, action: str, item: ScheduleItem, error: Exception) -> bool:
        logger.error(f"Error handling {action} for {item.id}: {str(error)}")
        self.notifications.show(format_message("action_error"), "error")
        return False

    async def on_take(self) -> bool:
        reminder = self.slot.active
        if reminder is None:
            return False
        item = reminder.item

        try:
            await self.store.mark_taken(item.id)
            await self.tracker.reset(item.id, self.user_id)
        except BackendError as e:
            return self._action_failed("take", item, e)

        self._forget_snoozes(item.id)
        self.alarm.play_success()
        text = format_message("medicine_taken", medicine=item.medicine_name)
        self.voice.speak(text)
        self.notifications.show(text, "success")
        self.slot.clear(item.id)
        logger.info(f"{item.medicine_name} ({item.id}) taken")
        return True

    async def on_snooze(self) -> bool:
        reminder = self.slot.active
        if reminder is None:
            return False
        item = reminder.item

        try:
            await self.store.mark_missed(item.id)
            await self.tracker.increment(item.id, item.medicine_id, self.user_id)
        except BackendError as e:
            return self._action_failed("snooze", item, e)

        self.slot.clear(item.id)
        self._cancel_snooze(item.id)

        count = self.snooze_counts.get(item.id, 0)
        if self.max_snooze_reprompts is not None and count >= self.max_snooze_reprompts:
            logger.info(f"Snooze limit reached for {item.id}, no further re-prompts")
            self.notifications.show(format_message("medicine_dismissed", medicine=item.medicine_name), "success")
            return True

        self.snooze_counts[item.id] = count + 1
        text = format_message("snooze_message", seconds=int(self.snooze_delay))
        self.voice.speak(text)
        self.notifications.show(text, "success")
        self._snooze_tasks[item.id] = asyncio.create_task(self._reprompt_later(item))
        logger.info(f"{item.medicine_name} ({item.id}) snoozed for {self.snooze_delay}s")
        return True

    async def on_dismiss(self) -> bool:
        reminder = self.slot.active
        if reminder is None:
            return False
        item = reminder.item

        try:
            await self.store.mark_missed(item.id)
            await self.tracker.increment(item.id, item.medicine_id, self.user_id)
        except BackendError as e:
            return self._action_failed("dismiss", item, e)

        # The dose is already recorded as missed, so the reminder is cleared
        # whatever happens to the family SMS.
        try:
            result = await self.escalation.request_instant_sms(self.user_id, item.medicine_name, item.dosage)
            logger.info(f"Family notification for {item.id}: {result.status} ({result.reason or 'ok'})")
        except Exception as e:
            logger.error(f"Error sending family SMS for {item.id}: {str(e)}")

        self._forget_snoozes(item.id)
        self.slot.clear(item.id)
        text = format_message("medicine_dismissed", medicine=item.medicine_name)
        self.voice.speak(text)
        self.notifications.show(text, "success")
        logger.info(f"{item.medicine_name} ({item.id}) dismissed")
        return True

    def reprompt(self, item: ScheduleItem, now: Optional[datetime] = None) -> ActiveReminder:
        """Bring a snoozed item back as the active reminder."""
        now = now or datetime.now(timezone.utc)
        if not self.slot.is_empty and not self.slot.holds(item.id):
            logger.info(f"Re-prompt for {item.id} replaces active reminder {self.slot.active.item_id}")

        reminder = self.slot.adopt(item.model_copy(update={"status": "missed"}), ReminderState.PENDING_AGAIN, now)
        self.alarm.play_alarm()
        text = format_message("take_medicine", medicine=item.medicine_name, dosage=item.dosage)
        self.voice.speak(text)
        self.notifications.show(text, "success")
        logger.info(f"Re-prompting {item.medicine_name} ({item.id})")
        return reminder

    async def _reprompt_later(self, item: ScheduleItem) -> None:
        try:
            await asyncio.sleep(self.snooze_delay)
            self.reprompt(item)
        finally:
            if self._snooze_tasks.get(item.id) is asyncio.current_task():
                del self._snooze_tasks[item.id]

    def _cancel_snooze(self, item_id: str) -> None:
        task = self._snooze_tasks.pop(item_id, None)
        if task is not None and not task.done():
            task.cancel()

    def _forget_snoozes(self, item_id: str) -> None:
        self._cancel_snooze(item_id)
        self.snooze_counts.pop(item_id, None)

    @property
    def pending_snoozes(self) -> int:
        return len(self._snooze_tasks)

    def close(self) -> None:
        """Cancel every outstanding snooze re-prompt."""
        for task in self._snooze_tasks.values():
            if not task.done():
                task.cancel()
        self._snooze_tasks.clear()
