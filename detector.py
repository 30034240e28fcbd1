"""Due-medicine detector.

Once per tick the detector re-reads today's schedule and decides, for each
pending item, whether to start a reminder, re-announce the active one, or do
nothing:

- pre-window [T - 1 min, T): heads-up. The item takes the slot (replacing a
  different active item unless something was already adopted this tick) and
  is announced once by voice, system notification and alarm.
- due window [T, T + 5 min]: the item is adopted if the slot is empty, and
  re-announced on every tick while it holds the slot, up to
  MAX_ANNOUNCEMENTS times per item per session. After that it stays active
  but silent, even if it loses the slot and is adopted again.

Items are visited in the store's order (earliest first), so the first
eligible item wins a free slot and later ones wait.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from config import settings
from logger_config import setup_logger
from messages import format_message
from reminder_state import ActiveReminder, ReminderSlot, ReminderState
from schemas import ScheduleItem
from services import AlarmService, NotificationService, VoiceService
from store_client import BackendError

logger = setup_logger(__name__, 'detector.log')


class DueMedicineDetector:
    def __init__(
        self,
        user_id: str,
        store,
        slot: ReminderSlot,
        voice: VoiceService,
        notifications: NotificationService,
        alarm: AlarmService,
        pre_window: Optional[timedelta] = None,
        due_window: Optional[timedelta] = None,
        max_announcements: Optional[int] = None
    ):
        self.user_id = user_id
        self.store = store
        self.slot = slot
        self.voice = voice
        self.notifications = notifications
        self.alarm = alarm
        if pre_window is None:
            pre_window = timedelta(minutes=settings.PRE_WINDOW_MINUTES)
        if due_window is None:
            due_window = timedelta(minutes=settings.DUE_WINDOW_MINUTES)
        if max_announcements is None:
            max_announcements = settings.MAX_ANNOUNCEMENTS
        self.pre_window = pre_window
        self.due_window = due_window
        self.max_announcements = max_announcements
        # due announcements per schedule item, kept for the whole session
        self.announcements: Dict[str, int] = {}

    async def tick(self, now: Optional[datetime] = None) -> Optional[ActiveReminder]:
        """Run one detection pass.

        A failed fetch is logged and the pass is skipped; the slot is left as
        it was and the next tick tries again.

        Returns:
            The active reminder after the pass, if any
        """
        now = now or datetime.now(timezone.utc)
        try:
            schedule = await self.store.list_today_schedule(self.user_id)
        except BackendError as e:
            logger.error(f"Error checking reminders: {str(e)}")
            return self.slot.active

        adopted_this_tick = False
        for item in schedule:
            if item.status != "pending":
                continue

            scheduled = item.scheduled_time
            if scheduled - self.pre_window <= now < scheduled:
                if adopted_this_tick or self.slot.holds(item.id):
                    continue
                self._heads_up(item, now)
                adopted_this_tick = True

            elif scheduled <= now <= scheduled + self.due_window:
                if self.slot.is_empty:
                    self.slot.adopt(item, ReminderState.DUE, now)
                    self.alarm.play_alarm()
                    adopted_this_tick = True
                    logger.info(f"Reminder started for {item.medicine_name} ({item.id})")
                elif not self.slot.holds(item.id):
                    continue

                self._announce_due(self.slot.active)

        return self.slot.active

    def _heads_up(self, item: ScheduleItem, now: datetime) -> None:
        if not self.slot.is_empty:
            logger.info(f"Heads-up for {item.id} replaces active reminder {self.slot.active.item_id}")
        self.slot.adopt(item, ReminderState.PRE_WINDOW, now)

        text = format_message("take_medicine", medicine=item.medicine_name, dosage=item.dosage)
        self.voice.speak(text, key=text)
        self.alarm.play_alarm()
        self.notifications.notify_system(
            format_message("reminder_title"),
            format_message("reminder_body", medicine=item.medicine_name, dosage=item.dosage),
            tag=item.id
        )
        self.notifications.show(text, "success")
        logger.info(f"Heads-up for {item.medicine_name} at {item.scheduled_time.isoformat()}")

    def _announce_due(self, reminder: ActiveReminder) -> None:
        item = reminder.item
        if reminder.state == ReminderState.PRE_WINDOW:
            reminder.state = ReminderState.DUE

        count = self.announcements.get(item.id, 0)
        reminder.announcements = count
        if count >= self.max_announcements:
            return

        text = format_message("take_medicine", medicine=item.medicine_name, dosage=item.dosage)
        self.voice.speak(text, key=f"{text}-{count}")
        count += 1
        self.announcements[item.id] = count
        reminder.announcements = count
        logger.info(f"Announced {item.medicine_name} ({count}/{self.max_announcements})")
