"""In-memory state of a reminder session: the single active-reminder slot."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from schemas import ScheduleItem


class ReminderState(str, Enum):
    PRE_WINDOW = "pre_window"
    DUE = "due"
    # snoozed item being re-prompted; its stored status stays "missed"
    PENDING_AGAIN = "pending_again"


@dataclass
class ActiveReminder:
    item: ScheduleItem
    state: ReminderState
    adopted_at: datetime
    announcements: int = 0

    @property
    def item_id(self) -> str:
        return self.item.id


class ReminderSlot:
    """Holds at most one ActiveReminder. Last write wins."""

    def __init__(self) -> None:
        self._active: Optional[ActiveReminder] = None

    @property
    def active(self) -> Optional[ActiveReminder]:
        return self._active

    @property
    def is_empty(self) -> bool:
        return self._active is None

    def holds(self, item_id: str) -> bool:
        return self._active is not None and self._active.item_id == item_id

    def adopt(self, item: ScheduleItem, state: ReminderState, now: datetime) -> ActiveReminder:
        self._active = ActiveReminder(item=item, state=state, adopted_at=now)
        return self._active

    def clear(self, item_id: Optional[str] = None) -> bool:
        """Empty the slot. With item_id, only if the slot still holds that item."""
        if item_id is not None and not self.holds(item_id):
            return False
        self._active = None
        return True
