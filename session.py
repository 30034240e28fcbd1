"""One reminder session for one user.

The session owns the active-reminder slot, the detector and the presenter,
and runs two timers on the current event loop: the detector tick (60s, plus
one immediate pass at start) and a clock tick (1s) that reports the current
time to the host UI.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from config import settings
from detector import DueMedicineDetector
from logger_config import setup_logger
from presenter import ReminderCommand, ReminderPresenter
from reminder_state import ActiveReminder, ReminderSlot
from services import AlarmService, NotificationService, VoiceService

logger = setup_logger(__name__, 'client.log')


class ReminderSession:
    def __init__(
        self,
        user_id: str,
        backend,
        voice: VoiceService,
        notifications: NotificationService,
        alarm: AlarmService,
        tick_interval: Optional[float] = None,
        clock_interval: Optional[float] = None,
        on_clock: Optional[Callable[[datetime], None]] = None,
        snooze_delay: Optional[float] = None,
        max_snooze_reprompts: Optional[int] = None
    ):
        self.user_id = user_id
        self.backend = backend
        self.voice = voice
        self.tick_interval = settings.DETECTOR_TICK_INTERVAL if tick_interval is None else tick_interval
        self.clock_interval = settings.CLOCK_TICK_INTERVAL if clock_interval is None else clock_interval
        self.on_clock = on_clock

        self.slot = ReminderSlot()
        self.detector = DueMedicineDetector(
            user_id, backend, self.slot, voice, notifications, alarm,
            pre_window=timedelta(minutes=settings.PRE_WINDOW_MINUTES),
            due_window=timedelta(minutes=settings.DUE_WINDOW_MINUTES),
            max_announcements=settings.MAX_ANNOUNCEMENTS
        )
        self.presenter = ReminderPresenter(
            user_id, backend, self.slot, voice, notifications, alarm,
            snooze_delay=snooze_delay,
            max_snooze_reprompts=max_snooze_reprompts
        )
        self._tasks: List[asyncio.Task] = []

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    @property
    def active_reminder(self) -> Optional[ActiveReminder]:
        return self.presenter.active_reminder

    async def execute(self, command: ReminderCommand) -> bool:
        return await self.presenter.execute(command)

    async def on_take(self) -> bool:
        return await self.presenter.on_take()

    async def on_snooze(self) -> bool:
        return await self.presenter.on_snooze()

    async def on_dismiss(self) -> bool:
        return await self.presenter.on_dismiss()

    async def check(self) -> None:
        """One detector pass; never raises."""
        try:
            await self.detector.tick()
        except Exception as e:
            logger.error(f"Error in detector tick: {str(e)}", exc_info=True)

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            await self.check()

    async def _clock_loop(self) -> None:
        while True:
            if self.on_clock is not None:
                try:
                    self.on_clock(datetime.now(timezone.utc))
                except Exception as e:
                    logger.error(f"Error in clock callback: {str(e)}", exc_info=True)
            await asyncio.sleep(self.clock_interval)

    async def start(self) -> None:
        if self.is_running:
            return
        logger.info(f"Reminder session started for user {self.user_id}")
        await self.check()
        self._tasks = [
            asyncio.create_task(self._tick_loop()),
            asyncio.create_task(self._clock_loop()),
        ]

    async def stop(self) -> None:
        """Cancel both timers and every pending snooze re-prompt."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self.presenter.close()
        self.voice.close()
        logger.info(f"Reminder session stopped for user {self.user_id}")

    async def __aenter__(self) -> "ReminderSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
