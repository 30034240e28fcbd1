"""Shared pytest fixtures: an in-memory database and recording fakes."""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["TIMEZONE"] = "UTC"
for _key in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_PHONE_NUMBER"):
    os.environ.pop(_key, None)

import uuid
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import database
from detector import DueMedicineDetector
from presenter import ReminderPresenter
from reminder_state import ReminderSlot
from schemas import EscalationResult, ScheduleItem
from services import (
    AlarmService, NotificationService, Notifier, SoundPlayer, SoundUnavailableError,
    SpeechEngine, VoiceService
)
from sms_gateway import DeliveryResult
from store_client import BackendError

USER_ID = "user-1"


@pytest.fixture
def session_factory(monkeypatch):
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    database.Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    monkeypatch.setattr(database, "SessionLocal", factory)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


class FakeSmsGateway:
    """Records sends. Numbers in `rejects` get a failed result, numbers in `raises` raise."""

    def __init__(self, configured=True, rejects=(), raises=()):
        self.is_configured = configured
        self.from_number = "+15550001111" if configured else None
        self.rejects = set(rejects)
        self.raises = set(raises)
        self.sent = []

    def send(self, to, from_, body):
        self.sent.append((to, from_, body))
        if to in self.raises:
            raise ConnectionError("network unreachable")
        if to in self.rejects:
            return DeliveryResult(success=False, error="Twilio error: invalid number", response={"code": 21211})
        return DeliveryResult(success=True, sid=f"SM{len(self.sent)}", response={"status": "queued"})


@pytest.fixture
def gateway():
    return FakeSmsGateway()


@pytest.fixture
def make_gateway():
    return FakeSmsGateway


class FakeBackend:
    """In-memory schedule store, attempt tracker and escalation trigger.

    Method names listed in `fail_on` raise BackendError.
    """

    def __init__(self, items=None):
        self.items = list(items or [])
        self.calls = []
        self.fail_on = set()
        self.missed_counts = {}
        self.sms_requests = []

    def _call(self, name):
        self.calls.append(name)
        if name in self.fail_on:
            raise BackendError(f"{name} failed: 503 Service Unavailable")

    def _set_status(self, schedule_id, status):
        for index, item in enumerate(self.items):
            if item.id == schedule_id:
                self.items[index] = item.model_copy(update={"status": status})
                return self.items[index]
        raise BackendError(f"schedule item {schedule_id} not found")

    async def list_today_schedule(self, user_id=None):
        self._call("list_today_schedule")
        return sorted(self.items, key=lambda item: item.scheduled_time)

    async def mark_taken(self, schedule_id):
        self._call("mark_taken")
        return self._set_status(schedule_id, "taken")

    async def mark_missed(self, schedule_id):
        self._call("mark_missed")
        return self._set_status(schedule_id, "missed")

    async def increment(self, schedule_id, medicine_id, user_id):
        self._call("increment")
        self.missed_counts[schedule_id] = self.missed_counts.get(schedule_id, 0) + 1

    async def reset(self, schedule_id, user_id):
        self._call("reset")
        self.missed_counts[schedule_id] = 0

    async def request_instant_sms(self, user_id, medicine_name, dosage):
        self._call("request_instant_sms")
        self.sms_requests.append((user_id, medicine_name, dosage))
        return EscalationResult(status="sent", attempted=2, sent=2)


class RecordingSpeechEngine(SpeechEngine):
    def __init__(self, available=True):
        self.available = available
        self.speaking = False
        self.said = []
        self.stopped = False

    @property
    def is_speaking(self):
        return self.speaking

    def is_available(self):
        return self.available

    def say(self, text):
        self.said.append(text)

    def stop(self):
        self.stopped = True


class RecordingNotifier(Notifier):
    def __init__(self, allowed=True):
        self.system_notifications_allowed = allowed
        self.toasts = []
        self.system_notifications = []

    def toast(self, message, kind):
        self.toasts.append((message, kind))

    def system(self, title, body, tag):
        self.system_notifications.append((title, body, tag))


class RecordingPlayer(SoundPlayer):
    def __init__(self, missing=()):
        self.missing = set(missing)
        self.played = []

    def play(self, asset):
        if asset in self.missing:
            raise SoundUnavailableError(f"{asset} not found")
        self.played.append(asset)


@pytest.fixture
def make_item():
    """Build a pending ScheduleItem at a given instant."""
    def _make(at, medicine_name="Metformin", dosage="500mg", status="pending", item_id=None):
        return ScheduleItem(
            id=item_id or str(uuid.uuid4()),
            medicine_id=f"med-{medicine_name.lower()}",
            medicine_name=medicine_name,
            dosage=dosage,
            scheduled_time=at,
            status=status
        )
    return _make


@pytest.fixture
def nine_am():
    return datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def reminder_env():
    """A slot, detector and presenter wired to recording fakes."""
    backend = FakeBackend()
    speech = RecordingSpeechEngine()
    notifier = RecordingNotifier()
    player = RecordingPlayer()
    voice = VoiceService(speech)
    notifications = NotificationService(notifier)
    alarm = AlarmService(player)
    slot = ReminderSlot()

    detector = DueMedicineDetector(USER_ID, backend, slot, voice, notifications, alarm)
    presenter = ReminderPresenter(
        USER_ID, backend, slot, voice, notifications, alarm,
        snooze_delay=0.01, max_snooze_reprompts=None
    )
    return SimpleNamespace(
        backend=backend,
        speech=speech,
        notifier=notifier,
        player=player,
        voice=voice,
        notifications=notifications,
        alarm=alarm,
        slot=slot,
        detector=detector,
        presenter=presenter,
    )
