"""Reminder presenter: take, snooze and dismiss."""

import asyncio
from datetime import timedelta

import httpx
import pytest

from presenter import ReminderCommand, ReminderPresenter
from reminder_state import ReminderState
from services import BEEP_SOUND, SUCCESS_SOUND
from store_client import ReminderBackendClient

ERROR_TOAST = ("Something went wrong. Please try again.", "error")


@pytest.fixture
def active_item(reminder_env, make_item, nine_am):
    """An item that became due at 09:00 and was adopted at 09:00:10."""
    item = make_item(nine_am)
    reminder_env.backend.items = [item]
    asyncio.run(reminder_env.detector.tick(nine_am + timedelta(seconds=10)))
    reminder_env.speech.said.clear()
    reminder_env.player.played.clear()
    reminder_env.notifier.toasts.clear()
    return item


def stored_status(env, item):
    return next(i.status for i in env.backend.items if i.id == item.id)


def test_take_marks_taken_then_resets_counter(reminder_env, active_item):
    env = reminder_env
    env.backend.missed_counts[active_item.id] = 2

    assert asyncio.run(env.presenter.on_take()) is True

    assert env.backend.calls[-2:] == ["mark_taken", "reset"]
    assert stored_status(env, active_item) == "taken"
    assert env.backend.missed_counts[active_item.id] == 0
    assert env.player.played == [SUCCESS_SOUND]
    assert env.speech.said == ["Great! You've taken your Metformin"]
    assert env.notifier.toasts == [("Great! You've taken your Metformin", "success")]
    assert env.slot.is_empty


def test_take_falls_back_to_beep(reminder_env, active_item):
    env = reminder_env
    env.player.missing.add(SUCCESS_SOUND)

    asyncio.run(env.presenter.on_take())

    assert env.player.played == [BEEP_SOUND]


def test_take_without_any_sound_still_completes(reminder_env, active_item):
    env = reminder_env
    env.player.missing.update({SUCCESS_SOUND, BEEP_SOUND})

    assert asyncio.run(env.presenter.on_take()) is True
    assert env.slot.is_empty


def test_take_failure_keeps_slot(reminder_env, active_item):
    env = reminder_env
    env.backend.fail_on.add("mark_taken")

    assert asyncio.run(env.presenter.on_take()) is False

    assert env.slot.holds(active_item.id)
    assert env.notifier.toasts == [ERROR_TOAST]
    assert "reset" not in env.backend.calls


def test_reset_failure_after_taken_keeps_slot(reminder_env, active_item):
    env = reminder_env
    env.backend.fail_on.add("reset")

    assert asyncio.run(env.presenter.on_take()) is False

    assert stored_status(env, active_item) == "taken"
    assert env.slot.holds(active_item.id)
    assert env.notifier.toasts == [ERROR_TOAST]


def test_actions_are_noops_without_active_reminder(reminder_env):
    env = reminder_env

    for command in ReminderCommand:
        assert asyncio.run(env.presenter.execute(command)) is False

    assert env.backend.calls == []


def test_snooze_reprompts_same_item(reminder_env, active_item, nine_am):
    env = reminder_env

    async def scenario():
        assert await env.presenter.on_snooze() is True
        assert env.slot.is_empty
        assert env.presenter.pending_snoozes == 1
        await asyncio.sleep(0.05)

    asyncio.run(scenario())

    assert env.backend.calls[-2:] == ["mark_missed", "increment"]
    assert env.backend.missed_counts[active_item.id] == 1
    assert stored_status(env, active_item) == "missed"

    active = env.slot.active
    assert active.item_id == active_item.id
    assert active.state == ReminderState.PENDING_AGAIN
    assert active.item.status == "missed"
    assert env.presenter.pending_snoozes == 0
    assert len(env.backend.items) == 1, "snooze never creates a new schedule record"
    assert env.speech.said == [
        "I'll remind you again in 0 seconds",
        "Time to take Metformin, 500mg",
    ]


def test_snooze_message_uses_configured_delay(reminder_env, active_item):
    env = reminder_env
    env.presenter.snooze_delay = 30

    async def scenario():
        await env.presenter.on_snooze()
        env.presenter.close()

    asyncio.run(scenario())

    assert env.speech.said == ["I'll remind you again in 30 seconds"]


def test_reprompt_thirty_seconds_after_snooze(reminder_env, active_item, nine_am):
    env = reminder_env
    env.presenter.snooze_delay = 30

    async def scenario():
        await env.presenter.on_snooze()
        env.presenter.close()

    asyncio.run(scenario())
    assert env.slot.is_empty

    reminder = env.presenter.reprompt(active_item, now=nine_am + timedelta(seconds=40))

    assert reminder.state == ReminderState.PENDING_AGAIN
    assert reminder.adopted_at == nine_am + timedelta(seconds=40)
    assert env.player.played[-1] == "alarm-sound.mp3"

    # the detector leaves the re-prompted (missed) item alone
    asyncio.run(env.detector.tick(nine_am + timedelta(minutes=1, seconds=10)))
    assert env.slot.active is reminder


def test_snooze_then_take_after_reprompt(reminder_env, active_item):
    env = reminder_env

    async def scenario():
        await env.presenter.on_snooze()
        await asyncio.sleep(0.05)
        return await env.presenter.on_take()

    assert asyncio.run(scenario()) is True
    assert stored_status(env, active_item) == "taken"
    assert env.backend.missed_counts[active_item.id] == 0
    assert env.presenter.snooze_counts == {}


def test_snooze_cancels_outstanding_reprompt(reminder_env, active_item):
    env = reminder_env
    env.presenter.snooze_delay = 10

    async def scenario():
        await env.presenter.on_snooze()
        first = env.presenter._snooze_tasks[active_item.id]
        env.presenter.reprompt(active_item)
        await env.presenter.on_snooze()
        await asyncio.sleep(0)
        second = env.presenter._snooze_tasks[active_item.id]
        pending = env.presenter.pending_snoozes
        env.presenter.close()
        return first, second, pending

    first, second, pending = asyncio.run(scenario())

    assert first.cancelled()
    assert first is not second
    assert pending == 1
    assert env.backend.missed_counts[active_item.id] == 2


def test_snooze_reprompts_are_bounded(reminder_env, active_item):
    env = reminder_env
    env.presenter.max_snooze_reprompts = 1

    async def scenario():
        await env.presenter.on_snooze()
        await asyncio.sleep(0.05)
        assert env.slot.holds(active_item.id)
        await env.presenter.on_snooze()
        await asyncio.sleep(0.05)

    asyncio.run(scenario())

    assert env.slot.is_empty
    assert env.presenter.pending_snoozes == 0
    assert env.backend.missed_counts[active_item.id] == 2
    assert env.notifier.toasts[-1] == ("Metformin reminder dismissed", "success")


def test_snooze_failure_keeps_slot(reminder_env, active_item):
    env = reminder_env
    env.backend.fail_on.add("increment")

    assert asyncio.run(env.presenter.on_snooze()) is False

    assert env.slot.holds(active_item.id)
    assert env.notifier.toasts == [ERROR_TOAST]
    assert env.presenter.pending_snoozes == 0


def test_dismiss_sends_instant_sms_once(reminder_env, active_item):
    env = reminder_env

    assert asyncio.run(env.presenter.on_dismiss()) is True

    assert env.backend.calls[-3:] == ["mark_missed", "increment", "request_instant_sms"]
    assert env.backend.sms_requests == [("user-1", "Metformin", "500mg")]
    assert env.backend.missed_counts[active_item.id] == 1
    assert env.speech.said == ["Metformin reminder dismissed"]
    assert env.slot.is_empty


def test_dismiss_succeeds_when_escalation_fails(reminder_env, active_item):
    env = reminder_env
    env.backend.fail_on.add("request_instant_sms")

    assert asyncio.run(env.presenter.on_dismiss()) is True

    assert env.slot.is_empty
    assert ERROR_TOAST not in env.notifier.toasts
    assert env.notifier.toasts == [("Metformin reminder dismissed", "success")]


def test_dismiss_failure_skips_escalation(reminder_env, active_item):
    env = reminder_env
    env.backend.fail_on.add("mark_missed")

    assert asyncio.run(env.presenter.on_dismiss()) is False

    assert env.backend.sms_requests == []
    assert env.slot.holds(active_item.id)


def test_action_only_clears_the_item_it_acted_on(reminder_env, active_item, make_item, nine_am):
    env = reminder_env
    other = make_item(nine_am + timedelta(minutes=1), medicine_name="Aspirin")
    env.backend.items.append(other)

    async def slow_mark_taken(schedule_id):
        env.slot.adopt(other, ReminderState.PRE_WINDOW, nine_am)
        return env.backend._set_status(schedule_id, "taken")

    env.backend.mark_taken = slow_mark_taken

    assert asyncio.run(env.presenter.on_take()) is True
    assert env.slot.holds(other.id)


def test_execute_dispatches_commands(reminder_env, active_item):
    env = reminder_env

    assert asyncio.run(env.presenter.execute(ReminderCommand.TAKE)) is True
    assert env.presenter.active_reminder is None


def test_execute_accepts_command_values(reminder_env, active_item):
    assert asyncio.run(reminder_env.presenter.execute("dismiss")) is True


def test_take_with_non_json_reply_shows_error_and_keeps_slot(reminder_env, active_item):
    env = reminder_env

    def handler(request):
        return httpx.Response(200, text="<html>proxy error</html>")

    store = ReminderBackendClient(
        "user-1",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://reminders.test")
    )
    presenter = ReminderPresenter(
        "user-1", store, env.slot, env.voice, env.notifications, env.alarm, snooze_delay=0.01
    )

    async def scenario():
        try:
            return await presenter.on_take()
        finally:
            await store.aclose()

    assert asyncio.run(scenario()) is False
    assert env.slot.holds(active_item.id)
    assert env.notifier.toasts == [ERROR_TOAST]


def test_dismiss_clears_slot_when_escalation_raises_unexpectedly(reminder_env, active_item):
    env = reminder_env

    async def garbled_sms(user_id, medicine_name, dosage):
        raise ValueError("Expecting value: line 1 column 1")

    env.backend.request_instant_sms = garbled_sms

    assert asyncio.run(env.presenter.on_dismiss()) is True
    assert env.slot.is_empty
    assert env.backend.missed_counts[active_item.id] == 1
