"""Escalation worker: one sweep per iteration, errors logged not raised."""

import asyncio
from datetime import datetime, timedelta, timezone

import background_worker
import crud
import sms_gateway


def seed_breach(db):
    user = crud.create_user(db, {'name': 'Asha', 'sms_notifications_enabled': True})
    crud.add_contact(db, {'user_id': user.id, 'name': 'Ravi', 'phone': '+919800000001'})
    crud.add_contact(db, {'user_id': user.id, 'name': 'Meera', 'phone': '+919800000002'})

    now = datetime.now(timezone.utc)
    medicine = crud.create_medicine(db, {
        'user_id': user.id, 'name': 'Metformin', 'dosage': '500mg', 'times': ['09:00'],
    })
    item = crud.ScheduleItem(
        id='sched-breach',
        user_id=user.id,
        medicine_id=medicine.id,
        medicine_name='Metformin',
        dosage='500mg',
        scheduled_time=now - timedelta(minutes=1),
        status=crud.ScheduleStatusEnum.MISSED,
        created_at=now
    )
    db.add(item)
    db.commit()
    for _ in range(3):
        crud.increment_missed_reminder(db, item.id, medicine.id, user.id)
    return user


def test_sweep_iteration_sends_alerts(db, gateway, monkeypatch):
    monkeypatch.setattr(sms_gateway, "get_sms_gateway", lambda: gateway)
    user = seed_breach(db)

    result = asyncio.run(background_worker.process_escalation_sweep())

    assert result.breaches == 1
    assert result.sent == 2
    assert len(crud.get_sms_logs(db, user.id)) == 2


def test_sweep_iteration_with_nothing_to_do(db, gateway, monkeypatch):
    monkeypatch.setattr(sms_gateway, "get_sms_gateway", lambda: gateway)

    result = asyncio.run(background_worker.process_escalation_sweep())

    assert result.breaches == 0
    assert gateway.sent == []


def test_sweep_iteration_logs_errors(session_factory, monkeypatch):
    def broken_gateway():
        raise RuntimeError("gateway misconfigured")

    monkeypatch.setattr(sms_gateway, "get_sms_gateway", broken_gateway)

    assert asyncio.run(background_worker.process_escalation_sweep()) is None


def test_disabled_worker_exits(monkeypatch):
    monkeypatch.setattr(background_worker.settings, "WORKER_ENABLED", False)
    calls = []

    async def fake_sweep():
        calls.append(1)

    monkeypatch.setattr(background_worker, "process_escalation_sweep", fake_sweep)

    asyncio.run(background_worker.worker_loop())

    assert calls == []


def test_worker_loop_stops_on_shutdown(monkeypatch):
    monkeypatch.setattr(background_worker, "shutdown_requested", False)
    calls = []

    async def fake_sweep():
        calls.append(1)
        background_worker.signal_handler(15, None)

    monkeypatch.setattr(background_worker, "process_escalation_sweep", fake_sweep)

    asyncio.run(background_worker.worker_loop())

    assert calls == [1]
