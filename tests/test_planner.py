"""Tests for reminder planning."""
import pytest
from datetime import timedelta

from core.exceptions import AppointmentNotActiveError, ValidationError
from database.models import AppointmentStatus, DispatchStatus, NotificationMethod, ReminderRule
from database.repositories import AppointmentRepository, DispatchRepository, ReminderRuleRepository
from services.planner import ReminderPlanner


@pytest.mark.asyncio
async def test_plan_creates_one_dispatch_per_enabled_rule(db_session, sample_appointment, sample_rule, clock, trigger):
    """Test that each enabled rule yields one pending dispatch at start - offset."""
    rules = ReminderRuleRepository(db_session)
    await rules.create(sample_appointment.id, 24 * 60, NotificationMethod.SMS)
    await rules.create(sample_appointment.id, 15, NotificationMethod.EMAIL, is_enabled=False)

    planner = ReminderPlanner(trigger=trigger, clock=clock)
    created = await planner.plan(db_session, sample_appointment)
    await db_session.commit()

    assert len(created) == 2
    by_rule = {d.reminder_rule_id: d for d in created}
    assert by_rule[sample_rule.id].scheduled_at == sample_appointment.start_time - timedelta(minutes=60)
    assert all(d.status == DispatchStatus.PENDING.value for d in created)
    assert sorted(trigger.enqueued) == sorted((d.id, d.scheduled_at) for d in created)


@pytest.mark.asyncio
async def test_replanning_is_idempotent(db_session, sample_appointment, sample_rule, clock):
    """Test that planning twice leaves a single pending dispatch per rule."""
    planner = ReminderPlanner(clock=clock)
    first = await planner.plan(db_session, sample_appointment)
    await db_session.commit()
    second = await planner.plan(db_session, sample_appointment)
    await db_session.commit()

    pending = await DispatchRepository(db_session).get_by_appointment(
        sample_appointment.id, DispatchStatus.PENDING
    )
    assert [d.id for d in pending] == [second[0].id]

    old = await DispatchRepository(db_session).get_by_id(first[0].id, refresh=True)
    assert old.status == DispatchStatus.CANCELLED.value


@pytest.mark.asyncio
async def test_past_reminder_time_is_still_planned(db_session, sample_appointment, clock):
    """Test that an offset already in the past is due immediately."""
    rule = await ReminderRuleRepository(db_session).create(sample_appointment.id, 3 * 24 * 60)
    planner = ReminderPlanner(clock=clock)

    created = await planner.plan(db_session, sample_appointment, [rule])
    await db_session.commit()

    assert created[0].scheduled_at < clock()
    due = await DispatchRepository(db_session).get_due(clock())
    assert [d.id for d in due] == [created[0].id]


@pytest.mark.asyncio
async def test_plan_skips_inactive_appointment(db_session, sample_appointment, sample_rule, clock, trigger):
    """Test that cancelled appointments get no reminders."""
    await AppointmentRepository(db_session).update_status(sample_appointment, AppointmentStatus.CANCELLED)
    planner = ReminderPlanner(trigger=trigger, clock=clock)

    assert await planner.plan(db_session, sample_appointment) == []
    await db_session.commit()
    assert trigger.enqueued == []


@pytest.mark.asyncio
async def test_plan_rejects_foreign_rule(db_session, sample_appointment, clock):
    """Test that a rule of another appointment is refused."""
    stranger = ReminderRule(id=999, appointment_id=sample_appointment.id + 1, minutes_before=10)
    with pytest.raises(ValidationError):
        await ReminderPlanner(clock=clock).plan(db_session, sample_appointment, [stranger])


@pytest.mark.asyncio
async def test_trigger_not_fired_on_rollback(db_session, sample_appointment, sample_rule, clock, trigger):
    """Test that nothing is enqueued when the caller rolls back."""
    await ReminderPlanner(trigger=trigger, clock=clock).plan(db_session, sample_appointment)
    await db_session.rollback()
    assert trigger.enqueued == []


@pytest.mark.asyncio
async def test_plan_immediate_uses_client_preference(db_session, sample_appointment, sample_client, clock, trigger):
    """Test a "send now" dispatch defaults to the client's channel."""
    sample_client.preferred_notification_method = NotificationMethod.SMS.value
    await db_session.commit()

    dispatch = await ReminderPlanner(trigger=trigger, clock=clock).plan_immediate(db_session, sample_appointment)
    await db_session.commit()

    assert dispatch.scheduled_at == clock()
    assert dispatch.reminder_rule_id is None
    assert dispatch.notification_method == NotificationMethod.SMS.value
    assert trigger.enqueued == [(dispatch.id, clock())]


@pytest.mark.asyncio
async def test_plan_immediate_rejects_inactive_appointment(db_session, sample_appointment, clock):
    """Test that a completed appointment cannot be reminded about."""
    await AppointmentRepository(db_session).update_status(sample_appointment, AppointmentStatus.COMPLETED)
    with pytest.raises(AppointmentNotActiveError):
        await ReminderPlanner(clock=clock).plan_immediate(db_session, sample_appointment, NotificationMethod.EMAIL)


@pytest.mark.asyncio
async def test_cancel_pending_keeps_history(db_session, sample_appointment, sample_rule, clock):
    """Test that cancelling an appointment's reminders leaves sent ones alone."""
    planner = ReminderPlanner(clock=clock)
    [planned] = await planner.plan(db_session, sample_appointment)
    sent = await planner.plan_immediate(db_session, sample_appointment, NotificationMethod.EMAIL)
    repo = DispatchRepository(db_session)
    await repo.claim(sent.id, "t", clock(), clock() + timedelta(minutes=1))
    await repo.mark_sent(sent.id, "t", clock())
    await db_session.commit()

    assert await planner.cancel_pending(db_session, sample_appointment) == 1
    await db_session.commit()

    statuses = {d.id: d.status for d in await repo.get_by_appointment(sample_appointment.id)}
    assert statuses == {
        planned.id: DispatchStatus.CANCELLED.value,
        sent.id: DispatchStatus.SENT.value,
    }
