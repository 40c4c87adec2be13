"""Tests for scheduler wiring."""
import asyncio
import pytest
from datetime import timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from database.models import DispatchStatus, NotificationMethod
from database.repositories import DispatchRepository
from reminders.config import Settings
from services import reminder_tasks
from services.reminder_tasks import (
    ReminderEngine,
    SchedulerTrigger,
    build_engine,
    inject_engine,
    run_dispatch,
    start_reminder_scheduler,
    stop_reminder_scheduler,
)


@pytest.fixture
def engine_settings():
    return Settings(_env_file=None, reminder_batch_size=7, reminder_retry_lookback_hours=12)


def test_scheduler_trigger_adds_one_job_per_dispatch(clock):
    """Test that re-enqueueing a dispatch replaces its job."""
    scheduler = AsyncIOScheduler(timezone="UTC")
    trigger = SchedulerTrigger(scheduler)

    trigger.enqueue(5, clock() + timedelta(minutes=10))
    trigger.enqueue(5, clock() + timedelta(minutes=20))
    trigger.enqueue(6, clock())

    jobs = {job.id: job for job in scheduler.get_jobs()}
    assert set(jobs) == {"dispatch:5", "dispatch:6"}
    assert jobs["dispatch:5"].args == (5,)
    assert jobs["dispatch:5"].func is run_dispatch


def test_build_engine_wires_settings(session_factory, channel, engine_settings):
    """Test that components receive explicit values from settings."""
    engine = build_engine(session_factory, channel, engine_settings)

    assert isinstance(engine, ReminderEngine)
    assert engine.dispatcher.coordinator is engine.coordinator
    assert engine.due_scanner.batch_size == 7
    assert engine.retry_scanner.lookback_hours == 12
    assert engine.coordinator.policy.max_attempts == engine_settings.reminder_max_attempts


@pytest.mark.asyncio
async def test_run_dispatch_uses_injected_engine(db_session, session_factory, sample_appointment, channel, engine_settings):
    """Test the delayed trigger target end to end."""
    dispatch = await DispatchRepository(db_session).create(
        sample_appointment.id, sample_appointment.start_time - timedelta(days=2), NotificationMethod.EMAIL
    )
    await db_session.commit()

    inject_engine(build_engine(session_factory, channel, engine_settings))
    try:
        await run_dispatch(dispatch.id)
    finally:
        inject_engine(None)

    sent = await DispatchRepository(db_session).get_by_id(dispatch.id, refresh=True)
    assert sent.status == DispatchStatus.SENT.value


@pytest.mark.asyncio
async def test_tasks_are_noops_without_engine():
    """Test that scheduled tasks do nothing before startup."""
    inject_engine(None)
    await run_dispatch(1)
    await reminder_tasks.scan_due_reminders()
    await reminder_tasks.scan_failed_reminders()


@pytest.mark.asyncio
async def test_start_registers_periodic_scans():
    """Test the periodic jobs and their intervals."""
    start_reminder_scheduler(scan_interval_minutes=2, retry_interval_minutes=30)
    try:
        jobs = {job.id: job for job in reminder_tasks.reminder_scheduler.get_jobs()}
        assert {"due_scan", "retry_scan"} <= set(jobs)
        assert jobs["due_scan"].trigger.interval == timedelta(minutes=2)
        assert jobs["retry_scan"].trigger.interval == timedelta(minutes=30)
        assert jobs["retry_scan"].max_instances == 1
    finally:
        stop_reminder_scheduler()
    await asyncio.sleep(0)
    assert not reminder_tasks.reminder_scheduler.running
