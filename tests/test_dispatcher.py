"""Tests for single delivery attempts."""
import asyncio
import pytest
from datetime import timedelta

from core.exceptions import RecipientMissingError
from database.models import AppointmentStatus, DispatchStatus, NotificationMethod
from database.repositories import AppointmentRepository, DispatchRepository
from services.dispatcher import AttemptOutcome, Dispatcher
from services.retry import RetryCoordinator


@pytest.fixture
def coordinator(session_factory, policy, clock):
    return RetryCoordinator(session_factory, policy, clock=clock)


@pytest.fixture
def dispatcher(session_factory, channel, coordinator, clock):
    return Dispatcher(
        session_factory,
        channel,
        coordinator,
        delivery_timeout_seconds=0.2,
        claim_grace_seconds=60,
        clock=clock,
    )


async def make_due(session, appointment, clock, method=NotificationMethod.EMAIL):
    dispatch = await DispatchRepository(session).create(appointment.id, clock(), method)
    await session.commit()
    return dispatch.id


async def reload(session, dispatch_id):
    return await DispatchRepository(session).get_by_id(dispatch_id, refresh=True)


@pytest.mark.asyncio
async def test_successful_delivery(db_session, sample_appointment, sample_client, dispatcher, channel, clock):
    """Test that a delivered reminder is marked sent."""
    dispatch_id = await make_due(db_session, sample_appointment, clock)

    assert await dispatcher.attempt(dispatch_id) == AttemptOutcome.SENT

    dispatch = await reload(db_session, dispatch_id)
    assert dispatch.status == DispatchStatus.SENT.value
    assert dispatch.sent_at == clock()
    assert dispatch.claim_token is None
    assert channel.sent == [(sample_client.id, sample_appointment.id, NotificationMethod.EMAIL)]


@pytest.mark.asyncio
async def test_failure_is_recorded_and_rearmed(db_session, sample_appointment, dispatcher, channel, clock):
    """Test that a channel error fails the attempt and schedules a retry."""
    dispatch_id = await make_due(db_session, sample_appointment, clock)
    channel.fail_times = 1

    assert await dispatcher.attempt(dispatch_id) == AttemptOutcome.FAILED

    dispatch = await reload(db_session, dispatch_id)
    assert dispatch.status == DispatchStatus.PENDING.value
    assert dispatch.retry_count == 1
    assert dispatch.scheduled_at == clock() + timedelta(minutes=10)


@pytest.mark.asyncio
async def test_failure_without_coordinator_stays_failed(session_factory, db_session, sample_appointment, channel, clock):
    """Test that the error message is kept when nobody re-arms."""
    dispatcher = Dispatcher(session_factory, channel, clock=clock)
    dispatch_id = await make_due(db_session, sample_appointment, clock)
    channel.fail_times = 1

    assert await dispatcher.attempt(dispatch_id) == AttemptOutcome.FAILED

    dispatch = await reload(db_session, dispatch_id)
    assert dispatch.status == DispatchStatus.FAILED.value
    assert dispatch.error_message == "SMTP connection refused"


@pytest.mark.asyncio
async def test_timeout_counts_as_failure(session_factory, db_session, sample_appointment, channel, clock):
    """Test that a hanging channel is cut off by the delivery timeout."""
    dispatcher = Dispatcher(session_factory, channel, delivery_timeout_seconds=0.05, clock=clock)
    dispatch_id = await make_due(db_session, sample_appointment, clock)
    channel.delay = 1

    assert await dispatcher.attempt(dispatch_id) == AttemptOutcome.FAILED

    dispatch = await reload(db_session, dispatch_id)
    assert dispatch.status == DispatchStatus.FAILED.value
    assert "timed out" in dispatch.error_message


@pytest.mark.asyncio
async def test_cancelled_appointment_cancels_dispatch(db_session, sample_appointment, dispatcher, channel, clock):
    """Test that nothing is sent for an appointment that is no longer scheduled."""
    dispatch_id = await make_due(db_session, sample_appointment, clock)
    await AppointmentRepository(db_session).update_status(sample_appointment, AppointmentStatus.CANCELLED)
    await db_session.commit()

    assert await dispatcher.attempt(dispatch_id) == AttemptOutcome.CANCELLED

    assert (await reload(db_session, dispatch_id)).status == DispatchStatus.CANCELLED.value
    assert channel.calls == 0


@pytest.mark.asyncio
async def test_missing_address_is_permanent(db_session, sample_appointment, dispatcher, channel, clock):
    """Test that a client without the needed address is not retried."""
    dispatch_id = await make_due(db_session, sample_appointment, clock, NotificationMethod.SMS)
    channel.fail_times = 1
    channel.error = RecipientMissingError("Client has no phone number")

    assert await dispatcher.attempt(dispatch_id) == AttemptOutcome.CANCELLED

    dispatch = await reload(db_session, dispatch_id)
    assert dispatch.status == DispatchStatus.CANCELLED.value
    assert dispatch.retry_count == 0


@pytest.mark.asyncio
async def test_already_claimed_is_skipped(db_session, sample_appointment, dispatcher, channel, clock):
    """Test that a dispatch leased by another worker is left alone."""
    dispatch_id = await make_due(db_session, sample_appointment, clock)
    await DispatchRepository(db_session).claim(dispatch_id, "other", clock(), clock() + timedelta(minutes=5))
    await db_session.commit()

    assert await dispatcher.attempt(dispatch_id) == AttemptOutcome.SKIPPED
    assert channel.calls == 0


@pytest.mark.asyncio
async def test_unknown_dispatch_is_skipped(dispatcher):
    """Test that a vanished dispatch is a no-op."""
    assert await dispatcher.attempt(424242) == AttemptOutcome.SKIPPED


@pytest.mark.asyncio
async def test_concurrent_attempts_send_once(db_session, sample_appointment, dispatcher, channel, clock):
    """Test that racing attempts deliver exactly once."""
    dispatch_id = await make_due(db_session, sample_appointment, clock)
    channel.delay = 0.05

    outcomes = await asyncio.gather(*(dispatcher.attempt(dispatch_id) for _ in range(3)))

    assert sorted(o.value for o in outcomes) == ["sent", "skipped", "skipped"]
    assert len(channel.sent) == 1


@pytest.mark.asyncio
async def test_lost_race_after_delivery(db_session, session_factory, sample_appointment, channel, clock):
    """Test that a dispatch cancelled mid-delivery is not overwritten as sent."""
    dispatch_id = await make_due(db_session, sample_appointment, clock)

    class CancellingChannel:
        async def send(self, recipient, appointment, method):
            async with session_factory() as session:
                await DispatchRepository(session).cancel_pending(appointment.id, clock())
                await session.commit()

    dispatcher = Dispatcher(session_factory, CancellingChannel(), clock=clock)

    assert await dispatcher.attempt(dispatch_id) == AttemptOutcome.SKIPPED
    assert (await reload(db_session, dispatch_id)).status == DispatchStatus.CANCELLED.value
