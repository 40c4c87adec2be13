import sys
import os
import asyncio
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

# Ensure project root is on sys.path so `import reminders` works
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from database.base import Base
from database.models import Client, Appointment, ReminderRule, NotificationMethod, AppointmentStatus
from core.exceptions import DeliveryError
from services.retry import RetryPolicy


START = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Controllable clock; call it to get the current time."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> datetime:
        self.now = now
        return self.now


class FakeChannel:
    """Records deliveries; can fail the next N calls or hang."""

    def __init__(self):
        self.sent: List[tuple] = []
        self.fail_times = 0
        self.error: Exception = DeliveryError("SMTP connection refused")
        self.delay: Optional[float] = None
        self.calls = 0

    async def send(self, recipient, appointment, method):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise self.error
        self.sent.append((recipient.id, appointment.id, method))


class RecordingTrigger:
    """Delayed trigger that only remembers what was enqueued."""

    def __init__(self):
        self.enqueued: List[tuple] = []

    def enqueue(self, dispatch_id, run_at):
        self.enqueued.append((dispatch_id, run_at))


@pytest_asyncio.fixture(scope="function")
async def async_engine(tmp_path):
    """Create a throwaway SQLite database for each test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'reminders_test.db'}",
        echo=False,
        poolclass=NullPool,  # Disable pooling for tests
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def trigger() -> RecordingTrigger:
    return RecordingTrigger()


@pytest.fixture
def policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay_minutes=5, max_delay_minutes=60)


@pytest_asyncio.fixture
async def sample_client(db_session: AsyncSession) -> Client:
    """Create sample client for tests."""
    client = Client(
        owner_id=1,
        name="Jane Doe",
        email="jane@example.com",
        phone="+15550100",
        preferred_notification_method=NotificationMethod.EMAIL.value,
    )
    db_session.add(client)
    await db_session.commit()
    await db_session.refresh(client)
    return client


@pytest_asyncio.fixture
async def sample_appointment(db_session: AsyncSession, sample_client: Client) -> Appointment:
    """Appointment tomorrow at 10:00 UTC."""
    start = START.replace(hour=10) + timedelta(days=1)
    appointment = Appointment(
        owner_id=sample_client.owner_id,
        client_id=sample_client.id,
        title="Dental checkup",
        location="Main St 1",
        start_time=start,
        end_time=start + timedelta(hours=1),
        timezone="UTC",
        status=AppointmentStatus.SCHEDULED.value,
    )
    db_session.add(appointment)
    await db_session.commit()
    await db_session.refresh(appointment)
    return appointment


@pytest_asyncio.fixture
async def sample_rule(db_session: AsyncSession, sample_appointment: Appointment) -> ReminderRule:
    """Email reminder one hour before the appointment."""
    rule = ReminderRule(
        appointment_id=sample_appointment.id,
        minutes_before=60,
        notification_method=NotificationMethod.EMAIL.value,
        is_enabled=True,
    )
    db_session.add(rule)
    await db_session.commit()
    await db_session.refresh(rule)
    return rule
