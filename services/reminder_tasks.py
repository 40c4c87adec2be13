"""
Background tasks for dispatching reminders and retrying failures.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import async_sessionmaker

from services.channels import NotificationChannel
from services.dispatcher import Dispatcher
from services.planner import ReminderPlanner
from services.retry import RetryCoordinator, RetryPolicy
from services.scanners import DueScanner, RetryScanner
from services.triggers import DelayedTrigger

logger = logging.getLogger(__name__)

# Global scheduler instance
reminder_scheduler = AsyncIOScheduler(timezone="UTC")


@dataclass
class ReminderEngine:
    """Wired reminder components sharing one session factory and trigger."""
    planner: ReminderPlanner
    coordinator: RetryCoordinator
    dispatcher: Dispatcher
    due_scanner: DueScanner
    retry_scanner: RetryScanner


class SchedulerTrigger:
    """Delayed trigger backed by one-shot APScheduler ``date`` jobs."""

    def __init__(self, scheduler: AsyncIOScheduler):
        self.scheduler = scheduler

    def enqueue(self, dispatch_id: int, run_at: datetime) -> None:
        self.scheduler.add_job(
            run_dispatch,
            'date',
            run_date=run_at,
            args=[dispatch_id],
            id=f"dispatch:{dispatch_id}",
            replace_existing=True,
            misfire_grace_time=None,
        )


def build_engine(
    session_factory: async_sessionmaker,
    channel: NotificationChannel,
    settings,
    trigger: Optional[DelayedTrigger] = None,
) -> ReminderEngine:
    """Create planner, coordinator, dispatcher and scanners from settings."""
    coordinator = RetryCoordinator(
        session_factory,
        RetryPolicy.from_settings(settings),
        trigger=trigger,
        detailed_logging=settings.reminder_detailed_logging,
    )
    dispatcher = Dispatcher(
        session_factory,
        channel,
        coordinator,
        delivery_timeout_seconds=settings.reminder_delivery_timeout_seconds,
        claim_grace_seconds=settings.reminder_claim_grace_seconds,
    )
    return ReminderEngine(
        planner=ReminderPlanner(trigger=trigger),
        coordinator=coordinator,
        dispatcher=dispatcher,
        due_scanner=DueScanner(session_factory, dispatcher, batch_size=settings.reminder_batch_size),
        retry_scanner=RetryScanner(
            session_factory,
            coordinator,
            lookback_hours=settings.reminder_retry_lookback_hours,
            batch_size=settings.reminder_batch_size,
        ),
    )


# Will be injected during startup
engine: Optional[ReminderEngine] = None


def inject_engine(engine_instance: Optional[ReminderEngine]):
    """Inject wired reminder components for background tasks."""
    global engine
    engine = engine_instance


async def run_dispatch(dispatch_id: int):
    """Delayed trigger target: attempt one dispatch."""
    if engine is None:
        logger.warning(f"Reminder engine not ready, dispatch {dispatch_id} left to the scan")
        return
    try:
        await engine.dispatcher.attempt(dispatch_id)
    except Exception as e:
        logger.error(f"Error dispatching reminder {dispatch_id}: {e}", exc_info=True)


async def scan_due_reminders():
    """Background task to send due reminders."""
    if engine is None:
        return
    try:
        await engine.due_scanner.scan()
    except Exception as e:
        logger.error(f"Error sending reminders: {e}", exc_info=True)


async def scan_failed_reminders():
    """Background task to re-arm recently failed reminders."""
    if engine is None:
        return
    try:
        await engine.retry_scanner.scan()
    except Exception as e:
        logger.error(f"Error retrying failed reminders: {e}", exc_info=True)


def start_reminder_scheduler(scan_interval_minutes: int = 1, retry_interval_minutes: int = 60):
    """Register the periodic scans and start the scheduler."""
    reminder_scheduler.add_job(
        scan_due_reminders,
        'interval',
        minutes=scan_interval_minutes,
        id='due_scan',
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    reminder_scheduler.add_job(
        scan_failed_reminders,
        'interval',
        minutes=retry_interval_minutes,
        id='retry_scan',
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    reminder_scheduler.start()
    logger.info("Reminder scheduler started")


def stop_reminder_scheduler():
    """Stop the reminder scheduler."""
    if reminder_scheduler.running:
        reminder_scheduler.shutdown()
        logger.info("Reminder scheduler stopped")
