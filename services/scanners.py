"""Periodic scans: due reminders and recent failures."""
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from database.repositories import DispatchRepository
from reminders.utils.time_utils import utc_now
from services.dispatcher import AttemptOutcome, Dispatcher
from services.retry import RetryCoordinator, Scheduled

logger = logging.getLogger(__name__)


class DueScanner:
    """Finds pending dispatches whose time has come and attempts each one."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        dispatcher: Dispatcher,
        batch_size: int = 50,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.batch_size = batch_size
        self.clock = clock

    async def scan(self, now: Optional[datetime] = None, batch_size: Optional[int] = None) -> int:
        """
        Attempt every dispatch due at ``now``.

        One failing dispatch never stops the pass.

        Returns:
            Number of dispatches handed to the dispatcher
        """
        now = now or self.clock()
        batch_size = batch_size or self.batch_size
        handed_over = 0
        sent_count = 0
        after = None

        while True:
            async with self.session_factory() as session:
                batch = await DispatchRepository(session).get_due(now, limit=batch_size, after=after)
                keys = [(d.scheduled_at, d.id) for d in batch]
            if not keys:
                break

            for _, dispatch_id in keys:
                handed_over += 1
                try:
                    outcome = await self.dispatcher.attempt(dispatch_id)
                    if outcome == AttemptOutcome.SENT:
                        sent_count += 1
                except Exception as e:
                    logger.error(
                        f"Error processing reminder {dispatch_id}: {e}",
                        extra={"dispatch_id": dispatch_id},
                        exc_info=True,
                    )

            if len(keys) < batch_size:
                break
            after = keys[-1]

        if handed_over:
            logger.info(f"Due scan handled {handed_over} reminder(s), sent {sent_count}")
        return handed_over


class RetryScanner:
    """Routes recently failed dispatches through the retry coordinator."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        coordinator: RetryCoordinator,
        lookback_hours: int = 24,
        batch_size: int = 50,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session_factory = session_factory
        self.coordinator = coordinator
        self.lookback_hours = lookback_hours
        self.batch_size = batch_size
        self.clock = clock

    async def scan(
        self,
        lookback_hours: Optional[int] = None,
        batch_size: Optional[int] = None,
        force: bool = False,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Re-examine failures from the last ``lookback_hours``.

        Args:
            lookback_hours: Window over ``updated_at``
            batch_size: Rows per chunk
            force: Ignore the attempt cap

        Returns:
            Number of dispatches re-armed
        """
        now = now or self.clock()
        lookback_hours = lookback_hours if lookback_hours is not None else self.lookback_hours
        batch_size = batch_size or self.batch_size
        since = now - timedelta(hours=lookback_hours)
        max_attempts = None if force else self.coordinator.policy.max_attempts

        scheduled = 0
        after_id = 0
        while True:
            async with self.session_factory() as session:
                batch = await DispatchRepository(session).get_failed(
                    since, limit=batch_size, after_id=after_id, max_attempts=max_attempts
                )
                ids = [d.id for d in batch]
            if not ids:
                break

            for dispatch_id in ids:
                try:
                    decision = await self.coordinator.on_failure(dispatch_id, force=force)
                    if isinstance(decision, Scheduled):
                        scheduled += 1
                except Exception as e:
                    logger.error(
                        f"Error retrying reminder {dispatch_id}: {e}",
                        extra={"dispatch_id": dispatch_id},
                        exc_info=True,
                    )

            if len(ids) < batch_size:
                break
            after_id = ids[-1]

        logger.info(f"Retry scan scheduled {scheduled} failed reminder(s) (last {lookback_hours}h)")
        return scheduled
