"""
Retry coordination for failed reminder dispatches.

A failed dispatch is either re-armed (back to pending at ``now + delay``,
where the due scan picks it up like any fresh reminder) or abandoned and
left failed. There is no separate retry queue.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.exceptions import DispatchNotFoundError, NotEligibleForRetryError
from database.models import ReminderDispatch, DispatchStatus
from database.repositories import DispatchRepository
from reminders.utils.time_utils import utc_now
from services.triggers import DelayedTrigger, enqueue_after_commit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry cap and backoff parameters."""

    max_attempts: int = 3
    base_delay_minutes: int = 5
    max_delay_minutes: int = 60
    use_exponential_backoff: bool = True

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.reminder_max_attempts,
            base_delay_minutes=settings.reminder_retry_delay_minutes,
            max_delay_minutes=settings.reminder_max_retry_delay_minutes,
            use_exponential_backoff=settings.reminder_use_exponential_backoff,
        )

    def compute_delay(self, retry_count: int) -> int:
        """
        Delay in minutes before the next attempt.

        Args:
            retry_count: Failed attempts so far

        Returns:
            ``base * 2**retry_count`` (or just ``base`` for the fixed policy),
            capped at ``max_delay_minutes``
        """
        if not self.use_exponential_backoff:
            return min(self.base_delay_minutes, self.max_delay_minutes)
        return min(self.base_delay_minutes * (2 ** retry_count), self.max_delay_minutes)


@dataclass(frozen=True)
class Scheduled:
    """Dispatch re-armed for another attempt."""
    delay_minutes: int
    run_at: datetime


@dataclass(frozen=True)
class Abandoned:
    """Dispatch left as it is."""
    reason: str


Decision = Union[Scheduled, Abandoned]

# Abandon reasons
MAX_ATTEMPTS_REACHED = "max_attempts_reached"
APPOINTMENT_INACTIVE = "appointment_inactive"
SUPERSEDED = "superseded"
NOT_FAILED = "not_failed"
NOT_FOUND = "not_found"


class RetryCoordinator:
    """Decides whether a failed dispatch gets another attempt and when."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        policy: RetryPolicy,
        trigger: Optional[DelayedTrigger] = None,
        clock: Callable[[], datetime] = utc_now,
        detailed_logging: bool = True,
    ):
        self.session_factory = session_factory
        self.policy = policy
        self.trigger = trigger
        self.clock = clock
        self.detailed_logging = detailed_logging

    def _abort_reason(self, dispatch: ReminderDispatch, force: bool) -> Optional[str]:
        if not force and dispatch.retry_count >= self.policy.max_attempts:
            return MAX_ATTEMPTS_REACHED
        appointment = dispatch.appointment
        if appointment is None or not appointment.is_active:
            return APPOINTMENT_INACTIVE
        return None

    def _log_abandoned(self, dispatch_id: int, reason: str, appointment_id: Optional[int] = None):
        if not self.detailed_logging:
            return
        extra = {"dispatch_id": dispatch_id, "appointment_id": appointment_id}
        if reason == MAX_ATTEMPTS_REACHED:
            logger.warning(
                f"Maximum retry attempts reached for reminder {dispatch_id} "
                f"(max_attempts={self.policy.max_attempts})",
                extra=extra,
            )
        else:
            logger.info(f"Not retrying reminder {dispatch_id}: {reason}", extra=extra)

    async def on_failure(self, dispatch_id: int, force: bool = False) -> Decision:
        """
        Route a failed dispatch through the abort checks and the backoff.

        Args:
            dispatch_id: Dispatch that just failed (or was found failed by a scan)
            force: Ignore the attempt cap

        Returns:
            Scheduled(delay) if re-armed, Abandoned(reason) otherwise
        """
        async with self.session_factory() as session:
            repo = DispatchRepository(session)
            dispatch = await repo.get_by_id(dispatch_id, with_relations=True, refresh=True)
            if dispatch is None:
                return Abandoned(NOT_FOUND)
            if dispatch.status != DispatchStatus.FAILED.value:
                return Abandoned(NOT_FAILED)

            reason = self._abort_reason(dispatch, force)
            if reason is None and await repo.has_other_pending(
                dispatch.appointment_id, dispatch.reminder_rule_id, dispatch.id
            ):
                reason = SUPERSEDED
            if reason is not None:
                self._log_abandoned(dispatch.id, reason, dispatch.appointment_id)
                return Abandoned(reason)

            retry_count = dispatch.retry_count
            appointment_id = dispatch.appointment_id
            delay = self.policy.compute_delay(retry_count)
            now = self.clock()
            run_at = now + timedelta(minutes=delay)

            try:
                rearmed = await repo.rearm(dispatch_id, retry_count, run_at, now)
                if not rearmed:
                    await session.rollback()
                    return Abandoned(NOT_FAILED)
                enqueue_after_commit(session, self.trigger, [(dispatch_id, run_at)])
                await session.commit()
            except IntegrityError:
                # Replanned concurrently: a fresh pending dispatch owns the rule
                await session.rollback()
                self._log_abandoned(dispatch_id, SUPERSEDED, appointment_id)
                return Abandoned(SUPERSEDED)

        if self.detailed_logging:
            logger.info(
                f"Retrying failed reminder {dispatch_id} in {delay} min "
                f"(failed attempts: {retry_count})",
                extra={
                    "dispatch_id": dispatch_id,
                    "appointment_id": appointment_id,
                    "retry_count": retry_count,
                    "delay_minutes": delay,
                },
            )
        return Scheduled(delay, run_at)

    async def retry_now(self, session: AsyncSession, dispatch_id: int) -> ReminderDispatch:
        """
        Manual retry: reset the attempt budget and make the dispatch due now.

        Bypasses the cap and the backoff. Runs inside the caller's
        transaction; the trigger fires after it commits.

        Raises:
            DispatchNotFoundError: Unknown dispatch
            NotEligibleForRetryError: Dispatch is not failed, or a newer
                pending dispatch already covers its rule
        """
        repo = DispatchRepository(session)
        dispatch = await repo.get_by_id(dispatch_id, refresh=True)
        if dispatch is None:
            raise DispatchNotFoundError(dispatch_id)
        if dispatch.status != DispatchStatus.FAILED.value:
            raise NotEligibleForRetryError(dispatch_id, dispatch.status)
        if await repo.has_other_pending(dispatch.appointment_id, dispatch.reminder_rule_id, dispatch.id):
            raise NotEligibleForRetryError(
                dispatch_id,
                dispatch.status,
                "A newer reminder is already pending for this setting.",
            )

        now = self.clock()
        if not await repo.reset_for_manual_retry(dispatch_id, now):
            raise NotEligibleForRetryError(dispatch_id, dispatch.status)

        enqueue_after_commit(session, self.trigger, [(dispatch_id, now)])
        logger.info(f"Manual retry requested for reminder {dispatch_id}", extra={"dispatch_id": dispatch_id})
        return await repo.get_by_id(dispatch_id, refresh=True)
