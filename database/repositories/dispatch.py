"""Reminder dispatch repository for database operations.

Every state change goes through a single conditional UPDATE; the affected
row count tells the caller whether it won the transition. Objects already
loaded in the session are not synchronized, reload with ``refresh=True``.
"""
from typing import Optional, List, Tuple
from datetime import datetime

from sqlalchemy import select, update, and_, or_, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from database.models import ReminderDispatch, DispatchStatus, NotificationMethod, Appointment

ERROR_MESSAGE_LIMIT = 500


def _lease_free(now: datetime):
    return or_(
        ReminderDispatch.claimed_until.is_(None),
        ReminderDispatch.claimed_until < now,
    )


class DispatchRepository:
    """Repository for ReminderDispatch model operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(
        self,
        dispatch_id: int,
        with_relations: bool = False,
        refresh: bool = False
    ) -> Optional[ReminderDispatch]:
        """Get dispatch by ID."""
        query = select(ReminderDispatch).where(ReminderDispatch.id == dispatch_id)
        if with_relations:
            query = query.options(
                selectinload(ReminderDispatch.appointment).selectinload(Appointment.client)
            )
        if refresh:
            query = query.execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_by_appointment(
        self,
        appointment_id: int,
        status: Optional[DispatchStatus] = None
    ) -> List[ReminderDispatch]:
        """Get all dispatches for an appointment."""
        query = select(ReminderDispatch).where(ReminderDispatch.appointment_id == appointment_id)
        if status:
            query = query.where(ReminderDispatch.status == status.value)
        query = query.order_by(ReminderDispatch.scheduled_at, ReminderDispatch.id)
        query = query.execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def create(
        self,
        appointment_id: int,
        scheduled_at: datetime,
        notification_method: NotificationMethod,
        reminder_rule_id: Optional[int] = None
    ) -> ReminderDispatch:
        """Create new pending dispatch."""
        dispatch = ReminderDispatch(
            appointment_id=appointment_id,
            reminder_rule_id=reminder_rule_id,
            scheduled_at=scheduled_at,
            notification_method=notification_method.value,
            status=DispatchStatus.PENDING.value,
            retry_count=0,
        )
        self.session.add(dispatch)
        await self.session.flush()
        return dispatch

    async def get_due(
        self,
        now: datetime,
        limit: int = 50,
        after: Optional[Tuple[datetime, int]] = None
    ) -> List[ReminderDispatch]:
        """
        Get pending dispatches whose time has come, oldest first.

        Dispatches under a live delivery lease are left out. ``after`` is the
        (scheduled_at, id) of the last row of the previous batch.
        """
        query = select(ReminderDispatch).where(
            and_(
                ReminderDispatch.status == DispatchStatus.PENDING.value,
                ReminderDispatch.scheduled_at <= now,
                _lease_free(now),
            )
        )
        if after is not None:
            after_at, after_id = after
            query = query.where(
                or_(
                    ReminderDispatch.scheduled_at > after_at,
                    and_(ReminderDispatch.scheduled_at == after_at, ReminderDispatch.id > after_id),
                )
            )
        query = query.order_by(ReminderDispatch.scheduled_at, ReminderDispatch.id).limit(limit)
        query = query.execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_failed(
        self,
        since: datetime,
        limit: int = 50,
        after_id: int = 0,
        max_attempts: Optional[int] = None
    ) -> List[ReminderDispatch]:
        """Get failed dispatches updated since given time, chunked by ID."""
        query = select(ReminderDispatch).where(
            and_(
                ReminderDispatch.status == DispatchStatus.FAILED.value,
                ReminderDispatch.updated_at >= since,
                ReminderDispatch.id > after_id,
            )
        )
        if max_attempts is not None:
            query = query.where(ReminderDispatch.retry_count < max_attempts)
        query = query.order_by(ReminderDispatch.id).limit(limit)
        query = query.execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_exhausted(self, max_attempts: int, limit: int = 100) -> List[ReminderDispatch]:
        """Failed dispatches that ran out of automatic retries, newest first."""
        query = select(ReminderDispatch).where(
            and_(
                ReminderDispatch.status == DispatchStatus.FAILED.value,
                ReminderDispatch.retry_count >= max_attempts,
            )
        ).order_by(ReminderDispatch.updated_at.desc()).limit(limit)
        query = query.execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def has_other_pending(
        self,
        appointment_id: int,
        reminder_rule_id: Optional[int],
        exclude_id: int
    ) -> bool:
        """Check whether another pending dispatch already covers this rule."""
        if reminder_rule_id is None:
            return False
        result = await self.session.execute(
            select(func.count(ReminderDispatch.id)).where(
                ReminderDispatch.appointment_id == appointment_id,
                ReminderDispatch.reminder_rule_id == reminder_rule_id,
                ReminderDispatch.status == DispatchStatus.PENDING.value,
                ReminderDispatch.id != exclude_id,
            )
        )
        return (result.scalar() or 0) > 0

    # ============== Conditional transitions ==============

    async def _transition(self, dispatch_id: int, conditions: list, values: dict) -> bool:
        stmt = (
            update(ReminderDispatch)
            .where(ReminderDispatch.id == dispatch_id, *conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def claim(self, dispatch_id: int, token: str, now: datetime, lease_until: datetime) -> bool:
        """Take the delivery lease on a pending dispatch."""
        return await self._transition(
            dispatch_id,
            [
                ReminderDispatch.status == DispatchStatus.PENDING.value,
                _lease_free(now),
            ],
            {"claim_token": token, "claimed_until": lease_until, "updated_at": now},
        )

    async def mark_sent(self, dispatch_id: int, token: str, sent_at: datetime) -> bool:
        """pending -> sent, only for the lease holder."""
        return await self._transition(
            dispatch_id,
            [
                ReminderDispatch.status == DispatchStatus.PENDING.value,
                ReminderDispatch.claim_token == token,
            ],
            {
                "status": DispatchStatus.SENT.value,
                "sent_at": sent_at,
                "error_message": None,
                "claim_token": None,
                "claimed_until": None,
                "updated_at": sent_at,
            },
        )

    async def mark_failed(self, dispatch_id: int, token: str, error_message: str, now: datetime) -> bool:
        """pending -> failed, counting the failed attempt."""
        return await self._transition(
            dispatch_id,
            [
                ReminderDispatch.status == DispatchStatus.PENDING.value,
                ReminderDispatch.claim_token == token,
            ],
            {
                "status": DispatchStatus.FAILED.value,
                "error_message": error_message[:ERROR_MESSAGE_LIMIT],
                "retry_count": ReminderDispatch.retry_count + 1,
                "claim_token": None,
                "claimed_until": None,
                "updated_at": now,
            },
        )

    async def mark_cancelled(self, dispatch_id: int, token: str, now: datetime) -> bool:
        """pending -> cancelled, only for the lease holder."""
        return await self._transition(
            dispatch_id,
            [
                ReminderDispatch.status == DispatchStatus.PENDING.value,
                ReminderDispatch.claim_token == token,
            ],
            {
                "status": DispatchStatus.CANCELLED.value,
                "error_message": None,
                "claim_token": None,
                "claimed_until": None,
                "updated_at": now,
            },
        )

    async def rearm(
        self,
        dispatch_id: int,
        expected_retry_count: int,
        scheduled_at: datetime,
        now: datetime
    ) -> bool:
        """failed -> pending at a later time (automatic retry)."""
        return await self._transition(
            dispatch_id,
            [
                ReminderDispatch.status == DispatchStatus.FAILED.value,
                ReminderDispatch.retry_count == expected_retry_count,
            ],
            {
                "status": DispatchStatus.PENDING.value,
                "error_message": None,
                "scheduled_at": scheduled_at,
                "updated_at": now,
            },
        )

    async def reset_for_manual_retry(self, dispatch_id: int, now: datetime) -> bool:
        """failed -> pending right now with a fresh attempt budget."""
        return await self._transition(
            dispatch_id,
            [ReminderDispatch.status == DispatchStatus.FAILED.value],
            {
                "status": DispatchStatus.PENDING.value,
                "error_message": None,
                "retry_count": 0,
                "scheduled_at": now,
                "claim_token": None,
                "claimed_until": None,
                "updated_at": now,
            },
        )

    async def cancel_pending(
        self,
        appointment_id: int,
        now: datetime,
        reminder_rule_id: Optional[int] = None
    ) -> int:
        """Cancel pending dispatches of an appointment (optionally one rule). Returns count."""
        stmt = update(ReminderDispatch).where(
            ReminderDispatch.appointment_id == appointment_id,
            ReminderDispatch.status == DispatchStatus.PENDING.value,
        )
        if reminder_rule_id is not None:
            stmt = stmt.where(ReminderDispatch.reminder_rule_id == reminder_rule_id)
        stmt = stmt.values(
            status=DispatchStatus.CANCELLED.value,
            error_message=None,
            claim_token=None,
            claimed_until=None,
            updated_at=now,
        ).execution_options(synchronize_session=False)
        result = await self.session.execute(stmt)
        return result.rowcount or 0
