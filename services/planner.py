"""Reminder planning: turn appointment reminder rules into dispatches."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import AppointmentNotActiveError, ValidationError
from database.models import Appointment, ReminderDispatch, ReminderRule, NotificationMethod
from database.repositories import ClientRepository, DispatchRepository, ReminderRuleRepository
from reminders.utils.time_utils import utc_now, to_utc_aware
from services.triggers import DelayedTrigger, enqueue_after_commit

logger = logging.getLogger(__name__)


class ReminderPlanner:
    """
    Creates pending dispatches for an appointment.

    All methods work inside the caller's transaction and only flush; the
    caller commits. Created dispatches are handed to the delayed trigger
    after that commit.
    """

    def __init__(
        self,
        trigger: Optional[DelayedTrigger] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.trigger = trigger
        self.clock = clock

    async def plan(
        self,
        session: AsyncSession,
        appointment: Appointment,
        rules: Optional[Sequence[ReminderRule]] = None
    ) -> List[ReminderDispatch]:
        """
        Plan one dispatch per enabled rule.

        Any pending dispatch already planned for the same rule is cancelled
        first, so replanning never leaves duplicates. Times already in the
        past are kept: the dispatch is simply due on the next scan.

        Args:
            session: Database session
            appointment: Appointment to plan for
            rules: Rules to apply (defaults to the appointment's enabled rules)

        Returns:
            Created dispatches
        """
        if not appointment.is_active:
            logger.info(
                f"Skipping reminder planning for appointment {appointment.id} ({appointment.status})",
                extra={"appointment_id": appointment.id},
            )
            return []

        if rules is None:
            rules = await ReminderRuleRepository(session).get_by_appointment(
                appointment.id, enabled_only=True
            )

        now = self.clock()
        start_time = to_utc_aware(appointment.start_time)
        repo = DispatchRepository(session)
        created: List[ReminderDispatch] = []

        for rule in rules:
            if rule.appointment_id != appointment.id:
                raise ValidationError("rule", f"setting #{rule.id} belongs to another appointment")
            if not rule.is_enabled:
                continue

            cancelled = await repo.cancel_pending(appointment.id, now, reminder_rule_id=rule.id)
            if cancelled:
                logger.debug(f"Cancelled {cancelled} stale reminder(s) for rule {rule.id}")

            dispatch = await repo.create(
                appointment_id=appointment.id,
                scheduled_at=start_time - timedelta(minutes=rule.minutes_before),
                notification_method=NotificationMethod(rule.notification_method),
                reminder_rule_id=rule.id,
            )
            created.append(dispatch)

        enqueue_after_commit(session, self.trigger, [(d.id, d.scheduled_at) for d in created])
        if created:
            logger.info(
                f"Planned {len(created)} reminder(s) for appointment {appointment.id}",
                extra={"appointment_id": appointment.id},
            )
        return created

    async def plan_immediate(
        self,
        session: AsyncSession,
        appointment: Appointment,
        method: Optional[NotificationMethod] = None
    ) -> ReminderDispatch:
        """
        Plan a single "send now" dispatch outside the rules.

        Args:
            session: Database session
            appointment: Appointment to remind about
            method: Channel; defaults to the client's preferred method

        Raises:
            AppointmentNotActiveError: Appointment is not scheduled
        """
        if not appointment.is_active:
            raise AppointmentNotActiveError(appointment.id, appointment.status)

        if method is None:
            client = await ClientRepository(session).get_by_id(appointment.client_id)
            method = NotificationMethod(
                client.preferred_notification_method if client else NotificationMethod.EMAIL.value
            )

        now = self.clock()
        dispatch = await DispatchRepository(session).create(
            appointment_id=appointment.id,
            scheduled_at=now,
            notification_method=method,
        )
        enqueue_after_commit(session, self.trigger, [(dispatch.id, now)])
        logger.info(
            f"Immediate reminder {dispatch.id} planned for appointment {appointment.id}",
            extra={"dispatch_id": dispatch.id, "appointment_id": appointment.id},
        )
        return dispatch

    async def cancel_pending(self, session: AsyncSession, appointment: Appointment) -> int:
        """Cancel every pending dispatch of the appointment. Returns count."""
        count = await DispatchRepository(session).cancel_pending(appointment.id, self.clock())
        if count:
            logger.info(
                f"Cancelled {count} pending reminder(s) for appointment {appointment.id}",
                extra={"appointment_id": appointment.id},
            )
        return count
