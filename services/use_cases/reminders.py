"""
Reminder use cases: the hooks appointment management calls into.
"""
import logging
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession

from services.use_cases.base import BaseUseCase
from services.planner import ReminderPlanner
from services.retry import RetryCoordinator
from database.repositories import (
    AppointmentRepository,
    DispatchRepository,
    ReminderRuleRepository,
)
from database.models import Appointment, AppointmentStatus, ReminderDispatch, ReminderRule
from core.exceptions import (
    AppointmentNotActiveError,
    DispatchNotFoundError,
    PermissionDeniedError,
    ReminderRuleNotFoundError,
)
from core.dto.reminders import (
    CreateReminderRuleDTO,
    RescheduleAppointmentDTO,
    TriggerReminderDTO,
    UpdateReminderRuleDTO,
)

logger = logging.getLogger(__name__)


class TriggerReminderUseCase(BaseUseCase[ReminderDispatch]):
    """Send a reminder right now, outside the configured rules."""

    def __init__(self, session: AsyncSession, planner: ReminderPlanner):
        super().__init__(session)
        self.planner = planner

    async def execute(self, owner_id: int, data: TriggerReminderDTO) -> ReminderDispatch:
        """
        Plan an immediate dispatch.

        Raises:
            AppointmentNotFoundError: If appointment not found
            PermissionDeniedError: If caller does not own the appointment
            AppointmentNotActiveError: If appointment is not scheduled
        """
        appointment = await self.get_owned_appointment(owner_id, data.appointment_id)
        return await self.planner.plan_immediate(self.session, appointment, data.notification_method)


class RetryReminderUseCase(BaseUseCase[ReminderDispatch]):
    """Manually retry a failed reminder, ignoring the attempt cap."""

    def __init__(self, session: AsyncSession, coordinator: RetryCoordinator):
        super().__init__(session)
        self.coordinator = coordinator

    async def execute(self, owner_id: int, dispatch_id: int) -> ReminderDispatch:
        """
        Reset a failed dispatch and make it due now.

        Raises:
            DispatchNotFoundError: If dispatch not found
            PermissionDeniedError: If caller does not own the appointment
            NotEligibleForRetryError: If dispatch is not failed
        """
        dispatch = await DispatchRepository(self.session).get_by_id(dispatch_id, with_relations=True)
        if not dispatch:
            raise DispatchNotFoundError(dispatch_id)
        if dispatch.appointment is None or dispatch.appointment.owner_id != owner_id:
            raise PermissionDeniedError()
        return await self.coordinator.retry_now(self.session, dispatch_id)


class CreateReminderRuleUseCase(BaseUseCase[ReminderRule]):
    """Add a reminder rule and plan its dispatch."""

    def __init__(self, session: AsyncSession, planner: ReminderPlanner):
        super().__init__(session)
        self.planner = planner

    async def execute(self, owner_id: int, data: CreateReminderRuleDTO) -> ReminderRule:
        appointment = await self.get_owned_appointment(owner_id, data.appointment_id)
        rule = await ReminderRuleRepository(self.session).create(
            appointment_id=appointment.id,
            minutes_before=data.minutes_before,
            notification_method=data.notification_method,
            is_enabled=data.is_enabled,
        )
        if rule.is_enabled:
            await self.planner.plan(self.session, appointment, [rule])
        return rule


class UpdateReminderRuleUseCase(BaseUseCase[ReminderRule]):
    """
    Change a reminder rule.

    Enabling a rule, or changing the offset or channel of an enabled one,
    replaces its pending dispatch. Disabling it only stops future planning;
    dispatches already planned are left as they are.
    """

    def __init__(self, session: AsyncSession, planner: ReminderPlanner):
        super().__init__(session)
        self.planner = planner

    async def execute(self, owner_id: int, data: UpdateReminderRuleDTO) -> ReminderRule:
        """
        Apply the update and re-plan when needed.

        Raises:
            ReminderRuleNotFoundError: If rule not found
            PermissionDeniedError: If caller does not own the appointment
        """
        rule = await ReminderRuleRepository(self.session).get_by_id(data.rule_id)
        if not rule:
            raise ReminderRuleNotFoundError(data.rule_id)
        appointment = await self.get_owned_appointment(owner_id, rule.appointment_id)

        was_enabled = rule.is_enabled
        changed = False
        if data.minutes_before is not None and data.minutes_before != rule.minutes_before:
            rule.minutes_before = data.minutes_before
            changed = True
        if data.notification_method is not None and data.notification_method.value != rule.notification_method:
            rule.notification_method = data.notification_method.value
            changed = True
        if data.is_enabled is not None:
            rule.is_enabled = data.is_enabled
        await self.session.flush()

        if not rule.is_enabled:
            if was_enabled:
                logger.info(f"Reminder rule {rule.id} disabled, existing reminders kept")
        elif changed or not was_enabled:
            await self.planner.plan(self.session, appointment, [rule])

        return rule


class RescheduleAppointmentUseCase(BaseUseCase[Appointment]):
    """Move an appointment and re-plan its reminders."""

    def __init__(self, session: AsyncSession, planner: ReminderPlanner):
        super().__init__(session)
        self.planner = planner

    async def execute(self, owner_id: int, data: RescheduleAppointmentDTO) -> Appointment:
        """
        Raises:
            AppointmentNotFoundError: If appointment not found
            PermissionDeniedError: If caller does not own the appointment
            AppointmentNotActiveError: If appointment is not scheduled
        """
        appointment = await self.get_owned_appointment(owner_id, data.appointment_id)
        if not appointment.is_active:
            raise AppointmentNotActiveError(appointment.id, appointment.status)

        await AppointmentRepository(self.session).reschedule(appointment, data.start_time, data.end_time)
        await self.planner.cancel_pending(self.session, appointment)
        await self.planner.plan(self.session, appointment)
        return appointment


class CancelAppointmentUseCase(BaseUseCase[Appointment]):
    """Cancel an appointment and every reminder still waiting for it."""

    def __init__(self, session: AsyncSession, planner: ReminderPlanner):
        super().__init__(session)
        self.planner = planner

    async def execute(self, owner_id: int, appointment_id: int) -> Appointment:
        """
        Raises:
            AppointmentNotFoundError: If appointment not found
            PermissionDeniedError: If caller does not own the appointment
            AppointmentNotActiveError: If appointment is already closed
        """
        appointment = await self.get_owned_appointment(owner_id, appointment_id)
        if not appointment.is_active:
            raise AppointmentNotActiveError(appointment.id, appointment.status)

        await AppointmentRepository(self.session).update_status(appointment, AppointmentStatus.CANCELLED)
        await self.planner.cancel_pending(self.session, appointment)
        return appointment


class DeleteAppointmentUseCase(BaseUseCase[None]):
    """Delete an appointment; its rules and dispatches go with it."""

    async def execute(self, owner_id: int, appointment_id: int) -> None:
        appointment = await self.get_owned_appointment(owner_id, appointment_id)
        await AppointmentRepository(self.session).delete(appointment.id)
        logger.info(f"Appointment {appointment_id} deleted with its reminders")


class ListRemindersUseCase(BaseUseCase[List[ReminderDispatch]]):
    """Reminder history of an appointment."""

    async def execute(self, owner_id: int, appointment_id: int) -> List[ReminderDispatch]:
        appointment = await self.get_owned_appointment(owner_id, appointment_id)
        return await DispatchRepository(self.session).get_by_appointment(appointment.id)
