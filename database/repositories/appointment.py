"""Appointment repository for database operations."""
from typing import Optional
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from database.models import Appointment, AppointmentStatus
from database.repositories.base import BaseRepository


class AppointmentRepository(BaseRepository[Appointment]):
    """Repository for Appointment model operations."""

    model_class = Appointment

    async def get_with_relations(self, appointment_id: int) -> Optional[Appointment]:
        """Get appointment with its client and reminder rules loaded."""
        query = select(Appointment).where(Appointment.id == appointment_id).options(
            selectinload(Appointment.client),
            selectinload(Appointment.reminder_rules),
        ).execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def create(
        self,
        owner_id: int,
        client_id: int,
        title: str,
        start_time: datetime,
        end_time: datetime,
        timezone: str = "UTC",
        description: str | None = None,
        location: str | None = None,
    ) -> Appointment:
        """Create new appointment."""
        appointment = Appointment(
            owner_id=owner_id,
            client_id=client_id,
            title=title,
            start_time=start_time,
            end_time=end_time,
            timezone=timezone,
            description=description,
            location=location,
            status=AppointmentStatus.SCHEDULED.value,
        )
        return await self.add(appointment)

    async def update_status(
        self,
        appointment: Appointment,
        status: AppointmentStatus
    ) -> Appointment:
        """Update appointment status."""
        appointment.status = status.value
        await self.session.flush()
        return appointment

    async def reschedule(
        self,
        appointment: Appointment,
        start_time: datetime,
        end_time: datetime
    ) -> Appointment:
        """Move appointment to a new time slot."""
        appointment.start_time = start_time
        appointment.end_time = end_time
        await self.session.flush()
        return appointment
