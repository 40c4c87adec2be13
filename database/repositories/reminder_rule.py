"""Reminder rule repository for database operations."""
from typing import List

from sqlalchemy import select

from database.models import ReminderRule, NotificationMethod
from database.repositories.base import BaseRepository


class ReminderRuleRepository(BaseRepository[ReminderRule]):
    """Repository for ReminderRule model operations."""

    model_class = ReminderRule

    async def get_by_appointment(
        self,
        appointment_id: int,
        enabled_only: bool = False
    ) -> List[ReminderRule]:
        """Get reminder rules of an appointment, nearest offset last."""
        query = select(ReminderRule).where(ReminderRule.appointment_id == appointment_id)
        if enabled_only:
            query = query.where(ReminderRule.is_enabled.is_(True))
        query = query.order_by(ReminderRule.minutes_before.desc(), ReminderRule.id)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def create(
        self,
        appointment_id: int,
        minutes_before: int,
        notification_method: NotificationMethod = NotificationMethod.EMAIL,
        is_enabled: bool = True,
    ) -> ReminderRule:
        """Create new reminder rule."""
        rule = ReminderRule(
            appointment_id=appointment_id,
            minutes_before=minutes_before,
            notification_method=notification_method.value,
            is_enabled=is_enabled,
        )
        return await self.add(rule)
