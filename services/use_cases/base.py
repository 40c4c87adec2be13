"""
Base use case class with common functionality.
"""
from abc import ABC, abstractmethod
from typing import TypeVar, Generic

from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import AppointmentNotFoundError, PermissionDeniedError
from database.models import Appointment
from database.repositories import AppointmentRepository


ResultType = TypeVar("ResultType")


class BaseUseCase(ABC, Generic[ResultType]):
    """
    Abstract base class for use cases.

    A use case runs one business operation inside the caller's session. It
    flushes but never commits; the caller owns the transaction.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize use case with database session.

        Args:
            session: Async SQLAlchemy session for database operations
        """
        self.session = session

    async def get_owned_appointment(self, owner_id: int, appointment_id: int) -> Appointment:
        """
        Load an appointment the caller is allowed to manage.

        Raises:
            AppointmentNotFoundError: No such appointment
            PermissionDeniedError: Appointment belongs to someone else
        """
        appointment = await AppointmentRepository(self.session).get_with_relations(appointment_id)
        if not appointment:
            raise AppointmentNotFoundError(appointment_id)
        if appointment.owner_id != owner_id:
            raise PermissionDeniedError()
        return appointment

    @abstractmethod
    async def execute(self, *args, **kwargs) -> ResultType:
        """
        Execute the use case.

        Subclasses must implement this method with their specific logic.

        Returns:
            Result of the use case execution
        """
        pass
