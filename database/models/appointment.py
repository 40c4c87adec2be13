"""Appointment model - the booking reminders are sent for."""
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, String, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from database.base import Base
from database.types import BigIntPK, UTCDateTime

if TYPE_CHECKING:
    from database.models.client import Client
    from database.models.dispatch import ReminderDispatch
    from database.models.reminder_rule import ReminderRule


class AppointmentStatus(str, Enum):
    """Appointment status enum."""
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class Appointment(Base):
    """Appointment model."""

    __tablename__ = "appointments"

    # Primary key
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    # Ownership
    owner_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    client_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Appointment details
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    start_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), default="UTC", nullable=False)

    # Status
    status: Mapped[str] = mapped_column(
        String(20),
        default=AppointmentStatus.SCHEDULED.value,
        nullable=False,
        index=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    # Relationships
    client: Mapped["Client"] = relationship("Client", back_populates="appointments")
    reminder_rules: Mapped[list["ReminderRule"]] = relationship(
        "ReminderRule",
        back_populates="appointment",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
    dispatches: Mapped[list["ReminderDispatch"]] = relationship(
        "ReminderDispatch",
        back_populates="appointment",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    @property
    def is_active(self) -> bool:
        """Only scheduled appointments receive reminders."""
        return self.status == AppointmentStatus.SCHEDULED.value

    def __repr__(self) -> str:
        return (
            f"<Appointment(id={self.id}, client_id={self.client_id}, "
            f"start_time={self.start_time}, status='{self.status}')>"
        )
