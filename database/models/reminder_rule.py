"""Reminder rule model - per-appointment delivery policy."""
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, String, Integer, ForeignKey, Boolean, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database.base import Base
from database.types import BigIntPK
from database.models.dispatch import NotificationMethod

if TYPE_CHECKING:
    from database.models.appointment import Appointment


class ReminderRule(Base):
    """Reminder rule model."""

    __tablename__ = "reminder_rules"
    __table_args__ = (
        Index("ix_reminder_rules_appointment_enabled", "appointment_id", "is_enabled"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    appointment_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("appointments.id", ondelete="CASCADE"),
        nullable=False
    )

    # Offset from the appointment start
    minutes_before: Mapped[int] = mapped_column(Integer, nullable=False)
    notification_method: Mapped[str] = mapped_column(
        String(10),
        default=NotificationMethod.EMAIL.value,
        nullable=False
    )
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    appointment: Mapped["Appointment"] = relationship("Appointment", back_populates="reminder_rules")

    def __repr__(self) -> str:
        return (
            f"<ReminderRule(id={self.id}, appointment_id={self.appointment_id}, "
            f"minutes_before={self.minutes_before}, enabled={self.is_enabled})>"
        )
