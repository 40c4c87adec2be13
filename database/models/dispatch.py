"""Reminder dispatch model - one scheduled reminder occurrence."""
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, String, Integer, Text, ForeignKey, Index, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database.base import Base
from database.types import BigIntPK, UTCDateTime
from reminders.utils.time_utils import utc_now

if TYPE_CHECKING:
    from database.models.appointment import Appointment
    from database.models.reminder_rule import ReminderRule


class NotificationMethod(str, Enum):
    """Channel selector for a reminder."""
    EMAIL = "email"
    SMS = "sms"
    BOTH = "both"


class DispatchStatus(str, Enum):
    """Dispatch status enum."""
    PENDING = "pending"  # Waiting for its scheduled time (fresh or re-armed)
    SENT = "sent"  # Delivered
    FAILED = "failed"  # Last attempt failed; retried until the cap is reached
    CANCELLED = "cancelled"  # Superseded, or appointment no longer active


class ReminderDispatch(Base):
    """Reminder dispatch model."""

    __tablename__ = "reminder_dispatches"
    __table_args__ = (
        Index("ix_reminder_dispatches_status_scheduled_at", "status", "scheduled_at"),
        Index("ix_reminder_dispatches_appointment_status", "appointment_id", "status"),
        # At most one pending dispatch per (appointment, rule)
        Index(
            "uq_reminder_dispatches_pending_rule",
            "appointment_id",
            "reminder_rule_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    appointment_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("appointments.id", ondelete="CASCADE"),
        nullable=False
    )
    # Null for manual "send now" dispatches
    reminder_rule_id: Mapped[int | None] = mapped_column(
        BigInteger,
        ForeignKey("reminder_rules.id", ondelete="SET NULL"),
        nullable=True
    )

    scheduled_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=DispatchStatus.PENDING.value,
        nullable=False
    )
    notification_method: Mapped[str] = mapped_column(String(10), nullable=False)

    # Last failure, only while status is failed
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Delivery lease held by the worker currently attempting this dispatch
    claim_token: Mapped[str | None] = mapped_column(String(36), nullable=True)
    claimed_until: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        onupdate=utc_now,
        nullable=False
    )

    # Relationships
    appointment: Mapped["Appointment"] = relationship("Appointment", back_populates="dispatches")
    reminder_rule: Mapped["ReminderRule | None"] = relationship("ReminderRule")

    def is_exhausted(self, max_attempts: int) -> bool:
        """Failed and out of automatic retries."""
        return self.status == DispatchStatus.FAILED.value and self.retry_count >= max_attempts

    def __repr__(self) -> str:
        return (
            f"<ReminderDispatch(id={self.id}, appointment_id={self.appointment_id}, "
            f"status='{self.status}', retry_count={self.retry_count})>"
        )
