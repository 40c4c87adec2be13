"""Client model - the person who receives reminders."""
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from database.base import Base
from database.types import BigIntPK
from database.models.dispatch import NotificationMethod

if TYPE_CHECKING:
    from database.models.appointment import Appointment


class Client(Base):
    """Client model."""

    __tablename__ = "clients"

    # Primary key
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    # User who manages this client
    owner_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)

    # Personal info
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)

    preferred_notification_method: Mapped[str] = mapped_column(
        String(10),
        default=NotificationMethod.EMAIL.value,
        nullable=False
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    # Relationships
    appointments: Mapped[list["Appointment"]] = relationship(
        "Appointment",
        back_populates="client",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, name='{self.name}')>"
