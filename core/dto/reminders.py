"""Reminder DTOs for data validation."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from database.models import NotificationMethod


class CreateReminderRuleDTO(BaseModel):
    """DTO for adding a reminder rule to an appointment."""

    appointment_id: int = Field(..., description="Appointment ID")
    minutes_before: int = Field(..., ge=1, description="Offset from the appointment start")
    notification_method: NotificationMethod = Field(NotificationMethod.EMAIL, description="Channel")
    is_enabled: bool = Field(True, description="Whether the rule produces reminders")


class UpdateReminderRuleDTO(BaseModel):
    """DTO for changing a reminder rule. Unset fields are left alone."""

    rule_id: int = Field(..., description="Reminder rule ID")
    minutes_before: Optional[int] = Field(None, ge=1, description="New offset")
    notification_method: Optional[NotificationMethod] = Field(None, description="New channel")
    is_enabled: Optional[bool] = Field(None, description="Enable or disable the rule")


class TriggerReminderDTO(BaseModel):
    """DTO for sending a reminder right now."""

    appointment_id: int = Field(..., description="Appointment ID")
    notification_method: Optional[NotificationMethod] = Field(
        None, description="Channel (defaults to the client's preference)"
    )


class RescheduleAppointmentDTO(BaseModel):
    """DTO for moving an appointment."""

    appointment_id: int = Field(..., description="Appointment ID")
    start_time: datetime = Field(..., description="New start time")
    end_time: datetime = Field(..., description="New end time")

    @model_validator(mode="after")
    def validate_range(self) -> "RescheduleAppointmentDTO":
        """End must come after start."""
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self
