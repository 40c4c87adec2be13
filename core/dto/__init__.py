"""
Data Transfer Objects (DTOs) for data validation.

This package contains Pydantic models for validating input data.
"""

from core.dto.reminders import (
    CreateReminderRuleDTO,
    UpdateReminderRuleDTO,
    TriggerReminderDTO,
    RescheduleAppointmentDTO,
)

__all__ = [
    'CreateReminderRuleDTO',
    'UpdateReminderRuleDTO',
    'TriggerReminderDTO',
    'RescheduleAppointmentDTO',
]
