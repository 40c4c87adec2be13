"""
Use Cases package for business logic encapsulation.

This package contains use case classes that encapsulate business logic
and orchestrate interactions between repositories and services.
"""

from services.use_cases.reminders import (
    TriggerReminderUseCase,
    RetryReminderUseCase,
    CreateReminderRuleUseCase,
    UpdateReminderRuleUseCase,
    RescheduleAppointmentUseCase,
    CancelAppointmentUseCase,
    DeleteAppointmentUseCase,
    ListRemindersUseCase,
)

__all__ = [
    'TriggerReminderUseCase',
    'RetryReminderUseCase',
    'CreateReminderRuleUseCase',
    'UpdateReminderRuleUseCase',
    'RescheduleAppointmentUseCase',
    'CancelAppointmentUseCase',
    'DeleteAppointmentUseCase',
    'ListRemindersUseCase',
]
