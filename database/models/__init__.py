"""Database models package."""
from database.models.dispatch import ReminderDispatch, DispatchStatus, NotificationMethod
from database.models.client import Client
from database.models.appointment import Appointment, AppointmentStatus
from database.models.reminder_rule import ReminderRule

__all__ = [
    "Client",
    "Appointment",
    "AppointmentStatus",
    "ReminderRule",
    "ReminderDispatch",
    "DispatchStatus",
    "NotificationMethod",
]
