"""Database repositories package."""
from database.repositories.client import ClientRepository
from database.repositories.appointment import AppointmentRepository
from database.repositories.reminder_rule import ReminderRuleRepository
from database.repositories.dispatch import DispatchRepository

__all__ = [
    "ClientRepository",
    "AppointmentRepository",
    "ReminderRuleRepository",
    "DispatchRepository",
]
