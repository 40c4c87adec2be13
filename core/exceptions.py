"""
Custom application exceptions.

Business errors raised synchronously to callers of the manual entry points,
plus the delivery errors a notification channel raises. Automatic scan paths
record delivery errors on the dispatch instead of propagating them.
"""
from typing import Optional


class ReminderServiceError(Exception):
    """Base exception for all application errors."""

    message: str = "Something went wrong"

    def __init__(self, message: Optional[str] = None, **kwargs):
        self.message = message or self.message
        self.details = kwargs
        super().__init__(self.message)


# ============== Authorization ==============

class PermissionDeniedError(ReminderServiceError):
    """Caller does not own the appointment."""
    message = "Not authorized."


# ============== Appointments ==============

class AppointmentError(ReminderServiceError):
    """Base appointment error."""
    message = "Appointment error"


class AppointmentNotFoundError(AppointmentError):
    """Appointment not found."""
    message = "Appointment not found"

    def __init__(self, appointment_id: Optional[int] = None):
        self.appointment_id = appointment_id
        super().__init__(f"Appointment #{appointment_id} not found" if appointment_id else self.message)


class AppointmentNotActiveError(AppointmentError):
    """Reminders are only planned for scheduled appointments."""
    message = "Appointment is not scheduled"

    def __init__(self, appointment_id: int, status: str):
        self.appointment_id = appointment_id
        self.status = status
        super().__init__(f"Appointment #{appointment_id} is {status}")


# ============== Reminders ==============

class ReminderError(ReminderServiceError):
    """Base reminder error."""
    message = "Reminder error"


class ReminderRuleNotFoundError(ReminderError):
    """Reminder rule not found."""
    message = "Reminder setting not found"

    def __init__(self, rule_id: Optional[int] = None):
        self.rule_id = rule_id
        super().__init__(f"Reminder setting #{rule_id} not found" if rule_id else self.message)


class DispatchNotFoundError(ReminderError):
    """Reminder dispatch not found."""
    message = "Reminder not found"

    def __init__(self, dispatch_id: Optional[int] = None):
        self.dispatch_id = dispatch_id
        super().__init__(f"Reminder #{dispatch_id} not found" if dispatch_id else self.message)


class NotEligibleForRetryError(ReminderError):
    """Only failed reminders can be retried manually."""
    message = "Only failed reminders can be retried."

    def __init__(self, dispatch_id: int, status: str, message: Optional[str] = None):
        self.dispatch_id = dispatch_id
        self.status = status
        super().__init__(message)


# ============== Validation ==============

class ValidationError(ReminderServiceError):
    """Data validation error."""
    message = "Validation error"

    def __init__(self, field: str, error: str):
        self.field = field
        self.error = error
        super().__init__(f"Invalid '{field}': {error}")


# ============== Delivery ==============

class DeliveryError(ReminderServiceError):
    """Notification channel failed to deliver."""
    message = "Delivery failed"


class DeliveryTimeoutError(DeliveryError):
    """Channel did not answer within the configured timeout."""
    message = "Delivery timed out"

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Delivery timed out after {timeout:g}s")


class RecipientMissingError(DeliveryError):
    """No client or no address for the requested channel."""
    message = "Recipient not found for this appointment"


class ChannelNotConfiguredError(DeliveryError):
    """Requested channel has no transport configured."""
    message = "Notification channel is not configured"

    def __init__(self, method: str):
        self.method = method
        super().__init__(f"No transport configured for '{method}' notifications")
