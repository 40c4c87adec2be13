"""Reminder message rendering."""
from __future__ import annotations
from dataclasses import dataclass

from database.models import Appointment, Client
from reminders.utils.time_utils import to_local, format_date, format_time


@dataclass(frozen=True)
class ReminderMessage:
    """Rendered reminder, one variant per transport."""
    subject: str
    body: str
    sms_text: str


def build_reminder_message(appointment: Appointment, client: Client) -> ReminderMessage:
    """
    Render the appointment reminder in the appointment's local time.

    Args:
        appointment: Appointment being reminded about
        client: Recipient

    Returns:
        Subject and body for email, short text for SMS
    """
    local_start = to_local(appointment.start_time, appointment.timezone)
    local_end = to_local(appointment.end_time, appointment.timezone)
    date_str = format_date(local_start)
    time_range = f"{format_time(local_start)} - {format_time(local_end)}"

    lines = [
        f"Hello {client.name},",
        "",
        "This is a reminder for your upcoming appointment:",
        f"Title: {appointment.title}",
        f"Date: {date_str}",
        f"Time: {time_range}",
        f"Location: {appointment.location or 'Not specified'}",
    ]
    if appointment.description:
        lines.append(f"Description: {appointment.description}")
    lines += ["", "Thank you for using our service!"]

    sms_text = f"Reminder: {appointment.title} on {date_str} at {format_time(local_start)}"
    if appointment.location:
        sms_text += f", {appointment.location}"

    return ReminderMessage(
        subject=f"Reminder: {appointment.title}",
        body="\n".join(lines),
        sms_text=sms_text,
    )
