"""Notification channels: the outbound transports a reminder is delivered through."""
import asyncio
import logging
import smtplib
from abc import ABC, abstractmethod
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Dict, List, Optional

import aiohttp

from core.exceptions import DeliveryError, RecipientMissingError, ChannelNotConfiguredError
from database.models import Appointment, Client, NotificationMethod
from services.notifications import build_reminder_message

logger = logging.getLogger(__name__)


class NotificationChannel(ABC):
    """Delivers one reminder; raises DeliveryError (or any exception) on failure."""

    @abstractmethod
    async def send(self, recipient: Client, appointment: Appointment, method: NotificationMethod) -> None:
        ...


class EmailChannel(NotificationChannel):
    """Plain SMTP delivery, run in a worker thread."""

    def __init__(
        self,
        smtp_server: str,
        smtp_port: int,
        from_email: str,
        smtp_username: Optional[str] = None,
        smtp_password: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 30.0,
    ):
        if not smtp_server:
            raise ValueError("SMTP_SERVER is required but not configured")
        if not from_email:
            raise ValueError("FROM_EMAIL is required but not configured")
        self.smtp_server = smtp_server
        self.smtp_port = int(smtp_port)
        self.from_email = from_email
        self.smtp_username = smtp_username
        self.smtp_password = smtp_password
        self.use_tls = use_tls
        self.timeout = timeout

    def _build(self, to_email: str, recipient: Client, appointment: Appointment) -> MIMEMultipart:
        message = build_reminder_message(appointment, recipient)
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = self.from_email
        msg["To"] = to_email
        msg.attach(MIMEText(message.body, "plain"))
        return msg

    def _send_email(self, msg: MIMEMultipart, to_email: str) -> None:
        with smtplib.SMTP(self.smtp_server, self.smtp_port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.smtp_username and self.smtp_password:
                server.login(self.smtp_username, self.smtp_password)
            server.sendmail(self.from_email, [to_email], msg.as_string())

    async def send(self, recipient: Client, appointment: Appointment, method: NotificationMethod) -> None:
        if not recipient.email:
            raise RecipientMissingError(f"Client #{recipient.id} has no email address")
        msg = self._build(recipient.email, recipient, appointment)
        try:
            await asyncio.to_thread(self._send_email, msg, recipient.email)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(f"SMTP delivery failed: {e}") from e
        logger.debug(f"Reminder email sent for appointment {appointment.id}")


class SmsGatewayChannel(NotificationChannel):
    """SMS through an HTTP provider accepting ``{"to", "text"}`` JSON."""

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        http_session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
    ):
        if not url:
            raise ValueError("SMS_PROVIDER_URL is required but not configured")
        self.url = url
        self.api_key = api_key
        self._http_session = http_session
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def _post(self, session: aiohttp.ClientSession, payload: dict) -> None:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        async with session.post(self.url, json=payload, headers=headers, timeout=self.timeout) as resp:
            if resp.status >= 400:
                body = await resp.text()
                raise DeliveryError(f"SMS gateway returned {resp.status}: {body[:200]}")

    async def send(self, recipient: Client, appointment: Appointment, method: NotificationMethod) -> None:
        if not recipient.phone:
            raise RecipientMissingError(f"Client #{recipient.id} has no phone number")
        message = build_reminder_message(appointment, recipient)
        payload = {"to": recipient.phone, "text": message.sms_text}
        try:
            if self._http_session is not None:
                await self._post(self._http_session, payload)
            else:
                async with aiohttp.ClientSession() as session:
                    await self._post(session, payload)
        except aiohttp.ClientError as e:
            raise DeliveryError(f"SMS gateway unreachable: {e}") from e
        logger.debug(f"Reminder SMS sent for appointment {appointment.id}")


class MultiChannel(NotificationChannel):
    """Routes a reminder to email, SMS or both."""

    def __init__(
        self,
        email: Optional[NotificationChannel] = None,
        sms: Optional[NotificationChannel] = None,
    ):
        self.transports: Dict[NotificationMethod, Optional[NotificationChannel]] = {
            NotificationMethod.EMAIL: email,
            NotificationMethod.SMS: sms,
        }

    def _targets(self, method: NotificationMethod) -> List[NotificationMethod]:
        if method == NotificationMethod.BOTH:
            return [NotificationMethod.EMAIL, NotificationMethod.SMS]
        return [method]

    async def send(self, recipient: Client, appointment: Appointment, method: NotificationMethod) -> None:
        errors: List[str] = []
        missing = 0
        targets = self._targets(NotificationMethod(method))
        for target in targets:
            transport = self.transports.get(target)
            if transport is None:
                raise ChannelNotConfiguredError(target.value)
            try:
                await transport.send(recipient, appointment, target)
            except RecipientMissingError as e:
                missing += 1
                errors.append(f"{target.value}: {e}")
            except Exception as e:
                errors.append(f"{target.value}: {e}")
        if not errors:
            return
        if missing == len(targets):
            raise RecipientMissingError("; ".join(errors))
        raise DeliveryError("; ".join(errors))


def build_channel(settings) -> MultiChannel:
    """Create the channel set described by the settings."""
    email = None
    if settings.smtp_server and settings.from_email:
        email = EmailChannel(
            smtp_server=settings.smtp_server,
            smtp_port=settings.smtp_port,
            from_email=settings.from_email,
            smtp_username=settings.smtp_username,
            smtp_password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            timeout=settings.reminder_delivery_timeout_seconds,
        )
    else:
        logger.warning("SMTP is not configured, email reminders will fail")

    sms = None
    if settings.enable_sms_notifications and settings.sms_provider_url:
        sms = SmsGatewayChannel(
            url=settings.sms_provider_url,
            api_key=settings.sms_provider_api_key,
            timeout=settings.reminder_delivery_timeout_seconds,
        )

    return MultiChannel(email=email, sms=sms)
