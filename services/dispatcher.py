"""Single delivery attempt for a reminder dispatch."""
import asyncio
import enum
import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from core.exceptions import DeliveryTimeoutError, RecipientMissingError
from database.models import NotificationMethod
from database.repositories import DispatchRepository
from reminders.utils.time_utils import utc_now
from services.channels import NotificationChannel
from services.retry import RetryCoordinator

logger = logging.getLogger(__name__)


class AttemptOutcome(str, enum.Enum):
    """What a single attempt did with the dispatch."""
    SKIPPED = "skipped"
    CANCELLED = "cancelled"
    SENT = "sent"
    FAILED = "failed"


class Dispatcher:
    """
    Claims a due dispatch, sends it through the channel and records the result.

    The claim is a compare-and-swap lease, so two workers racing for the
    same dispatch never both send it. The channel call runs with no
    database transaction open.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        channel: NotificationChannel,
        coordinator: Optional[RetryCoordinator] = None,
        delivery_timeout_seconds: float = 30.0,
        claim_grace_seconds: float = 60.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session_factory = session_factory
        self.channel = channel
        self.coordinator = coordinator
        self.delivery_timeout_seconds = delivery_timeout_seconds
        self.claim_grace_seconds = claim_grace_seconds
        self.clock = clock

    async def _claim(self, dispatch_id: int, token: str) -> bool:
        now = self.clock()
        lease_until = now + timedelta(seconds=self.delivery_timeout_seconds + self.claim_grace_seconds)
        async with self.session_factory() as session:
            claimed = await DispatchRepository(session).claim(dispatch_id, token, now, lease_until)
            await session.commit()
        return claimed

    async def _cancel(self, dispatch_id: int, token: str) -> None:
        async with self.session_factory() as session:
            await DispatchRepository(session).mark_cancelled(dispatch_id, token, self.clock())
            await session.commit()

    async def attempt(self, dispatch_id: int) -> AttemptOutcome:
        """
        Run one delivery attempt.

        Args:
            dispatch_id: Dispatch to deliver

        Returns:
            SKIPPED if someone else holds or already finished it, CANCELLED
            if it can never be delivered, SENT or FAILED otherwise
        """
        token = uuid.uuid4().hex
        if not await self._claim(dispatch_id, token):
            logger.debug(f"Reminder {dispatch_id} not claimable, skipping", extra={"dispatch_id": dispatch_id})
            return AttemptOutcome.SKIPPED

        async with self.session_factory() as session:
            dispatch = await DispatchRepository(session).get_by_id(
                dispatch_id, with_relations=True, refresh=True
            )
            appointment = dispatch.appointment if dispatch else None
            client = appointment.client if appointment else None
            method = NotificationMethod(dispatch.notification_method) if dispatch else None

        if dispatch is None:
            return AttemptOutcome.SKIPPED

        extra = {"dispatch_id": dispatch_id, "appointment_id": dispatch.appointment_id}

        if appointment is None or not appointment.is_active:
            await self._cancel(dispatch_id, token)
            logger.info(f"Appointment gone or not active, reminder {dispatch_id} cancelled", extra=extra)
            return AttemptOutcome.CANCELLED

        if client is None:
            await self._cancel(dispatch_id, token)
            logger.warning(f"Reminder {dispatch_id} has no recipient, cancelled", extra=extra)
            return AttemptOutcome.CANCELLED

        try:
            await asyncio.wait_for(
                self.channel.send(client, appointment, method),
                timeout=self.delivery_timeout_seconds,
            )
        except RecipientMissingError as e:
            await self._cancel(dispatch_id, token)
            logger.warning(f"Reminder {dispatch_id} cancelled: {e}", extra=extra)
            return AttemptOutcome.CANCELLED
        except asyncio.TimeoutError:
            error = DeliveryTimeoutError(self.delivery_timeout_seconds)
            return await self._record_failure(dispatch_id, token, str(error), extra)
        except Exception as e:
            logger.error(f"Failed to send reminder {dispatch_id}: {e}", extra=extra, exc_info=True)
            return await self._record_failure(dispatch_id, token, str(e) or type(e).__name__, extra)

        async with self.session_factory() as session:
            sent = await DispatchRepository(session).mark_sent(dispatch_id, token, self.clock())
            await session.commit()

        if not sent:
            logger.warning(
                f"Reminder {dispatch_id} delivered but its state changed meanwhile",
                extra={**extra, "outcome": "lost_race"},
            )
            return AttemptOutcome.SKIPPED

        logger.info(f"Sent reminder {dispatch_id} via {method.value}", extra={**extra, "outcome": "sent"})
        return AttemptOutcome.SENT

    async def _record_failure(self, dispatch_id: int, token: str, error: str, extra: dict) -> AttemptOutcome:
        async with self.session_factory() as session:
            failed = await DispatchRepository(session).mark_failed(dispatch_id, token, error, self.clock())
            await session.commit()

        if not failed:
            logger.warning(
                f"Reminder {dispatch_id} failed but its state changed meanwhile",
                extra={**extra, "outcome": "lost_race"},
            )
            return AttemptOutcome.SKIPPED

        logger.warning(f"Reminder {dispatch_id} failed: {error}", extra={**extra, "outcome": "failed"})

        if self.coordinator is not None:
            try:
                await self.coordinator.on_failure(dispatch_id)
            except Exception as e:
                # Left failed; the retry scan will route it again
                logger.error(f"Could not schedule retry for reminder {dispatch_id}: {e}", extra=extra, exc_info=True)
        return AttemptOutcome.FAILED
