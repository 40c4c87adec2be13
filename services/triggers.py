"""Delayed trigger surface: exact-time hints on top of the due scan."""
import logging
from datetime import datetime
from typing import Iterable, Optional, Protocol, Tuple

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class DelayedTrigger(Protocol):
    """Something that can run a dispatch attempt at (or soon after) a given time."""

    def enqueue(self, dispatch_id: int, run_at: datetime) -> None:
        ...


def enqueue_after_commit(
    session: AsyncSession,
    trigger: Optional[DelayedTrigger],
    items: Iterable[Tuple[int, datetime]]
) -> None:
    """
    Hand (dispatch_id, run_at) pairs to the trigger once the session commits.

    Nothing is enqueued if the transaction rolls back. A lost trigger is
    harmless: the due scan picks the dispatch up on its next pass.
    """
    if trigger is None:
        return
    items = list(items)
    if not items:
        return

    def _on_commit(_session):
        for dispatch_id, run_at in items:
            try:
                trigger.enqueue(dispatch_id, run_at)
            except Exception as e:
                logger.warning(
                    f"Could not enqueue trigger for dispatch {dispatch_id}: {e}",
                    extra={"dispatch_id": dispatch_id},
                )

    event.listen(session.sync_session, "after_commit", _on_commit, once=True)
