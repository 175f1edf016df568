"""
Queue wait estimation - how long until a barber's waiting queue clears.

The estimate is the sum of the services attached to each waiting client plus
a small buffer per client. Time left on the client currently in the chair is
not counted.
"""
import logging
import uuid
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from waitwise.errors import UpstreamFetchFailure

logger = logging.getLogger(__name__)

PER_CLIENT_BUFFER_MINUTES = 5


def entry_duration(entry) -> int:
    """Total minutes of the services attached to one queue entry."""
    services = getattr(entry, "services", None) or []
    return sum(s.duration_minutes or 0 for s in services)


def estimate_backlog(
    waiting_entries: Iterable,
    per_client_buffer: int = PER_CLIENT_BUFFER_MINUTES,
) -> int:
    """
    Estimated minutes to clear the given waiting entries.
    Returns 0 for an empty queue.
    """
    total = 0
    for entry in waiting_entries:
        total += entry_duration(entry) + per_client_buffer
    return max(total, 0)


async def load_waiting_entries(
    db: AsyncSession,
    barber_id: uuid.UUID,
    since: Optional[datetime] = None,
) -> list:
    """A barber's waiting entries, front of line first."""
    from waitwise.models.queue_entry import QueueEntry

    query = (
        select(QueueEntry)
        .where(QueueEntry.barber_id == barber_id, QueueEntry.status == "waiting")
        .order_by(QueueEntry.queue_position)
    )
    if since is not None:
        query = query.where(QueueEntry.created_at >= since)
    try:
        result = await db.execute(query)
    except SQLAlchemyError as e:
        logger.error("Queue fetch failed for barber %s: %s", str(barber_id)[:8], str(e))
        raise UpstreamFetchFailure("Couldn't fetch current queue")
    return list(result.scalars().all())


async def estimate_wait_for_barber(
    db: AsyncSession,
    barber_id: uuid.UUID,
    since: Optional[datetime] = None,
) -> int:
    """Minutes until this barber's live waiting queue clears."""
    from waitwise.config import get_settings

    entries = await load_waiting_entries(db, barber_id, since)
    return estimate_backlog(entries, get_settings().queue_client_buffer_minutes)
