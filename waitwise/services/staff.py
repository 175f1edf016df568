"""
Staff availability - the owner-controlled inputs to slot generation:
who is working today and who is on a break until when.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from waitwise.errors import InvalidRequest, NotFound, StoreWriteFailure, UpstreamFetchFailure
from waitwise.utils.timezone import ensure_aware, utc_now

logger = logging.getLogger(__name__)

MAX_BREAK_MINUTES = 240


async def _get_barber(db: AsyncSession, barber_id: uuid.UUID):
    from waitwise.models.barber import Barber

    try:
        barber = await db.get(Barber, barber_id)
    except SQLAlchemyError as e:
        logger.error("Barber fetch failed: %s", str(e), extra={"barber_id": str(barber_id)})
        raise UpstreamFetchFailure("Couldn't fetch barber")
    if barber is None:
        raise NotFound("Barber not found")
    return barber


async def _save(db: AsyncSession, barber_id: uuid.UUID) -> None:
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Barber update failed: %s", str(e), extra={"barber_id": str(barber_id)})
        raise StoreWriteFailure("Couldn't update barber")


async def set_working_today(db: AsyncSession, barber_id: uuid.UUID, working: bool):
    """Toggle whether a barber takes bookings today. Going off shift ends any break."""
    barber = await _get_barber(db, barber_id)
    barber.is_working_today = working
    if not working:
        barber.is_on_break = False
        barber.break_end_time = None
    await _save(db, barber_id)
    logger.info("Barber working_today=%s", working, extra={"barber_id": str(barber_id)})
    return barber


async def start_break(
    db: AsyncSession,
    barber_id: uuid.UUID,
    minutes: int,
    now: Optional[datetime] = None,
):
    """Put a barber on a break ending `minutes` from now."""
    if not isinstance(minutes, int) or minutes <= 0 or minutes > MAX_BREAK_MINUTES:
        raise InvalidRequest(f"Break length must be between 1 and {MAX_BREAK_MINUTES} minutes")

    barber = await _get_barber(db, barber_id)
    if not barber.is_working_today:
        raise InvalidRequest("Barber is not working today")

    barber.is_on_break = True
    started_at = ensure_aware(now or utc_now()).astimezone(timezone.utc)
    barber.break_end_time = started_at + timedelta(minutes=minutes)
    await _save(db, barber_id)
    logger.info("Barber on break for %d minutes", minutes, extra={"barber_id": str(barber_id)})
    return barber


async def end_break(db: AsyncSession, barber_id: uuid.UUID):
    barber = await _get_barber(db, barber_id)
    barber.is_on_break = False
    barber.break_end_time = None
    await _save(db, barber_id)
    logger.info("Barber break ended", extra={"barber_id": str(barber_id)})
    return barber
