"""
Notification service - "you are next" SMS to the client at the front of a
barber's queue.

Each queue entry is notified at most once. The notification_sent_at column
is claimed with a conditional UPDATE before the SMS goes out, so two
transitions racing on the same entry cannot both send. If delivery fails the
claim is released so a later transition can try again.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import NamedTuple, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from waitwise.errors import NotFound, NotifierFailure, StoreWriteFailure, UpstreamFetchFailure
from waitwise.services.sms import is_valid_phone, mask_phone, normalize_phone, send_sms
from waitwise.utils.timezone import ensure_aware, utc_now

logger = logging.getLogger(__name__)


class NotificationOutcome(NamedTuple):
    status: str  # sent, skipped, failed
    reason: Optional[str] = None


def build_next_in_line_message(shop_name: Optional[str], barber_name: Optional[str]) -> str:
    return (
        f"Hi from {shop_name or 'the shop'}! You are now first in the queue for "
        f"{barber_name or 'the barber'}. Please make your way to the shop. Do not reply."
    )


async def notify_next_in_line(
    db: AsyncSession,
    entry_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> NotificationOutcome:
    """
    Send the "you are next" SMS for one queue entry.

    Returns sent, or skipped with a reason (already_sent, invalid_phone).
    Raises NotifierFailure if the SMS could not be delivered.
    """
    from waitwise.models.barber import Barber
    from waitwise.models.queue_entry import QueueEntry
    from waitwise.models.shop import Shop

    log_extra = {"queue_entry_id": str(entry_id)}
    try:
        row = (
            await db.execute(
                select(
                    QueueEntry.client_phone,
                    QueueEntry.notification_sent_at,
                    Barber.name.label("barber_name"),
                    Shop.name.label("shop_name"),
                )
                .join(Shop, Shop.id == QueueEntry.shop_id)
                .outerjoin(Barber, Barber.id == QueueEntry.barber_id)
                .where(QueueEntry.id == entry_id)
            )
        ).first()
    except SQLAlchemyError as e:
        logger.error("Queue entry fetch for notification failed: %s", str(e), extra=log_extra)
        raise UpstreamFetchFailure("Couldn't fetch queue entry")

    if row is None:
        raise NotFound("Queue entry not found")

    if row.notification_sent_at is not None:
        logger.info("Notification already sent, skipping", extra=log_extra)
        return NotificationOutcome("skipped", "already_sent")

    phone = normalize_phone(row.client_phone)
    if not is_valid_phone(phone):
        logger.info("Skipping SMS: phone missing or invalid", extra=log_extra)
        return NotificationOutcome("skipped", "invalid_phone")

    claimed_at = ensure_aware(now or utc_now()).astimezone(timezone.utc)
    try:
        claim = await db.execute(
            update(QueueEntry)
            .where(QueueEntry.id == entry_id, QueueEntry.notification_sent_at.is_(None))
            .values(notification_sent_at=claimed_at)
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Could not claim notification flag: %s", str(e), extra=log_extra)
        raise StoreWriteFailure("Couldn't record notification")

    if claim.rowcount == 0:
        logger.info("Notification claimed by another transition, skipping", extra=log_extra)
        return NotificationOutcome("skipped", "already_sent")

    result = await send_sms(
        to=phone, body=build_next_in_line_message(row.shop_name, row.barber_name),
    )
    if result.get("error"):
        await _release_claim(db, entry_id, claimed_at)
        raise NotifierFailure(f"SMS to {mask_phone(phone)} failed: {result['error']}")

    logger.info(
        "Next-in-line SMS sent to %s", mask_phone(phone),
        extra={**log_extra, "phone": mask_phone(phone)},
    )
    return NotificationOutcome("sent")


async def _release_claim(db: AsyncSession, entry_id: uuid.UUID, claimed_at: datetime) -> None:
    """Clear our claim on the notification flag after a failed send."""
    from waitwise.models.queue_entry import QueueEntry

    try:
        await db.execute(
            update(QueueEntry)
            .where(QueueEntry.id == entry_id, QueueEntry.notification_sent_at == claimed_at)
            .values(notification_sent_at=None)
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(
            "Could not release notification claim: %s", str(e),
            extra={"queue_entry_id": str(entry_id)},
        )
