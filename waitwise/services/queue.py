"""
Queue service - per-barber walk-in queue.

Lifecycle of a queue entry:
    waiting -> in_progress -> done
    waiting -> no_show -> waiting (requeue, jumps to the front)
    waiting | no_show | done -> deleted

Positions only order the waiting entries of one barber: joining takes
max + 1, a requeue takes min - 1. Gaps are expected and positions may go
negative after repeated requeues; only relative order matters.

Every operation that assigns a position or claims the barber's chair runs
under the barber's Redis queue lock and a row lock on the barber, and the
partial unique indexes on queue_entries reject anything that slips through.
Store failures surface as retryable StoreWriteFailure; nothing here retries
on its own.
"""
import logging
import uuid
from datetime import datetime
from typing import NamedTuple, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from waitwise.errors import (
    ConflictAlreadyServing,
    InvalidRequest,
    InvalidServiceSet,
    InvalidTransition,
    NotFound,
    StoreWriteFailure,
    UpstreamFetchFailure,
    WaitwiseError,
)
from waitwise.models.appointment import Appointment
from waitwise.models.barber import Barber
from waitwise.models.billable_event import BillableEvent
from waitwise.models.queue_entry import QueueEntry
from waitwise.models.service import Service
from waitwise.services.notifications import NotificationOutcome, notify_next_in_line
from waitwise.services.wait_estimator import estimate_backlog
from waitwise.utils.locks import LockTimeoutError, barber_queue_lock

logger = logging.getLogger(__name__)

# Statuses an entry may be in for each action
ALLOWED_FROM = {
    "start": {"waiting"},
    "done": {"in_progress"},
    "no_show": {"waiting"},
    "requeue": {"no_show"},
    "delete": {"waiting", "no_show", "done"},
}

# Linked appointment status when its queue entry finishes
APPOINTMENT_STATUS_FOR = {"done": "completed", "no_show": "no_show"}


class StartServiceResult(NamedTuple):
    entry: QueueEntry
    next_entry_id: Optional[uuid.UUID]
    notification: Optional[NotificationOutcome]


class QueuePosition(NamedTuple):
    status: str
    position: int  # 1-based rank among waiting entries, 0 while being served
    barber_name: Optional[str]
    estimated_wait_minutes: int


class CheckInResult(NamedTuple):
    appointment: Appointment
    entry: QueueEntry
    started: bool
    notification: Optional[NotificationOutcome]


def _extra(entry: Optional[QueueEntry] = None, **kwargs) -> dict:
    extra = {k: str(v) for k, v in kwargs.items() if v is not None}
    if entry is not None:
        extra["queue_entry_id"] = str(entry.id)
        if entry.barber_id:
            extra["barber_id"] = str(entry.barber_id)
    return extra


def _check_transition(entry: QueueEntry, action: str) -> None:
    if entry.status not in ALLOWED_FROM[action]:
        raise InvalidTransition(
            f"Cannot {action.replace('_', ' ')} an entry that is {entry.status}"
        )


async def _commit(db: AsyncSession, log_extra: dict) -> None:
    """Commit the unit of work, mapping store errors to domain errors."""
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        message = str(e.orig)
        # SQLite names the columns instead of the index
        if (
            "uq_queue_entries_one_in_progress" in message
            or message.rstrip().endswith("queue_entries.barber_id")
        ):
            raise ConflictAlreadyServing("This barber is already serving a client")
        logger.warning("Queue write conflicted: %s", message, extra=log_extra)
        raise StoreWriteFailure("The queue changed while saving, please retry")
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Queue write failed: %s", str(e), extra=log_extra)
        raise StoreWriteFailure("Couldn't save queue change")


async def _get_entry(db: AsyncSession, entry_id: uuid.UUID) -> QueueEntry:
    try:
        entry = (
            await db.execute(select(QueueEntry).where(QueueEntry.id == entry_id))
        ).scalar_one_or_none()
    except SQLAlchemyError as e:
        logger.error("Queue entry fetch failed: %s", str(e), extra={"queue_entry_id": str(entry_id)})
        raise UpstreamFetchFailure("Couldn't fetch queue entry")
    if entry is None:
        raise NotFound("Queue entry not found")
    return entry


async def _lock_barber_row(db: AsyncSession, barber_id: uuid.UUID) -> Barber:
    """SELECT ... FOR UPDATE on the barber, serializing its queue in this transaction."""
    barber = (
        await db.execute(select(Barber).where(Barber.id == barber_id).with_for_update())
    ).scalar_one_or_none()
    if barber is None:
        raise NotFound("Barber not found")
    return barber


async def _waiting_bound(db: AsyncSession, barber_id: uuid.UUID, fn) -> Optional[int]:
    """min or max queue_position among the barber's waiting entries."""
    return (
        await db.execute(
            select(fn(QueueEntry.queue_position)).where(
                QueueEntry.barber_id == barber_id,
                QueueEntry.status == "waiting",
            )
        )
    ).scalar()


async def _next_position(db: AsyncSession, barber_id: uuid.UUID) -> int:
    """Back of the line: max waiting position + 1, or 1 for an empty queue."""
    last = await _waiting_bound(db, barber_id, func.max)
    return (last + 1) if last is not None else 1


async def _serving_entry(db: AsyncSession, barber_id: uuid.UUID) -> Optional[QueueEntry]:
    return (
        await db.execute(
            select(QueueEntry).where(
                QueueEntry.barber_id == barber_id,
                QueueEntry.status == "in_progress",
            ).limit(1)
        )
    ).scalar_one_or_none()


async def _front_of_line(db: AsyncSession, barber_id: uuid.UUID) -> Optional[QueueEntry]:
    return (
        await db.execute(
            select(QueueEntry)
            .where(QueueEntry.barber_id == barber_id, QueueEntry.status == "waiting")
            .order_by(QueueEntry.queue_position)
            .limit(1)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()


async def join_queue(
    db: AsyncSession,
    shop_id: uuid.UUID,
    barber_id: uuid.UUID,
    client_name: str,
    client_phone: Optional[str] = None,
    service_ids: Sequence[uuid.UUID] = (),
    appointment_id: Optional[uuid.UUID] = None,
) -> QueueEntry:
    """Add a client to the back of a barber's queue (max position + 1, or 1)."""
    client_name = (client_name or "").strip()
    if not client_name:
        raise InvalidRequest("client_name is required")
    if barber_id is None:
        raise InvalidRequest("barber_id is required")

    log_extra = _extra(shop_id=shop_id, barber_id=barber_id)

    try:
        services = []
        if service_ids:
            services = list(
                (
                    await db.execute(
                        select(Service).where(
                            Service.shop_id == shop_id,
                            Service.id.in_(set(service_ids)),
                        )
                    )
                ).scalars().all()
            )
            if len(services) != len(set(service_ids)):
                raise InvalidServiceSet("One or more services do not belong to this shop")
    except SQLAlchemyError as e:
        logger.error("Service lookup failed: %s", str(e), extra=log_extra)
        raise UpstreamFetchFailure("Couldn't fetch services")

    try:
        async with barber_queue_lock(str(barber_id)):
            try:
                barber = await _lock_barber_row(db, barber_id)
                if barber.shop_id != shop_id:
                    raise InvalidRequest("Barber does not belong to this shop")

                position = await _next_position(db, barber_id)
                entry = QueueEntry(
                    shop_id=shop_id,
                    barber_id=barber_id,
                    client_name=client_name,
                    client_phone=client_phone,
                    appointment_id=appointment_id,
                    status="waiting",
                    queue_position=position,
                    services=services,
                )
                db.add(entry)
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error("Queue read failed: %s", str(e), extra=log_extra)
                raise StoreWriteFailure("Couldn't add client to the queue")
            await _commit(db, log_extra)
    except LockTimeoutError:
        raise StoreWriteFailure("The queue is busy, please retry")

    logger.info(
        "Client joined queue at position %d", entry.queue_position,
        extra=_extra(entry, shop_id=shop_id),
    )
    return entry


async def start_service(
    db: AsyncSession,
    entry_id: uuid.UUID,
    notify_enabled: bool,
    now: Optional[datetime] = None,
) -> StartServiceResult:
    """
    Move a waiting client into the chair, then notify the new front of line.

    notify_enabled is the operator's live-SMS toggle. The notification is
    best-effort: once the transition is committed, notifier problems are
    logged and reported in the result, never raised.
    """
    entry = await _get_entry(db, entry_id)
    _check_transition(entry, "start")
    if entry.barber_id is None:
        raise InvalidRequest("This client has no assigned barber")

    barber_id = entry.barber_id
    log_extra = _extra(entry)

    try:
        async with barber_queue_lock(str(barber_id)):
            try:
                await _lock_barber_row(db, barber_id)
                await db.refresh(entry)
                _check_transition(entry, "start")
                serving = await _serving_entry(db, barber_id)
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error("Queue read failed: %s", str(e), extra=log_extra)
                raise StoreWriteFailure("Couldn't start service")
            if serving is not None:
                await db.rollback()
                logger.info("Start blocked: barber already serving", extra=log_extra)
                raise ConflictAlreadyServing("This barber is already serving a client")

            entry.status = "in_progress"
            await _commit(db, log_extra)
    except LockTimeoutError:
        raise StoreWriteFailure("The queue is busy, please retry")

    logger.info("Service started", extra=log_extra)

    try:
        front = await _front_of_line(db, barber_id)
    except SQLAlchemyError as e:
        logger.warning("Could not look up next in line: %s", str(e), extra=log_extra)
        return StartServiceResult(entry, None, NotificationOutcome("failed", "lookup_failed"))

    if front is None:
        return StartServiceResult(entry, None, None)

    if front.notification_sent_at is not None:
        logger.info("Next in line already notified, skipping", extra=_extra(front))
        outcome = NotificationOutcome("skipped", "already_sent")
    elif not notify_enabled:
        logger.info("Live SMS paused, not notifying next in line", extra=_extra(front))
        outcome = NotificationOutcome("skipped", "notifications_paused")
    else:
        try:
            outcome = await notify_next_in_line(db, front.id, now=now)
        except WaitwiseError as e:
            logger.warning("Next-in-line notification failed: %s", e.message, extra=_extra(front))
            outcome = NotificationOutcome("failed", e.message)

    return StartServiceResult(entry, front.id, outcome)


async def requeue(db: AsyncSession, entry_id: uuid.UUID) -> QueueEntry:
    """Put a no-show back at the very front of the line (min position - 1, or 1)."""
    entry = await _get_entry(db, entry_id)
    _check_transition(entry, "requeue")
    if entry.barber_id is None:
        raise InvalidRequest("This client has no assigned barber and cannot be re-queued")

    barber_id = entry.barber_id
    log_extra = _extra(entry)

    try:
        async with barber_queue_lock(str(barber_id)):
            try:
                await _lock_barber_row(db, barber_id)
                await db.refresh(entry)
                _check_transition(entry, "requeue")
                first = await _waiting_bound(db, barber_id, func.min)
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error("Queue read failed: %s", str(e), extra=log_extra)
                raise StoreWriteFailure("Couldn't re-queue the client")

            entry.status = "waiting"
            entry.queue_position = (first - 1) if first is not None else 1
            await _commit(db, log_extra)
    except LockTimeoutError:
        raise StoreWriteFailure("The queue is busy, please retry")

    logger.info("Client re-queued at position %d", entry.queue_position, extra=log_extra)
    return entry


async def _sync_linked_appointment(db: AsyncSession, entry: QueueEntry, action: str) -> None:
    if entry.appointment_id is None:
        return
    appointment = await db.get(Appointment, entry.appointment_id)
    if appointment is not None:
        appointment.status = APPOINTMENT_STATUS_FOR[action]


async def mark_done(db: AsyncSession, entry_id: uuid.UUID) -> QueueEntry:
    """Finish the client in the chair and record the billable event."""
    entry = await _get_entry(db, entry_id)
    _check_transition(entry, "done")
    log_extra = _extra(entry)

    entry.status = "done"
    try:
        await _sync_linked_appointment(db, entry, "done")
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Linked appointment update failed: %s", str(e), extra=log_extra)
        raise StoreWriteFailure("Couldn't complete the client")
    await _commit(db, log_extra)

    # Billing side effect; the completed visit stands even if this fails
    try:
        db.add(BillableEvent(shop_id=entry.shop_id, queue_entry_id=entry.id))
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning("Could not create billable event: %s", str(e), extra=log_extra)

    logger.info("Client marked done", extra=log_extra)
    return entry


async def mark_no_show(db: AsyncSession, entry_id: uuid.UUID) -> QueueEntry:
    """Take a waiting client out of the line. Other positions are untouched."""
    entry = await _get_entry(db, entry_id)
    _check_transition(entry, "no_show")
    log_extra = _extra(entry)

    entry.status = "no_show"
    try:
        await _sync_linked_appointment(db, entry, "no_show")
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Linked appointment update failed: %s", str(e), extra=log_extra)
        raise StoreWriteFailure("Couldn't mark the client as no-show")
    await _commit(db, log_extra)

    logger.info("Client marked no-show", extra=log_extra)
    return entry


async def delete_entry(db: AsyncSession, entry_id: uuid.UUID) -> None:
    """Permanently remove an entry that is waiting, a no-show or done."""
    entry = await _get_entry(db, entry_id)
    _check_transition(entry, "delete")
    log_extra = _extra(entry)

    await db.delete(entry)
    await _commit(db, log_extra)
    logger.info("Queue entry deleted", extra=log_extra)


async def get_queue_position(db: AsyncSession, entry_id: uuid.UUID) -> QueuePosition:
    """Where a client stands in their barber's line and roughly how long to wait."""
    from waitwise.config import get_settings

    entry = await _get_entry(db, entry_id)
    if entry.status not in ("waiting", "in_progress"):
        raise NotFound("This client is no longer in the queue")

    try:
        barber_name = None
        if entry.barber_id is not None:
            barber_name = (
                await db.execute(select(Barber.name).where(Barber.id == entry.barber_id))
            ).scalar_one_or_none()

        if entry.status == "in_progress":
            return QueuePosition(entry.status, 0, barber_name, 0)

        waiting = list(
            (
                await db.execute(
                    select(QueueEntry)
                    .where(QueueEntry.barber_id == entry.barber_id, QueueEntry.status == "waiting")
                    .order_by(QueueEntry.queue_position)
                )
            ).scalars().all()
        )
    except SQLAlchemyError as e:
        logger.error("Queue position lookup failed: %s", str(e), extra=_extra(entry))
        raise UpstreamFetchFailure("Couldn't determine queue position")

    ids = [e.id for e in waiting]
    index = ids.index(entry.id)
    wait = estimate_backlog(waiting[:index], get_settings().queue_client_buffer_minutes)
    return QueuePosition(entry.status, index + 1, barber_name, wait)


async def check_in_appointment(
    db: AsyncSession,
    appointment_id: uuid.UUID,
    notify_enabled: bool,
    now: Optional[datetime] = None,
) -> CheckInResult:
    """
    Mark a booked client as arrived and put them in their barber's queue.
    If the barber is free they go straight into the chair.

    The status change and the new queue entry are committed together; if
    either fails the appointment is still booked and check-in can be retried.
    """
    try:
        appointment = (
            await db.execute(select(Appointment).where(Appointment.id == appointment_id))
        ).scalar_one_or_none()
    except SQLAlchemyError as e:
        logger.error("Appointment fetch failed: %s", str(e), extra={"appointment_id": str(appointment_id)})
        raise UpstreamFetchFailure("Couldn't fetch appointment")
    if appointment is None:
        raise NotFound("Appointment not found")
    if appointment.status != "booked":
        raise InvalidTransition(f"Cannot check in an appointment that is {appointment.status}")

    barber_id = appointment.barber_id
    log_extra = _extra(appointment_id=appointment.id, barber_id=barber_id)

    try:
        async with barber_queue_lock(str(barber_id)):
            try:
                await _lock_barber_row(db, barber_id)
                await db.refresh(appointment)
                status = appointment.status
                barber_busy = await _serving_entry(db, barber_id) is not None
                position = await _next_position(db, barber_id)
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error("Check-in read failed: %s", str(e), extra=log_extra)
                raise StoreWriteFailure("Couldn't check in the appointment")
            if status != "booked":
                await db.rollback()
                raise InvalidTransition(f"Cannot check in an appointment that is {status}")

            appointment.status = "checked_in"
            entry = QueueEntry(
                shop_id=appointment.shop_id,
                barber_id=barber_id,
                appointment_id=appointment.id,
                client_name=appointment.client_name,
                client_phone=appointment.client_phone,
                status="waiting",
                queue_position=position,
                services=list(appointment.services),
            )
            db.add(entry)
            await _commit(db, log_extra)
    except LockTimeoutError:
        raise StoreWriteFailure("The queue is busy, please retry")

    logger.info(
        "Appointment checked in at position %d", entry.queue_position,
        extra=_extra(entry, appointment_id=appointment.id),
    )

    if barber_busy:
        return CheckInResult(appointment, entry, False, None)

    try:
        started = await start_service(db, entry.id, notify_enabled, now=now)
    except ConflictAlreadyServing:
        logger.info("Barber became busy during check-in; client stays waiting", extra=log_extra)
        return CheckInResult(appointment, entry, False, None)
    return CheckInResult(appointment, started.entry, True, started.notification)


async def cancel_appointment(db: AsyncSession, appointment_id: uuid.UUID) -> Appointment:
    """Cancel a booked or checked-in appointment, freeing its slot."""
    try:
        appointment = await db.get(Appointment, appointment_id)
    except SQLAlchemyError as e:
        logger.error("Appointment fetch failed: %s", str(e), extra={"appointment_id": str(appointment_id)})
        raise UpstreamFetchFailure("Couldn't fetch appointment")
    if appointment is None:
        raise NotFound("Appointment not found")
    if appointment.status not in ("booked", "checked_in"):
        raise InvalidTransition(f"Cannot cancel an appointment that is {appointment.status}")

    appointment.status = "cancelled"
    await _commit(db, _extra(appointment_id=appointment.id))
    logger.info("Appointment cancelled", extra=_extra(appointment_id=appointment.id))
    return appointment
