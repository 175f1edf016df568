"""
Scheduling service - bookable appointment slots per barber.

For a date, a set of services and an optional barber, produce every
(barber, start time) on a fixed grid that:
- fits inside the shop's working hours
- is not in the past (today only)
- starts after the barber's break
- starts after the barber's waiting queue is expected to clear (today only)
- does not overlap an active appointment, keeping a buffer after each one

The solver itself (solve_slots) is pure; get_available_slots loads its
inputs from the store and fails closed if any read fails.
"""
import logging
import uuid
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from waitwise.errors import (
    InvalidRequest,
    InvalidServiceSet,
    NotFound,
    UpstreamFetchFailure,
)
from waitwise.services.wait_estimator import estimate_backlog
from waitwise.services.working_hours import BusinessWindow, window_for
from waitwise.utils.timezone import ensure_aware, get_business_zone, to_business_time, utc_now

logger = logging.getLogger(__name__)

SLOT_INTERVAL_MINUTES = 30
APPOINTMENT_BUFFER_MINUTES = 10


class AvailableSlot:
    """A bookable start time with one barber."""

    def __init__(self, barber_id: uuid.UUID, barber_name: str, start: datetime):
        self.barber_id = barber_id
        self.barber_name = barber_name
        self.start = start

    def __repr__(self) -> str:
        return f"<AvailableSlot {self.start.isoformat()} barber={self.barber_name}>"

    @property
    def time(self) -> str:
        return self.start.strftime("%H:%M")

    def to_dict(self) -> dict:
        return {
            "barber_id": str(self.barber_id),
            "barber_name": self.barber_name,
            "time": self.time,
        }


class BarberAvailability:
    """The parts of a barber the solver needs."""

    def __init__(
        self,
        barber_id: uuid.UUID,
        name: str,
        is_on_break: bool = False,
        break_end_time: Optional[datetime] = None,
    ):
        self.id = barber_id
        self.name = name
        self.is_on_break = is_on_break
        self.break_end_time = break_end_time


def round_up_to_interval(value: datetime, interval_minutes: int) -> datetime:
    """
    Round up to the next multiple of interval_minutes past the hour,
    with seconds and microseconds zeroed. Exact multiples are unchanged.
    """
    floored = value.replace(second=0, microsecond=0)
    remainder = floored.minute % interval_minutes
    if remainder:
        return floored + timedelta(minutes=interval_minutes - remainder)
    if floored < value:
        return floored + timedelta(minutes=interval_minutes)
    return floored


def earliest_start(
    barber: BarberAvailability,
    window: BusinessWindow,
    now: datetime,
    is_today: bool,
    backlog_minutes: int,
    interval_minutes: int = SLOT_INTERVAL_MINUTES,
) -> datetime:
    """First grid-aligned instant this barber could start a new booking."""
    start = window.open

    if is_today and now > start:
        start = now

    # A break end that has already passed no longer holds anyone up
    if barber.is_on_break and barber.break_end_time is not None:
        break_end = ensure_aware(barber.break_end_time)
        if break_end > start:
            start = break_end

    if is_today:
        queue_clears_at = now + timedelta(minutes=backlog_minutes)
        if queue_clears_at > start:
            start = queue_clears_at

    return round_up_to_interval(start.astimezone(window.open.tzinfo), interval_minutes)


def _first_conflict(
    slot_start: datetime,
    slot_end: datetime,
    appointments: Sequence[tuple[datetime, datetime]],
) -> Optional[tuple[datetime, datetime]]:
    """First appointment overlapping [slot_start, slot_end), half-open."""
    for appt_start, appt_end in appointments:
        if slot_start < appt_end and slot_end > appt_start:
            return appt_start, appt_end
    return None


def barber_slot_starts(
    start: datetime,
    close: datetime,
    appointments: Sequence[tuple[datetime, datetime]],
    slot_span_minutes: int,
    interval_minutes: int = SLOT_INTERVAL_MINUTES,
    buffer_minutes: int = APPOINTMENT_BUFFER_MINUTES,
) -> list[datetime]:
    """
    Walk the grid from start and collect every start time whose span fits
    before close without overlapping an appointment.

    On a conflict the walk jumps past the appointment plus buffer and
    re-checks every appointment from the new position, since landing past
    one appointment can land inside the next.
    """
    span = timedelta(minutes=slot_span_minutes)
    step = timedelta(minutes=interval_minutes)
    ordered = sorted(appointments, key=lambda a: a[0])

    starts = []
    current = start
    while current + span <= close:
        conflict = _first_conflict(current, current + span, ordered)
        if conflict is None:
            starts.append(current)
            current = current + step
            continue

        after_conflict = conflict[1] + timedelta(minutes=buffer_minutes)
        jumped = round_up_to_interval(max(current, after_conflict), interval_minutes)
        current = jumped if jumped > current else current + step

    return starts


def solve_slots(
    window: BusinessWindow,
    target_date: date,
    barbers: Iterable[BarberAvailability],
    service_minutes: int,
    appointments_by_barber: dict,
    backlog_by_barber: dict,
    now: datetime,
    interval_minutes: int = SLOT_INTERVAL_MINUTES,
    buffer_minutes: int = APPOINTMENT_BUFFER_MINUTES,
) -> list[AvailableSlot]:
    """
    Compute available slots for every barber and merge them,
    ordered by start time then barber name.
    """
    tz = window.open.tzinfo
    now = ensure_aware(now).astimezone(tz)
    is_today = now.date() == target_date
    slot_span = service_minutes + buffer_minutes

    slots: list[AvailableSlot] = []
    for barber in barbers:
        start = earliest_start(
            barber,
            window,
            now,
            is_today,
            backlog_by_barber.get(barber.id, 0),
            interval_minutes,
        )
        if start >= window.close:
            continue

        appointments = [
            (to_business_time(a_start, tz), to_business_time(a_end, tz))
            for a_start, a_end in appointments_by_barber.get(barber.id, [])
        ]
        for slot_start in barber_slot_starts(
            start, window.close, appointments, slot_span, interval_minutes, buffer_minutes,
        ):
            slots.append(AvailableSlot(barber.id, barber.name, slot_start))

    slots.sort(key=lambda s: (s.start, s.barber_name))
    return slots


def _parse_uuid(value, field: str) -> uuid.UUID:
    try:
        return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        raise InvalidRequest(f"Invalid {field}: {value!r}")


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except (ValueError, TypeError):
        raise InvalidRequest(f"Invalid date (expected YYYY-MM-DD): {value!r}")


async def get_available_slots(
    db: AsyncSession,
    shop_id,
    service_ids,
    date_string: Optional[str],
    barber_id=None,
    now: Optional[datetime] = None,
) -> list[AvailableSlot]:
    """
    Load a shop's hours, barbers, services, appointments and queue, then solve.
    Any failed read aborts the whole computation.
    """
    from waitwise.config import get_settings
    from waitwise.models.appointment import ACTIVE_APPOINTMENT_STATUSES, Appointment
    from waitwise.models.barber import Barber
    from waitwise.models.queue_entry import QueueEntry
    from waitwise.models.service import Service
    from waitwise.models.shop import Shop

    if not shop_id or not date_string or not isinstance(service_ids, list) or not service_ids:
        raise InvalidRequest("Missing required parameters: shop_id, service_ids, date")

    shop_uuid = _parse_uuid(shop_id, "shop_id")
    service_uuids = [_parse_uuid(s, "service id") for s in service_ids]
    barber_uuid = _parse_uuid(barber_id, "barber_id") if barber_id else None
    target_date = _parse_date(date_string)

    settings = get_settings()
    tz = get_business_zone(settings.business_timezone)
    now = ensure_aware(now or utc_now()).astimezone(tz)
    log_extra = {"shop_id": str(shop_uuid)}

    try:
        # 1. Shop hours
        shop = (
            await db.execute(select(Shop).where(Shop.id == shop_uuid))
        ).scalar_one_or_none()
        if shop is None:
            raise NotFound("Shop not found")
        window = window_for(shop.opening_time, shop.closing_time, target_date, tz)

        # 2. Requested services, all of which must belong to this shop
        services = (
            await db.execute(
                select(Service).where(
                    Service.shop_id == shop_uuid,
                    Service.id.in_(set(service_uuids)),
                )
            )
        ).scalars().all()
        durations = {s.id: s.duration_minutes for s in services}
        missing = [str(s) for s in service_uuids if s not in durations]
        if missing:
            raise InvalidServiceSet(f"Unknown services for this shop: {', '.join(sorted(set(missing)))}")
        service_minutes = sum(durations[s] for s in service_uuids)

        # 3. Barbers working today
        barber_query = select(Barber).where(
            Barber.shop_id == shop_uuid,
            Barber.is_working_today.is_(True),
        )
        if barber_uuid is not None:
            barber_query = barber_query.where(Barber.id == barber_uuid)
        barbers = (await db.execute(barber_query)).scalars().all()
        if not barbers:
            logger.info("No working barbers for %s", target_date, extra=log_extra)
            return []
        barber_ids = [b.id for b in barbers]

        # 4. Active appointments overlapping the day's window
        appt_rows = (
            await db.execute(
                select(Appointment.barber_id, Appointment.start_time, Appointment.end_time)
                .where(
                    Appointment.barber_id.in_(barber_ids),
                    Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
                    Appointment.start_time < window.close.astimezone(timezone.utc),
                    Appointment.end_time > window.open.astimezone(timezone.utc),
                )
                .order_by(Appointment.start_time)
            )
        ).all()

        # 5. Today's waiting queue, only relevant when booking for today
        backlog_by_barber: dict = {}
        if now.date() == target_date:
            start_of_day = datetime.combine(target_date, time(0, 0), tzinfo=tz)
            waiting = (
                await db.execute(
                    select(QueueEntry).where(
                        QueueEntry.barber_id.in_(barber_ids),
                        QueueEntry.status == "waiting",
                        QueueEntry.created_at >= start_of_day.astimezone(timezone.utc),
                    )
                )
            ).scalars().all()
            for barber in barbers:
                backlog_by_barber[barber.id] = estimate_backlog(
                    [e for e in waiting if e.barber_id == barber.id],
                    settings.queue_client_buffer_minutes,
                )
    except SQLAlchemyError as e:
        logger.error("Slot inputs fetch failed: %s", str(e), extra=log_extra)
        raise UpstreamFetchFailure("Couldn't fetch scheduling data")

    appointments_by_barber: dict = {}
    for row in appt_rows:
        appointments_by_barber.setdefault(row.barber_id, []).append(
            (ensure_aware(row.start_time), ensure_aware(row.end_time))
        )

    slots = solve_slots(
        window,
        target_date,
        [
            BarberAvailability(b.id, b.name, bool(b.is_on_break), b.break_end_time)
            for b in barbers
        ],
        service_minutes,
        appointments_by_barber,
        backlog_by_barber,
        now,
        interval_minutes=settings.slot_interval_minutes,
        buffer_minutes=settings.appointment_buffer_minutes,
    )
    logger.info(
        "Computed %d slots for %s across %d barbers",
        len(slots), target_date, len(barbers), extra=log_extra,
    )
    return slots
