"""
Slot solver tests - grid walk, breaks, backlog, conflicts, today floor,
and the store-backed get_available_slots.
"""
import pytest
import uuid
from datetime import date, datetime, timedelta, timezone
from unittest.mock import patch
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError

from waitwise.errors import InvalidRequest, InvalidServiceSet, NotFound, UpstreamFetchFailure
from waitwise.services.scheduling import (
    BarberAvailability,
    barber_slot_starts,
    get_available_slots,
    round_up_to_interval,
    solve_slots,
)
from waitwise.services.working_hours import window_for

SYDNEY = ZoneInfo("Australia/Sydney")
DAY = date(2030, 3, 4)
BEFORE_DAY = datetime(2030, 3, 1, 12, 0, tzinfo=SYDNEY)


def _at(hour, minute=0, day=DAY):
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=SYDNEY)


def _times(slots):
    return [s.time for s in slots]


def _grid(first, last):
    """HH:MM strings every 30 minutes from first to last inclusive."""
    out = []
    current = datetime.combine(DAY, datetime.strptime(first, "%H:%M").time())
    end = datetime.combine(DAY, datetime.strptime(last, "%H:%M").time())
    while current <= end:
        out.append(current.strftime("%H:%M"))
        current += timedelta(minutes=30)
    return out


@pytest.fixture
def ali():
    return BarberAvailability(uuid.uuid4(), "Ali")


@pytest.fixture
def day_window():
    return window_for("09:00", "17:00", DAY, SYDNEY)


class TestRoundUpToInterval:
    def test_rounds_up_to_next_half_hour(self):
        assert round_up_to_interval(_at(10, 15), 30) == _at(10, 30)

    def test_exact_multiple_unchanged(self):
        assert round_up_to_interval(_at(10, 30), 30) == _at(10, 30)

    def test_leftover_seconds_round_up(self):
        assert round_up_to_interval(_at(10, 30) + timedelta(seconds=1), 30) == _at(11, 0)

    def test_rolls_over_midnight(self):
        assert round_up_to_interval(_at(23, 45), 30) == _at(0, 0, day=date(2030, 3, 5))


class TestSolveSlots:
    def test_empty_day(self, ali, day_window):
        """Open 09:00-17:00, 40 minutes of services: 09:00 through 16:00."""
        slots = solve_slots(day_window, DAY, [ali], 40, {}, {}, BEFORE_DAY)
        assert _times(slots) == _grid("09:00", "16:00")
        assert "16:30" not in _times(slots)

    def test_break_pushes_first_slot(self, day_window):
        barber = BarberAvailability(uuid.uuid4(), "Ali", True, _at(10, 15))
        slots = solve_slots(day_window, DAY, [barber], 40, {}, {}, BEFORE_DAY)
        assert _times(slots)[0] == "10:30"

    def test_break_that_already_ended_is_ignored(self, day_window):
        barber = BarberAvailability(uuid.uuid4(), "Ali", True, _at(8, 0))
        slots = solve_slots(day_window, DAY, [barber], 40, {}, {}, BEFORE_DAY)
        assert _times(slots)[0] == "09:00"

    def test_break_end_without_flag_is_ignored(self, day_window):
        barber = BarberAvailability(uuid.uuid4(), "Ali", False, _at(12, 0))
        slots = solve_slots(day_window, DAY, [barber], 40, {}, {}, BEFORE_DAY)
        assert _times(slots)[0] == "09:00"

    def test_appointment_conflict_jumps_past_buffer(self, ali, day_window):
        """10:00-10:40 booked: next free start is 10:40 + 10 buffer, rounded to 11:00."""
        appointments = {ali.id: [(_at(10, 0), _at(10, 40))]}
        slots = solve_slots(day_window, DAY, [ali], 40, appointments, {}, BEFORE_DAY)
        times = _times(slots)
        assert times[:2] == ["09:00", "11:00"]
        for blocked in ("09:30", "10:00", "10:30"):
            assert blocked not in times

    def test_back_to_back_appointments_rechecked_after_jump(self, ali, day_window):
        appointments = {ali.id: [(_at(9, 0), _at(9, 50)), (_at(10, 0), _at(11, 0))]}
        slots = solve_slots(day_window, DAY, [ali], 40, appointments, {}, BEFORE_DAY)
        assert _times(slots)[0] == "11:30"

    def test_slots_never_overlap_appointments(self, ali, day_window):
        service_minutes, buffer = 45, 10
        booked = [
            (_at(9, 20), _at(9, 50)),
            (_at(11, 0), _at(12, 15)),
            (_at(12, 30), _at(12, 45)),
            (_at(15, 5), _at(16, 0)),
        ]
        slots = solve_slots(
            day_window, DAY, [ali], service_minutes, {ali.id: booked}, {}, BEFORE_DAY,
            buffer_minutes=buffer,
        )
        assert slots
        span = timedelta(minutes=service_minutes + buffer)
        for slot in slots:
            for appt_start, appt_end in booked:
                assert not (slot.start < appt_end and slot.start + span > appt_start)
            assert slot.start + span <= day_window.close

    def test_today_never_before_rounded_now(self, ali, day_window):
        now = _at(11, 7)
        slots = solve_slots(day_window, DAY, [ali], 40, {}, {}, now)
        assert slots
        assert _times(slots)[0] == "11:30"
        assert all(s.start >= round_up_to_interval(now, 30) for s in slots)

    def test_today_backlog_delays_first_slot(self, ali, day_window):
        now = _at(9, 0)
        slots = solve_slots(day_window, DAY, [ali], 40, {}, {ali.id: 45}, now)
        assert _times(slots)[0] == "10:00"

    def test_backlog_ignored_for_other_days(self, ali, day_window):
        slots = solve_slots(day_window, DAY, [ali], 40, {}, {ali.id: 300}, BEFORE_DAY)
        assert _times(slots)[0] == "09:00"

    def test_after_close_today_returns_nothing(self, ali, day_window):
        assert solve_slots(day_window, DAY, [ali], 40, {}, {}, _at(18, 0)) == []

    def test_overnight_shop(self, ali):
        window = window_for("22:00", "06:00", DAY, SYDNEY)
        slots = solve_slots(window, DAY, [ali], 40, {}, {}, BEFORE_DAY)
        assert slots[0].start == _at(22, 0)
        assert slots[-1].start == _at(5, 0, day=date(2030, 3, 5))
        assert len(slots) == 15

    def test_sorted_by_time_then_barber_name(self, day_window):
        ben = BarberAvailability(uuid.uuid4(), "Ben")
        ali = BarberAvailability(uuid.uuid4(), "Ali")
        slots = solve_slots(day_window, DAY, [ben, ali], 40, {}, {}, BEFORE_DAY)
        assert [s.barber_name for s in slots[:4]] == ["Ali", "Ben", "Ali", "Ben"]
        assert slots[0].start == slots[1].start

    def test_slot_dict_shape(self, ali, day_window):
        slot = solve_slots(day_window, DAY, [ali], 40, {}, {}, BEFORE_DAY)[0]
        assert slot.to_dict() == {"barber_id": str(ali.id), "barber_name": "Ali", "time": "09:00"}


class TestBarberSlotStarts:
    def test_service_longer_than_window(self):
        assert barber_slot_starts(_at(9), _at(10), [], 90) == []

    def test_exact_fit_is_included(self):
        assert barber_slot_starts(_at(9), _at(10), [], 60) == [_at(9)]


class TestGetAvailableSlots:
    @pytest.mark.asyncio
    async def test_returns_slots_for_shop(self, db, shop, barber, services):
        slots = await get_available_slots(
            db, str(shop.id), [str(s.id) for s in services], DAY.isoformat(),
        )
        assert _times(slots) == _grid("09:00", "16:00")
        assert {s.barber_name for s in slots} == {"Ali"}

    @pytest.mark.asyncio
    async def test_booked_appointment_blocks_slots(self, db, shop, barber, services, make_appointment):
        await make_appointment(barber, _at(10, 0), _at(10, 40))
        slots = await get_available_slots(
            db, str(shop.id), [str(s.id) for s in services], DAY.isoformat(),
        )
        assert _times(slots)[:2] == ["09:00", "11:00"]

    @pytest.mark.asyncio
    async def test_cancelled_appointment_does_not_block(self, db, shop, barber, services, make_appointment):
        await make_appointment(barber, _at(10, 0), _at(10, 40), status="cancelled")
        slots = await get_available_slots(
            db, str(shop.id), [str(s.id) for s in services], DAY.isoformat(),
        )
        assert "10:00" in _times(slots)

    @pytest.mark.asyncio
    async def test_barber_filter(self, db, shop, barber, second_barber, services):
        slots = await get_available_slots(
            db, str(shop.id), [str(services[0].id)], DAY.isoformat(), barber_id=str(second_barber.id),
        )
        assert {s.barber_name for s in slots} == {"Ben"}

    @pytest.mark.asyncio
    async def test_no_working_barbers_returns_empty(self, db, shop, barber, services):
        barber.is_working_today = False
        await db.commit()
        slots = await get_available_slots(
            db, str(shop.id), [str(services[0].id)], DAY.isoformat(),
        )
        assert slots == []

    @pytest.mark.asyncio
    async def test_todays_queue_delays_first_slot(self, db, shop, barber, services, make_entry):
        now = _at(9, 0)
        await make_entry(
            barber, 1, services=[services[0]],
            created_at=_at(8, 30).astimezone(timezone.utc),
        )
        slots = await get_available_slots(
            db, str(shop.id), [str(services[0].id)], DAY.isoformat(), now=now,
        )
        # 30 minute haircut + 5 buffer from 09:00 rounds up to 10:00
        assert _times(slots)[0] == "10:00"

    @pytest.mark.asyncio
    async def test_duplicate_service_ids_counted_each_time(self, db, shop, barber, services):
        haircut = str(services[0].id)
        slots = await get_available_slots(db, str(shop.id), [haircut, haircut], DAY.isoformat())
        # 60 minutes + 10 buffer: 15:30 is the last start before 17:00
        assert _times(slots)[-1] == "15:30"

    @pytest.mark.asyncio
    async def test_unknown_service(self, db, shop, barber, services):
        with pytest.raises(InvalidServiceSet):
            await get_available_slots(db, str(shop.id), [str(uuid.uuid4())], DAY.isoformat())

    @pytest.mark.asyncio
    async def test_service_from_other_shop(self, db, shop, barber):
        from waitwise.models.service import Service
        from waitwise.models.shop import Shop

        other = Shop(name="Other Shop")
        db.add(other)
        await db.flush()
        foreign = Service(shop_id=other.id, name="Perm", duration_minutes=90)
        db.add(foreign)
        await db.commit()

        with pytest.raises(InvalidServiceSet):
            await get_available_slots(db, str(shop.id), [str(foreign.id)], DAY.isoformat())

    @pytest.mark.asyncio
    async def test_unknown_shop(self, db, services):
        with pytest.raises(NotFound):
            await get_available_slots(db, str(uuid.uuid4()), [str(services[0].id)], DAY.isoformat())

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "shop_id,service_ids,date_string",
        [
            (None, ["x"], "2030-03-04"),
            ("a1f0c2de-5b7e-4c1a-9e3d-2f6b8c4d1e01", [], "2030-03-04"),
            ("a1f0c2de-5b7e-4c1a-9e3d-2f6b8c4d1e01", None, "2030-03-04"),
            ("a1f0c2de-5b7e-4c1a-9e3d-2f6b8c4d1e01", ["x"], None),
            ("not-a-uuid", [str(uuid.uuid4())], "2030-03-04"),
            ("a1f0c2de-5b7e-4c1a-9e3d-2f6b8c4d1e01", [str(uuid.uuid4())], "04/03/2030"),
        ],
    )
    async def test_invalid_request(self, db, shop_id, service_ids, date_string):
        with pytest.raises(InvalidRequest):
            await get_available_slots(db, shop_id, service_ids, date_string)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failing_read", [2, 3, 4, 5])
    async def test_failed_read_aborts_whole_computation(
        self, db, shop, barber, services, make_entry, failing_read,
    ):
        await make_entry(barber, 1, created_at=_at(8, 30).astimezone(timezone.utc))
        real_execute = db.execute
        calls = []

        async def _flaky_execute(*args, **kwargs):
            calls.append(args)
            if len(calls) == failing_read:
                raise SQLAlchemyError("connection reset")
            return await real_execute(*args, **kwargs)

        with patch.object(db, "execute", side_effect=_flaky_execute):
            with pytest.raises(UpstreamFetchFailure):
                await get_available_slots(
                    db, str(shop.id), [str(services[0].id)], DAY.isoformat(), now=_at(8, 0),
                )
        assert len(calls) == failing_read
