"""
Staff availability tests - working today and breaks.
"""
import pytest
import uuid
from datetime import datetime, timedelta, timezone

from waitwise.errors import InvalidRequest, NotFound
from waitwise.services.staff import MAX_BREAK_MINUTES, end_break, set_working_today, start_break
from waitwise.utils.timezone import ensure_aware


class TestWorkingToday:
    @pytest.mark.asyncio
    async def test_toggle_off_and_on(self, db, barber):
        barber = await set_working_today(db, barber.id, False)
        assert barber.is_working_today is False

        barber = await set_working_today(db, barber.id, True)
        assert barber.is_working_today is True

    @pytest.mark.asyncio
    async def test_going_off_shift_ends_break(self, db, barber):
        await start_break(db, barber.id, 15)
        barber = await set_working_today(db, barber.id, False)
        assert barber.is_on_break is False
        assert barber.break_end_time is None

    @pytest.mark.asyncio
    async def test_unknown_barber(self, db):
        with pytest.raises(NotFound):
            await set_working_today(db, uuid.uuid4(), True)


class TestBreaks:
    @pytest.mark.asyncio
    async def test_break_end_time(self, db, barber):
        now = datetime(2030, 3, 4, 1, 0, tzinfo=timezone.utc)
        barber = await start_break(db, barber.id, 20, now=now)

        assert barber.is_on_break is True
        assert ensure_aware(barber.break_end_time) == now + timedelta(minutes=20)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("minutes", [0, -5, MAX_BREAK_MINUTES + 1])
    async def test_invalid_length(self, db, barber, minutes):
        with pytest.raises(InvalidRequest):
            await start_break(db, barber.id, minutes)

    @pytest.mark.asyncio
    async def test_not_working_today(self, db, barber):
        await set_working_today(db, barber.id, False)
        with pytest.raises(InvalidRequest):
            await start_break(db, barber.id, 15)

    @pytest.mark.asyncio
    async def test_end_break(self, db, barber):
        await start_break(db, barber.id, 30)
        barber = await end_break(db, barber.id)
        assert barber.is_on_break is False
        assert barber.break_end_time is None
