"""
Working-hours window tests - open/close instants, overnight shops, malformed hours.
"""
import pytest
from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from waitwise.errors import InvalidConfiguration
from waitwise.services.working_hours import parse_hhmm, window_for

SYDNEY = ZoneInfo("Australia/Sydney")


class TestParseHhmm:
    def test_plain(self):
        assert parse_hhmm("09:30") == time(9, 30)

    def test_with_seconds(self):
        assert parse_hhmm("17:00:00") == time(17, 0)

    def test_surrounding_whitespace(self):
        assert parse_hhmm(" 08:15 ") == time(8, 15)

    @pytest.mark.parametrize("value", ["9am", "", "09", "24:00", "12:60", "ab:cd", None, 900])
    def test_malformed_rejected(self, value):
        with pytest.raises(InvalidConfiguration):
            parse_hhmm(value)


class TestWindowFor:
    def test_same_day_window(self):
        window = window_for("09:00", "17:00", date(2030, 3, 4), SYDNEY)
        assert window.open == datetime(2030, 3, 4, 9, 0, tzinfo=SYDNEY)
        assert window.close == datetime(2030, 3, 4, 17, 0, tzinfo=SYDNEY)

    def test_overnight_window_rolls_close_to_next_day(self):
        """22:00-06:00 on D opens D 22:00 and closes D+1 06:00."""
        window = window_for("22:00", "06:00", date(2030, 3, 4), SYDNEY)
        assert window.open == datetime(2030, 3, 4, 22, 0, tzinfo=SYDNEY)
        assert window.close == datetime(2030, 3, 5, 6, 0, tzinfo=SYDNEY)

    def test_close_equal_to_open_is_a_full_day(self):
        window = window_for("09:00", "09:00", date(2030, 3, 4), SYDNEY)
        assert window.close == datetime(2030, 3, 5, 9, 0, tzinfo=SYDNEY)

    def test_window_is_in_business_timezone(self):
        window = window_for("09:00", "17:00", date(2030, 3, 4), SYDNEY)
        assert window.open.tzinfo == SYDNEY
        assert window.close > window.open

    def test_malformed_hours_raise(self):
        with pytest.raises(InvalidConfiguration):
            window_for("nine", "17:00", date(2030, 3, 4), SYDNEY)
