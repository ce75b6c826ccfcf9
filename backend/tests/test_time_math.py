"""Minute-of-day conversions used at the config and HTTP edges."""
from datetime import time

import pytest

from courtgrid.utils.time_math import MINUTES_PER_DAY, format_hhmm, parse_hhmm, to_minutes


class TestParseHHMM:
    def test_basic(self):
        assert parse_hhmm("08:00") == 480
        assert parse_hhmm("19:45") == 1185
        assert parse_hhmm("00:00") == 0

    def test_end_of_day(self):
        assert parse_hhmm("24:00") == MINUTES_PER_DAY

    def test_seconds_must_be_zero(self):
        assert parse_hhmm("09:30:00") == 570
        with pytest.raises(ValueError):
            parse_hhmm("09:30:15")

    @pytest.mark.parametrize("value", ["8am", "9:61", "24:01", "", "12-00", "25:00"])
    def test_rejects_malformed(self, value):
        with pytest.raises(ValueError):
            parse_hhmm(value)


def test_format_hhmm():
    assert format_hhmm(0) == "00:00"
    assert format_hhmm(570) == "09:30"
    assert format_hhmm(1440) == "24:00"
    with pytest.raises(ValueError):
        format_hhmm(1441)


def test_to_minutes_accepts_int_str_and_time():
    assert to_minutes(600) == 600
    assert to_minutes("10:00") == 600
    assert to_minutes(time(10, 0)) == 600


def test_to_minutes_rejects_bool_and_out_of_range():
    with pytest.raises(ValueError):
        to_minutes(True)
    with pytest.raises(ValueError):
        to_minutes(-5)
    with pytest.raises(ValueError):
        to_minutes(2000)
