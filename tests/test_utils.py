from datetime import date, datetime

import pytest

from utils import format_duration, minute_of_day, parse_hhmm, seconds_until, weekday_sunday_first


class TestSecondsUntil:
    def test_rounds_up(self):
        assert seconds_until(10_001, 0) == 11
        assert seconds_until(10_000, 0) == 10
        assert seconds_until(10_000, 9_999) == 1

    def test_zero_and_negative(self):
        assert seconds_until(10_000, 10_000) == 0
        assert seconds_until(10_000, 10_999) == 0
        assert seconds_until(10_000, 14_000) == -4


class TestParseHHMM:
    @pytest.mark.parametrize("raw,expected", [("00:00", 0), ("09:30", 570), ("23:59", 1439), ("7:05", 425)])
    def test_valid(self, raw, expected):
        assert parse_hhmm(raw) == expected

    @pytest.mark.parametrize("raw", ["", "24:00", "12:60", "ab:cd", "1200", None])
    def test_invalid(self, raw):
        assert parse_hhmm(raw) is None


class TestFormatDuration:
    def test_minutes(self):
        assert format_duration(0) == "00:00"
        assert format_duration(59) == "00:59"
        assert format_duration(30 * 60) == "30:00"

    def test_hours(self):
        assert format_duration(3661) == "01:01:01"

    def test_days_and_longer(self):
        assert format_duration(86_400) == "1天 00:00:00"
        assert format_duration(365 * 86_400 + 30 * 86_400 + 2 * 86_400 + 5) == "1年 1个月 2天 00:00:05"

    def test_negative_is_clamped(self):
        assert format_duration(-1) == "00:00:00"


def test_weekday_and_minute():
    assert weekday_sunday_first(date(2025, 6, 8)) == 0  # 周日
    assert weekday_sunday_first(date(2025, 6, 7)) == 6  # 周六
    assert minute_of_day(datetime(2025, 6, 9, 13, 45)) == 825
