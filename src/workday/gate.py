"""工作日历闸门: 判断"现在"是否处于允许主提醒运行的工作时段"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from datamodel import CalendarPolicy, TimeRange, WorkMode
from logger import logger
from utils import date_key, minute_of_day, parse_hhmm, weekday_sunday_first

from .holidays import HolidayCache, holiday_cache

__all__ = ["is_work_day", "is_within_active_hours", "is_active_now"]

_SUNDAY = 0
_SATURDAY = 6


def is_work_day(policy: CalendarPolicy, now: datetime, cache: HolidayCache = holiday_cache) -> bool:
    # 当年数据还没拿到(或 12 月缺下一年)就在后台补拉, 本次按"非节假日"处理
    if cache.needs_refresh(now.date()):
        cache.schedule_refresh(now.date())

    if policy.skip_holidays and cache.is_off_day(date_key(now.date())):
        return False

    day = weekday_sunday_first(now.date())

    if policy.work_mode == WorkMode.EVERYDAY:
        return True

    if policy.work_mode == WorkMode.WEEKEND:
        return day in (_SATURDAY, _SUNDAY)

    if policy.work_mode == WorkMode.BIG_SMALL:
        if day == _SUNDAY:
            return False
        if day == _SATURDAY:
            return policy.is_big_week
        return True

    return True


def _range_contains(time_range: TimeRange, current: int) -> bool:
    start = parse_hhmm(time_range.start)
    end = parse_hhmm(time_range.end)
    if start is None or end is None:
        logger.trace(f"忽略格式不正确的时间段: {time_range.start}-{time_range.end}")
        return False
    if end > start:
        return start <= current < end
    # 跨午夜, 例如 22:00 - 06:00
    return current >= start or current < end


def is_within_active_hours(now: datetime, ranges: Iterable[TimeRange]) -> bool:
    ranges = list(ranges)
    if not ranges:
        return True
    current = minute_of_day(now)
    return any(_range_contains(r, current) for r in ranges)


def is_active_now(policy: CalendarPolicy, now: datetime, cache: HolidayCache = holiday_cache) -> bool:
    return is_work_day(policy, now, cache) and is_within_active_hours(now, policy.active_hours_ranges)
