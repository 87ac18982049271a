from .holidays import HolidayCache, holiday_cache
from .gate import is_active_now, is_within_active_hours, is_work_day

__all__ = ["HolidayCache", "holiday_cache", "is_active_now", "is_within_active_hours", "is_work_day"]
