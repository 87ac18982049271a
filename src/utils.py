import math
import time
from datetime import date, datetime

__all__ = ["now_ms", "ms_to_local", "seconds_until", "date_key", "weekday_sunday_first",
           "minute_of_day", "parse_hhmm", "format_duration", "format_datetime"]

_SEC_MINUTE = 60
_SEC_HOUR = 3600
_SEC_DAY = 86400
_SEC_MONTH = 30 * _SEC_DAY  # 约数
_SEC_YEAR = 365 * _SEC_DAY  # 约数


def now_ms() -> int:
    """当前墙上时间, 毫秒时间戳"""
    return int(time.time() * 1000)

def ms_to_local(timestamp_ms: int) -> datetime:
    return datetime.fromtimestamp(timestamp_ms / 1000)

def seconds_until(end_ms: int, now: int) -> int:
    """ceil((end_ms - now) / 1000), 纯整数运算避免浮点误差"""
    return -((now - end_ms) // 1000)

def date_key(day: date) -> str:
    """'YYYY-MM-DD', 与节假日数据中的 date 字段一致"""
    return day.strftime("%Y-%m-%d")

def weekday_sunday_first(day: date) -> int:
    """0=周日 .. 6=周六"""
    return day.isoweekday() % 7

def minute_of_day(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute

def parse_hhmm(value: str) -> int | None:
    """'HH:MM' -> 当天第几分钟, 格式不合法时返回 None"""
    if not value or ":" not in value:
        return None
    hour_str, _, minute_str = value.partition(":")
    try:
        hour, minute = int(hour_str), int(minute_str)
    except ValueError:
        return None
    if not (0 <= hour < 24 and 0 <= minute < 60):
        return None
    return hour * 60 + minute

def format_duration(seconds: float) -> str:
    """倒计时显示: 'MM:SS' / 'HH:MM:SS', 超过一天时为 'N年 N个月 N天 HH:MM:SS'"""
    if not math.isfinite(seconds) or seconds < 0:
        return "00:00:00"

    remaining = int(seconds)
    if remaining < _SEC_DAY:
        h = remaining // _SEC_HOUR
        m = (remaining % _SEC_HOUR) // _SEC_MINUTE
        s = remaining % _SEC_MINUTE
        if h > 0:
            return f"{h:02d}:{m:02d}:{s:02d}"
        return f"{m:02d}:{s:02d}"

    y, remaining = divmod(remaining, _SEC_YEAR)
    mo, remaining = divmod(remaining, _SEC_MONTH)
    d, remaining = divmod(remaining, _SEC_DAY)
    h, remaining = divmod(remaining, _SEC_HOUR)
    mi, s = divmod(remaining, _SEC_MINUTE)

    parts: list[str] = []
    if y > 0:
        parts.append(f"{y}年")
    if mo > 0:
        parts.append(f"{mo}个月")
    if d > 0:
        parts.append(f"{d}天")
    return f"{' '.join(parts)} {h:02d}:{mi:02d}:{s:02d}".strip()

def format_datetime(timestamp_ms: int | None) -> str | None:
    if timestamp_ms is None:
        return None
    return ms_to_local(timestamp_ms).strftime("%Y-%m-%d %H:%M:%S")
