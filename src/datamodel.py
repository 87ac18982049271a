import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Tuple, Union

__all__ = [
    "MAIN_REMINDER_ID",
    "IntervalUnit", "ReminderType", "WorkMode", "AppStatus", "AlertType",
    "IntervalReminder", "OneTimeReminder", "Reminder", "reminder_from_dict",
    "TimeRange", "CalendarPolicy", "MainReminderConfig", "AppSettings",
    "TimerState", "NotificationSnapshot", "AlertNotification",
]

MAIN_REMINDER_ID = "main"


def _to_positive_number(value: Any) -> Optional[float]:
    """把外部输入的间隔值转成正数, 空串/NaN/非正数都视为未配置"""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number <= 0:
        return None
    return number


# ----------------- 枚举 ----------------
class IntervalUnit(str, Enum):
    SECONDS = "seconds"
    MINUTES = "minutes"
    HOURS = "hours"

    @property
    def multiplier(self) -> int:
        return {"seconds": 1, "minutes": 60, "hours": 3600}[self.value]

    @property
    def label(self) -> str:
        return {"seconds": "秒", "minutes": "分钟", "hours": "小时"}[self.value]

    @classmethod
    def parse(cls, raw: Any) -> "IntervalUnit":
        try:
            return cls(raw)
        except ValueError:
            return cls.MINUTES

class ReminderType(str, Enum):
    INTERVAL = "interval"
    ONETIME = "onetime"

class WorkMode(str, Enum):
    EVERYDAY = "everyday"
    BIG_SMALL = "big-small"
    WEEKEND = "weekend"

class AppStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    WAITING = "waiting"
    ALERT_ACTIVE = "alert_active"

class AlertType(str, Enum):
    MAIN = "main"
    INTERVAL = "interval"
    ONETIME = "onetime"


# ----------------- Reminder 数据模型 ----------------
# type 是类级标签, 周期提醒不可能携带 target_date_time, 反之亦然
@dataclass(frozen=True)
class IntervalReminder:
    id: str
    title: str
    enabled: bool = True
    interval_value: Optional[float] = 30
    interval_unit: IntervalUnit = IntervalUnit.MINUTES
    next_trigger_time: Optional[int] = None  # 毫秒时间戳, 持久化的下一次触发时间

    type: ClassVar[ReminderType] = ReminderType.INTERVAL

    @property
    def period_seconds(self) -> float:
        value = _to_positive_number(self.interval_value)
        return 0 if value is None else value * self.interval_unit.multiplier

    @property
    def period_ms(self) -> int:
        return int(round(self.period_seconds * 1000))

    @property
    def is_schedulable(self) -> bool:
        return self.period_ms > 0

    def schedule_key(self) -> tuple:
        """这些字段变化时需要重新计算计时状态"""
        return (self.type, self.interval_value, self.interval_unit, self.next_trigger_time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "type": self.type.value,
            "enabled": self.enabled,
            "interval_value": self.interval_value,
            "interval_unit": self.interval_unit.value,
            "next_trigger_time": self.next_trigger_time,
        }

@dataclass(frozen=True)
class OneTimeReminder:
    id: str
    title: str
    target_date_time: int  # 毫秒时间戳
    enabled: bool = True

    type: ClassVar[ReminderType] = ReminderType.ONETIME

    def schedule_key(self) -> tuple:
        return (self.type, self.target_date_time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "type": self.type.value,
            "enabled": self.enabled,
            "target_date_time": self.target_date_time,
        }

Reminder = Union[IntervalReminder, OneTimeReminder]


def reminder_from_dict(data: Dict[str, Any]) -> Reminder:
    """按 type 字段分派; 缺省为周期提醒(兼容旧数据)"""
    kind = data.get("type") or ReminderType.INTERVAL.value
    if kind == ReminderType.ONETIME.value:
        target = data.get("target_date_time")
        if target is None:
            raise ValueError(f"定点提醒缺少 target_date_time: id={data.get('id')}")
        return OneTimeReminder(
            id=str(data["id"]),
            title=str(data.get("title", "")),
            target_date_time=int(target),
            enabled=bool(data.get("enabled", True)),
        )
    if kind != ReminderType.INTERVAL.value:
        raise ValueError(f"未知的提醒类型: {kind}")

    next_trigger = data.get("next_trigger_time")
    return IntervalReminder(
        id=str(data["id"]),
        title=str(data.get("title", "")),
        enabled=bool(data.get("enabled", True)),
        interval_value=_to_positive_number(data.get("interval_value", 30)) or 30,
        interval_unit=IntervalUnit.parse(data.get("interval_unit")),
        next_trigger_time=int(next_trigger) if next_trigger else None,
    )


# ----------------- 日历策略 ----------------
@dataclass(frozen=True)
class TimeRange:
    start: str  # "HH:MM"
    end: str    # "HH:MM"
    id: str = ""

@dataclass(frozen=True)
class CalendarPolicy:
    work_mode: WorkMode = WorkMode.EVERYDAY
    is_big_week: bool = False  # True = 大周(周六上班), False = 小周(周六休息)
    skip_holidays: bool = True
    active_hours_ranges: Tuple[TimeRange, ...] = (
        TimeRange("09:00", "12:00", "default-1"),
        TimeRange("13:00", "18:00", "default-2"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "work_mode": self.work_mode.value,
            "is_big_week": self.is_big_week,
            "skip_holidays": self.skip_holidays,
            "active_hours_ranges": [
                {"id": r.id, "start": r.start, "end": r.end} for r in self.active_hours_ranges
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CalendarPolicy":
        default = cls()
        try:
            work_mode = WorkMode(data.get("work_mode", default.work_mode.value))
        except ValueError:
            work_mode = WorkMode.EVERYDAY
        raw_ranges = data.get("active_hours_ranges")
        if isinstance(raw_ranges, list):
            ranges = tuple(
                TimeRange(start=str(r.get("start", "")), end=str(r.get("end", "")), id=str(r.get("id", "")))
                for r in raw_ranges
                if isinstance(r, dict)
            )
        else:
            ranges = default.active_hours_ranges
        return cls(
            work_mode=work_mode,
            is_big_week=bool(data.get("is_big_week", default.is_big_week)),
            skip_holidays=bool(data.get("skip_holidays", default.skip_holidays)),
            active_hours_ranges=ranges,
        )


# ----------------- 主提醒 ----------------
@dataclass(frozen=True)
class MainReminderConfig:
    interval_value: Optional[float] = None  # None = 未配置
    interval_unit: IntervalUnit = IntervalUnit.MINUTES
    message_prefix: str = ""
    message_suffix: str = ""

    @property
    def has_interval(self) -> bool:
        # 不足 1 秒的间隔取整后为 0, 视同未配置
        return self.total_seconds > 0

    @property
    def has_text(self) -> bool:
        return bool((self.message_prefix or "").strip() or (self.message_suffix or "").strip())

    @property
    def total_seconds(self) -> int:
        value = _to_positive_number(self.interval_value)
        return 0 if value is None else int(value * self.interval_unit.multiplier)

    @property
    def can_fire(self) -> bool:
        return self.has_interval and self.has_text

    def to_dict(self) -> Dict[str, Any]:
        return {
            "interval_value": self.interval_value,
            "interval_unit": self.interval_unit.value,
            "message_prefix": self.message_prefix,
            "message_suffix": self.message_suffix,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MainReminderConfig":
        return cls(
            interval_value=_to_positive_number(data.get("interval_value")),
            interval_unit=IntervalUnit.parse(data.get("interval_unit")),
            message_prefix=str(data.get("message_prefix") or ""),
            message_suffix=str(data.get("message_suffix") or ""),
        )


# ----------------- 设置聚合 ----------------
@dataclass(frozen=True)
class AppSettings:
    main: MainReminderConfig = field(default_factory=MainReminderConfig)
    policy: CalendarPolicy = field(default_factory=CalendarPolicy)
    active_hours_enabled: bool = False
    sound_enabled: bool = True
    reminders: Tuple[Reminder, ...] = ()

    def find(self, reminder_id: str) -> Optional[Reminder]:
        for r in self.reminders:
            if r.id == reminder_id:
                return r
        return None

    def with_reminders(self, reminders) -> "AppSettings":
        return replace(self, reminders=tuple(reminders))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "main": self.main.to_dict(),
            "policy": self.policy.to_dict(),
            "active_hours_enabled": self.active_hours_enabled,
            "sound_enabled": self.sound_enabled,
            "reminders": [r.to_dict() for r in self.reminders],
        }


# ----------------- 计时与提醒 ----------------
@dataclass
class TimerState:
    time_left: int = 0                # 剩余秒数, 非负
    end_time: Optional[int] = None    # None 表示没有在倒计时

@dataclass(frozen=True)
class NotificationSnapshot:
    title: str
    message: str

@dataclass(frozen=True)
class AlertNotification:
    id: str
    title: str
    message: str
    type: AlertType

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "title": self.title, "message": self.message, "type": self.type.value}
