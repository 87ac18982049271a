"""提醒弹窗生命周期管理

ActiveAlerts 用一个保持插入顺序的 dict 表示: key 为提醒 id, value 为触发那一刻的显示快照。
快照在触发时生成, 之后即使用户修改了提醒标题, 已经弹出的提醒内容也不会变。
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Protocol

from channels.base import any_surface_available
from config.settings import MAIN_ALERT_TITLE
from datamodel import (
    MAIN_REMINDER_ID,
    AlertNotification,
    AlertType,
    IntervalReminder,
    NotificationSnapshot,
    OneTimeReminder,
)
from events import E, bus
from logger import logger
from metrics import runtime_metrics

if TYPE_CHECKING:
    from scheduler.engine import SchedulingEngine

__all__ = ["AlertManager", "LocalCue"]

# 定点提醒的目标时间在 now + 1s 之内即视为已经过期
_SPENT_SLACK_MS = 1000


class LocalCue(Protocol):
    def play(self) -> None: ...
    def stop(self) -> None: ...


def _format_number(value: Optional[float]) -> str:
    if value is None:
        return ""
    return str(int(value)) if float(value).is_integer() else str(value)


class AlertManager:
    def __init__(
        self,
        engine: "SchedulingEngine",
        emitter=bus,
        local_cue: LocalCue | None = None,
        surface_available: Callable[[], bool] = any_surface_available,
    ) -> None:
        self._engine = engine
        self._emitter = emitter
        self._local_cue = local_cue
        self._surface_available = surface_available
        self._active: Dict[str, NotificationSnapshot] = {}

    @property
    def active_ids(self) -> List[str]:
        return list(self._active)

    def is_active(self, alert_id: str) -> bool:
        return alert_id in self._active

    def snapshot(self, alert_id: str) -> NotificationSnapshot | None:
        return self._active.get(alert_id)

    def notifications(self) -> List[Dict[str, Any]]:
        return [
            {"id": alert_id, "title": snap.title, "message": snap.message}
            for alert_id, snap in self._active.items()
        ]

    def current(self) -> Dict[str, Any] | None:
        """最近一次触发且尚未关闭的提醒"""
        if not self._active:
            return None
        return self.notifications()[-1]

    def describe(self, alert_id: str) -> AlertNotification:
        settings = self._engine.settings
        if alert_id == MAIN_REMINDER_ID:
            main = settings.main
            duration = f"{_format_number(main.interval_value)} {main.interval_unit.label}"
            return AlertNotification(
                id=alert_id,
                title=MAIN_ALERT_TITLE,
                message=f"{main.message_prefix} {duration} {main.message_suffix}",
                type=AlertType.MAIN,
            )

        reminder = settings.find(alert_id)
        if isinstance(reminder, IntervalReminder):
            return AlertNotification(alert_id, "周期提醒", reminder.title, AlertType.INTERVAL)
        if isinstance(reminder, OneTimeReminder):
            return AlertNotification(alert_id, "定点提醒", reminder.title, AlertType.ONETIME)
        return AlertNotification(alert_id, "定时提醒", "自定义提醒", AlertType.INTERVAL)

    def fire(self, alert_id: str) -> bool:
        if alert_id in self._active:
            logger.debug(f"提醒 {alert_id} 尚未关闭, 忽略重复触发")
            return False

        settings = self._engine.settings
        if alert_id == MAIN_REMINDER_ID and not settings.main.can_fire:
            # 间隔或文案缺失的主提醒不允许弹出
            logger.debug("主提醒未配置间隔或文案, 不触发")
            return False

        notification = self.describe(alert_id)
        self._active[alert_id] = NotificationSnapshot(notification.title, notification.message)
        if alert_id == MAIN_REMINDER_ID:
            self._engine.on_main_alert_fired()

        runtime_metrics.record_alert_fired()
        logger.info(f"触发提醒: id={alert_id}, title={notification.title}, message={notification.message}")

        if self._surface_available():
            self._emitter.emit(E.ALERT_NOTIFY, notification)
        elif settings.sound_enabled and self._local_cue is not None:
            self._local_cue.play()
        return True

    def dismiss(self, alert_id: str, from_external: bool = False, now: int | None = None) -> bool:
        if alert_id not in self._active:
            logger.trace(f"提醒 {alert_id} 不在活动列表中, 忽略关闭请求")
            return False

        now = self._engine.now() if now is None else now
        reminder = self._engine.settings.find(alert_id)
        if isinstance(reminder, OneTimeReminder) and reminder.target_date_time <= now + _SPENT_SLACK_MS:
            logger.info(f"定点提醒已完成, 从列表中移除: {reminder.title}")
            self._engine.delete_reminder(alert_id)

        del self._active[alert_id]
        runtime_metrics.record_alert_dismissed()
        logger.info(f"关闭提醒: id={alert_id}, from_external={from_external}")

        if not self._active:
            self.silence()

        # 来自通知界面的关闭不再回传, 避免回声
        if not from_external:
            self._emitter.emit(E.ALERT_DISMISS, alert_id)

        if alert_id == MAIN_REMINDER_ID:
            self._engine.on_main_alert_dismissed(now)
        return True

    def silence(self) -> None:
        if self._local_cue is not None:
            self._local_cue.stop()
