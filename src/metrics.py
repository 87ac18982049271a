"""
一个简单的运行时指标收集类，用于统计调度循环、提醒触发与节假日数据拉取等信息，方便后续扩展和监控。
"""

from __future__ import annotations

import time
from dataclasses import dataclass


@dataclass
class RuntimeMetrics:
    tick_count: int = 0
    sleep_detected_count: int = 0
    alert_fired_count: int = 0
    alert_suppressed_count: int = 0
    alert_dismissed_count: int = 0
    onetime_discarded_count: int = 0
    holiday_fetch_count: int = 0
    holiday_fetch_error_count: int = 0
    last_tick_at: float | None = None

    def record_tick(self, slept: bool = False) -> None:
        self.tick_count += 1
        self.last_tick_at = time.time()
        if slept:
            self.sleep_detected_count += 1

    def record_alert_fired(self) -> None:
        self.alert_fired_count += 1

    def record_alert_suppressed(self, discarded_onetime: bool = False) -> None:
        self.alert_suppressed_count += 1
        if discarded_onetime:
            self.onetime_discarded_count += 1

    def record_alert_dismissed(self) -> None:
        self.alert_dismissed_count += 1

    def record_holiday_fetch(self, error: bool = False) -> None:
        self.holiday_fetch_count += 1
        if error:
            self.holiday_fetch_error_count += 1

    def snapshot(self) -> dict:
        return {
            "tick_count": self.tick_count,
            "sleep_detected_count": self.sleep_detected_count,
            "alert_fired_count": self.alert_fired_count,
            "alert_suppressed_count": self.alert_suppressed_count,
            "alert_dismissed_count": self.alert_dismissed_count,
            "onetime_discarded_count": self.onetime_discarded_count,
            "holiday_fetch_count": self.holiday_fetch_count,
            "holiday_fetch_error_count": self.holiday_fetch_error_count,
            "last_tick_at_epoch": self.last_tick_at,
            "last_tick_at_utc": (
                time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(self.last_tick_at))
                if self.last_tick_at is not None
                else None
            ),
        }


runtime_metrics = RuntimeMetrics()


__all__ = ["RuntimeMetrics", "runtime_metrics"]
