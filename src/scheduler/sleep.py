from __future__ import annotations

from config.settings import RESUME_GRACE_MS, SLEEP_TICK_THRESHOLD_MS
from logger import logger

__all__ = ["SleepDetector"]


class SleepDetector:
    """两路信号判断系统是否刚刚休眠过:

    1. tick 间隔: 轮询循环本身被挂起, 两次 tick 之间的间隔远大于轮询周期;
    2. 唤醒信号: 电源监视器报告了 resume, 之后的静默窗口内都视为"可能休眠过"。
    """

    def __init__(
        self,
        tick_threshold_ms: int = SLEEP_TICK_THRESHOLD_MS,
        resume_grace_ms: int = RESUME_GRACE_MS,
    ) -> None:
        self.tick_threshold_ms = tick_threshold_ms
        self.resume_grace_ms = resume_grace_ms
        self.last_tick_ms: int | None = None
        self.last_resume_ms: int | None = None

    def note_resume(self, now: int) -> None:
        logger.info(f"系统已唤醒, {self.resume_grace_ms / 1000:.0f} 秒内不触发提醒")
        self.last_resume_ms = now

    def observe(self, now: int) -> bool:
        """记录本次 tick 并返回是否视为休眠过"""
        delta = None if self.last_tick_ms is None else now - self.last_tick_ms
        self.last_tick_ms = now

        tick_stalled = delta is not None and delta > self.tick_threshold_ms
        just_resumed = (
            self.last_resume_ms is not None
            and 0 <= now - self.last_resume_ms < self.resume_grace_ms
        )

        if tick_stalled:
            logger.info(f"检测到轮询中断 {delta} ms, 本轮视为系统休眠")
        return tick_stalled or just_resumed
