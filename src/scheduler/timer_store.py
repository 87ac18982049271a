from __future__ import annotations

from typing import Dict, Iterable, Iterator

from datamodel import IntervalReminder, OneTimeReminder, Reminder, TimerState
from logger import logger
from utils import seconds_until

__all__ = ["TimerStore", "initial_state"]


def initial_state(reminder: Reminder, now: int) -> TimerState:
    """提醒新建、重新启用或配置变化时的计时状态"""
    if isinstance(reminder, OneTimeReminder):
        return TimerState(
            time_left=max(0, seconds_until(reminder.target_date_time, now)),
            end_time=reminder.target_date_time,
        )

    if not reminder.is_schedulable:
        return TimerState(0, None)

    # 优先沿用持久化的下一次触发时间, 重启进程后节奏不变
    if reminder.next_trigger_time:
        return TimerState(
            time_left=max(0, seconds_until(reminder.next_trigger_time, now)),
            end_time=reminder.next_trigger_time,
        )
    total = int(reminder.period_seconds)
    return TimerState(time_left=total, end_time=now + reminder.period_ms)


class TimerStore:
    """按提醒 id 索引的计时状态, 由调度引擎独占读写"""

    def __init__(self) -> None:
        self._states: Dict[str, TimerState] = {}

    def __contains__(self, reminder_id: str) -> bool:
        return reminder_id in self._states

    def __iter__(self) -> Iterator[str]:
        return iter(self._states)

    def __len__(self) -> int:
        return len(self._states)

    def get(self, reminder_id: str) -> TimerState | None:
        return self._states.get(reminder_id)

    def set(self, reminder_id: str, state: TimerState) -> None:
        self._states[reminder_id] = state

    def time_left(self, reminder_id: str) -> int:
        state = self._states.get(reminder_id)
        return state.time_left if state is not None else 0

    def sync(self, previous: Iterable[Reminder], current: Iterable[Reminder], now: int) -> bool:
        """把提醒定义的变化同步到计时状态, 返回是否有改动"""
        previous_by_id = {r.id: r for r in previous}
        current = list(current)
        current_ids = {r.id for r in current}
        changed = False

        for reminder_id in list(self._states):
            if reminder_id not in current_ids:
                del self._states[reminder_id]
                logger.debug(f"提醒已删除, 移除计时状态: {reminder_id}")
                changed = True

        for r in current:
            prev = previous_by_id.get(r.id)
            state = self._states.get(r.id)

            if not r.enabled:
                # 保留行, 只停止计时; 重新启用时从头开始
                if state is not None and state.end_time is not None:
                    self._states[r.id] = TimerState(0, None)
                    changed = True
                continue

            is_new = prev is None
            re_enabled = prev is not None and not prev.enabled
            config_changed = prev is not None and prev.schedule_key() != r.schedule_key()
            stalled_interval = (
                isinstance(r, IntervalReminder)
                and state is not None
                and state.end_time is None
                and state.time_left == 0
            )

            if is_new or re_enabled or config_changed or state is None or stalled_interval:
                new_state = initial_state(r, now)
                if state != new_state:
                    self._states[r.id] = new_state
                    changed = True
                logger.trace(f"初始化计时状态: id={r.id}, time_left={new_state.time_left}, end_time={new_state.end_time}")

        return changed

    def snapshot(self) -> Dict[str, TimerState]:
        return {k: TimerState(v.time_left, v.end_time) for k, v in self._states.items()}
