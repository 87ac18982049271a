"""调度引擎

单一的轮询循环(默认 100ms)驱动所有计时器:
1. 应用排队中的设置修改;
2. 判断本轮是否刚经历过系统休眠;
3. 推进每个自定义提醒的计时状态, 找出到期的提醒;
4. 周期提醒按锚点重排下一次触发时间;
5. 处理主提醒(工作时段闸门、配置校验、倒计时);
6. 本轮结束时统一执行副作用(弹出提醒、回写 next_trigger_time、删除错过的定点提醒)。

tick() 本身是同步的, 不会在中途让出事件循环, 所以计算与副作用不会交错。
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List

from alerts.manager import AlertManager, LocalCue
from channels.base import any_surface_available
from config.settings import (
    CUSTOM_OVERDUE_TOLERANCE_SECONDS,
    MAIN_OVERDUE_TOLERANCE_SECONDS,
    POLL_INTERVAL_MS,
    RESCHEDULE_LEAD_MS,
    RESUME_GRACE_MS,
    SLEEP_TICK_THRESHOLD_MS,
)
from datamodel import (
    MAIN_REMINDER_ID,
    AppSettings,
    AppStatus,
    CalendarPolicy,
    IntervalReminder,
    OneTimeReminder,
    Reminder,
    TimerState,
)
from events import E, bus
from logger import logger, tick_logger
from metrics import runtime_metrics
from utils import format_datetime, format_duration, ms_to_local, now_ms, seconds_until
from workday import is_active_now

from .anchor import anchor_next_fire
from .sleep import SleepDetector
from .timer_store import TimerStore

__all__ = ["SchedulingEngine", "EngineTuning", "TickResult", "configure_engine", "require_engine"]

Gate = Callable[[CalendarPolicy, datetime], bool]
Mutator = Callable[[AppSettings], AppSettings]


@dataclass
class EngineTuning:
    poll_interval_ms: int = POLL_INTERVAL_MS
    sleep_tick_threshold_ms: int = SLEEP_TICK_THRESHOLD_MS
    resume_grace_ms: int = RESUME_GRACE_MS
    custom_overdue_tolerance_s: int = CUSTOM_OVERDUE_TOLERANCE_SECONDS
    main_overdue_tolerance_s: int = MAIN_OVERDUE_TOLERANCE_SECONDS
    reschedule_lead_ms: int = RESCHEDULE_LEAD_MS


@dataclass
class TickResult:
    now: int
    slept: bool = False
    fired: List[str] = field(default_factory=list)        # 本轮弹出的提醒
    skipped: List[str] = field(default_factory=list)      # 到期但因休眠/严重过期而静默跳过
    removed: List[str] = field(default_factory=list)      # 错过的定点提醒, 直接删除
    rescheduled: Dict[str, int] = field(default_factory=dict)  # id -> 新的 end_time


class SchedulingEngine:
    def __init__(
        self,
        settings: AppSettings | None = None,
        *,
        emitter=bus,
        gate: Gate = is_active_now,
        tuning: EngineTuning | None = None,
        clock: Callable[[], int] = now_ms,
        local_cue: LocalCue | None = None,
        surface_available: Callable[[], bool] = any_surface_available,
    ) -> None:
        self.settings = settings or AppSettings()
        self.tuning = tuning or EngineTuning()
        self._emitter = emitter
        self._gate = gate
        self._clock = clock
        self._pending: Deque[Mutator] = deque()

        self.timers = TimerStore()
        self.sleep = SleepDetector(self.tuning.sleep_tick_threshold_ms, self.tuning.resume_grace_ms)
        self.alerts = AlertManager(
            self, emitter=emitter, local_cue=local_cue, surface_available=surface_available
        )

        # 主提醒的状态只由引擎持有
        self.status = AppStatus.IDLE
        self.end_time: int | None = None
        self.total_time = self.settings.main.total_seconds
        self.time_left = self.total_time
        self.last_tick_ms: int | None = None

        self.timers.sync((), self.settings.reminders, self.now())

    def now(self) -> int:
        return self._clock()

    # ------------------------------------------------------------------
    # 主循环
    # ------------------------------------------------------------------

    async def run_loop(self, shutdown_event: asyncio.Event) -> None:
        logger.info(f"调度引擎主循环已启动, 轮询周期 {self.tuning.poll_interval_ms} ms")
        interval = self.tuning.poll_interval_ms / 1000
        while not shutdown_event.is_set():
            try:
                self.tick()
            except Exception as e:
                logger.exception(f"调度 tick 执行异常: {e}")
            await asyncio.sleep(interval)
        self.alerts.silence()
        logger.info("调度引擎主循环已关闭")

    def tick(self, now: int | None = None) -> TickResult:
        now = self.now() if now is None else now
        self.apply_pending(now)

        slept = self.sleep.observe(now)
        runtime_metrics.record_tick(slept)
        if slept:
            self.alerts.silence()

        result = TickResult(now=now, slept=slept)
        self._advance_custom(now, slept, result)
        self._advance_main(now, slept, result)
        self._commit(result)

        tick_logger.trace(
            "slept={} main={}/{}s fired={} skipped={} removed={}",
            slept, self.status.value, self.time_left, result.fired, result.skipped, result.removed,
        )
        self.last_tick_ms = now
        return result

    def _advance_custom(self, now: int, slept: bool, result: TickResult) -> None:
        tolerance = self.tuning.custom_overdue_tolerance_s
        for r in self.settings.reminders:
            if not r.enabled:
                continue
            state = self.timers.get(r.id)
            if state is None or state.end_time is None:
                continue

            remaining = seconds_until(state.end_time, now)
            if remaining > 0:
                if state.time_left != remaining:
                    state.time_left = remaining
                continue

            overdue = remaining < -tolerance
            should_alert = not (slept or overdue)

            if should_alert:
                result.fired.append(r.id)
            else:
                result.skipped.append(r.id)
                discard = isinstance(r, OneTimeReminder)
                if discard:
                    # 错过的定点提醒不补弹, 直接丢弃
                    result.removed.append(r.id)
                runtime_metrics.record_alert_suppressed(discarded_onetime=discard)
                logger.info(f"跳过提醒: {r.title} (休眠: {slept}, 过期: {-remaining}s)")

            if isinstance(r, IntervalReminder) and r.is_schedulable:
                next_end = anchor_next_fire(state.end_time, now, r.period_ms, self.tuning.reschedule_lead_ms)
                self.timers.set(r.id, TimerState(seconds_until(next_end, now), next_end))
                result.rescheduled[r.id] = next_end
                logger.debug(f"周期提醒重排: {r.title}, 下一次 {format_duration(seconds_until(next_end, now))} 后")
            else:
                self.timers.set(r.id, TimerState(0, None))

    def _advance_main(self, now: int, slept: bool, result: TickResult) -> None:
        settings = self.settings
        should_tick = self.status == AppStatus.RUNNING

        if settings.active_hours_enabled:
            if not self._gate_open(now):
                if self.status not in (AppStatus.WAITING, AppStatus.ALERT_ACTIVE):
                    logger.info("当前不在工作时段, 主提醒进入等待")
                    self._enter_waiting()
                should_tick = False
            else:
                if self.status not in (AppStatus.RUNNING, AppStatus.ALERT_ACTIVE):
                    logger.info("进入工作时段, 主提醒开始计时")
                    self._start_countdown(now)
                should_tick = self.status == AppStatus.RUNNING

        if not should_tick:
            return

        main = settings.main
        self.total_time = main.total_seconds
        if not main.has_interval:
            # 未配置间隔: 显示 00:00, 不计时
            self.time_left = 0
            self.end_time = None
            return
        if not main.has_text:
            # 有间隔没文案: 显示完整间隔, 但不倒计时
            self.time_left = main.total_seconds
            self.end_time = None
            return

        if self.end_time is None:
            # 刚补上文案, 从当前显示的剩余时间继续
            left = self.time_left if self.time_left > 0 else main.total_seconds
            self.end_time = now + left * 1000
            return

        remaining = seconds_until(self.end_time, now)
        if remaining > 0:
            if self.time_left != remaining:
                self.time_left = remaining
            return

        overdue = remaining < -self.tuning.main_overdue_tolerance_s
        if slept or overdue:
            next_end = anchor_next_fire(
                self.end_time, now, main.total_seconds * 1000, self.tuning.reschedule_lead_ms
            )
            self.end_time = next_end
            self.time_left = seconds_until(next_end, now)
            result.skipped.append(MAIN_REMINDER_ID)
            runtime_metrics.record_alert_suppressed()
            logger.info(f"跳过主提醒 (休眠: {slept}, 过期: {-remaining}s), 静默重新计时")
            return

        self.time_left = 0
        if not self.alerts.is_active(MAIN_REMINDER_ID):
            result.fired.append(MAIN_REMINDER_ID)

    def _commit(self, result: TickResult) -> None:
        for alert_id in result.fired:
            self.alerts.fire(alert_id)

        if not result.rescheduled and not result.removed:
            return

        removed = set(result.removed)
        reminders: List[Reminder] = []
        for r in self.settings.reminders:
            if r.id in removed:
                continue
            if isinstance(r, IntervalReminder) and r.id in result.rescheduled:
                r = replace(r, next_trigger_time=result.rescheduled[r.id])
            reminders.append(r)
        self._apply_settings(self.settings.with_reminders(reminders), result.now)

    # ------------------------------------------------------------------
    # 主提醒状态机
    # ------------------------------------------------------------------

    def _gate_open(self, now: int) -> bool:
        return self._gate(self.settings.policy, ms_to_local(now))

    def _enter_waiting(self) -> None:
        self.status = AppStatus.WAITING
        self.end_time = None
        self.total_time = self.settings.main.total_seconds
        self.time_left = self.total_time

    def _start_countdown(self, now: int) -> None:
        total = self.settings.main.total_seconds
        self.total_time = total
        self.time_left = total
        self.end_time = now + total * 1000
        self.status = AppStatus.RUNNING

    def start(self, now: int | None = None) -> None:
        self._start_countdown(self.now() if now is None else now)
        logger.info(f"主提醒开始计时: {format_duration(self.time_left)}")

    def pause(self) -> None:
        self.status = AppStatus.PAUSED
        self.end_time = None
        logger.info(f"主提醒已暂停, 剩余 {format_duration(self.time_left)}")

    def resume(self, now: int | None = None) -> None:
        now = self.now() if now is None else now
        if self.time_left > 0:
            self.end_time = now + self.time_left * 1000
            self.status = AppStatus.RUNNING
        else:
            self._start_countdown(now)
        logger.info(f"主提醒继续计时, 剩余 {format_duration(self.time_left)}")

    def toggle(self, now: int | None = None) -> AppStatus:
        """手动开始/暂停; 启用工作时段后由闸门接管, 手动切换无效"""
        if self.settings.active_hours_enabled:
            logger.debug("已启用工作时段, 忽略手动切换")
            return self.status
        if self.status == AppStatus.IDLE:
            self.start(now)
        elif self.status == AppStatus.PAUSED:
            self.resume(now)
        elif self.status in (AppStatus.RUNNING, AppStatus.WAITING):
            self.pause()
        return self.status

    def on_main_alert_fired(self) -> None:
        self.status = AppStatus.ALERT_ACTIVE
        self.end_time = None
        self.time_left = 0

    def on_main_alert_dismissed(self, now: int) -> None:
        total = self.settings.main.total_seconds
        self.total_time = total
        if self.settings.active_hours_enabled and not self._gate_open(now):
            self._enter_waiting()
            return
        self._start_countdown(now)

    def on_system_resume(self, now: int | None = None) -> None:
        self.sleep.note_resume(self.now() if now is None else now)

    # ------------------------------------------------------------------
    # 设置修改: 排队, 在 tick 边界统一应用
    # ------------------------------------------------------------------

    def submit(self, mutator: Mutator) -> None:
        self._pending.append(mutator)

    def apply_pending(self, now: int | None = None) -> bool:
        if not self._pending:
            return False
        now = self.now() if now is None else now
        changed = False
        while self._pending:
            mutator = self._pending.popleft()
            changed = self._apply_settings(mutator(self.settings), now) or changed
        return changed

    def _apply_settings(self, new: AppSettings, now: int) -> bool:
        prev = self.settings
        if new == prev:
            return False
        self.settings = new

        self.timers.sync(prev.reminders, new.reminders, now)

        if (new.main.interval_value, new.main.interval_unit) != (prev.main.interval_value, prev.main.interval_unit):
            total = new.main.total_seconds
            self.total_time = total
            if self.status == AppStatus.RUNNING:
                self.end_time = now + total * 1000
                self.time_left = total
            elif self.status in (AppStatus.WAITING, AppStatus.PAUSED, AppStatus.IDLE):
                self.end_time = None
                self.time_left = total

        if new.active_hours_enabled and not prev.active_hours_enabled:
            if self.status != AppStatus.ALERT_ACTIVE:
                if self._gate_open(now):
                    self._start_countdown(now)
                else:
                    self._enter_waiting()
        elif prev.active_hours_enabled and not new.active_hours_enabled:
            if self.status == AppStatus.WAITING:
                self.status = AppStatus.IDLE
        elif new.active_hours_enabled and new.policy != prev.policy and self.status == AppStatus.WAITING:
            self.time_left = new.main.total_seconds

        # 对应的自定义提醒已被删除, 弹窗也一并关闭
        for alert_id in self.alerts.active_ids:
            if alert_id != MAIN_REMINDER_ID and new.find(alert_id) is None:
                self.alerts.dismiss(alert_id, now=now)

        self._emitter.emit(E.SETTINGS_CHANGED, new)
        return True

    def _validate(self, reminder: Reminder) -> None:
        if isinstance(reminder, IntervalReminder) and reminder.enabled and not reminder.is_schedulable:
            raise ValueError("间隔时间必须大于0")
        if not reminder.id:
            raise ValueError("提醒 id 不能为空")

    def _prepare(self, reminder: Reminder, now: int) -> Reminder:
        if isinstance(reminder, OneTimeReminder):
            if reminder.target_date_time < now:
                raise ValueError("请选择一个未来的时间")
            return reminder
        self._validate(reminder)
        if not reminder.is_schedulable:
            return replace(reminder, next_trigger_time=None)
        return replace(reminder, next_trigger_time=now + reminder.period_ms)

    def add_reminder(self, reminder: Reminder, now: int | None = None) -> Reminder:
        now = self.now() if now is None else now
        if self.settings.find(reminder.id) is not None:
            raise ValueError(f"提醒 id 已存在: {reminder.id}")
        reminder = self._prepare(reminder, now)
        self.submit(lambda s: s.with_reminders([*s.reminders, reminder]))
        logger.info(f"新增{reminder.type.value}提醒: id={reminder.id}, title={reminder.title}")
        return reminder

    def edit_reminder(self, reminder: Reminder, now: int | None = None) -> Reminder:
        """整体替换同 id 的提醒, 允许改变类型; 计时从现在重新开始"""
        now = self.now() if now is None else now
        if self.settings.find(reminder.id) is None:
            raise KeyError(reminder.id)
        reminder = self._prepare(reminder, now)
        self.submit(lambda s: s.with_reminders([reminder if r.id == reminder.id else r for r in s.reminders]))
        logger.info(f"修改提醒: id={reminder.id}, title={reminder.title}")
        return reminder

    def delete_reminder(self, reminder_id: str) -> None:
        self.submit(lambda s: s.with_reminders([r for r in s.reminders if r.id != reminder_id]))
        logger.info(f"删除提醒: id={reminder_id}")

    def toggle_reminder(self, reminder_id: str, now: int | None = None) -> bool:
        """切换启用状态, 返回切换后的 enabled"""
        now = self.now() if now is None else now
        reminder = self.settings.find(reminder_id)
        if reminder is None:
            raise KeyError(reminder_id)
        enabled = not reminder.enabled

        if enabled and isinstance(reminder, OneTimeReminder) and reminder.target_date_time <= now:
            logger.info(f"定点提醒已过期, 启用时直接删除: {reminder.title}")
            self.delete_reminder(reminder_id)
            return False
        if enabled and isinstance(reminder, IntervalReminder):
            self._validate(replace(reminder, enabled=True))

        def mutate(s: AppSettings) -> AppSettings:
            out: List[Reminder] = []
            for r in s.reminders:
                if r.id == reminder_id:
                    r = replace(r, enabled=enabled)
                    if enabled and isinstance(r, IntervalReminder) and not r.next_trigger_time:
                        r = replace(r, next_trigger_time=now + r.period_ms)
                out.append(r)
            return s.with_reminders(out)

        self.submit(mutate)
        return enabled

    def update_main(self, **changes: Any) -> None:
        candidate = replace(self.settings.main, **changes)
        if candidate.interval_value is not None and not candidate.has_interval:
            raise ValueError("主提醒间隔至少为 1 秒")
        self.submit(lambda s: replace(s, main=replace(s.main, **changes)))

    def update_policy(self, **changes: Any) -> None:
        self.submit(lambda s: replace(s, policy=replace(s.policy, **changes)))

    def set_active_hours_enabled(self, enabled: bool) -> None:
        self.submit(lambda s: replace(s, active_hours_enabled=enabled))

    def set_sound_enabled(self, enabled: bool) -> None:
        self.submit(lambda s: replace(s, sound_enabled=enabled))

    # ------------------------------------------------------------------
    # 状态查询
    # ------------------------------------------------------------------

    def reminder_status(self, reminder: Reminder) -> Dict[str, Any]:
        time_left = self.timers.time_left(reminder.id)
        return {
            "id": reminder.id,
            "title": reminder.title,
            "type": reminder.type.value,
            "enabled": reminder.enabled,
            "time_left": time_left,
            "total_time": int(reminder.period_seconds) if isinstance(reminder, IntervalReminder) else 0,
            "target_date_time": reminder.target_date_time if isinstance(reminder, OneTimeReminder) else None,
            "target_display": format_datetime(reminder.target_date_time) if isinstance(reminder, OneTimeReminder) else None,
            "display": format_duration(time_left),
        }

    def get_status(self) -> Dict[str, Any]:
        return {
            "main": {
                "status": self.status.value,
                "time_left": self.time_left,
                "total_time": self.total_time,
                "end_time": self.end_time,
                "display": format_duration(self.time_left),
            },
            "reminders": [self.reminder_status(r) for r in self.settings.reminders],
            "active_alerts": self.alerts.active_ids,
            "notification": self.alerts.current(),
            "last_tick_at_ms": self.last_tick_ms,
        }


_engine: SchedulingEngine | None = None

def configure_engine(engine: SchedulingEngine) -> None:
    global _engine
    _engine = engine


def require_engine() -> SchedulingEngine:
    if _engine is None:
        raise RuntimeError("调度引擎尚未配置，请先调用 configure_engine()")
    return _engine
