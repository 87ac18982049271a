from __future__ import annotations

import pytest
from pyee import EventEmitter

from datamodel import (
    AppSettings,
    IntervalReminder,
    IntervalUnit,
    MainReminderConfig,
    OneTimeReminder,
)
from events import E
from scheduler.engine import EngineTuning, SchedulingEngine

# 2025-06-09 10:00 左右的毫秒时间戳, 具体值无关紧要
T0 = 1_749_434_400_000


class Recorder:
    """把引擎发出的事件记下来, 代替全局 bus"""

    def __init__(self) -> None:
        self.emitter = EventEmitter()
        self.events: list[tuple[str, tuple]] = []
        for name in (E.ALERT_NOTIFY, E.ALERT_DISMISS, E.SETTINGS_CHANGED, E.ALERT_CLOSED, E.SYSTEM_RESUME):
            self.emitter.add_listener(name, self._listener(name))

    def _listener(self, name: str):
        def handler(*args):
            self.events.append((name, args))
        return handler

    def of(self, name: str) -> list[tuple]:
        return [args for n, args in self.events if n == name]

    def notified_ids(self) -> list[str]:
        return [args[0].id for args in self.of(E.ALERT_NOTIFY)]


class Clock:
    def __init__(self, now: int = T0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


class Gate:
    def __init__(self, is_open: bool = True) -> None:
        self.is_open = is_open
        self.calls = 0

    def __call__(self, policy, now) -> bool:
        self.calls += 1
        return self.is_open


class FakeCue:
    def __init__(self) -> None:
        self.played = 0
        self.stopped = 0

    def play(self) -> None:
        self.played += 1

    def stop(self) -> None:
        self.stopped += 1


def interval(rid: str = "r1", seconds: float = 10, **kwargs) -> IntervalReminder:
    return IntervalReminder(id=rid, title=kwargs.pop("title", f"提醒 {rid}"), interval_value=seconds,
                            interval_unit=IntervalUnit.SECONDS, **kwargs)


def onetime(rid: str = "o1", target: int = T0 + 5_000, **kwargs) -> OneTimeReminder:
    return OneTimeReminder(id=rid, title=kwargs.pop("title", f"定点 {rid}"), target_date_time=target, **kwargs)


def main_config(minutes: float | None = 1, prefix: str = "已经工作了", suffix: str = "起来活动一下") -> MainReminderConfig:
    return MainReminderConfig(
        interval_value=minutes,
        interval_unit=IntervalUnit.MINUTES,
        message_prefix=prefix,
        message_suffix=suffix,
    )


def make_engine(
    settings: AppSettings | None = None,
    *,
    now: int = T0,
    gate: Gate | None = None,
    surface: bool = True,
    cue: FakeCue | None = None,
    recorder: Recorder | None = None,
) -> tuple[SchedulingEngine, Recorder, Clock]:
    recorder = recorder or Recorder()
    clock = Clock(now)
    engine = SchedulingEngine(
        settings or AppSettings(),
        emitter=recorder.emitter,
        gate=gate or Gate(True),
        tuning=EngineTuning(
            poll_interval_ms=100,
            sleep_tick_threshold_ms=1000,
            resume_grace_ms=10_000,
            custom_overdue_tolerance_s=3,
            main_overdue_tolerance_s=10,
            reschedule_lead_ms=1000,
        ),
        clock=clock,
        local_cue=cue,
        surface_available=lambda: surface,
    )
    return engine, recorder, clock


def run(engine: SchedulingEngine, clock: Clock, start: int, stop: int, step: int = 100) -> list:
    """从 start 到 stop(含)按 step 毫秒逐个 tick"""
    results = []
    for t in range(start, stop + 1, step):
        clock.now = t
        results.append(engine.tick(t))
    return results


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()
