from .anchor import anchor_next_fire
from .engine import EngineTuning, SchedulingEngine, TickResult, configure_engine, require_engine
from .sleep import SleepDetector
from .timer_store import TimerStore, initial_state

__all__ = [
    "anchor_next_fire",
    "EngineTuning",
    "SchedulingEngine",
    "TickResult",
    "configure_engine",
    "require_engine",
    "SleepDetector",
    "TimerStore",
    "initial_state",
]
