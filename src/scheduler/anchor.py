"""基于锚点的周期重排

下一次触发时间从上一次"预期"触发时间按整周期累加, 而不是从当前时间重新起算,
这样多次休眠唤醒后提醒依旧落在原来的节奏上(例如总是 xx:40)。
"""

from __future__ import annotations

__all__ = ["anchor_next_fire"]


def anchor_next_fire(previous_end_ms: int, now: int, period_ms: int, lead_ms: int = 1000) -> int:
    """返回 previous_end_ms + k * period_ms 中严格大于 now + lead_ms 的最小值 (k >= 1)

    关机几天之后, 逐个周期累加的循环可能要跑上百万次, 这里直接算出 k。
    """
    if period_ms <= 0:
        raise ValueError(f"周期必须为正数: period_ms={period_ms}")

    horizon = now + lead_ms
    if previous_end_ms > horizon:
        return previous_end_ms + period_ms
    steps = (horizon - previous_end_ms) // period_ms + 1
    return previous_end_ms + steps * period_ms
