"""锚点重排: 下一次触发时间始终落在原节奏上"""

import pytest

from scheduler.anchor import anchor_next_fire


class TestAnchorNextFire:
    def test_due_now_moves_one_period(self):
        assert anchor_next_fire(10_000, 10_000, 10_000) == 20_000

    def test_within_lead_skips_an_extra_period(self):
        # 10_500 + 1000 的前瞻越过了 20_000 之前的一刻, 仍然是 20_000
        assert anchor_next_fire(10_000, 10_500, 10_000) == 20_000
        # 19_500 + 1000 > 20_000, 只能排到 30_000
        assert anchor_next_fire(10_000, 19_500, 10_000) == 30_000

    def test_long_sleep_keeps_phase(self):
        period = 15 * 60 * 1000
        prev = 1_000_000
        now = prev + 3 * 24 * 3600 * 1000 + 1234
        nxt = anchor_next_fire(prev, now, period)
        assert (nxt - prev) % period == 0
        assert nxt > now + 1000
        assert nxt - period <= now + 1000

    def test_future_anchor_advances_once(self):
        assert anchor_next_fire(50_000, 10_000, 10_000) == 60_000

    @pytest.mark.parametrize("period", [0, -5])
    def test_rejects_non_positive_period(self, period):
        with pytest.raises(ValueError):
            anchor_next_fire(0, 0, period)

    @pytest.mark.parametrize(
        "prev,now,period",
        [
            (0, 0, 1),
            (0, 999, 1000),
            (0, 1000, 1000),
            (7_000, 123_456, 60_000),
            (1_749_434_400_000, 1_749_434_400_000 + 86_400_000 * 10, 3_600_000),
        ],
    )
    def test_smallest_multiple_after_horizon(self, prev, now, period):
        nxt = anchor_next_fire(prev, now, period, lead_ms=1000)
        assert nxt > now + 1000
        assert (nxt - prev) % period == 0
        assert nxt - prev >= period
        # 再早一个周期就不满足前瞻, 或者已经是 k=1
        assert nxt - period <= now + 1000 or nxt - period == prev


def test_sleep_across_several_periods_lands_on_grid():
    period = 60_000
    anchor = 1_000_000
    # 在到期前 1 秒休眠, 3.5 个周期后唤醒
    assert anchor_next_fire(anchor, anchor + int(3.5 * period), period) == anchor + 4 * period
