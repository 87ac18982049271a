from dataclasses import replace

from conftest import T0, interval, main_config, make_engine, onetime, run
from datamodel import AlertNotification, AlertType, AppSettings
from events import E


def fired_engine(*reminders, **kwargs):
    engine, rec, clock = make_engine(AppSettings(main=main_config(1), reminders=reminders), **kwargs)
    return engine, rec, clock


class TestFire:
    def test_titles_by_type(self):
        engine, rec, clock = fired_engine(interval("r1", title="喝水"), onetime("o1", T0 + 60_000, title="开会"))
        engine.alerts.fire("r1")
        engine.alerts.fire("o1")
        titles = [(n.title, n.message, n.type) for (n,) in rec.of(E.ALERT_NOTIFY)]
        assert titles == [("周期提醒", "喝水", AlertType.INTERVAL), ("定点提醒", "开会", AlertType.ONETIME)]

    def test_unknown_id_falls_back(self):
        engine, rec, clock = fired_engine()
        assert engine.alerts.describe("ghost") == AlertNotification("ghost", "定时提醒", "自定义提醒", AlertType.INTERVAL)

    def test_repeat_fire_is_ignored(self):
        engine, rec, clock = fired_engine(interval("r1"))
        assert engine.alerts.fire("r1")
        assert not engine.alerts.fire("r1")
        assert rec.notified_ids() == ["r1"]

    def test_unconfigured_main_cannot_fire(self):
        engine, rec, clock = make_engine(AppSettings(main=main_config(1, "", "")))
        assert not engine.alerts.fire("main")
        assert engine.alerts.active_ids == []

    def test_fractional_interval_in_message(self):
        engine, rec, clock = make_engine(AppSettings(main=main_config(1.5)))
        engine.alerts.fire("main")
        (n,) = rec.of(E.ALERT_NOTIFY)[0]
        assert n.message == "已经工作了 1.5 分钟 起来活动一下"

    def test_snapshot_survives_later_edits(self):
        r = interval("r1", 5, title="旧标题")
        engine, rec, clock = fired_engine(r)
        run(engine, clock, T0, T0 + 5_000)
        engine.edit_reminder(replace(r, title="新标题"), now=T0 + 5_000)
        engine.apply_pending(T0 + 5_000)
        assert engine.settings.find("r1").title == "新标题"
        assert engine.alerts.snapshot("r1").message == "旧标题"
        assert engine.alerts.current() == {"id": "r1", "title": "周期提醒", "message": "旧标题"}


class TestDismiss:
    def test_dismiss_is_idempotent(self):
        engine, rec, clock = fired_engine(interval("r1"))
        engine.alerts.fire("r1")
        assert engine.alerts.dismiss("r1")
        assert not engine.alerts.dismiss("r1")
        assert rec.of(E.ALERT_DISMISS) == [("r1",)]

    def test_external_dismiss_is_not_echoed(self):
        engine, rec, clock = fired_engine(interval("r1"))
        engine.alerts.fire("r1")
        assert engine.alerts.dismiss("r1", from_external=True)
        assert rec.of(E.ALERT_DISMISS) == []
        assert not engine.alerts.is_active("r1")

    def test_future_onetime_is_kept(self):
        engine, rec, clock = fired_engine(onetime("o1", T0 + 3_600_000))
        engine.alerts.fire("o1")
        engine.alerts.dismiss("o1", now=T0)
        engine.apply_pending(T0)
        assert engine.settings.find("o1") is not None

    def test_spent_onetime_is_removed(self):
        engine, rec, clock = fired_engine(onetime("o1", T0 + 500))
        engine.alerts.fire("o1")
        engine.alerts.dismiss("o1", now=T0)
        engine.apply_pending(T0)
        assert engine.settings.find("o1") is None

    def test_notifications_keep_fire_order(self):
        engine, rec, clock = fired_engine(interval("a"), interval("b"))
        engine.alerts.fire("b")
        engine.alerts.fire("a")
        assert [n["id"] for n in engine.alerts.notifications()] == ["b", "a"]
        engine.alerts.dismiss("a")
        assert engine.alerts.current()["id"] == "b"
