import asyncio
import time

import pytest
from fastapi.testclient import TestClient

import config.settings as settings
from admin.app import create_app
from admin.schemas import RuntimeControl
from admin.store import filter_logs, parse_levels, read_logs
from conftest import T0, interval, main_config, make_engine
from datamodel import AppSettings

TOKEN = "test-token"
AUTH = {"X-Remind-Token": TOKEN}


@pytest.fixture
def ctx(monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_AUTH_TOKEN", TOKEN)
    engine, rec, clock = make_engine(AppSettings(main=main_config(1), reminders=(interval("r1", 60),)))
    control = RuntimeControl(shutdown_event=asyncio.Event(), started_at=time.time())
    client = TestClient(create_app(control, engine))
    return client, engine, rec, clock, control


class TestAuth:
    def test_health_is_public(self, ctx):
        client, *_ = ctx
        assert client.get("/healthz").text == "ok"
        assert client.get("/api/v1/health").json()["status"] == "ok"

    def test_missing_or_wrong_token(self, ctx):
        client, *_ = ctx
        assert client.get("/api/v1/status").status_code == 401
        assert client.get("/api/v1/status", headers={"X-Remind-Token": "nope"}).status_code == 401
        assert client.get("/api/v1/status", headers={"Authorization": f"Bearer {TOKEN}"}).status_code == 200

    def test_unconfigured_token(self, ctx, monkeypatch):
        client, *_ = ctx
        monkeypatch.setattr(settings, "ADMIN_AUTH_TOKEN", "")
        assert client.get("/api/v1/status", headers=AUTH).status_code == 503


class TestReminders:
    def test_list(self, ctx):
        client, *_ = ctx
        body = client.get("/api/v1/reminders", headers=AUTH).json()
        assert body["total"] == 1
        assert body["items"][0]["id"] == "r1"
        assert body["items"][0]["time_left"] == 60

    def test_create_interval(self, ctx):
        client, engine, rec, clock, _ = ctx
        resp = client.post(
            "/api/v1/reminders",
            headers=AUTH,
            json={"title": "喝水", "interval_value": 20, "interval_unit": "minutes"},
        )
        assert resp.status_code == 201
        created = resp.json()
        assert created["next_trigger_time"] == T0 + 20 * 60_000
        assert engine.settings.find(created["id"]).title == "喝水"

    def test_create_onetime_in_past_is_rejected(self, ctx):
        client, *_ = ctx
        resp = client.post(
            "/api/v1/reminders",
            headers=AUTH,
            json={"type": "onetime", "title": "开会", "target_date_time": T0 - 1},
        )
        assert resp.status_code == 400

    def test_create_onetime_without_target_is_rejected(self, ctx):
        client, *_ = ctx
        resp = client.post("/api/v1/reminders", headers=AUTH, json={"type": "onetime", "title": "开会"})
        assert resp.status_code == 400

    def test_patch_title_and_type(self, ctx):
        client, engine, *_ = ctx
        resp = client.patch(
            "/api/v1/reminders/r1",
            headers=AUTH,
            json={"type": "onetime", "target_date_time": T0 + 600_000, "title": "改成定点"},
        )
        assert resp.status_code == 200
        reminder = engine.settings.find("r1")
        assert reminder.title == "改成定点"
        assert reminder.target_date_time == T0 + 600_000

    def test_patch_unknown(self, ctx):
        client, *_ = ctx
        assert client.patch("/api/v1/reminders/ghost", headers=AUTH, json={"title": "x"}).status_code == 404

    def test_toggle_and_delete(self, ctx):
        client, engine, *_ = ctx
        body = client.post("/api/v1/reminders/r1/toggle", headers=AUTH).json()
        assert body == {"id": "r1", "enabled": False, "deleted": False}
        assert client.delete("/api/v1/reminders/r1", headers=AUTH).status_code == 200
        assert engine.settings.find("r1") is None
        assert client.delete("/api/v1/reminders/r1", headers=AUTH).status_code == 404


class TestSettings:
    def test_get_settings(self, ctx):
        client, *_ = ctx
        body = client.get("/api/v1/settings", headers=AUTH).json()
        assert body["main"]["interval_value"] == 1
        assert body["active_hours_enabled"] is False

    def test_update_main(self, ctx):
        client, engine, *_ = ctx
        body = client.put("/api/v1/settings/main", headers=AUTH, json={"interval_value": 45, "message_suffix": "休息"}).json()
        assert body["interval_value"] == 45
        assert engine.settings.main.message_suffix == "休息"
        assert engine.total_time == 45 * 60

    def test_update_main_rejects_non_positive(self, ctx):
        client, *_ = ctx
        assert client.put("/api/v1/settings/main", headers=AUTH, json={"interval_value": 0}).status_code == 422

    def test_update_main_rejects_sub_second(self, ctx):
        client, engine, *_ = ctx
        resp = client.put(
            "/api/v1/settings/main",
            headers=AUTH,
            json={"interval_value": 0.5, "interval_unit": "seconds"},
        )
        assert resp.status_code == 400
        assert engine.settings.main.interval_unit.value != "seconds"

    def test_update_policy_ranges(self, ctx):
        client, engine, *_ = ctx
        body = client.put(
            "/api/v1/settings/policy",
            headers=AUTH,
            json={"work_mode": "big-small", "active_hours_ranges": [{"start": "10:00", "end": "16:00"}]},
        ).json()
        assert body["work_mode"] == "big-small"
        (time_range,) = engine.settings.policy.active_hours_ranges
        assert (time_range.start, time_range.end) == ("10:00", "16:00")
        assert time_range.id

    def test_update_flags(self, ctx):
        client, engine, *_ = ctx
        body = client.put("/api/v1/settings/flags", headers=AUTH, json={"sound_enabled": False}).json()
        assert body == {"active_hours_enabled": False, "sound_enabled": False}
        assert engine.settings.sound_enabled is False


class TestRuntime:
    def test_status_and_main_toggle(self, ctx):
        client, engine, *_ = ctx
        assert client.get("/api/v1/status", headers=AUTH).json()["main"]["status"] == "idle"
        assert client.post("/api/v1/main/toggle", headers=AUTH).json()["status"] == "running"
        assert client.post("/api/v1/main/toggle", headers=AUTH).json()["status"] == "paused"

    def test_alerts_listing_and_dismiss(self, ctx):
        client, engine, *_ = ctx
        engine.alerts.fire("r1")
        items = client.get("/api/v1/alerts", headers=AUTH).json()["items"]
        assert items == [{"id": "r1", "title": "周期提醒", "message": "提醒 r1"}]
        assert client.post("/api/v1/alerts/r1/dismiss", headers=AUTH).status_code == 200
        assert client.post("/api/v1/alerts/r1/dismiss", headers=AUTH).status_code == 404

    def test_system_resume(self, ctx):
        client, engine, *_ = ctx
        assert client.post("/api/v1/system/resume", headers=AUTH).json() == {"ok": True}
        assert engine.sleep.last_resume_ms == T0

    def test_metrics(self, ctx):
        client, *_ = ctx
        body = client.get("/api/v1/metrics", headers=AUTH).json()
        assert "tick_count" in body["runtime"]
        assert body["components"]["engine"]["reminders"] == 1

    def test_shutdown(self, ctx):
        client, engine, rec, clock, control = ctx
        resp = client.post("/api/v1/admin/shutdown", headers=AUTH, json={"reason": "test"})
        assert resp.json()["action"] == "shutdown"
        assert control.shutdown_event.is_set()


class TestLogs:
    LINES = [
        "2025-06-09 10:00:00.000 | INFO     | main:run:1 - 启动",
        "2025-06-09 10:00:01.000 | WARNING  | holidays:x:2 - 拉取失败",
        "2025-06-09 10:00:02.000 | ERROR    | engine:tick:3 - 调度异常",
    ]

    def test_filter_by_level_and_keyword(self):
        assert filter_logs(self.LINES, parse_levels("error", "warning,bogus")) == self.LINES[1:]
        assert filter_logs(self.LINES, set(), "启动") == self.LINES[:1]
        assert filter_logs(self.LINES) == self.LINES

    def test_read_logs_tails_file(self, tmp_path):
        log_file = tmp_path / "app.log"
        log_file.write_text("\n".join(self.LINES) + "\n", encoding="utf-8")
        body = read_logs(log_file, lines=2)
        assert body["lines"] == self.LINES[1:]
        assert read_logs(log_file, stream="error")["lines"] == []

    def test_endpoint(self, ctx, tmp_path, monkeypatch):
        client, *_ = ctx
        log_file = tmp_path / "app.log"
        log_file.write_text("\n".join(self.LINES), encoding="utf-8")
        monkeypatch.setattr("admin.app.LOG_FILE", str(log_file))
        body = client.get("/api/v1/logs", headers=AUTH, params={"level": "INFO"}).json()
        assert body["lines"] == self.LINES[:1]
