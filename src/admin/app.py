from __future__ import annotations

import asyncio
import time
from typing import Any

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import PlainTextResponse
from ulid import ULID

from channels.base import registered_surfaces
from config.settings import LOG_FILE
from datamodel import (
    Reminder,
    ReminderType,
    TimeRange,
    reminder_from_dict,
)
from logger import logger
from metrics import runtime_metrics
from scheduler.engine import SchedulingEngine
from workday import holiday_cache

import storage.db_config as db_config
from .auth import require_admin_auth
from .schemas import (
    FlagsUpdate,
    MainSettingsUpdate,
    PolicyUpdate,
    ReminderCreate,
    ReminderPatch,
    RuntimeControl,
    ShutdownRequest,
    LogStream,
)
from .store import parse_levels, read_logs


def _build_reminder(data: dict[str, Any]) -> Reminder:
    try:
        return reminder_from_dict(data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def create_app(control: RuntimeControl, engine: SchedulingEngine) -> FastAPI:
    app = FastAPI(title="RemindHelper Admin API", version="1.0.0")
    authed = [Depends(require_admin_auth)]

    def apply_now() -> None:
        # 与调度循环同在一个事件循环内, 这里立即应用不会与 tick 交错
        engine.apply_pending()

    def health_payload() -> dict[str, Any]:
        return {
            "status": "ok",
            "now_utc": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "uptime_seconds": max(0.0, time.time() - control.started_at),
            "db_connected": db_config.conn is not None,
            "shutdown_requested": control.shutdown_event.is_set(),
            "engine_status": engine.status.value,
        }

    @app.get("/healthz", include_in_schema=False)
    async def healthz() -> PlainTextResponse:
        return PlainTextResponse("ok")

    @app.get("/api/v1/health")
    async def api_health() -> dict[str, Any]:
        return health_payload()

    @app.get("/api/v1/status", dependencies=authed)
    async def get_status() -> dict[str, Any]:
        return engine.get_status()

    @app.get("/api/v1/metrics", dependencies=authed)
    async def get_metrics() -> dict[str, Any]:
        return {
            "runtime": runtime_metrics.snapshot(),
            "components": {
                "db": {"connected": db_config.conn is not None},
                "holidays": {
                    "fetched_years": sorted(holiday_cache.fetched_years),
                    "off_days": len(holiday_cache.off_days),
                    "fetching": holiday_cache.fetching,
                },
                "surfaces": [s.get_status() for s in registered_surfaces()],
                "engine": {
                    "status": engine.status.value,
                    "reminders": len(engine.settings.reminders),
                    "active_alerts": len(engine.alerts.active_ids),
                },
            },
            "active_tasks": len(asyncio.all_tasks()),
        }

    # ---------------- 设置 ----------------

    @app.get("/api/v1/settings", dependencies=authed)
    async def get_settings() -> dict[str, Any]:
        return engine.settings.to_dict()

    @app.put("/api/v1/settings/main", dependencies=authed)
    async def put_main(payload: MainSettingsUpdate) -> dict[str, Any]:
        changes = payload.model_dump(exclude_unset=True)
        if changes:
            try:
                engine.update_main(**changes)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            apply_now()
            logger.info(f"主提醒设置已更新: {list(changes)}")
        return engine.settings.main.to_dict()

    @app.put("/api/v1/settings/policy", dependencies=authed)
    async def put_policy(payload: PolicyUpdate) -> dict[str, Any]:
        changes = payload.model_dump(exclude_unset=True)
        if "active_hours_ranges" in changes:
            changes["active_hours_ranges"] = tuple(
                TimeRange(start=r.start, end=r.end, id=r.id or str(ULID()))
                for r in payload.active_hours_ranges or []
            )
        if changes:
            engine.update_policy(**changes)
            apply_now()
            logger.info(f"日历策略已更新: {list(changes)}")
        return engine.settings.policy.to_dict()

    @app.put("/api/v1/settings/flags", dependencies=authed)
    async def put_flags(payload: FlagsUpdate) -> dict[str, Any]:
        if payload.active_hours_enabled is not None:
            engine.set_active_hours_enabled(payload.active_hours_enabled)
        if payload.sound_enabled is not None:
            engine.set_sound_enabled(payload.sound_enabled)
        apply_now()
        return {
            "active_hours_enabled": engine.settings.active_hours_enabled,
            "sound_enabled": engine.settings.sound_enabled,
        }

    # ---------------- 自定义提醒 ----------------

    @app.get("/api/v1/reminders", dependencies=authed)
    async def get_reminders() -> dict[str, Any]:
        items = [
            {**r.to_dict(), "time_left": engine.timers.time_left(r.id)}
            for r in engine.settings.reminders
        ]
        return {"items": items, "total": len(items)}

    @app.post("/api/v1/reminders", dependencies=authed, status_code=201)
    async def create_reminder(payload: ReminderCreate) -> dict[str, Any]:
        data = payload.model_dump()
        data["id"] = str(ULID())
        data["type"] = payload.type.value
        data["interval_unit"] = payload.interval_unit.value
        reminder = _build_reminder(data)
        try:
            reminder = engine.add_reminder(reminder)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        apply_now()
        return reminder.to_dict()

    @app.patch("/api/v1/reminders/{reminder_id}", dependencies=authed)
    async def patch_reminder(reminder_id: str, payload: ReminderPatch) -> dict[str, Any]:
        current = engine.settings.find(reminder_id)
        if current is None:
            raise HTTPException(status_code=404, detail="提醒不存在")

        data = current.to_dict()
        data.update(payload.model_dump(mode="json", exclude_unset=True))
        data["id"] = reminder_id
        if data.get("type") == ReminderType.INTERVAL.value and data.get("interval_value") is None:
            data["interval_value"] = 30
        reminder = _build_reminder(data)
        try:
            reminder = engine.edit_reminder(reminder)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        apply_now()
        return reminder.to_dict()

    @app.delete("/api/v1/reminders/{reminder_id}", dependencies=authed)
    async def delete_reminder(reminder_id: str) -> dict[str, Any]:
        if engine.settings.find(reminder_id) is None:
            raise HTTPException(status_code=404, detail="提醒不存在")
        engine.delete_reminder(reminder_id)
        apply_now()
        return {"ok": True, "id": reminder_id}

    @app.post("/api/v1/reminders/{reminder_id}/toggle", dependencies=authed)
    async def toggle_reminder(reminder_id: str) -> dict[str, Any]:
        try:
            enabled = engine.toggle_reminder(reminder_id)
        except KeyError:
            raise HTTPException(status_code=404, detail="提醒不存在")
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        apply_now()
        reminder = engine.settings.find(reminder_id)
        return {"id": reminder_id, "enabled": enabled, "deleted": reminder is None}

    # ---------------- 主提醒与弹窗 ----------------

    @app.post("/api/v1/main/toggle", dependencies=authed)
    async def toggle_main() -> dict[str, Any]:
        status = engine.toggle()
        return {"status": status.value, "time_left": engine.time_left}

    @app.get("/api/v1/alerts", dependencies=authed)
    async def get_alerts() -> dict[str, Any]:
        return {"items": engine.alerts.notifications()}

    @app.post("/api/v1/alerts/{alert_id}/dismiss", dependencies=authed)
    async def dismiss_alert(alert_id: str) -> dict[str, Any]:
        if not engine.alerts.dismiss(alert_id):
            raise HTTPException(status_code=404, detail="提醒未处于弹出状态")
        apply_now()
        return {"ok": True, "id": alert_id}

    @app.post("/api/v1/system/resume", dependencies=authed)
    async def system_resume() -> dict[str, Any]:
        engine.on_system_resume()
        logger.info("收到系统唤醒通知")
        return {"ok": True}

    # ---------------- 运维 ----------------

    @app.get("/api/v1/logs", dependencies=authed)
    async def get_logs(
        lines: int = 200,
        level: str | None = None,
        levels: str | None = None,
        q: str | None = None,
        stream: LogStream = "main",
    ) -> dict[str, Any]:
        lines = max(1, min(lines, 5000))
        return read_logs(LOG_FILE, stream, lines, parse_levels(level, levels), q)

    @app.post("/api/v1/admin/shutdown")
    async def admin_shutdown(payload: ShutdownRequest, user: str = Depends(require_admin_auth)) -> dict[str, Any]:
        logger.warning(f"收到远程关闭请求: by={user}, reason={payload.reason}")
        control.shutdown_event.set()
        return {"ok": True, "action": "shutdown", "reason": payload.reason}

    return app
