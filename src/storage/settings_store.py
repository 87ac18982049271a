"""设置持久化

主提醒配置、日历策略与开关以 JSON 存在 app_settings 表里, 自定义提醒逐行存在 reminders 表里。
调度引擎每次应用设置修改(包括周期提醒回写 next_trigger_time)后都会发出 settings.changed,
这里唯一的处理器负责整体覆盖写回。
"""

import asyncio
import json
from dataclasses import replace
from typing import Any

import storage.db_config as db_config
from datamodel import (
    AppSettings,
    CalendarPolicy,
    IntervalReminder,
    MainReminderConfig,
    Reminder,
    reminder_from_dict,
)
from events import bus, E
from logger import logger

_save_lock = asyncio.Lock()


def _ensure_conn():
    if db_config.conn is None:
        raise RuntimeError("数据库未初始化，请先调用 init_db()")


def _normalize_reminder(data: dict[str, Any], now_ms: int) -> Reminder | None:
    try:
        reminder = reminder_from_dict(data)
    except (KeyError, ValueError) as e:
        logger.warning(f"忽略无法解析的提醒: {data.get('id')}, {e}")
        return None
    # 老数据没有 next_trigger_time, 从现在开始计时
    if isinstance(reminder, IntervalReminder) and reminder.enabled and not reminder.next_trigger_time:
        reminder = replace(reminder, next_trigger_time=now_ms + reminder.period_ms)
    return reminder


async def load_settings(now_ms: int) -> AppSettings:
    _ensure_conn()
    stored: dict[str, Any] = {}
    async with db_config.conn.execute("SELECT key, value FROM app_settings") as cursor:
        async for key, value in cursor:
            try:
                stored[key] = json.loads(value)
            except json.JSONDecodeError:
                logger.warning(f"设置项 {key} 不是合法的 JSON, 已使用默认值")

    reminders: list[Reminder] = []
    async with db_config.conn.execute(
        "SELECT reminder_id, title, type, enabled, interval_value, interval_unit, next_trigger_time, target_date_time "
        "FROM reminders ORDER BY position ASC"
    ) as cursor:
        async for row in cursor:
            reminder = _normalize_reminder(
                {
                    "id": row[0],
                    "title": row[1],
                    "type": row[2],
                    "enabled": bool(row[3]),
                    "interval_value": row[4] if row[4] is not None else 30,
                    "interval_unit": row[5],
                    "next_trigger_time": row[6],
                    "target_date_time": row[7],
                },
                now_ms,
            )
            if reminder is not None:
                reminders.append(reminder)

    default = AppSettings()
    main = stored.get("main")
    policy = stored.get("policy")
    settings = AppSettings(
        main=MainReminderConfig.from_dict(main) if isinstance(main, dict) else default.main,
        policy=CalendarPolicy.from_dict(policy) if isinstance(policy, dict) else default.policy,
        active_hours_enabled=bool(stored.get("active_hours_enabled", default.active_hours_enabled)),
        sound_enabled=bool(stored.get("sound_enabled", default.sound_enabled)),
        reminders=tuple(reminders),
    )
    logger.info(f"已加载设置: {len(reminders)} 个自定义提醒, 工作时段{'已' if settings.active_hours_enabled else '未'}启用")
    return settings


async def save_settings(settings: AppSettings) -> None:
    _ensure_conn()
    data = settings.to_dict()
    async with _save_lock:
        try:
            for key in ("main", "policy", "active_hours_enabled", "sound_enabled"):
                await db_config.conn.execute(
                    "INSERT INTO app_settings (key, value, updated_at_utc) "
                    "VALUES (?, ?, strftime('%Y-%m-%dT%H:%M:%SZ', 'now')) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at_utc = excluded.updated_at_utc",
                    (key, json.dumps(data[key], ensure_ascii=False)),
                )
            await db_config.conn.execute("DELETE FROM reminders")
            await db_config.conn.executemany(
                "INSERT INTO reminders (reminder_id, title, type, enabled, interval_value, interval_unit, "
                "next_trigger_time, target_date_time, position) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                [
                    (
                        r["id"],
                        r["title"],
                        r["type"],
                        1 if r["enabled"] else 0,
                        r.get("interval_value"),
                        r.get("interval_unit"),
                        r.get("next_trigger_time"),
                        r.get("target_date_time"),
                        position,
                    )
                    for position, r in enumerate(data["reminders"])
                ],
            )
            await db_config.conn.commit()
        except Exception:
            await db_config.conn.rollback()
            raise
    logger.trace(f"设置已保存: {len(settings.reminders)} 个自定义提醒")


@bus.on(E.SETTINGS_CHANGED)
async def persist_settings(settings: AppSettings) -> None:
    try:
        await save_settings(settings)
    except Exception as e:
        logger.opt(exception=e).error(f"保存设置失败: {e}")


__all__ = ["load_settings", "save_settings", "persist_settings"]
