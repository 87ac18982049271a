from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, Field

from datamodel import IntervalUnit, ReminderType, WorkMode


@dataclass
class RuntimeControl:
    shutdown_event: asyncio.Event
    started_at: float


class ShutdownRequest(BaseModel):
    reason: str = Field(default="manual")


class MainSettingsUpdate(BaseModel):
    interval_value: float | None = Field(default=None, gt=0)
    interval_unit: IntervalUnit | None = None
    message_prefix: str | None = None
    message_suffix: str | None = None


class TimeRangeBody(BaseModel):
    start: str = Field(pattern=r"^\d{1,2}:\d{2}$")
    end: str = Field(pattern=r"^\d{1,2}:\d{2}$")
    id: str = ""


class PolicyUpdate(BaseModel):
    work_mode: WorkMode | None = None
    is_big_week: bool | None = None
    skip_holidays: bool | None = None
    active_hours_ranges: list[TimeRangeBody] | None = None


class FlagsUpdate(BaseModel):
    active_hours_enabled: bool | None = None
    sound_enabled: bool | None = None


class ReminderCreate(BaseModel):
    type: ReminderType = ReminderType.INTERVAL
    title: str = Field(min_length=1, max_length=200)
    enabled: bool = True
    interval_value: float | None = Field(default=30, gt=0)
    interval_unit: IntervalUnit = IntervalUnit.MINUTES
    target_date_time: int | None = Field(default=None, description="毫秒时间戳")


class ReminderPatch(BaseModel):
    type: ReminderType | None = None
    title: str | None = Field(default=None, min_length=1, max_length=200)
    enabled: bool | None = None
    interval_value: float | None = Field(default=None, gt=0)
    interval_unit: IntervalUnit | None = None
    target_date_time: int | None = None


LogStream = Literal["main", "error"]
