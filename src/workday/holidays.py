"""法定节假日缓存

数据源为 holiday-cn 按年份发布的 JSON, 格式: {"days": [{"date": "YYYY-MM-DD", "isOffDay": true}, ...]}
缓存只增不减, 进程生命周期内有效; 拉取失败的年份不会被标记, 下次调用会重试。
明年的数据通常要到年底才发布, 所以 12 月会顺带预拉下一年。
"""

from __future__ import annotations

import asyncio
import time
from datetime import date

import httpx

from config.settings import HOLIDAY_FETCH_TIMEOUT_SECONDS, HOLIDAY_SOURCE_URL
from logger import logger
from metrics import runtime_metrics

__all__ = ["HolidayCache", "holiday_cache"]

# 拉取失败后的重试间隔, 避免每个 tick 都打一次数据源
RETRY_BACKOFF_SECONDS = 60.0
# 12 月预拉下一年失败多半是还没发布, 间隔放长一些
PREFETCH_RETRY_SECONDS = 3600.0


class HolidayCache:
    def __init__(
        self,
        source_url: str = HOLIDAY_SOURCE_URL,
        timeout: float = HOLIDAY_FETCH_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_backoff: float = RETRY_BACKOFF_SECONDS,
    ) -> None:
        self.source_url = source_url
        self.timeout = timeout
        self._transport = transport  # 测试时注入 MockTransport
        self.off_days: set[str] = set()
        self.fetched_years: set[int] = set()
        self._fetching = False
        self._task: asyncio.Task[None] | None = None
        self.retry_backoff = retry_backoff
        self._retry_at = 0.0

    @property
    def fetching(self) -> bool:
        return self._fetching

    def is_off_day(self, day_key: str) -> bool:
        return day_key in self.off_days

    def is_fetched(self, year: int) -> bool:
        return year in self.fetched_years

    def needs_refresh(self, today: date) -> bool:
        if today.year not in self.fetched_years:
            return True
        return today.month == 12 and today.year + 1 not in self.fetched_years

    def schedule_refresh(self, today: date) -> asyncio.Task[None] | None:
        """后台触发刷新, 不阻塞调用方; 没有运行中的事件循环时直接跳过, 等下一次调用"""
        if self._fetching or time.monotonic() < self._retry_at:
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.trace("没有运行中的事件循环, 跳过节假日数据拉取")
            return None
        self._task = loop.create_task(self.refresh(today))
        return self._task

    async def refresh(self, today: date) -> None:
        # 整个进程同一时刻只允许一次拉取, 期间的调用直接放弃
        if self._fetching:
            return
        self._fetching = True
        try:
            await self.ensure_year(today.year)
            if today.month == 12:
                await self.ensure_year(today.year + 1, backoff=PREFETCH_RETRY_SECONDS)
        finally:
            self._fetching = False

    async def ensure_year(self, year: int, backoff: float | None = None) -> bool:
        if year in self.fetched_years:
            return True

        url = self.source_url.format(year=year)
        logger.info(f"正在拉取 {year} 年节假日数据: {url}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(url)
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            # 明年的数据可能还没发布, 属于正常情况
            runtime_metrics.record_holiday_fetch(error=True)
            logger.warning(f"拉取 {year} 年节假日数据失败(可能尚未发布): {e}")
            self._retry_at = time.monotonic() + (self.retry_backoff if backoff is None else backoff)
            return False

        days = data.get("days") if isinstance(data, dict) else None
        if not isinstance(days, list):
            runtime_metrics.record_holiday_fetch(error=True)
            logger.warning(f"{year} 年节假日数据格式不正确, 缺少 days 列表")
            self._retry_at = time.monotonic() + (self.retry_backoff if backoff is None else backoff)
            return False

        for day in days:
            if isinstance(day, dict) and day.get("isOffDay") and day.get("date"):
                self.off_days.add(str(day["date"]))

        self.fetched_years.add(year)
        runtime_metrics.record_holiday_fetch()
        logger.info(f"已更新 {year} 年节假日数据, 当前缓存共 {len(self.off_days)} 天")
        return True


holiday_cache = HolidayCache()
