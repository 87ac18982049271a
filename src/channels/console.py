"""控制台通知界面, 把提醒直接写到终端日志里, 适合无图形界面的环境调试"""

from __future__ import annotations

from datamodel import AlertNotification
from logger import logger

from .base import NotificationSurface, SurfaceType


class ConsoleSurface(NotificationSurface):
    surface_type = SurfaceType.CONSOLE

    def __init__(self) -> None:
        self.shown: dict[str, AlertNotification] = {}

    @property
    def available(self) -> bool:
        return True

    async def notify(self, notification: AlertNotification) -> None:
        self.shown[notification.id] = notification
        logger.success(f"【{notification.title}】{notification.message}")

    async def dismiss(self, alert_id: str) -> None:
        notification = self.shown.pop(alert_id, None)
        if notification is not None:
            logger.info(f"提醒已关闭: 【{notification.title}】")


__all__ = ["ConsoleSurface"]
