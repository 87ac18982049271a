from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List

from datamodel import AlertNotification
from events import E, bus
from logger import logger


class SurfaceType(str, Enum):
    CONSOLE = "console"
    WEBSOCKET = "websocket"


class NotificationSurface(ABC):
    """通知界面: 负责把提醒展示给用户, 并把用户的关闭操作以 alert.closed 事件回传"""

    surface_type: SurfaceType

    @property
    @abstractmethod
    def available(self) -> bool:
        """当前是否能把提醒送达用户"""

    @abstractmethod
    async def notify(self, notification: AlertNotification) -> None:
        pass

    @abstractmethod
    async def dismiss(self, alert_id: str) -> None:
        pass

    def get_status(self) -> Dict[str, Any]:
        return {"type": self.surface_type.value, "available": self.available}


_surfaces: Dict[SurfaceType, NotificationSurface] = {}


def register_surface(surface: NotificationSurface) -> None:
    if surface.surface_type in _surfaces:
        logger.warning(f"通知界面已注册, 将被替换: {surface.surface_type.value}")
    _surfaces[surface.surface_type] = surface
    logger.info(f"已注册通知界面: {surface.surface_type.value}")


def unregister_surface(surface_type: SurfaceType) -> None:
    _surfaces.pop(surface_type, None)


def registered_surfaces() -> List[NotificationSurface]:
    return list(_surfaces.values())


def any_surface_available() -> bool:
    return any(s.available for s in _surfaces.values())


@bus.on(E.ALERT_NOTIFY)
async def dispatch_notify(notification: AlertNotification) -> None:
    for surface in registered_surfaces():
        if not surface.available:
            continue
        try:
            await surface.notify(notification)
        except Exception as e:
            logger.opt(exception=e).error(f"通知界面 {surface.surface_type.value} 展示提醒失败: {e}")


@bus.on(E.ALERT_DISMISS)
async def dispatch_dismiss(alert_id: str) -> None:
    for surface in registered_surfaces():
        if not surface.available:
            continue
        try:
            await surface.dismiss(alert_id)
        except Exception as e:
            logger.opt(exception=e).error(f"通知界面 {surface.surface_type.value} 关闭提醒失败: {e}")


__all__ = [
    "SurfaceType",
    "NotificationSurface",
    "register_surface",
    "unregister_surface",
    "registered_surfaces",
    "any_surface_available",
]
