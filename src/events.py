"""事件总线模块，定义了事件总线类 Bus 及事件名集合 E

调度核心与外部协作者(通知界面、设置存储、电源监视)之间只通过事件通信：
1. 出站事件：alert.notify / alert.dismiss / settings.changed;
2. 入站事件：alert.closed / system.resume;
独占事件仅允许一个处理器注册，重复注册会引发运行时错误。
"""

from __future__ import annotations
from pyee.asyncio import AsyncIOEventEmitter
from typing import Awaitable, Callable, Set, Union

from logger import logger

Handler = Callable[..., Union[Awaitable[None], None]]

# 事件名集中定义
class E:
    # 出站
    ALERT_NOTIFY = "alert.notify"          # (AlertNotification)
    ALERT_DISMISS = "alert.dismiss"        # (alert_id)
    SETTINGS_CHANGED = "settings.changed"  # (AppSettings)
    # 入站
    ALERT_CLOSED = "alert.closed"          # (alert_id) 通知界面被用户关闭
    SYSTEM_RESUME = "system.resume"        # () 系统从休眠中唤醒

# 设置只能有一个持久化处理器，避免重复写库
EXCLUSIVE_EVENTS = {E.SETTINGS_CHANGED}


class Bus(AsyncIOEventEmitter):
    def __init__(self) -> None:
        super().__init__()
        self._exclusive: Set[str] = set()

    def on(self, event: str) -> Callable[[Handler], Handler]:
        """注册事件处理器装饰器"""
        def decorator(handler: Handler) -> Handler:
            # 检查独占事件
            if event in EXCLUSIVE_EVENTS:
                if event in self._exclusive:
                    raise RuntimeError(f"独占事件的唯一处理器已注册: {event}")
                self._exclusive.add(event)

            # 注册到父类
            logger.debug(f"注册事件处理器: {event} -> {handler.__name__}")
            super(Bus, self).on(event, handler)
            return handler

        return decorator


bus = Bus()

__all__ = ["bus", "Bus", "E"]
