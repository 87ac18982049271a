"""WebSocket 通知界面

客户端(桌面弹窗、浏览器页面等)连接到 WS_SURFACE_PATH 后:
* 服务端推送 {"type": "notify", "id", "title", "message", "alert_type"} 与 {"type": "dismiss", "id"};
* 新连接建立时会先重放所有尚未关闭的提醒;
* 客户端发送 {"action": "dismiss", "id": ...} 表示用户关闭了弹窗, {"action": "resume"} 表示系统刚从休眠唤醒。
没有任何客户端在线时该界面视为不可用, 由本地提示音兜底。
"""

from __future__ import annotations

import asyncio
import hmac
import json
from typing import Any, Callable, Dict, List

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from config.settings import ADMIN_AUTH_TOKEN, WS_SURFACE_PATH
from datamodel import AlertNotification
from events import E, bus
from logger import logger

from .base import NotificationSurface, SurfaceType

Replay = Callable[[], List[Dict[str, Any]]]


class _ClientSession:
    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.send_lock = asyncio.Lock()

    async def send_json(self, payload: dict[str, Any]) -> None:
        async with self.send_lock:
            await self.websocket.send_text(json.dumps(payload, ensure_ascii=False))


def _extract_token(websocket: WebSocket) -> str:
    auth_header = websocket.headers.get("authorization", "").strip()
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip()
    if auth_header != "":
        return auth_header

    qs_token = websocket.query_params.get("access_token") or websocket.query_params.get("token")
    return (qs_token or "").strip()


def _is_authorized(websocket: WebSocket, token: str) -> bool:
    if token == "":
        return True
    return hmac.compare_digest(_extract_token(websocket), token)


class WebSocketSurface(NotificationSurface):
    surface_type = SurfaceType.WEBSOCKET

    def __init__(self, replay: Replay | None = None, token: str = ADMIN_AUTH_TOKEN, emitter=bus) -> None:
        self._replay = replay
        self._token = token
        self._emitter = emitter
        self._sessions: set[_ClientSession] = set()
        self._routes_registered = False

    @property
    def available(self) -> bool:
        return len(self._sessions) > 0

    def get_status(self) -> Dict[str, Any]:
        return {**super().get_status(), "clients": len(self._sessions)}

    async def _broadcast(self, payload: dict[str, Any]) -> None:
        for session in list(self._sessions):
            try:
                await session.send_json(payload)
            except Exception as e:
                logger.warning(f"向通知客户端推送失败, 断开该连接: {e}")
                self._sessions.discard(session)

    async def notify(self, notification: AlertNotification) -> None:
        await self._broadcast({
            "type": "notify",
            "id": notification.id,
            "title": notification.title,
            "message": notification.message,
            "alert_type": notification.type.value,
        })

    async def dismiss(self, alert_id: str) -> None:
        await self._broadcast({"type": "dismiss", "id": alert_id})

    def handle_payload(self, payload: Any) -> None:
        if not isinstance(payload, dict):
            logger.warning("收到非对象的通知客户端消息, 已忽略")
            return

        action = payload.get("action")
        if action == "dismiss":
            alert_id = str(payload.get("id") or "")
            if alert_id == "":
                logger.warning("dismiss 消息缺少 id, 已忽略")
                return
            self._emitter.emit(E.ALERT_CLOSED, alert_id)
        elif action == "resume":
            self._emitter.emit(E.SYSTEM_RESUME)
        else:
            logger.debug(f"未知的通知客户端动作: {action}")

    async def close_all(self, reason: str) -> None:
        sessions = list(self._sessions)
        self._sessions.clear()
        for session in sessions:
            try:
                await session.websocket.close(code=1001, reason=reason)
            except Exception as e:
                logger.debug(f"关闭通知客户端连接失败: {e}")

    def register_fastapi_routes(self, app: FastAPI, path: str = WS_SURFACE_PATH) -> None:
        if self._routes_registered:
            return

        @app.websocket(path)
        async def alert_surface_ws(websocket: WebSocket):
            if not _is_authorized(websocket, self._token):
                await websocket.close(code=1008, reason="unauthorized")
                logger.warning("通知客户端 WS 鉴权失败")
                return

            await websocket.accept()
            session = _ClientSession(websocket)
            self._sessions.add(session)
            logger.info(f"通知客户端已连接: path={path}, 当前在线 {len(self._sessions)}")

            try:
                if self._replay is not None:
                    for item in self._replay():
                        await session.send_json({"type": "notify", **item})

                while True:
                    raw = await websocket.receive_text()
                    try:
                        payload = json.loads(raw)
                    except json.JSONDecodeError:
                        logger.warning("收到无法解析的通知客户端消息, 已忽略")
                        continue
                    self.handle_payload(payload)
            except WebSocketDisconnect:
                logger.info("通知客户端已断开")
            except Exception as e:
                logger.opt(exception=e).error(f"通知客户端 WS 处理异常: {e}")
            finally:
                self._sessions.discard(session)

        self._routes_registered = True


__all__ = ["WebSocketSurface"]
