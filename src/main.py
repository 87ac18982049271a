from logger import setup_logging, logger
from config.settings import *
setup_logging(
    log_level=LOG_LEVEL,
    log_file=LOG_FILE,
    console_level=CONSOLE_LOG_LEVEL,
    tick_log_file=TICK_LOG_FILE or None,
)

import asyncio
import signal

from events import bus, E
from utils import now_ms
from channels.base import register_surface
from channels.console import ConsoleSurface
from channels.sound import SoundCue
from channels.ws_surface import WebSocketSurface
from admin.http_server import main_loop as admin_http_main
from scheduler.engine import SchedulingEngine, configure_engine
import storage.db_config as db_config
import storage.settings_store as settings_store

shutdown_event = asyncio.Event()

def signal_handler(sig, frame):
    """处理 SIGINT (Ctrl+C) / SIGTERM 信号"""
    logger.info("收到中断信号,正在依次关闭组件...")
    shutdown_event.set()


def _register_inbound_handlers(engine: SchedulingEngine) -> None:
    """通知界面回传的事件转交给调度引擎"""

    @bus.on(E.ALERT_CLOSED)
    def on_alert_closed(alert_id: str) -> None:
        engine.alerts.dismiss(alert_id, from_external=True)

    @bus.on(E.SYSTEM_RESUME)
    def on_system_resume() -> None:
        logger.info("收到系统唤醒通知, 进入静默窗口")
        engine.on_system_resume()


async def main():
    # 注册信号处理器
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    await db_config.init_db(DB_PATH)
    settings = await settings_store.load_settings(now_ms())

    engine = SchedulingEngine(settings, local_cue=SoundCue(ALERT_SOUND_FILE))
    configure_engine(engine)
    _register_inbound_handlers(engine)

    if ENABLE_CONSOLE_SURFACE:
        register_surface(ConsoleSurface())
    ws_surface = None
    if ENABLE_WS_SURFACE:
        ws_surface = WebSocketSurface(replay=engine.alerts.notifications)
        register_surface(ws_surface)
    else:
        logger.warning("WS 通知界面已禁用")

    if AUTO_START and not settings.active_hours_enabled:
        engine.start()

    try:
        await asyncio.gather(
            engine.run_loop(shutdown_event),
            admin_http_main(shutdown_event, engine, ws_surface),
        )
    finally:
        logger.info("关闭 RemindHelper...")
        engine.alerts.silence()

        logger.info("保存设置并关闭数据库连接...")
        if db_config.conn is not None:
            try:
                await settings_store.save_settings(engine.settings)
            except Exception as e:
                logger.opt(exception=e).error(f"退出前保存设置失败: {e}")
            await db_config.close_db()
        logger.info("RemindHelper 已关闭")


def run() -> None:
    logger.info("启动 RemindHelper...")
    asyncio.run(main())


if __name__ == "__main__":
    run()
