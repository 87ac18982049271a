import os
from dotenv import load_dotenv
from logger import logger
load_dotenv()

__all__ = [
    "POLL_INTERVAL_MS", "SLEEP_TICK_THRESHOLD_MS", "RESUME_GRACE_MS",
    "CUSTOM_OVERDUE_TOLERANCE_SECONDS", "MAIN_OVERDUE_TOLERANCE_SECONDS", "RESCHEDULE_LEAD_MS",
    "HOLIDAY_SOURCE_URL", "HOLIDAY_FETCH_TIMEOUT_SECONDS",
    "DB_PATH",
    "ENABLE_CONSOLE_SURFACE", "ENABLE_WS_SURFACE", "WS_SURFACE_PATH", "ALERT_SOUND_FILE",
    "MAIN_ALERT_TITLE", "AUTO_START",
    "ADMIN_HTTP_HOST", "ADMIN_HTTP_PORT", "ADMIN_AUTH_TOKEN",
    "LOG_FILE", "LOG_LEVEL", "CONSOLE_LOG_LEVEL", "TICK_LOG_FILE",
]


def _parse_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on", "y")


def _parse_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"{name} 非法: {raw!r}, 已回退到 {default}")
        return default
    if value < minimum:
        logger.warning(f"{name} 不能小于 {minimum}: {value}, 已回退到 {default}")
        return default
    return value


# 调度引擎
# 轮询周期, 时间精度只需要到 100ms 级别
POLL_INTERVAL_MS = int(_parse_float("POLL_INTERVAL_MS", 100, minimum=10))
# 两次 tick 间隔超过该值即视为循环被挂起(系统休眠)
SLEEP_TICK_THRESHOLD_MS = int(_parse_float("SLEEP_TICK_THRESHOLD_MS", 1000, minimum=1))
if SLEEP_TICK_THRESHOLD_MS <= POLL_INTERVAL_MS:
    logger.warning(
        f"SLEEP_TICK_THRESHOLD_MS({SLEEP_TICK_THRESHOLD_MS}) 不大于轮询周期({POLL_INTERVAL_MS}), "
        f"已调整为轮询周期的 10 倍"
    )
    SLEEP_TICK_THRESHOLD_MS = POLL_INTERVAL_MS * 10
# 收到系统唤醒信号后的静默窗口
RESUME_GRACE_MS = int(_parse_float("RESUME_GRACE_MS", 10_000))
# 严重过期容忍度(秒), 超过即跳过本次提醒
CUSTOM_OVERDUE_TOLERANCE_SECONDS = int(_parse_float("CUSTOM_OVERDUE_TOLERANCE_SECONDS", 3))
MAIN_OVERDUE_TOLERANCE_SECONDS = int(_parse_float("MAIN_OVERDUE_TOLERANCE_SECONDS", 10))
# 周期提醒重排时, 下一次触发时间至少要在 now 之后多少毫秒
RESCHEDULE_LEAD_MS = int(_parse_float("RESCHEDULE_LEAD_MS", 1000))


# 节假日数据源, {year} 会被替换为年份
HOLIDAY_SOURCE_URL = os.getenv(
    "HOLIDAY_SOURCE_URL",
    "https://cdn.jsdelivr.net/gh/NateScarlet/holiday-cn@master/{year}.json",
)
if "{year}" not in HOLIDAY_SOURCE_URL:
    logger.critical(f"HOLIDAY_SOURCE_URL 缺少 {{year}} 占位符: {HOLIDAY_SOURCE_URL}")
    exit(0)
HOLIDAY_FETCH_TIMEOUT_SECONDS = _parse_float("HOLIDAY_FETCH_TIMEOUT_SECONDS", 10.0, minimum=0.1)


# 设置存储
DB_PATH = os.getenv("DB_PATH", "data/remind_helper.db")


# 通知界面
ENABLE_CONSOLE_SURFACE = _parse_bool("ENABLE_CONSOLE_SURFACE", False)
ENABLE_WS_SURFACE = _parse_bool("ENABLE_WS_SURFACE", True)
WS_SURFACE_PATH = os.getenv("WS_SURFACE_PATH", "/api/v1/alerts/ws")
# 没有任何通知界面在线时, 本地循环播放的提示音
ALERT_SOUND_FILE = os.getenv("ALERT_SOUND_FILE", "")
MAIN_ALERT_TITLE = os.getenv("MAIN_ALERT_TITLE", "起身走走")
# 启动后自动开始主提醒计时(未启用工作时段时)
AUTO_START = _parse_bool("AUTO_START", False)


# Admin API
ADMIN_HTTP_HOST = os.getenv("ADMIN_HTTP_HOST", "127.0.0.1")
ADMIN_HTTP_PORT = int(_parse_float("ADMIN_HTTP_PORT", 18090, minimum=1))
ADMIN_AUTH_TOKEN = os.getenv("ADMIN_AUTH_TOKEN", "")


# 日志
LOG_FILE = os.getenv("LOG_FILE", "logs/remind_helper.log")
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")
CONSOLE_LOG_LEVEL = os.getenv("CONSOLE_LOG_LEVEL", "INFO")
# 逐 tick 明细, 留空则不记录
TICK_LOG_FILE = os.getenv("TICK_LOG_FILE", "")
