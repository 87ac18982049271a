"""日志模块

级别支持: TRACE/DEBUG/INFO/WARNING/ERROR/CRITICAL (兼容别名 FATAL -> CRITICAL)

调度循环每 100ms 一个 tick, 逐 tick 的细节通过 tick_logger 写出, 只进单独的 tick 日志,
不进控制台和主日志; 未配置 tick 日志文件时直接丢弃。
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Literal, Union

from loguru import logger

LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL", "FATAL"]

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level:<8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} - {message}"

TICK_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {message}"

# 带上这个标记的记录只写入 tick 日志
tick_logger = logger.bind(tick=True)


def _is_tick(record: dict[str, Any]) -> bool:
    return bool(record["extra"].get("tick"))


def _not_tick(record: dict[str, Any]) -> bool:
    return not _is_tick(record)


def _normalize_level(level: Union[str, LogLevel]) -> str:
    level = str(level).upper()
    return "CRITICAL" if level == "FATAL" else level


def error_log_path(log_file: Union[str, Path]) -> Path:
    """错误日志与主日志同目录，文件名追加 _error"""
    log_file = Path(log_file)
    return log_file.with_name(f"{log_file.stem}_error{log_file.suffix}")


def setup_logging(
    log_level: LogLevel,
    log_file: Union[str, Path],
    console_level: LogLevel = "INFO",
    tick_log_file: Union[str, Path, None] = None,
) -> None:
    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    handlers: list[dict[str, Any]] = [
        {
            "sink": sys.stderr,
            "level": _normalize_level(console_level),
            "format": CONSOLE_FORMAT,
            "colorize": True,
            "filter": _not_tick,
        },
        {
            "sink": log_file,
            "level": _normalize_level(log_level),
            "format": FILE_FORMAT,
            "filter": _not_tick,
            "rotation": "10 MB",
            "retention": "30 days",
            "compression": "zip",
            "encoding": "utf-8",
        },
        # 错误日志不区分来源, tick 里抛出的异常也要留底
        {
            "sink": error_log_path(log_file),
            "level": "ERROR",
            "format": FILE_FORMAT,
            "rotation": "10 MB",
            "retention": "90 days",
            "compression": "zip",
            "encoding": "utf-8",
        },
    ]

    if tick_log_file:
        tick_log_file = Path(tick_log_file)
        tick_log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            {
                "sink": tick_log_file,
                "level": "TRACE",
                "format": TICK_FORMAT,
                "filter": _is_tick,
                "rotation": "5 MB",
                "retention": 3,
                "encoding": "utf-8",
            }
        )

    logger.configure(handlers=handlers)


__all__ = ["setup_logging", "error_log_path", "logger", "tick_logger"]
