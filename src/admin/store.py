"""日志文件读取, 供 /api/v1/logs 使用"""

from __future__ import annotations

import re
from collections import deque
from pathlib import Path
from typing import Any

from logger import error_log_path

_LOG_LEVEL_RE = re.compile(r"\|\s*([A-Z]+)\s*\|")
_ALLOWED_LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


def tail_lines(path: Path, lines: int) -> list[str]:
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="replace") as f:
        return [line.rstrip("\n") for line in deque(f, maxlen=lines)]


def parse_levels(level: str | None, levels: str | None) -> set[str]:
    """level=INFO 与 levels=INFO,ERROR 两种写法合并, 非法级别直接丢弃"""
    raw: list[str] = []
    if levels:
        raw.extend(levels.split(","))
    if level:
        raw.append(level)
    return {lv.strip().upper() for lv in raw if lv.strip().upper() in _ALLOWED_LOG_LEVELS}


def filter_logs(lines: list[str], levels: set[str] | None = None, keyword: str | None = None) -> list[str]:
    keyword = (keyword or "").strip().lower()
    if not levels and not keyword:
        return lines

    def keep(line: str) -> bool:
        if levels:
            match = _LOG_LEVEL_RE.search(line)
            if not match or match.group(1) not in levels:
                return False
        return not keyword or keyword in line.lower()

    return [line for line in lines if keep(line)]


def read_logs(
    log_file: str | Path,
    stream: str = "main",
    lines: int = 200,
    levels: set[str] | None = None,
    keyword: str | None = None,
) -> dict[str, Any]:
    target = error_log_path(log_file) if stream == "error" else Path(log_file)
    return {
        "stream": stream,
        "file": str(target),
        "levels": sorted(levels or ()),
        "q": keyword,
        "lines": filter_logs(tail_lines(target, lines), levels, keyword),
    }
