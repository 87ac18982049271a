"""本地提示音

没有任何通知界面在线时, 由提醒管理器调用 play() 循环播放提示音, 直到提醒全部关闭或检测到休眠。
播放器按顺序探测系统里可用的命令行工具; 都没有或未配置音频文件时退化为终端响铃。
"""

from __future__ import annotations

import shutil
import subprocess
import sys
import threading
from pathlib import Path

from config.settings import ALERT_SOUND_FILE
from logger import logger

__all__ = ["SoundCue", "find_player"]

_PLAYERS = [
    ["paplay"],
    ["aplay", "-q"],
    ["afplay"],
    ["ffplay", "-nodisp", "-autoexit", "-loglevel", "quiet"],
    ["mpv", "--no-terminal", "--no-video"],
]

# 两次播放之间的间隔(秒)
_REPEAT_GAP_SECONDS = 1.5


def find_player() -> list[str] | None:
    for cmd in _PLAYERS:
        if shutil.which(cmd[0]):
            return cmd
    return None


class SoundCue:
    def __init__(self, sound_file: str = ALERT_SOUND_FILE, player: list[str] | None = None) -> None:
        self.sound_file = sound_file
        self._player = player
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._proc: subprocess.Popen | None = None
        self._lock = threading.Lock()

    @property
    def playing(self) -> bool:
        # 已收到停止信号的线程只是在收尾, 不算在播放
        return self._thread is not None and self._thread.is_alive() and not self._stop.is_set()

    def _command(self) -> list[str] | None:
        if not self.sound_file:
            return None
        if not Path(self.sound_file).exists():
            logger.warning(f"提示音文件不存在, 改用终端响铃: {self.sound_file}")
            return None
        player = self._player or find_player()
        if player is None:
            logger.warning("未找到可用的音频播放器, 改用终端响铃")
            return None
        return [*player, self.sound_file]

    def _loop(self, cmd: list[str] | None, stop: threading.Event) -> None:
        while not stop.is_set():
            if cmd is None:
                sys.stdout.write("\a")
                sys.stdout.flush()
            else:
                proc = None
                try:
                    with self._lock:
                        proc = self._proc = subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
                    proc.wait()
                except OSError as e:
                    logger.error(f"播放提示音失败, 改用终端响铃: {e}")
                    cmd = None
                finally:
                    with self._lock:
                        if self._proc is proc:
                            self._proc = None
            stop.wait(_REPEAT_GAP_SECONDS)

    def play(self) -> None:
        if self.playing:
            return
        # 每轮播放各用一个停止信号, 旧线程收到的 stop 不会影响新一轮
        self._stop = threading.Event()
        cmd = self._command()
        self._thread = threading.Thread(target=self._loop, args=(cmd, self._stop), name="sound-cue", daemon=True)
        self._thread.start()
        logger.debug("开始播放提示音")

    def stop(self) -> None:
        if not self.playing:
            return
        self._stop.set()
        with self._lock:
            if self._proc is not None:
                self._proc.terminate()
        logger.debug("提示音已停止")
