"""Crash detection and automatic restart of server processes."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from .errors import CrashTooFrequentError, ServerError

logger = logging.getLogger(__name__)

PROCESS_OFFLINE_STATE = "offline"


@dataclass(frozen=True)
class CrashDetectionSettings:
    """Daemon-wide crash detection options."""

    detect_clean_exit_as_crash: bool = True
    timeout: int = 60


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CrashHandler:
    """Tracks the last crash of a server and decides whether to restart it."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._lock = threading.Lock()
        self._last_crash: datetime | None = None
        self._clock = clock

    def last_crash_time(self) -> datetime | None:
        with self._lock:
            return self._last_crash

    def set_last_crash(self, when: datetime | None) -> None:
        with self._lock:
            self._last_crash = when

    def handle_crash(
        self,
        state: str,
        detection_enabled: bool,
        exit_code: int,
        oom_killed: bool,
        settings: CrashDetectionSettings,
        publish: Callable[[str], None],
        start: Callable[[], None],
    ) -> bool:
        """Restart a crashed server if the exit state counts as a crash.

        Returns True when a restart was started. Raises CrashTooFrequentError
        when the previous crash lies within the configured timeout.
        """
        if state != PROCESS_OFFLINE_STATE or not detection_enabled:
            if not detection_enabled:
                logger.debug("服务器触发了崩溃检测，但处理程序已禁用服务器进程")
                publish("中止自动重启，此实例禁用崩溃检测。")
            return False

        if exit_code == 0 and not oom_killed and not settings.detect_clean_exit_as_crash:
            logger.debug("服务器退出并成功退出代码;系统配置为不将其检测为崩溃")
            return False

        publish("---------- 检测到服务器进程处于崩溃状态！ ----------")
        publish(f"退出代码: {exit_code}")
        publish(f"内存不足: {'true' if oom_killed else 'false'}")

        last = self.last_crash_time()
        now = self._clock()
        timeout = settings.timeout
        if timeout != 0 and last is not None and last + timedelta(seconds=timeout) > now:
            publish(f"正在中止自动重启，上次崩溃发生在 {timeout} 秒内。")
            raise CrashTooFrequentError()

        self.set_last_crash(now)
        try:
            start()
        except Exception as exc:
            raise ServerError(f"检测到崩溃后无法启动服务器: {exc}") from exc
        return True