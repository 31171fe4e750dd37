"""生命周期事件总线

发布/订阅通道: 监听器按事件类型注册，"*" 接收全部事件。
监听器异常只记录日志，不影响资源解析流程。
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable

logger = logging.getLogger(__name__)

EVENT_TYPES = frozenset((
    "start",
    "top_level_collected",
    "file_started",
    "file_completed",
    "file_failed",
    "cycle_detected",
    "complete",
    "aborted",
))

WILDCARD = "*"

Listener = Callable[[str, dict[str, Any]], None]


class EventBus:
    """事件总线"""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, event: str, listener: Listener) -> None:
        if event != WILDCARD and event not in EVENT_TYPES:
            raise ValueError(f"未知的事件类型: {event}")
        with self._lock:
            self._listeners.setdefault(event, []).append(listener)

    def off(self, event: str, listener: Listener) -> None:
        with self._lock:
            listeners = self._listeners.get(event, [])
            if listener in listeners:
                listeners.remove(listener)

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        payload = {"timestamp": time.time(), **payload}
        with self._lock:
            targets = self._listeners.get(event, []) + self._listeners.get(WILDCARD, [])
        for listener in targets:
            try:
                listener(event, payload)
            except Exception:
                logger.exception("事件监听器在事件 '%s' 上出错", event)
