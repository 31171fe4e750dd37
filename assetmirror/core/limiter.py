"""并发限制器: 单个 resolve() 共享的有界 worker 池

- 至多 limit 个任务同时执行，其余按 FIFO 排队
- 递归发现的引用作为新任务投递到同一队列，任务之间不互相等待
- join() 等待所有已投递任务结束；cancel() 后不再接收新任务
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

from assetmirror.core.exceptions import ConfigError

logger = logging.getLogger(__name__)


class ConcurrencyLimiter:
    """有界并发任务调度器（信号量语义）"""

    def __init__(self, limit: int, cancel_event: threading.Event | None = None) -> None:
        if not isinstance(limit, int) or limit < 1:
            raise ConfigError(f"并发数必须是 >= 1 的整数: {limit!r}")
        self.limit = limit
        self._cancel = cancel_event or threading.Event()
        self._executor = ThreadPoolExecutor(
            max_workers=limit, thread_name_prefix="assetmirror",
        )
        self._cond = threading.Condition()
        self._pending = 0
        self._active = 0
        self._closed = False
        self.peak_active = 0
        self.submitted = 0

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def submit(self, fn: Callable[..., Any], *args: Any) -> Future | None:
        """投递任务；已取消或已关闭时拒绝并返回 None"""
        with self._cond:
            if self._closed or self._cancel.is_set():
                return None
            self._pending += 1
            self.submitted += 1

        try:
            future = self._executor.submit(self._run, fn, args)
        except RuntimeError:
            # 执行器已关闭
            self._done()
            return None
        future.add_done_callback(self._report)
        return future

    def _run(self, fn: Callable[..., Any], args: tuple[Any, ...]) -> Any:
        with self._cond:
            self._active += 1
            self.peak_active = max(self.peak_active, self._active)
        try:
            return fn(*args)
        finally:
            with self._cond:
                self._active -= 1
            self._done()

    def _done(self) -> None:
        with self._cond:
            self._pending -= 1
            if self._pending == 0:
                self._cond.notify_all()

    @staticmethod
    def _report(future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("任务执行异常: %r", exc, exc_info=exc)

    def join(self, timeout: float | None = None) -> bool:
        """等待全部已投递任务完成，超时返回 False"""
        with self._cond:
            return self._cond.wait_for(lambda: self._pending == 0, timeout)

    def cancel(self) -> None:
        """停止接收新任务，已排队的任务仍会执行"""
        self._cancel.set()

    def shutdown(self, wait: bool = True) -> None:
        with self._cond:
            self._closed = True
        self._executor.shutdown(wait=wait)

    def stats(self) -> dict[str, int]:
        with self._cond:
            return {
                "limit": self.limit,
                "pending": self._pending,
                "active": self._active,
                "peak_active": self.peak_active,
                "submitted": self.submitted,
            }

    def __enter__(self) -> ConcurrencyLimiter:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()
