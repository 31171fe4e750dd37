"""资源下载管理器

职责:
- 本地优先: 本地镜像已存在则不下载
- HTTP GET 拉取（超时 + tenacity 重试退避）
- 同一路径的并发请求合并为一次网络请求
- 写穿缓存: 下载结果原子落盘并放入内存缓存
"""

from __future__ import annotations

import http.client
import logging
import socket
import threading
import urllib.error
import urllib.request
from concurrent.futures import Future
from typing import Callable, Mapping

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from assetmirror.core.exceptions import DownloadError, DownloadErrorKind
from assetmirror.core.paths import PathResolver
from assetmirror.utils.fileio import atomic_write_bytes

logger = logging.getLogger(__name__)

# 传输层策略：接受 (url, timeout, headers)，返回响应体；失败抛 DownloadError
Transport = Callable[[str, float, Mapping[str, str]], bytes]


class _Cancelled(Exception):
    """下载在尝试前或退避期间收到取消信号"""


def urllib_transport(url: str, timeout: float, headers: Mapping[str, str]) -> bytes:
    """默认传输层: urllib.request GET，非 2xx / 网络错误 / 超时统一转为 DownloadError"""
    request = urllib.request.Request(url, headers=dict(headers), method="GET")
    try:
        with urllib.request.urlopen(request, timeout=timeout) as resp:  # nosec B310
            status = getattr(resp, "status", 200)
            if not 200 <= status < 300:
                raise DownloadError(
                    f"HTTP {status}: {url}", kind=DownloadErrorKind.HTTP_STATUS, status=status,
                )
            return resp.read()
    except urllib.error.HTTPError as e:
        raise DownloadError(
            f"HTTP {e.code}: {e.reason} ({url})",
            kind=DownloadErrorKind.HTTP_STATUS, status=e.code,
        ) from e
    except urllib.error.URLError as e:
        if isinstance(e.reason, (socket.timeout, TimeoutError)):
            raise DownloadError(f"下载超时: {url}", kind=DownloadErrorKind.TIMEOUT) from e
        raise DownloadError(f"网络错误: {url} - {e.reason}", kind=DownloadErrorKind.NETWORK) from e
    except (socket.timeout, TimeoutError) as e:
        raise DownloadError(f"下载超时: {url}", kind=DownloadErrorKind.TIMEOUT) from e
    except OSError as e:
        raise DownloadError(f"网络错误: {url} - {e}", kind=DownloadErrorKind.NETWORK) from e
    except http.client.HTTPException as e:
        # 响应截断、状态行损坏等协议层错误
        raise DownloadError(
            f"响应异常: {url} - {type(e).__name__}: {e}", kind=DownloadErrorKind.NETWORK,
        ) from e


class DownloadManager:
    """资源下载管理器 - 本地优先 + 远程下载 + 请求合并"""

    def __init__(
        self,
        paths: PathResolver,
        *,
        timeout: float = 30.0,
        retry_count: int = 3,
        retry_delay: float = 1.0,
        enable_cache: bool = True,
        headers: Mapping[str, str] | None = None,
        transport: Transport | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.paths = paths
        self.timeout = timeout
        self.retry_count = max(0, retry_count)
        self.retry_delay = max(0.0, retry_delay)
        self.enable_cache = enable_cache
        self.headers = dict(headers or {})
        self._transport = transport or urllib_transport
        self._cancel = cancel_event or threading.Event()

        self._lock = threading.Lock()
        self._cache: dict[str, bytes] = {}
        self._inflight: dict[str, Future[bytes]] = {}
        self.request_count = 0

    def bind_cancel(self, event: threading.Event) -> None:
        """绑定本次 resolve() 的取消信号"""
        self._cancel = event

    # ------------------------------------------------------------------
    # 本地优先
    # ------------------------------------------------------------------

    def is_local(self, path: str) -> bool:
        return self.paths.resolve_local(path).is_file()

    def ensure_local(self, path: str) -> bool:
        """本地不存在时下载，返回是否发生了下载"""
        if self.is_local(path):
            logger.debug("本地已存在，跳过下载: %s", path)
            return False
        self.fetch(path)
        return True

    # ------------------------------------------------------------------
    # 拉取
    # ------------------------------------------------------------------

    def fetch(self, path: str, *, refresh: bool = False) -> bytes:
        """拉取 path 的内容

        策略:
          1. 命中内存缓存直接返回（refresh=True 时跳过缓存）
          2. 同一路径已在下载中则等待同一个 future
          3. 否则由当前线程发起下载，成功后落盘并写入缓存
        """
        with self._lock:
            if not refresh and path in self._cache:
                logger.debug("从缓存获取文件: %s", path)
                return self._cache[path]
            future = self._inflight.get(path)
            owner = future is None
            if owner:
                future = Future()
                self._inflight[path] = future

        if not owner:
            logger.debug("等待正在下载的文件: %s", path)
            return future.result()

        try:
            data = self._download_with_retry(path)
            atomic_write_bytes(self.paths.resolve_local(path), data)
        except BaseException as exc:
            with self._lock:
                self._inflight.pop(path, None)
            future.set_exception(exc)
            raise

        with self._lock:
            if self.enable_cache:
                self._cache[path] = data
            self._inflight.pop(path, None)
        future.set_result(data)
        logger.debug("文件保存到本地: %s (%d 字节)", path, len(data))
        return data

    def _download_with_retry(self, path: str) -> bytes:
        """发起请求，失败后按 retry_delay * 第 n 次 退避重试，退避期间可被取消"""
        if not self.paths.remote_url:
            raise DownloadError(
                f"未配置远程地址，无法下载: {path}", kind=DownloadErrorKind.NETWORK, path=path,
            )
        url = self.paths.resolve_remote(path)
        attempts = self.retry_count + 1
        failures: list[BaseException] = []

        def attempt() -> bytes:
            if self._cancel.is_set():
                raise _Cancelled()
            with self._lock:
                self.request_count += 1
            logger.info("下载: %s (第 %d/%d 次)", url, len(failures) + 1, attempts)
            data = self._transport(url, self.timeout, self.headers)
            logger.info("下载完成: %s (%d 字节)", path, len(data))
            return data

        def before_sleep(state: RetryCallState) -> None:
            error = state.outcome.exception()
            failures.append(error)
            logger.warning(
                "下载失败，%.1f 秒后重试 (%d/%d): %s - %s",
                state.next_action.sleep, state.attempt_number, self.retry_count, path, error,
            )

        retrying = Retrying(
            stop=stop_after_attempt(attempts),
            wait=wait_incrementing(start=self.retry_delay, increment=self.retry_delay),
            retry=retry_if_exception_type(DownloadError),
            sleep=self._backoff,
            before_sleep=before_sleep,
            reraise=True,
        )
        try:
            return retrying(attempt)
        except _Cancelled:
            raise DownloadError(
                f"下载已取消: {path}", kind=DownloadErrorKind.TIMEOUT, path=path,
            ) from (failures[-1] if failures else None)
        except DownloadError as last:
            logger.error("下载失败，已达到最大重试次数: %s - %s", path, last)
            raise DownloadError(
                f"下载文件失败: {path} ({last})", kind=last.kind, path=path, status=last.status,
            ) from last

    def _backoff(self, seconds: float) -> None:
        """重试间隔: 在取消信号上等待，收到取消立即结束重试"""
        if self._cancel.wait(seconds):
            raise _Cancelled()

    # ------------------------------------------------------------------
    # 缓存
    # ------------------------------------------------------------------

    def cache_stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "size": len(self._cache),
                "total_bytes": sum(len(b) for b in self._cache.values()),
                "inflight": len(self._inflight),
                "requests": self.request_count,
            }

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
        logger.debug("下载缓存已清空")
