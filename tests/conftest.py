"""测试公共夹具: 内存远程站点与本地镜像目录"""

from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable, Mapping
from urllib.parse import unquote, urlsplit

import pytest

from assetmirror.core.config import Config
from assetmirror.core.exceptions import DownloadError, DownloadErrorKind

REMOTE_URL = "http://assets.example.com/"


class FakeRemote:
    """内存中的远程资源站点，作为 transport 注入 DownloadManager

    记录每次请求、同时在途的最大请求数，支持全局或按路径的延迟、404 和前 n 次失败。
    """

    def __init__(self) -> None:
        self.base_url = REMOTE_URL
        self.files: dict[str, bytes] = {}
        self.failures: dict[str, int] = {}
        self.delay = 0.0
        self.delays: dict[str, float] = {}
        self.calls: list[str] = []
        self.headers: list[dict[str, str]] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def add(self, path: str, content: Any) -> None:
        if isinstance(content, bytes):
            self.files[path] = content
        elif isinstance(content, str):
            self.files[path] = content.encode("utf-8")
        else:
            self.files[path] = json.dumps(content).encode("utf-8")

    def fail(self, path: str, times: int) -> None:
        """让 path 的前 times 次请求以网络错误失败"""
        self.failures[path] = times

    def requests_for(self, path: str) -> int:
        return sum(1 for url in self.calls if unquote(urlsplit(url).path).lstrip("/") == path)

    def __call__(self, url: str, timeout: float, headers: Mapping[str, str]) -> bytes:
        path = unquote(urlsplit(url).path).lstrip("/")
        with self._lock:
            self.calls.append(url)
            self.headers.append(dict(headers))
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            delay = self.delays.get(path, self.delay)
            if delay:
                time.sleep(delay)
            with self._lock:
                remaining = self.failures.get(path, 0)
                if remaining:
                    self.failures[path] = remaining - 1
            if remaining:
                raise DownloadError(f"连接被重置: {url}", kind=DownloadErrorKind.NETWORK)
            if path not in self.files:
                raise DownloadError(
                    f"HTTP 404: Not Found ({url})",
                    kind=DownloadErrorKind.HTTP_STATUS, status=404,
                )
            return self.files[path]
        finally:
            with self._lock:
                self.active -= 1


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def base_dir(tmp_path: Path) -> Path:
    base = tmp_path / "assets"
    base.mkdir()
    return base


@pytest.fixture
def write_local(base_dir: Path) -> Callable[[str, Any], Path]:
    """在本地镜像目录中写入文件，dict/list 按 JSON 序列化"""

    def _write(path: str, content: Any) -> Path:
        target = base_dir / path
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            target.write_bytes(content)
        elif isinstance(content, str):
            target.write_text(content, encoding="utf-8")
        else:
            target.write_text(json.dumps(content), encoding="utf-8")
        return target

    return _write


@pytest.fixture
def make_config(base_dir: Path) -> Callable[..., Config]:
    """构建指向临时目录与内存远程站点的配置，重试间隔为 0"""

    def _make(**overrides: Any) -> Config:
        values: dict[str, Any] = {
            "base_dir": str(base_dir),
            "remote_url": REMOTE_URL,
            "retry_count": 0,
            "retry_delay": 0.0,
            "timeout": 5.0,
        }
        values.update(overrides)
        return Config(**values)

    return _make


@pytest.fixture
def isolated_logging() -> Any:
    """保存并恢复根日志器的 handlers 与级别"""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
