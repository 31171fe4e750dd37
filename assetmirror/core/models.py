"""核心数据模型

- AssetStatus / ProcessingContext: 单个路径的处理状态
- ResolveError: 单个路径的失败记录
- ResolveResult: 一次 resolve() 的冻结结果（清单）
- ResultCollector: 运行期间供多个 worker 并发合并结果的收集器
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from assetmirror.core.exceptions import AssetMirrorError


class AssetStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (AssetStatus.SUCCESS, AssetStatus.FAILED)


@dataclass
class ProcessingContext:
    """单个路径的处理上下文

    首次调度时创建。status 只由持有该路径的任务修改；depth/parent 在解析器锁内
    随更短的引用路线下调，depth 即距最近入口文件的跳数。
    """

    path: str
    depth: int
    parent: str | None = None
    status: AssetStatus = AssetStatus.PENDING
    started_at: float = field(default_factory=time.time)
    finished_at: float | None = None

    def start(self) -> None:
        self.status = AssetStatus.PROCESSING
        self.started_at = time.time()

    def finish(self, status: AssetStatus) -> None:
        if self.status.terminal:
            raise RuntimeError(f"路径已处于终态 {self.status.value}: {self.path}")
        self.status = status
        self.finished_at = time.time()

    @property
    def duration(self) -> float:
        if self.finished_at is None:
            return 0.0
        return self.finished_at - self.started_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "depth": self.depth,
            "parent": self.parent,
            "status": self.status.value,
            "duration": round(self.duration, 4),
        }


@dataclass(frozen=True)
class ResolveError:
    """单个路径的失败记录"""

    path: str
    message: str
    code: str = "UNKNOWN"
    source: str | None = None   # 发现该引用的文件（入口文件为 None）

    @classmethod
    def from_exception(
        cls, path: str, exc: BaseException, source: str | None = None,
    ) -> ResolveError:
        code = exc.code if isinstance(exc, AssetMirrorError) else type(exc).__name__
        return cls(path=path, message=str(exc), code=code, source=source)

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "code": self.code,
            "message": self.message,
            "source": self.source,
        }


@dataclass(frozen=True)
class ResolveResult:
    """一次 resolve() 的结果清单"""

    total: int = 0
    success: int = 0
    failed: int = 0
    file_list: tuple[str, ...] = ()
    entries: tuple[str, ...] = ()
    errors: tuple[ResolveError, ...] = ()
    cycles: tuple[tuple[str, str], ...] = ()
    aborted: bool = False

    @property
    def ok(self) -> bool:
        return self.failed == 0 and not self.aborted

    def errors_for(self, path: str) -> list[ResolveError]:
        return [e for e in self.errors if e.path == path]

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": {
                "total": self.total,
                "success": self.success,
                "failed": self.failed,
                "aborted": self.aborted,
            },
            "entries": list(self.entries),
            "files": list(self.file_list),
            "errors": [e.to_dict() for e in self.errors],
            "cycles": [{"source": s, "target": t} for s, t in self.cycles],
        }


class ResultCollector:
    """并发安全的结果收集器: 只追加，最后 freeze() 为 ResolveResult"""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._files: list[str] = []
        self._entries: list[str] = []
        self._errors: list[ResolveError] = []
        self._cycles: list[tuple[str, str]] = []
        self._success = 0
        self._failed = 0

    def set_entries(self, entries: list[str]) -> None:
        with self._lock:
            self._entries = list(entries)

    def add_file(self, path: str) -> None:
        with self._lock:
            self._files.append(path)

    def add_success(self) -> None:
        with self._lock:
            self._success += 1

    def add_failure(self, error: ResolveError) -> None:
        with self._lock:
            self._failed += 1
            self._errors.append(error)

    def add_cycle(self, source: str, target: str) -> None:
        with self._lock:
            self._cycles.append((source, target))

    def counts(self) -> tuple[int, int, int]:
        """返回 (已发现文件数, 成功数, 失败数)"""
        with self._lock:
            return len(self._files), self._success, self._failed

    def freeze(self, *, aborted: bool = False) -> ResolveResult:
        with self._lock:
            return ResolveResult(
                total=self._success + self._failed,
                success=self._success,
                failed=self._failed,
                file_list=tuple(self._files),
                entries=tuple(self._entries),
                errors=tuple(sorted(self._errors, key=lambda e: (e.path, e.source or ""))),
                cycles=tuple(self._cycles),
                aborted=aborted,
            )
