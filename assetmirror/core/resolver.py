"""资源依赖解析器

流程:
  1. 遍历基础目录，收集入口文件（depth=0）
  2. 每个路径作为一个任务投递到共享的并发限制器
  3. 任务: 确保本地存在 -> 解析（三级回退）-> 提取引用 -> 以 depth+1 投递新引用
  4. 等待限制器空闲，冻结结果清单返回

单路径失败只记录在结果中，不向上抛出；配置错误和重复调用直接拒绝。
"""

from __future__ import annotations

import copy
import logging
import threading
from pathlib import Path
from typing import Any

from assetmirror.core.config import Config
from assetmirror.core.downloader import DownloadManager, Transport
from assetmirror.core.events import EventBus, Listener
from assetmirror.core.exceptions import (
    AssetMirrorError,
    ConfigError,
    MaxDepthExceeded,
    PathTraversalError,
    ProcessingInProgressError,
)
from assetmirror.core.limiter import ConcurrencyLimiter
from assetmirror.core.models import (
    AssetStatus,
    ProcessingContext,
    ResolveError,
    ResolveResult,
    ResultCollector,
)
from assetmirror.core.paths import PathResolver
from assetmirror.core.processors import ProcessorRegistry
from assetmirror.core.references import ReferenceExtractor
from assetmirror.core.walker import iter_files
from assetmirror.utils.fileio import save_structured

logger = logging.getLogger(__name__)


class DependencyResolver:
    """资源依赖解析器 - 递归下载并解析层级资源文件"""

    def __init__(
        self,
        config: Config,
        *,
        transport: Transport | None = None,
        events: EventBus | None = None,
    ) -> None:
        config = copy.deepcopy(config)
        config.validate()
        self.config = config

        self.paths = PathResolver(
            config.base_dir,
            config.remote_url,
            entry_extensions=config.entry_extensions,
            parsable_extensions=config.parsable_extensions,
            ignored_extensions=config.ignored_extensions,
        )
        self.downloader = DownloadManager(
            self.paths,
            timeout=config.timeout,
            retry_count=config.retry_count,
            retry_delay=config.retry_delay,
            enable_cache=config.enable_cache,
            headers={"User-Agent": config.user_agent, **config.headers},
            transport=transport,
        )
        self.extractor = ReferenceExtractor(
            self.paths, config.reference_pattern, config.reference_keys,
        )
        self.registry = ProcessorRegistry.build(
            self.paths, self.downloader, self.extractor, config.processors,
        )
        self.events = events or EventBus()

        self._lock = threading.Lock()
        self._processing = False
        self._cancel = threading.Event()
        self._limiter: ConcurrencyLimiter | None = None
        self._visited: set[str] = set()
        self._contexts: dict[str, ProcessingContext] = {}
        self._references: dict[str, list[str]] = {}
        # 被拒绝的路径 -> 引用它的文件
        self._escaped: dict[str, set[str]] = {}
        self._too_deep: dict[str, set[str]] = {}
        self._collector = ResultCollector()

    # ------------------------------------------------------------------
    # 公共接口
    # ------------------------------------------------------------------

    def on(self, event: str, listener: Listener) -> None:
        self.events.on(event, listener)

    def off(self, event: str, listener: Listener) -> None:
        self.events.off(event, listener)

    def resolve(self) -> ResolveResult:
        """解析基础目录下全部入口文件及其传递依赖"""
        with self._lock:
            if self._processing:
                raise ProcessingInProgressError("已有解析任务正在执行")
            self._processing = True
            self._cancel = threading.Event()

        try:
            return self._run()
        finally:
            with self._lock:
                self._processing = False

    def abort(self) -> None:
        """请求中止: 不再投递新任务，下载在重试间隙退出"""
        logger.warning("收到中止请求")
        self._cancel.set()

    def reset(self) -> None:
        """清空上一次运行的状态"""
        with self._lock:
            if self._processing:
                raise ProcessingInProgressError("解析进行中，无法重置")
            self._cancel = threading.Event()
        self._reset_state()

    def collect_entries(self) -> list[str]:
        """列出基础目录下的入口文件（规范化后的相对路径，已排序）"""
        base = self.paths.base_dir
        if not base.is_dir():
            raise ConfigError(f"基础目录不存在: {base}")
        entries = []
        for full in iter_files(base):
            rel = self.paths.relative_to_base(full)
            if self.paths.is_entry(rel):
                entries.append(rel)
        entries.sort()
        logger.info("发现 %d 个入口文件: %s", len(entries), base)
        return entries

    def status(self) -> dict[str, Any]:
        files, success, failed = self._collector.counts()
        with self._lock:
            processing = self._processing
            limiter = self._limiter
        return {
            "processing": processing,
            "aborted": self._cancel.is_set(),
            "files": files,
            "success": success,
            "failed": failed,
            "limiter": limiter.stats() if limiter else None,
            "cache": self.downloader.cache_stats(),
        }

    def progress(self) -> dict[str, Any]:
        with self._lock:
            statuses = [ctx.status for ctx in self._contexts.values()]
        discovered = len(statuses)
        done = sum(1 for s in statuses if s.terminal)
        return {
            "discovered": discovered,
            "completed": done,
            "processing": statuses.count(AssetStatus.PROCESSING),
            "pending": statuses.count(AssetStatus.PENDING),
            "percent": round(done * 100.0 / discovered, 1) if discovered else 0.0,
        }

    def contexts(self) -> list[dict[str, Any]]:
        with self._lock:
            return [ctx.to_dict() for ctx in self._contexts.values()]

    # ------------------------------------------------------------------
    # 运行
    # ------------------------------------------------------------------

    def _reset_state(self) -> None:
        with self._lock:
            self._visited = set()
            self._contexts = {}
            self._references = {}
            self._escaped = {}
            self._too_deep = {}
            self._collector = ResultCollector()
            cancel = self._cancel
        self.downloader.bind_cancel(cancel)
        self.downloader.clear_cache()

    def _run(self) -> ResolveResult:
        self._reset_state()
        entries = self.collect_entries()

        self.events.emit("start", {
            "base_dir": str(self.paths.base_dir),
            "remote_url": self.paths.remote_url,
            "concurrency": self.config.concurrency,
        })
        self._collector.set_entries(entries)
        self.events.emit("top_level_collected", {"entries": entries, "count": len(entries)})

        limiter = ConcurrencyLimiter(self.config.concurrency, self._cancel)
        with self._lock:
            self._limiter = limiter
        try:
            for entry in entries:
                self._schedule(entry, 0)
            limiter.join()
        finally:
            limiter.shutdown()
            with self._lock:
                self._limiter = None
        self._settle_rejections()

        aborted = self._cancel.is_set()
        result = self._collector.freeze(aborted=aborted)
        summary = result.to_dict()["summary"]
        logger.info(
            "解析%s: 共 %d 个, 成功 %d, 失败 %d, 循环 %d",
            "中止" if aborted else "完成",
            result.total, result.success, result.failed, len(result.cycles),
        )
        self.events.emit("aborted" if aborted else "complete", summary)
        return result

    def _schedule(self, path: str, depth: int, parent: str | None = None) -> None:
        """登记并投递路径；已访问的路径只做循环检测和深度更新"""
        with self._lock:
            cycle = (
                parent is not None
                and path in self._visited
                and self._is_ancestor(path, parent)
            )
            if cycle:
                self._collector.add_cycle(parent, path)
            admitted = self._admit(path, depth, parent)

        if cycle:
            logger.info("检测到循环引用: %s -> %s", parent, path)
            self.events.emit("cycle_detected", {"source": parent, "target": path})
        for ctx in admitted:
            self._submit(ctx)

    def _admit(
        self, path: str, depth: int, parent: str | None,
    ) -> list[ProcessingContext]:
        """按最短跳数登记路径，调用方持有锁

        已登记的路径被更短的路线发现时降低其深度，并按新深度重新检查它已提取的引用，
        因此最终登记的路径集合与任务完成顺序无关。越界和超深的引用只记录来源，
        由 _settle_rejections() 在运行结束时统一结算。
        """
        admitted: list[ProcessingContext] = []
        discovered = [(path, depth, parent)]
        while discovered:
            path, depth, parent = discovered.pop()
            ctx = self._contexts.get(path)
            if ctx is not None:
                if depth < ctx.depth:
                    logger.debug("更短的引用路线: %s (深度 %d -> %d)", path, ctx.depth, depth)
                    ctx.depth, ctx.parent = depth, parent
                    discovered.extend(
                        (ref, depth + 1, path) for ref in self._references.get(path, ())
                    )
                continue
            if self._cancel.is_set():
                logger.debug("已中止，不再投递: %s", path)
                continue
            if self.paths.escapes_base(path) and not self.config.allow_parent_refs:
                self._escaped.setdefault(path, set()).add(parent)
                continue
            if depth > self.config.max_depth:
                self._too_deep.setdefault(path, set()).add(parent)
                continue

            ctx = ProcessingContext(path=path, depth=depth, parent=parent)
            self._visited.add(path)
            self._contexts[path] = ctx
            self._collector.add_file(path)
            admitted.append(ctx)
        return admitted

    def _settle_rejections(self) -> None:
        """每个最终未被登记的越界或超深路径记一次失败，来源取字典序最小的引用方"""
        rejected: list[tuple[str, AssetMirrorError, str]] = []
        with self._lock:
            for path, sources in self._escaped.items():
                error = PathTraversalError(f"引用越过基础目录: {path}", path=path)
                rejected.append((path, error, min(sources)))
            for path, sources in self._too_deep.items():
                if path in self._contexts:
                    continue
                depth = min(self._contexts[s].depth for s in sources) + 1
                error = MaxDepthExceeded(path, depth, self.config.max_depth)
                rejected.append((path, error, min(sources)))

        for path, error, source in sorted(rejected, key=lambda r: r[0]):
            logger.warning("拒绝引用 %s (来自 %s): %s", path, source, error)
            self._record_failure(ResolveError.from_exception(path, error, source))

    def _is_ancestor(self, target: str, start: str) -> bool:
        """target 是否在 start 的发现链上（含 start 自身），调用方持有锁"""
        node: str | None = start
        while node is not None:
            if node == target:
                return True
            ctx = self._contexts.get(node)
            node = ctx.parent if ctx else None
        return False

    def _submit(self, ctx: ProcessingContext) -> None:
        limiter = self._limiter
        future = limiter.submit(self._process_path, ctx) if limiter else None
        if future is None:
            ctx.finish(AssetStatus.FAILED)
            self._record_failure(ResolveError(
                path=ctx.path, message="解析已中止，未执行", code="ABORTED", source=ctx.parent,
            ))

    def _process_path(self, ctx: ProcessingContext) -> None:
        path = ctx.path
        ctx.start()
        self.events.emit("file_started", {"path": path, "depth": ctx.depth, "parent": ctx.parent})

        try:
            self.downloader.ensure_local(path)
            result = self.registry.process(path)
        except (AssetMirrorError, OSError) as e:
            self._fail(ctx, e)
            return
        except Exception as e:
            logger.exception("处理文件时发生意外错误: %s", path)
            self._fail(ctx, e)
            return

        if not result.success:
            self._fail(ctx, result.error or AssetMirrorError(f"处理失败: {path}", path=path))
            return

        with self._lock:
            self._references[path] = list(result.references)
            depth = ctx.depth
        for ref in result.references:
            self._schedule(ref, depth + 1, path)

        ctx.finish(AssetStatus.SUCCESS)
        self._collector.add_success()
        logger.debug("处理完成: %s (引用 %d 个)", path, len(result.references))
        self.events.emit("file_completed", {
            "path": path,
            "depth": ctx.depth,
            "references": list(result.references),
            "duration": ctx.duration,
        })

    def _fail(self, ctx: ProcessingContext, exc: BaseException) -> None:
        ctx.finish(AssetStatus.FAILED)
        logger.error("处理失败: %s - %s", ctx.path, exc)
        self._record_failure(ResolveError.from_exception(ctx.path, exc, ctx.parent))

    def _record_failure(self, error: ResolveError) -> None:
        self._collector.add_failure(error)
        self.events.emit("file_failed", error.to_dict())


def write_manifest(result: ResolveResult, path: str | Path) -> Path:
    """将结果清单写入文件，.yml/.yaml 为 YAML，其余为 JSON"""
    target = Path(path)
    save_structured(target, result.to_dict())
    logger.info("结果清单已写入: %s", target)
    return target
