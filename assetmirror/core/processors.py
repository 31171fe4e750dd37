"""文件处理器注册表

静态表: 扩展名 -> 内置处理器，启动时由声明式配置填充，不做运行时代码加载。

内置处理器:
  - hierarchy: JSON 层级文件，三级解析回退 + 引用提取
  - opaque:    不解析内容，直接视为成功
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

from assetmirror.core.config import BUILTIN_PROCESSORS
from assetmirror.core.downloader import DownloadManager
from assetmirror.core.exceptions import ConfigError, DownloadError, ParseError
from assetmirror.core.paths import PathResolver
from assetmirror.core.references import ReferenceExtractor

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    """单个文件的处理结果"""

    path: str
    success: bool
    references: list[str] = field(default_factory=list)
    data: Any = None
    error: Exception | None = None
    duration: float = 0.0


class FileProcessor(Protocol):
    """文件处理器协议"""

    name: str

    def process(self, path: str) -> ProcessResult:
        ...


class OpaqueProcessor:
    """不解析内容的处理器（纯二进制等），只确认本地副本存在并记录大小"""

    name = "opaque"

    def __init__(self, paths: PathResolver) -> None:
        self.paths = paths

    def process(self, path: str) -> ProcessResult:
        start = time.monotonic()
        local = self.paths.resolve_local(path)
        try:
            size = local.stat().st_size
        except OSError as e:
            logger.error("本地文件不可用: %s - %s", local, e)
            return ProcessResult(
                path=path, success=False, error=e, duration=time.monotonic() - start,
            )
        return ProcessResult(
            path=path, success=True, data={"size": size}, duration=time.monotonic() - start,
        )


class HierarchyProcessor:
    """JSON 层级文件处理器

    解析回退链:
      1. 按 UTF-8 文本读取本地文件并解析
      2. 读取原始字节，容忍 BOM 解码后解析
      3. 绕过缓存重新下载（下载器负责写回本地）后解析
    三级全部失败则返回携带三个原因的 ParseError。
    """

    name = "hierarchy"

    def __init__(
        self,
        paths: PathResolver,
        downloader: DownloadManager,
        extractor: ReferenceExtractor,
    ) -> None:
        self.paths = paths
        self.downloader = downloader
        self.extractor = extractor

    def process(self, path: str) -> ProcessResult:
        start = time.monotonic()
        try:
            data = self.parse(path)
        except ParseError as e:
            return ProcessResult(
                path=path, success=False, error=e, duration=time.monotonic() - start,
            )
        references = self.extractor.extract(data, path)
        return ProcessResult(
            path=path, success=True, references=references, data=data,
            duration=time.monotonic() - start,
        )

    def parse(self, path: str) -> Any:
        local = self.paths.resolve_local(path)
        causes: list[Exception] = []

        try:
            return json.loads(local.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            causes.append(e)
            logger.debug("文本解析失败，尝试按字节解析: %s - %s", path, e)

        try:
            return json.loads(local.read_bytes().decode("utf-8-sig"))
        except (OSError, ValueError) as e:
            causes.append(e)
            logger.warning("本地文件无法解析，重新下载: %s - %s", path, e)

        try:
            raw = self.downloader.fetch(path, refresh=True)
            data = json.loads(raw.decode("utf-8-sig"))
        except (DownloadError, OSError, ValueError) as e:
            causes.append(e)
        else:
            logger.info("重新下载后解析成功: %s", path)
            return data

        detail = "; ".join(
            f"{stage}: {cause}"
            for stage, cause in zip(("本地文本", "本地字节", "远程重拉"), causes)
        )
        raise ParseError(f"解析失败: {path} ({detail})", path=path, causes=causes)


class ProcessorRegistry:
    """处理器注册表: 按最长扩展名匹配，忽略扩展名优先"""

    def __init__(self, paths: PathResolver) -> None:
        self.paths = paths
        self._table: dict[str, FileProcessor] = {}

    def register(self, extension: str, processor: FileProcessor) -> None:
        if not extension.startswith("."):
            raise ConfigError(f"文件扩展名必须以点开头: {extension}")
        self._table[extension.lower()] = processor
        logger.debug("注册处理器: %s -> %s", extension, processor.name)

    def find(self, path: str) -> FileProcessor | None:
        if self.paths.is_ignored(path):
            return None
        ext = self.paths.match_extension(path, self._table)
        return self._table[ext] if ext else None

    def supports(self, path: str) -> bool:
        return self.find(path) is not None

    def process(self, path: str) -> ProcessResult:
        processor = self.find(path)
        if processor is None:
            return ProcessResult(path=path, success=True)
        return processor.process(path)

    def extensions(self) -> dict[str, str]:
        return {ext: p.name for ext, p in sorted(self._table.items())}

    @classmethod
    def build(
        cls,
        paths: PathResolver,
        downloader: DownloadManager,
        extractor: ReferenceExtractor,
        overrides: Mapping[str, str] | None = None,
    ) -> ProcessorRegistry:
        """按 可解析扩展名 -> hierarchy 的默认表，叠加 overrides 构建注册表"""
        instances: dict[str, FileProcessor] = {
            "hierarchy": HierarchyProcessor(paths, downloader, extractor),
            "opaque": OpaqueProcessor(paths),
        }
        table = {ext: "hierarchy" for ext in paths.parsable_extensions}
        table.update(overrides or {})

        registry = cls(paths)
        for ext, handler in table.items():
            if handler not in instances:
                raise ConfigError(
                    f"未知的内置处理器: {handler} ({ext})，可用: {', '.join(BUILTIN_PROCESSORS)}"
                )
            registry.register(ext, instances[handler])
        return registry
