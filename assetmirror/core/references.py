"""资源引用提取

判断字符串是否像一个资源路径，并把层级文件中的引用解析为 AssetPath。
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable

from assetmirror.core.config import DEFAULT_REFERENCE_PATTERN
from assetmirror.core.paths import PathResolver
from assetmirror.core.walker import TreePath, walk

logger = logging.getLogger(__name__)


def looks_like_asset_path(value: str) -> bool:
    """结构启发式: 像 "目录/文件.扩展名" 的相对路径

    排除 http(s) 链接、data URI 以及含 {} 的模板占位符。
    """
    if not value:
        return False
    if value.startswith("http") or value.startswith("data:"):
        return False
    if "/" not in value or "." not in value:
        return False
    return "{" not in value and "}" not in value


class ReferenceExtractor:
    """从解析后的层级数据中提取引用路径"""

    def __init__(
        self,
        paths: PathResolver,
        pattern: str = DEFAULT_REFERENCE_PATTERN,
        keys: Iterable[str] = ("name",),
    ) -> None:
        self.paths = paths
        self.pattern = re.compile(pattern, re.IGNORECASE)
        self.keys = frozenset(keys)

    def is_reference(self, value: str) -> bool:
        """字符串是否为资源引用: 通过结构启发式（或是同目录层级文件名）且匹配路径正则"""
        if not (looks_like_asset_path(value) or self._is_sibling_name(value)):
            return False
        return self.pattern.match(value) is not None

    def _is_sibling_name(self, value: str) -> bool:
        """不含 "/" 的同目录文件名（如 "child.lmat"），须以层级扩展名结尾"""
        if not value or value.startswith(("http", "data:")):
            return False
        if "{" in value or "}" in value:
            return False
        return self.paths.match_extension(value, self.paths.hierarchy_extensions) is not None

    def extract(self, data: Any, source: str) -> list[str]:
        """遍历数据中名为 keys 的字段，返回相对 source 目录解析后的引用（去重，保持首次顺序）"""
        found: dict[str, None] = {}

        def on_string(tree_path: TreePath, key: str, value: str) -> None:
            if not self.is_reference(value):
                return
            ref = self.paths.resolve_reference(source, value)
            if ref not in found:
                logger.debug("发现引用 %s -> %s (%s)", source, ref, "/".join(map(str, tree_path)))
                found[ref] = None

        walk(data, on_string, key_filter=self.keys.__contains__)
        return list(found)
