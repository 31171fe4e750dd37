"""资源路径解析器

职责:
- 规范化逻辑路径（AssetPath），作为全局去重键
- 计算本地镜像路径与远程下载 URL（纯字符串运算，不做 IO）
- 将引用解析到所在文件的目录下
- 按扩展名对文件分类（入口 / 可解析 / 忽略）
"""

from __future__ import annotations

import posixpath
import re
from pathlib import Path
from typing import Iterable
from urllib.parse import quote, urljoin

from assetmirror.utils.net import as_directory_url

_WHITESPACE_RE = re.compile(r"\s+")


def normalize(path: str) -> str:
    """规范化路径: 空白串替换为 "_"，反斜杠替换为 "/"

    不折叠 "." / ".." 段；引用解析时由 resolve_reference() 负责。
    """
    return _WHITESPACE_RE.sub("_", path.replace("\\", "/"))


def _lower_suffixes(extensions: Iterable[str]) -> tuple[str, ...]:
    # 长后缀优先，保证 ".ltcb.ls" 先于 ".ls" 命中
    return tuple(sorted({e.lower() for e in extensions}, key=len, reverse=True))


class PathResolver:
    """资源路径解析器 - 只做字符串运算，不触发任何 IO"""

    def __init__(
        self,
        base_dir: str | Path,
        remote_url: str = "",
        *,
        entry_extensions: Iterable[str] = (".ls", ".lh"),
        parsable_extensions: Iterable[str] = (".ls", ".lh", ".lmat", ".ltc"),
        ignored_extensions: Iterable[str] = (".ltcb.ls", ".lanit.ls"),
    ) -> None:
        self.base_dir = Path(base_dir)
        self.remote_url = as_directory_url(remote_url, context="remote base") if remote_url else ""
        self.entry_extensions = _lower_suffixes(entry_extensions)
        self.parsable_extensions = _lower_suffixes(parsable_extensions)
        self.ignored_extensions = _lower_suffixes(ignored_extensions)

    # ------------------------------------------------------------------
    # 本地 / 远程定位
    # ------------------------------------------------------------------

    def resolve_local(self, path: str) -> Path:
        """本地镜像路径: base_dir / 规范化路径（去掉开头的 "/"，不跳出 base_dir 根）"""
        return self.base_dir / normalize(path).lstrip("/")

    def resolve_remote(self, path: str) -> str:
        """远程 URL: 以 URL 拼接语义解析到远程基址

        绝对路径替换基址的路径部分，相对路径追加在基址之后。
        """
        if not self.remote_url:
            raise ValueError(f"未配置远程地址，无法解析: {path}")
        return urljoin(self.remote_url, quote(normalize(path), safe="/"))

    def relative_to_base(self, file_path: Path) -> str:
        """本地文件相对 base_dir 的规范化路径"""
        return normalize(file_path.relative_to(self.base_dir).as_posix())

    # ------------------------------------------------------------------
    # 引用解析
    # ------------------------------------------------------------------

    @staticmethod
    def resolve_reference(source: str, ref: str) -> str:
        """以 source 所在目录为基准解析引用，折叠 "." / ".." 段"""
        ref = normalize(ref)
        if ref.startswith("/"):
            joined = ref
        else:
            joined = posixpath.join(posixpath.dirname(normalize(source)), ref)
        return posixpath.normpath(joined)

    @staticmethod
    def escapes_base(path: str) -> bool:
        """已解析路径是否越过了 base_dir 根目录"""
        return path == ".." or path.startswith("../")

    # ------------------------------------------------------------------
    # 扩展名分类
    # ------------------------------------------------------------------

    @staticmethod
    def match_extension(path: str, extensions: Iterable[str]) -> str | None:
        """返回 path 命中的最长后缀（大小写不敏感），未命中返回 None"""
        lowered = path.lower()
        for ext in _lower_suffixes(extensions):
            if lowered.endswith(ext):
                return ext
        return None

    def is_ignored(self, path: str) -> bool:
        return self.match_extension(path, self.ignored_extensions) is not None

    def is_entry(self, path: str) -> bool:
        if self.is_ignored(path):
            return False
        return self.match_extension(path, self.entry_extensions) is not None

    def is_parsable(self, path: str) -> bool:
        if self.is_ignored(path):
            return False
        return self.match_extension(path, self.parsable_extensions) is not None

    @property
    def hierarchy_extensions(self) -> tuple[str, ...]:
        """入口与可解析扩展名的并集"""
        return _lower_suffixes(self.entry_extensions + self.parsable_extensions)
