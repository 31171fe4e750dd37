"""集中配置管理

配置来源按优先级从低到高合并:
  1. 默认值（Config 字段默认）
  2. 配置文件（显式指定，或按 DEFAULT_CONFIG_FILES 顺序查找第一个存在的）
  3. 环境变量（ASSETMIRROR_ 前缀，如 ASSETMIRROR_CONCURRENCY=8）
  4. 编程式 / CLI 覆盖

合并后统一 validate()，不合法时抛出 ConfigError 并列出全部问题。
"""

from __future__ import annotations

import copy
import dataclasses
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

import yaml

from assetmirror.core.exceptions import ConfigError, ValidationError
from assetmirror.utils.fileio import load_yaml
from assetmirror.utils.net import validate_url_scheme

logger = logging.getLogger(__name__)

ENV_PREFIX = "ASSETMIRROR_"

DEFAULT_CONFIG_FILES = (
    "assetmirror.yml",
    "assetmirror.yaml",
    ".assetmirror/config.yml",
)

# 路径字符 + 2~5 位扩展名，可选第二段扩展名（如 .ltcb.ls）
DEFAULT_REFERENCE_PATTERN = r"^[\w./\-\s]*\.[A-Za-z0-9]{2,5}(\.[A-Za-z0-9]{2,5})?$"

# 扩展名 -> 处理器映射中可用的内置处理器
BUILTIN_PROCESSORS = ("hierarchy", "opaque")


@dataclass
class Config:
    """资源解析配置"""

    # 目录 / 远程
    base_dir: str = "assets"
    remote_url: str = ""

    # 文件分类
    entry_extensions: list[str] = field(default_factory=lambda: [".ls", ".lh"])
    parsable_extensions: list[str] = field(
        default_factory=lambda: [".ls", ".lh", ".lmat", ".ltc"],
    )
    ignored_extensions: list[str] = field(
        default_factory=lambda: [".ltcb.ls", ".lanit.ls"],
    )
    reference_pattern: str = DEFAULT_REFERENCE_PATTERN
    reference_keys: list[str] = field(default_factory=lambda: ["name"])
    allow_parent_refs: bool = False

    # 执行
    concurrency: int = 5
    max_depth: int = 10

    # 下载
    timeout: float = 30.0          # 秒
    retry_count: int = 3
    retry_delay: float = 1.0       # 秒，第 n 次重试等待 retry_delay * n
    enable_cache: bool = True
    user_agent: str = "assetmirror/0.1"
    headers: dict[str, str] = field(default_factory=lambda: {"Accept": "*/*"})

    # 额外的扩展名 -> 内置处理器映射，如 {".lani": "hierarchy"}
    processors: dict[str, str] = field(default_factory=dict)

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict = field(default_factory=dict)

    @classmethod
    def field_names(cls) -> set[str]:
        return {f.name for f in dataclasses.fields(cls)} - {"extra"}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Config:
        """从字典构建，支持扁平写法或 resource 段；未知键放入 extra"""
        flat = dict(data)
        section = flat.pop("resource", None)
        if isinstance(section, dict):
            flat.update(section)
        known = cls.field_names()
        matched = {k: v for k, v in flat.items() if k in known}
        extra = {k: v for k, v in flat.items() if k not in known}
        cfg = cls(**matched)
        cfg.extra = extra
        return cfg

    @classmethod
    def from_file(cls, path: str) -> Config:
        """从 YAML/JSON 文件加载配置，不存在则返回默认"""
        try:
            data = load_yaml(path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigError(f"加载配置文件失败: {path}: {e}") from e
        if not data:
            return cls()
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)

    def merged(self, overrides: Mapping[str, Any]) -> Config:
        """返回叠加覆盖后的新配置，值为 None 的覆盖项忽略"""
        known = self.field_names()
        unknown = [k for k in overrides if k not in known]
        if unknown:
            raise ConfigError(f"未知的配置项: {', '.join(sorted(unknown))}")
        changes = {k: v for k, v in overrides.items() if v is not None}
        return dataclasses.replace(copy.deepcopy(self), **changes)

    def validate(self) -> None:
        """校验配置，收集全部问题后一次性抛出 ConfigError"""
        errors: list[str] = []

        if not isinstance(self.concurrency, int) or self.concurrency < 1:
            errors.append(f"concurrency 必须是 >= 1 的整数: {self.concurrency!r}")
        if not isinstance(self.max_depth, int) or self.max_depth < 0:
            errors.append(f"max_depth 必须是 >= 0 的整数: {self.max_depth!r}")
        if not isinstance(self.timeout, (int, float)) or self.timeout <= 0:
            errors.append(f"timeout 必须大于 0: {self.timeout!r}")
        if not isinstance(self.retry_count, int) or self.retry_count < 0:
            errors.append(f"retry_count 不能为负数: {self.retry_count!r}")
        if not isinstance(self.retry_delay, (int, float)) or self.retry_delay < 0:
            errors.append(f"retry_delay 不能为负数: {self.retry_delay!r}")

        for name in ("entry_extensions", "parsable_extensions", "ignored_extensions"):
            for ext in getattr(self, name):
                if not ext.startswith("."):
                    errors.append(f"{name} 中的扩展名必须以点开头: {ext}")
        for ext, handler in self.processors.items():
            if not ext.startswith("."):
                errors.append(f"processors 中的扩展名必须以点开头: {ext}")
            if handler not in BUILTIN_PROCESSORS:
                errors.append(f"processors 中的处理器未知: {ext} -> {handler}")

        if not self.reference_keys:
            errors.append("reference_keys 不能为空")

        try:
            re.compile(self.reference_pattern)
        except re.error as e:
            errors.append(f"reference_pattern 不是合法的正则: {e}")

        if self.remote_url:
            try:
                validate_url_scheme(self.remote_url, context="remote_url")
            except ValidationError as e:
                errors.append(str(e))

        if errors:
            raise ConfigError("配置验证失败:\n" + "\n".join(errors), details=errors)

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, prefix: str = ENV_PREFIX,
    ) -> dict[str, Any]:
        """从环境变量提取覆盖项，按字段默认值的类型做转换"""
        env = os.environ if environ is None else environ
        defaults = cls()
        overrides: dict[str, Any] = {}
        for key, raw in env.items():
            if not key.startswith(prefix):
                continue
            name = key[len(prefix):].lower()
            if name not in cls.field_names():
                continue
            overrides[name] = _coerce(name, raw, getattr(defaults, name))
        return overrides


def _coerce(name: str, raw: str, default: Any) -> Any:
    """把环境变量字符串转换为与默认值相同的类型"""
    try:
        if isinstance(default, bool):
            return raw.strip().lower() in ("1", "true", "yes", "on")
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
        if isinstance(default, list):
            return [item.strip() for item in raw.split(",") if item.strip()]
        if isinstance(default, dict):
            pairs = (item.split("=", 1) for item in raw.split(",") if "=" in item)
            return {k.strip(): v.strip() for k, v in pairs}
    except ValueError as e:
        raise ConfigError(f"环境变量 {ENV_PREFIX}{name.upper()} 的值无效: {raw!r}") from e
    return raw


def find_config_file() -> str | None:
    """按默认位置查找配置文件"""
    for candidate in DEFAULT_CONFIG_FILES:
        if os.path.exists(candidate):
            return candidate
    return None


def load_config(
    path: str | None = None,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Config:
    """按 默认值 <- 文件 <- 环境变量 <- 覆盖项 合并并校验配置"""
    config_path = path or find_config_file()
    if path and not os.path.exists(path):
        raise ConfigError(f"配置文件不存在: {path}")

    cfg = Config.from_file(config_path) if config_path else Config()
    if config_path:
        logger.info("配置已加载: %s", config_path)

    cfg = cfg.merged(Config.from_env(environ))
    if overrides:
        cfg = cfg.merged(overrides)

    cfg.validate()
    return cfg
