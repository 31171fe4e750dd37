"""本地文件读写

- 资源落盘与清单导出都走原子替换，并发解析时读方看不到写了一半的文件
- 配置读取统一 UTF-8 + yaml.safe_load，JSON 作为 YAML 子集同样可读
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# 配置文件大小上限，超过即拒绝读取
MAX_CONFIG_SIZE = 10 * 1024 * 1024

_YAML_SUFFIXES = (".yml", ".yaml")


def atomic_write_bytes(path: Path, content: bytes) -> None:
    """写入同目录临时文件后 os.replace 到目标位置，缺失的父目录自动创建

    失败时删除临时文件并重新抛出原异常（OSError 等）。
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".part", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as tmp:
            tmp.write(content)
        os.replace(tmp_name, path)
    except Exception:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def atomic_write(path: Path, content: str) -> None:
    atomic_write_bytes(path, content.encode("utf-8"))


def load_yaml(path: str | Path) -> dict[str, Any]:
    """读取 YAML/JSON 映射

    文件不存在、内容为空或顶层不是映射时返回 {}。

    Raises:
        ValueError: 文件超过 MAX_CONFIG_SIZE
        yaml.YAMLError: 语法错误
        OSError: 读取失败
    """
    p = Path(path)
    if not p.is_file():
        return {}

    size = p.stat().st_size
    if size > MAX_CONFIG_SIZE:
        raise ValueError(f"配置文件过大: {p} ({size} 字节，上限 {MAX_CONFIG_SIZE} 字节)")

    text = p.read_text(encoding="utf-8")
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        logger.error("配置文件语法错误: %s - %s", p, e)
        raise

    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning("%s 顶层不是映射 (%s)，按空配置处理", p, type(data).__name__)
        return {}
    return data


def dump_yaml(data: Any) -> str:
    """块格式 YAML，保持键顺序并直接输出中文"""
    return yaml.safe_dump(data, default_flow_style=False, allow_unicode=True, sort_keys=False)


def save_structured(path: str | Path, data: Any) -> None:
    """按后缀选择格式原子写出: .yml/.yaml 为 YAML，其余为缩进 JSON"""
    p = Path(path)
    if p.suffix.lower() in _YAML_SUFFIXES:
        text = dump_yaml(data)
    else:
        text = json.dumps(data, ensure_ascii=False, indent=2) + "\n"
    try:
        atomic_write(p, text)
    except OSError as e:
        logger.error("写入失败: %s - %s", p, e)
        raise
