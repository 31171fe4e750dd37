"""树形数据遍历

- walk(): 递归访问已解析的 JSON 数据（dict / list / 标量），对字符串叶子回调
- iter_files(): 递归列出目录下的全部普通文件
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable, Iterator, Union

TreePath = tuple[Union[str, int], ...]
StringCallback = Callable[[TreePath, str, str], None]
KeyFilter = Callable[[str], bool]


def walk(
    data: Any,
    on_string: StringCallback,
    key_filter: KeyFilter | None = None,
    path: TreePath = (),
    key: str = "",
) -> None:
    """递归遍历数据，对字符串叶子调用 on_string(path, key, value)

    - dict 按键访问，list 按下标访问，None 叶子跳过
    - 非字符串值总会进入；字符串叶子仅在未设置 key_filter
      或 key_filter(key) 为真时回调
    - list 中的字符串沿用外层 dict 的键名
    """
    if data is None:
        return

    if isinstance(data, str):
        if key_filter is None or key_filter(key):
            on_string(path, key, data)
        return

    if isinstance(data, list):
        for index, item in enumerate(data):
            walk(item, on_string, key_filter, path + (index,), key)
        return

    if isinstance(data, dict):
        for k, value in data.items():
            walk(value, on_string, key_filter, path + (k,), str(k))


def iter_files(base: Path) -> Iterator[Path]:
    """按路径排序递归列出 base 下的全部普通文件"""
    for root, dirs, files in os.walk(base):
        dirs.sort()
        for name in sorted(files):
            full = Path(root) / name
            if full.is_file():
                yield full
