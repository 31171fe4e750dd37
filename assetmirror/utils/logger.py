"""日志输出配置

库代码各模块只持有 logging.getLogger(__name__)，从不自行添加 handler；
由命令行入口调用 setup_logging() 决定输出格式与级别。

解析过程在线程池中并发执行，两种格式都带上线程名以区分 worker。
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import TextIO

TEXT_FORMAT = "%(asctime)s [%(levelname)-7s] (%(threadName)s) %(name)s: %(message)s"

_PACKAGE_PREFIX = "assetmirror."


class JSONFormatter(logging.Formatter):
    """每条记录输出一行 JSON，供日志平台采集

    字段: timestamp / level / logger / component / thread / message，
    有异常时附加 exception。component 是去掉包名前缀的模块路径。
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "component": record.name.removeprefix(_PACKAGE_PREFIX),
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(
    level: str = "INFO", json_output: bool = False, stream: TextIO | None = None,
) -> logging.Handler:
    """(重新)配置根日志器，返回新装上的 handler

    未知级别名按 INFO 处理；stream 默认 stderr，避免与命令输出混在 stdout。
    """
    reset_logging()
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JSONFormatter() if json_output else logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.addHandler(handler)
    return handler


def reset_logging() -> None:
    """摘除并关闭根日志器上的全部 handler"""
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
