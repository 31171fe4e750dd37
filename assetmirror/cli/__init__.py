"""assetmirror 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

from __future__ import annotations

import os
from typing import Any

import click

from assetmirror import __version__
from assetmirror.core.config import Config, load_config
from assetmirror.core.exceptions import AssetMirrorError, ConfigError
from assetmirror.utils.logger import setup_logging


def _load(config_path: str | None, overrides: dict[str, Any]) -> Config:
    """加载配置，配置错误转为友好的命令行错误"""
    try:
        return load_config(config_path, overrides=overrides)
    except ConfigError as e:
        detail = "\n".join(f"  - {d}" for d in e.details) if e.details else str(e)
        raise click.ClickException(f"配置无效:\n{detail}") from e


def _fail(exc: AssetMirrorError) -> click.ClickException:
    return click.ClickException(f"[{exc.code}] {exc}")


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """assetmirror - 层级资源文件镜像与依赖解析工具"""
    setup_logging(
        level=os.getenv("ASSETMIRROR_LOG_LEVEL", "INFO"),
        json_output=os.getenv("ASSETMIRROR_LOG_JSON", "") == "1",
    )


# 注册各领域子命令
from assetmirror.cli.cmd_resolve import register as _reg_resolve  # noqa: E402
from assetmirror.cli.cmd_config import register as _reg_config  # noqa: E402

_reg_resolve(main)
_reg_config(main)
