"""CLI: 配置命令"""

from __future__ import annotations

import click

from assetmirror.cli import _load
from assetmirror.utils.fileio import dump_yaml


def register(group: click.Group) -> None:
    group.add_command(show_config)


@click.command(name="show-config")
@click.option("--config", "-c", default=None, help="配置文件路径")
@click.option("--base", "-b", default=None, help="本地镜像根目录")
@click.option("--remote", "-r", default=None, help="远程资源基址")
def show_config(config: str | None, base: str | None, remote: str | None) -> None:
    """显示合并后的最终配置"""
    cfg = _load(config, {"base_dir": base, "remote_url": remote})
    click.echo(dump_yaml(cfg.to_dict()), nl=False)
