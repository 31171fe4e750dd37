"""CLI: 解析命令（resolve / entries）"""

from __future__ import annotations

import sys

import click

from assetmirror.cli import _fail, _load
from assetmirror.core.exceptions import AssetMirrorError
from assetmirror.core.resolver import DependencyResolver, write_manifest
from assetmirror.utils.logger import setup_logging


def register(group: click.Group) -> None:
    group.add_command(resolve)
    group.add_command(entries)


@click.command()
@click.option("--base", "-b", default=None, help="本地镜像根目录")
@click.option("--remote", "-r", default=None, help="远程资源基址 (http/https)")
@click.option("--config", "-c", default=None, help="配置文件路径")
@click.option("--concurrency", "-j", type=int, default=None, help="最大并发任务数")
@click.option("--max-depth", type=int, default=None, help="最大递归深度")
@click.option("--timeout", type=float, default=None, help="单次下载超时（秒）")
@click.option("--retry", type=int, default=None, help="下载失败重试次数")
@click.option("--no-cache", is_flag=True, help="禁用内存下载缓存")
@click.option("--output", "-o", default="", help="结果清单输出路径（.yml/.yaml/.json）")
@click.option("--debug", is_flag=True, help="输出调试日志")
def resolve(
    base: str | None, remote: str | None, config: str | None,
    concurrency: int | None, max_depth: int | None, timeout: float | None,
    retry: int | None, no_cache: bool, output: str, debug: bool,
) -> None:
    """解析入口文件并递归镜像其依赖资源"""
    if debug:
        setup_logging(level="DEBUG")

    cfg = _load(config, {
        "base_dir": base,
        "remote_url": remote,
        "concurrency": concurrency,
        "max_depth": max_depth,
        "timeout": timeout,
        "retry_count": retry,
        "enable_cache": False if no_cache else None,
    })

    try:
        result = DependencyResolver(cfg).resolve()
    except AssetMirrorError as e:
        raise _fail(e) from e

    click.echo(f"\n{'=' * 50}")
    click.echo(f"  文件: {len(result.file_list)} (入口 {len(result.entries)})")
    click.echo(f"  总计: {result.total} | 成功: {result.success} | 失败: {result.failed}")
    if result.cycles:
        click.echo(f"  循环引用: {len(result.cycles)}")
    if result.aborted:
        click.echo("  状态: 已中止")
    click.echo(f"{'=' * 50}")

    for err in result.errors:
        click.echo(f"  [{err.code}] {err.path}: {err.message}", err=True)

    if output:
        write_manifest(result, output)
        click.echo(f"结果清单: {output}")

    if not result.ok:
        sys.exit(1)


@click.command()
@click.option("--base", "-b", default=None, help="本地镜像根目录")
@click.option("--config", "-c", default=None, help="配置文件路径")
def entries(base: str | None, config: str | None) -> None:
    """列出本地镜像中的入口文件（不访问网络）"""
    cfg = _load(config, {"base_dir": base})
    try:
        found = DependencyResolver(cfg).collect_entries()
    except AssetMirrorError as e:
        raise _fail(e) from e

    if not found:
        click.echo("没有找到入口文件。")
        return
    for path in found:
        click.echo(f"  {path}")
    click.echo(f"共 {len(found)} 个入口文件")
