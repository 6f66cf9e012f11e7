"""CLI — 组件操作（create / add / download / update / remove / upload / refactor）"""

from __future__ import annotations

from pathlib import Path

import click

from sliderule.cli import _exit_on_failures, _project, _svc, _target


def register(group: click.Group) -> None:
    group.add_command(create)
    group.add_command(add)
    group.add_command(download)
    group.add_command(update)
    group.add_command(remove)
    group.add_command(upload)
    group.add_command(refactor)


# ---- 创建 ----

@click.command()
@click.argument("name")
@click.option("--in", "directory", default=None, help="父组件目录（默认 --project 目录）")
@click.pass_context
def create(ctx: click.Context, name: str, directory: str | None) -> None:
    """新建组件；不在任何项目中时新建项目"""
    base = Path(directory or ctx.obj["project"])
    tree, node = _svc().engine.create_in(base, name)
    where = tree.abs_path(node)
    click.echo(f"组件已创建: {node.name} -> {where} (level {node.level})")


# ---- 依赖 ----

@click.command()
@click.argument("reference")
@click.option("--to", "target", default=None, help="目标组件（路径或名称，默认项目根）")
@click.option("--name", default="", help="依赖名（默认由引用推导）")
@click.option("--version", "version", default="", help="注册表版本")
@click.pass_context
def add(ctx: click.Context, reference: str, target: str | None, name: str, version: str) -> None:
    """登记依赖（不拉取内容）"""
    engine = _svc().engine
    tree = engine.open(_project(ctx))
    dep = engine.add(tree, _target(target), reference, name=name, version=version)
    click.echo(f"依赖已登记: {dep.name} -> {dep.source}")


@click.command()
@click.argument("name", required=False, default="")
@click.option("--to", "target", default=None, help="目标组件（路径或名称，默认项目根）")
@click.option("--url", "reference", default="", help="直接给出地址或注册表名称")
@click.option("--ref", default="", help="分支 / tag / commit")
@click.pass_context
def download(ctx: click.Context, name: str, target: str | None, reference: str, ref: str) -> None:
    """下载依赖；不指定名称和地址时下载全部未安装依赖"""
    engine = _svc().engine
    tree = engine.open(_project(ctx))
    if not name and not reference:
        _exit_on_failures(ctx, engine.download_pending(tree, _target(target)))
        return
    node = engine.download(tree, _target(target), name, reference=reference, ref=ref)
    click.echo(f"组件已下载: {node.path} <{node.locator}>")


@click.command()
@click.argument("target", required=False, default=None)
@click.option("--hard", is_flag=True, help="完全以上游清单为准，不保留本地新增依赖")
@click.pass_context
def update(ctx: click.Context, target: str | None, hard: bool) -> None:
    """更新远程组件；作用于项目根时级联到全部远程后代"""
    engine = _svc().engine
    tree = engine.open(_project(ctx))
    _exit_on_failures(ctx, engine.update(tree, _target(target), hard=hard))


@click.command()
@click.argument("target")
@click.option("--keep-reference", is_flag=True, help="保留父清单中的依赖条目（标记为未安装）")
@click.pass_context
def remove(ctx: click.Context, target: str, keep_reference: bool) -> None:
    """删除组件（只删本地，不触碰远程代码仓）"""
    engine = _svc().engine
    tree = engine.open(_project(ctx))
    node = engine.remove(tree, _target(target), keep_reference=keep_reference)
    click.echo(f"组件已移除: {node.path}")


# ---- 代码仓 ----

@click.command()
@click.argument("target", required=False, default=None)
@click.option("--message", "-m", default="", help="提交信息")
@click.option("--url", default="", help="项目根尚无代码仓时使用的远程地址")
@click.option("--publish", is_flag=True, help="同时登记到注册表")
@click.option("--all", "all_", is_flag=True, help="按层级降序上传子树内全部远程组件")
@click.pass_context
def upload(
    ctx: click.Context, target: str | None, message: str, url: str, publish: bool, all_: bool,
) -> None:
    """推送组件到其代码仓"""
    engine = _svc().engine
    tree = engine.open(_project(ctx))
    if all_:
        _exit_on_failures(ctx, engine.upload_all(tree, _target(target), message=message))
        return
    node = engine.upload(tree, _target(target), message=message, url=url, publish=publish)
    click.echo(f"组件已上传: {node.path}")


@click.command()
@click.argument("target")
@click.option("--url", default="", help="远程仓库地址（默认在 remote_base 下新建）")
@click.pass_context
def refactor(ctx: click.Context, target: str, url: str) -> None:
    """把本地组件转换为远程组件"""
    engine = _svc().engine
    tree = engine.open(_project(ctx))
    node = engine.refactor(tree, _target(target), url=url)
    click.echo(f"组件已重构: {node.path} -> {node.locator}")
