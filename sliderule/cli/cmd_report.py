"""CLI — 查询与报告（tree / licenses / serve）"""

from __future__ import annotations

import click

from sliderule.cli import _project, _svc, _target


def register(group: click.Group) -> None:
    group.add_command(tree_cmd)
    group.add_command(licenses_group)
    group.add_command(serve)


@click.command(name="tree")
@click.option("--format", "-f", "fmt", default="text", type=click.Choice(["text", "json"]))
@click.pass_context
def tree_cmd(ctx: click.Context, fmt: str) -> None:
    """显示组件层级"""
    from sliderule.core.report import render_hierarchy
    tree = _svc().engine.open(_project(ctx))
    click.echo(render_hierarchy(tree, fmt))


# ---- 许可证 ----

@click.group(name="licenses")
def licenses_group() -> None:
    """许可证查询与修改"""


@licenses_group.command(name="list")
@click.option("--format", "-f", "fmt", default="text", type=click.Choice(["text", "json"]))
@click.pass_context
def list_licenses(ctx: click.Context, fmt: str) -> None:
    """列出每个组件的源码 / 文档许可证"""
    from sliderule.core.report import render_licenses
    tree = _svc().engine.open(_project(ctx))
    click.echo(render_licenses(tree, fmt))


@licenses_group.command(name="change")
@click.argument("target", required=False, default=None)
@click.option("--source", "source_license", default="", help="源码许可证 SPDX 标识")
@click.option("--doc", "documentation_license", default="", help="文档许可证 SPDX 标识")
@click.pass_context
def change_licenses(
    ctx: click.Context, target: str | None, source_license: str, documentation_license: str,
) -> None:
    """修改组件许可证并重新汇总"""
    engine = _svc().engine
    tree = engine.open(_project(ctx))
    node = engine.change_licenses(
        tree, _target(target),
        source_license=source_license, documentation_license=documentation_license,
    )
    click.echo(f"许可证已更新: {node.path} -> {tree.root.manifest.license if tree.root.manifest else ''}")


# ---- Web ----

@click.command()
@click.option("--port", default=8888, help="监听端口")
@click.option("--host", default="127.0.0.1", help="监听地址")
@click.pass_context
def serve(ctx: click.Context, port: int, host: str) -> None:
    """启动只读 Web API"""
    from sliderule.web.app import run_server
    run_server(project=str(_project(ctx)), port=port, host=host)
