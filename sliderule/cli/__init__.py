"""sliderule 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
业务异常统一在 group 层转换为进程退出码（SlideruleError.exit_code）。
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import click

from sliderule import __version__
from sliderule.core.exceptions import ManifestNotFoundError, SlideruleError
from sliderule.services.container import ServiceContainer, get_container, set_container
from sliderule.utils.logger import setup_logging


class SlideruleGroup(click.Group):
    """把 SlideruleError 映射为 stderr 消息 + 退出码"""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except SlideruleError as e:
            target = f" [{e.target}]" if e.target else ""
            click.echo(f"错误 ({e.code}){target}: {e}", err=True)
            ctx.exit(e.exit_code)


def _svc() -> ServiceContainer:
    """获取全局服务容器的快捷方式"""
    return get_container()


def _project(ctx: click.Context) -> Path:
    """--project 指向的目录所在的项目根"""
    start = Path(ctx.obj["project"])
    root = _svc().engine.find_project_root(start)
    if root is None:
        raise ManifestNotFoundError(
            f"不在组件项目中（缺少 {_svc().config.manifest_name}）: {start.resolve()}",
            target=str(start),
        )
    return root


def _target(target: str | None) -> str | None:
    """命令行目标: 已存在的路径转为绝对路径，否则按组件名/树内路径处理"""
    if target is None:
        return None
    p = Path(target)
    return str(p.resolve()) if p.exists() else target


def _exit_on_failures(ctx: click.Context, result: Any) -> None:
    """级联结果: 逐节点输出，有失败时以第一个失败的退出码结束"""
    for outcome in result.outcomes:
        mark = {"ok": "OK", "failed": "FAIL", "skipped": "SKIP"}.get(outcome.status, "?")
        extra = f": {outcome.message}" if outcome.message else ""
        click.echo(f"  [{mark:4s}] {outcome.path}{extra}")
    s = result.summary()
    click.echo(f"{result.operation}: 共 {s['total']}，成功 {s['ok']}，失败 {s['failed']}，跳过 {s['skipped']}")
    if result.failed:
        first = result.failed[0].error
        ctx.exit(first.exit_code if first is not None else 1)


@click.group(cls=SlideruleGroup)
@click.version_option(version=__version__)
@click.option("--config", "-c", "config_path", default="", help="配置文件路径（默认 sliderule.yml）")
@click.option("--project", "-C", default=".", help="项目目录（默认当前目录）")
@click.pass_context
def main(ctx: click.Context, config_path: str, project: str) -> None:
    """sliderule - 开源硬件组件层级管理"""
    setup_logging(
        level=os.getenv("SLIDERULE_LOG_LEVEL", "INFO"),
        json_output=os.getenv("SLIDERULE_LOG_JSON", "") == "1",
    )
    if config_path:
        from sliderule.core.config import init_config
        set_container(ServiceContainer(config=init_config(config_path)))
    ctx.ensure_object(dict)
    ctx.obj["project"] = project


# 注册各领域子命令
from sliderule.cli.cmd_components import register as _reg_components  # noqa: E402
from sliderule.cli.cmd_report import register as _reg_report  # noqa: E402

_reg_components(main)
_reg_report(main)
