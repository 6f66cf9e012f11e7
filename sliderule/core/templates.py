"""组件脚手架模板

新建组件时生成 README.md、bom_data.yaml；上传时生成 .gitignore。
模板位于 sliderule/templates/，使用 Jinja2 渲染。已存在的文件一律不覆盖。
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

from jinja2 import Environment, PackageLoader, StrictUndefined

from sliderule.core.exceptions import WriteError
from sliderule.utils.yaml_io import atomic_write

logger = logging.getLogger(__name__)

# 目标文件名 → 模板名
SCAFFOLD_FILES = {
    "README.md": "README.md.j2",
    "bom_data.yaml": "bom_data.yaml.j2",
}
GITIGNORE_FILE = ".gitignore"
SCAFFOLD_DIRS = ("dist", "docs", "source")


@lru_cache(maxsize=1)
def _environment() -> Environment:
    return Environment(
        loader=PackageLoader("sliderule", "templates"),
        keep_trailing_newline=True,
        undefined=StrictUndefined,
        autoescape=False,  # noqa: S701  输出为 Markdown/YAML
    )


def render_template(template_name: str, **context: Any) -> str:
    return _environment().get_template(template_name).render(**context)


def write_if_missing(path: Path, template_name: str, **context: Any) -> bool:
    """目标不存在时渲染写入，返回是否写入"""
    if path.exists():
        logger.info("%s 已存在，保留现有文件", path.name)
        return False
    try:
        atomic_write(path, render_template(template_name, **context))
    except OSError as e:
        raise WriteError(f"无法写入 {path}: {e}", target=str(path)) from e
    return True


def write_scaffold(component_dir: Path, name: str) -> list[str]:
    """生成组件目录骨架，返回新写入的文件名"""
    for sub in SCAFFOLD_DIRS:
        try:
            (component_dir / sub).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WriteError(f"无法创建目录 {component_dir / sub}: {e}", target=str(component_dir)) from e
    return [
        filename
        for filename, template in SCAFFOLD_FILES.items()
        if write_if_missing(component_dir / filename, template, name=name)
    ]


def write_gitignore(component_dir: Path, components_dir: str = "components") -> bool:
    return write_if_missing(
        component_dir / GITIGNORE_FILE, "gitignore.j2", components_dir=components_dir,
    )
