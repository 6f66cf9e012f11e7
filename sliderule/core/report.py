"""查询 / 报告层 - Strategy 模式

只读取已构建的组件树:
- hierarchy: 先序的层级行（path / name / kind / level / locator）
- levels_descending: 按层级降序分组，供批量操作排序
- list_all_licenses: 每个组件一行的许可证清单
- license_expression: SPDX 合取表达式 "(S1 AND S2 AND D1)"

每种输出格式实现 ReportFormatter 接口，通过注册制工厂调用。
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sliderule.core.models import Component
    from sliderule.core.tree import ComponentTree

logger = logging.getLogger(__name__)


@dataclass
class HierarchyRow:
    path: str
    name: str
    kind: str
    level: int
    locator: str = ""
    version: str = ""


@dataclass
class LicenseRow:
    path: str
    name: str
    source_license: str
    documentation_license: str


# =========================================================================
# 查询
# =========================================================================


def hierarchy(tree: ComponentTree, start: Component | None = None) -> list[HierarchyRow]:
    return [
        HierarchyRow(
            path=node.path,
            name=node.name,
            kind=str(node.kind),
            level=node.level,
            locator=node.locator,
            version=node.manifest.version if node.manifest else "",
        )
        for node in tree.walk(start)
    ]


def levels_descending(tree: ComponentTree, start: Component | None = None) -> list[tuple[int, list[str]]]:
    """[(level, [path, ...]), ...]，最深的层级在前"""
    groups: dict[int, list[str]] = {}
    for node in tree.walk(start):
        groups.setdefault(node.level, []).append(node.path)
    return sorted(groups.items(), key=lambda item: -item[0])


def _by_path(tree: ComponentTree, start: Component | None) -> list[Component]:
    return sorted(tree.walk(start), key=lambda n: n.path)


def list_all_licenses(tree: ComponentTree, start: Component | None = None) -> list[LicenseRow]:
    """按路径排序列出子树内每个组件的源码 / 文档许可证"""
    return [
        LicenseRow(
            path=node.path,
            name=node.name,
            source_license=node.manifest.source_license if node.manifest else "",
            documentation_license=node.manifest.documentation_license if node.manifest else "",
        )
        for node in _by_path(tree, start)
    ]


def license_expression(tree: ComponentTree, start: Component | None = None) -> str:
    """把子树内的许可证合并为 SPDX 合取表达式

    源码许可证在前、文档许可证在后，各自按路径顺序去重。
    没有任何许可证时返回空串。
    """
    sources: list[str] = []
    docs: list[str] = []
    for row in list_all_licenses(tree, start):
        if row.source_license and row.source_license not in sources:
            sources.append(row.source_license)
        if row.documentation_license and row.documentation_license not in docs:
            docs.append(row.documentation_license)
    ids = sources + docs
    if not ids:
        return ""
    return "(" + " AND ".join(ids) + ")"


# =========================================================================
# Strategy: ReportFormatter
# =========================================================================


class ReportFormatter(ABC):
    """报告格式化策略基类"""

    @abstractmethod
    def hierarchy(self, rows: list[HierarchyRow]) -> str:
        """格式化组件层级"""

    @abstractmethod
    def licenses(self, rows: list[LicenseRow], expression: str) -> str:
        """格式化许可证清单"""


class TextFormatter(ReportFormatter):
    def hierarchy(self, rows: list[HierarchyRow]) -> str:
        lines = []
        for row in rows:
            suffix = f" <{row.locator}>" if row.locator else ""
            lines.append(f"{'  ' * row.level}{row.name} [{row.kind}] L{row.level}{suffix}")
        return "\n".join(lines)

    def licenses(self, rows: list[LicenseRow], expression: str) -> str:
        lines = ["Licenses Specified In This Component:"]
        lines.extend(
            f"Path: {row.path}, Source License: {row.source_license}, "
            f"Documentation License: {row.documentation_license}"
            for row in rows
        )
        if expression:
            lines.append(f"Combined: {expression}")
        return "\n".join(lines)


class JSONFormatter(ReportFormatter):
    def hierarchy(self, rows: list[HierarchyRow]) -> str:
        return json.dumps(as_dicts(rows), indent=2, ensure_ascii=False)

    def licenses(self, rows: list[LicenseRow], expression: str) -> str:
        return json.dumps(
            {"expression": expression, "components": as_dicts(rows)},
            indent=2, ensure_ascii=False,
        )


# =========================================================================
# 注册制工厂
# =========================================================================

_formatters: dict[str, type[ReportFormatter]] = {
    "text": TextFormatter,
    "json": JSONFormatter,
}


def register_formatter(name: str, cls: type[ReportFormatter]) -> None:
    """注册自定义报告格式"""
    _formatters[name] = cls


def get_formatter(fmt: str = "text") -> ReportFormatter:
    formatter_cls = _formatters.get(fmt)
    if formatter_cls is None:
        raise ValueError(f"不支持的格式: {fmt}（可用: {list(_formatters)}）")
    return formatter_cls()


def render_hierarchy(tree: ComponentTree, fmt: str = "text", start: Component | None = None) -> str:
    return get_formatter(fmt).hierarchy(hierarchy(tree, start))


def render_licenses(tree: ComponentTree, fmt: str = "text", start: Component | None = None) -> str:
    rows = list_all_licenses(tree, start)
    return get_formatter(fmt).licenses(rows, license_expression(tree, start))


def as_dicts(rows: list[Any]) -> list[dict[str, Any]]:
    return [asdict(r) for r in rows]
