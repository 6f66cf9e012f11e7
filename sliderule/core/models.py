"""核心数据模型

组件、组件类型、依赖引用、清单以及级联操作结果集中定义于此，
tree / resolver / manifest / sync 各层统一从这里导入。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from sliderule.core.exceptions import SlideruleError

ROOT_PATH = "."


# =========================================================================
# 组件类型（标签变体: Local / Remote{locator}）
# =========================================================================


@dataclass(frozen=True)
class LocalKind:
    """本地组件: 只存在于父组件的 components 目录中，无独立代码仓"""

    is_remote = False

    def __str__(self) -> str:
        return "local"


@dataclass(frozen=True)
class RemoteKind:
    """远程组件: 拥有独立代码仓/注册表地址，可单独拉取和共享"""

    locator: str
    ref: str = ""

    is_remote = True

    def __post_init__(self) -> None:
        if not self.locator:
            raise ValueError("远程组件必须有 locator")

    def __str__(self) -> str:
        return "remote"


ComponentKind = Union[LocalKind, RemoteKind]

LOCAL = LocalKind()


# =========================================================================
# 清单模型
# =========================================================================


@dataclass
class DependencyRef:
    """清单中声明的一条依赖边，可能尚未安装"""

    name: str
    source: str = ""       # 远程依赖的地址；本地依赖为空
    installed: bool = False
    version: str = ""


@dataclass
class Manifest:
    """单个组件的声明元数据"""

    name: str
    version: str = "1.0.0"
    description: str = ""
    source_license: str = ""
    documentation_license: str = ""
    license: str = ""      # 汇总后的 SPDX 表达式，由 amalgamate 维护
    dependencies: list[DependencyRef] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def license_ids(self) -> set[str]:
        return {lic for lic in (self.source_license, self.documentation_license) if lic}

    def get_dependency(self, name: str) -> DependencyRef | None:
        for dep in self.dependencies:
            if dep.name == name:
                return dep
        return None

    def add_dependency(self, dep: DependencyRef) -> None:
        if self.get_dependency(dep.name) is not None:
            raise ValueError(f"依赖已存在: {dep.name}")
        self.dependencies.append(dep)

    def remove_dependency(self, name: str) -> bool:
        before = len(self.dependencies)
        self.dependencies = [d for d in self.dependencies if d.name != name]
        return len(self.dependencies) != before


# =========================================================================
# 组件节点
# =========================================================================


@dataclass
class Component:
    """组件树中的一个节点

    path 为相对项目根目录的 POSIX 路径，根节点为 "."。
    children 保存子节点 path，节点本身存放在 ComponentTree 的 arena 中。
    """

    name: str
    path: str
    kind: ComponentKind = LOCAL
    manifest: Manifest | None = None
    children: list[str] = field(default_factory=list)
    parent: str | None = None
    level: int = 0

    @property
    def is_root(self) -> bool:
        return self.parent is None

    @property
    def is_remote(self) -> bool:
        return self.kind.is_remote

    @property
    def locator(self) -> str:
        return self.kind.locator if isinstance(self.kind, RemoteKind) else ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "kind": str(self.kind),
            "locator": self.locator,
            "level": self.level,
            "version": self.manifest.version if self.manifest else "",
            "licenses": sorted(self.manifest.license_ids) if self.manifest else [],
            "children": list(self.children),
        }


# =========================================================================
# 级联操作结果
# =========================================================================


@dataclass
class NodeOutcome:
    """单个节点的操作结果"""

    path: str
    name: str
    status: str  # "ok", "failed", "skipped"
    message: str = ""
    error: SlideruleError | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "path": self.path,
            "name": self.name,
            "status": self.status,
            "message": self.message,
        }
        if self.error is not None:
            data["error"] = self.error.to_dict()
        return data


@dataclass
class CascadeResult:
    """级联操作（如子树 update）的汇总结果，失败节点不阻塞兄弟节点"""

    operation: str
    outcomes: list[NodeOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> list[NodeOutcome]:
        return [o for o in self.outcomes if o.status == "ok"]

    @property
    def failed(self) -> list[NodeOutcome]:
        return [o for o in self.outcomes if o.status == "failed"]

    @property
    def success(self) -> bool:
        return not self.failed

    def summary(self) -> dict[str, int]:
        return {
            "total": len(self.outcomes),
            "ok": len(self.succeeded),
            "failed": len(self.failed),
            "skipped": sum(1 for o in self.outcomes if o.status == "skipped"),
        }
