"""组件树 — 项目层级的内存快照

树由目录遍历构建: 项目根目录下 components/ 中每个带清单的子目录是一个组件，
递归向下。节点存放在以相对路径为键的 arena 中，children 只保存路径，
remove / refactor 之后不会残留悬空引用。

快照不随磁盘实时变化；同步引擎每次变更磁盘后，同步修改快照
（graft / detach / reclassify），或调用 build 重新构建。
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from sliderule.core import manifest as manifest_io
from sliderule.core.exceptions import (
    ManifestMalformedError,
    ManifestNotFoundError,
    NotFoundError,
    TreeCorruptError,
)
from sliderule.core.models import LOCAL, ROOT_PATH, Component, ComponentKind, Manifest

if TYPE_CHECKING:
    from sliderule.core.resolver import IdentityResolver

logger = logging.getLogger(__name__)


class ComponentTree:
    """组件树快照（arena: 相对路径 → Component）"""

    def __init__(
        self,
        root_path: Path,
        *,
        manifest_name: str = ".sr",
        components_dir: str = "components",
        lenient: bool = False,
    ) -> None:
        self.root_path = Path(root_path)
        self.manifest_name = manifest_name
        self.components_dir = components_dir
        self.lenient = lenient
        self.nodes: dict[str, Component] = {}

    # ------------------------------------------------------------------
    # 构建
    # ------------------------------------------------------------------

    @classmethod
    def build(
        cls,
        root_path: str | Path,
        resolver: IdentityResolver,
        *,
        manifest_name: str = ".sr",
        components_dir: str = "components",
        lenient: bool = False,
    ) -> ComponentTree:
        """从项目根目录递归构建组件树

        非宽松模式下遇到损坏清单抛 TreeCorruptError；宽松模式下
        该节点 manifest 置为 None 并继续遍历。
        """
        tree = cls(
            Path(root_path),
            manifest_name=manifest_name,
            components_dir=components_dir,
            lenient=lenient,
        )
        root_dir = tree.root_path
        if not (root_dir / manifest_name).is_file():
            raise ManifestNotFoundError(f"不是组件项目（缺少 {manifest_name}）: {root_dir}", target=str(root_dir))

        # 项目根始终是无父节点的本地组件
        root = Component(
            name=root_dir.resolve().name,
            path=ROOT_PATH,
            kind=LOCAL,
            manifest=tree._load_manifest(root_dir),
            parent=None,
            level=0,
        )
        tree.nodes[ROOT_PATH] = root
        tree._scan(root, resolver)
        logger.info("组件树已构建: %s (%d 个组件)", root_dir, len(tree.nodes))
        return tree

    def _load_manifest(self, directory: Path) -> Manifest | None:
        try:
            return manifest_io.load(directory / self.manifest_name)
        except ManifestMalformedError as e:
            if not self.lenient:
                raise TreeCorruptError(str(e), target=e.target) from e
            logger.warning("清单损坏，宽松模式继续: %s", e)
            return None

    def _child_dirs(self, directory: Path) -> list[Path]:
        comp_root = directory / self.components_dir
        if not comp_root.is_dir():
            return []
        return sorted(
            d for d in comp_root.iterdir()
            if d.is_dir()
            and not d.is_symlink()
            and not d.name.startswith(".")
            and (d / self.manifest_name).is_file()
        )

    def _scan(self, parent: Component, resolver: IdentityResolver) -> None:
        for child_dir in self._child_dirs(self.abs_path(parent)):
            self._make_node(parent, child_dir, resolver)

    def _make_node(self, parent: Component, child_dir: Path, resolver: IdentityResolver) -> Component:
        rel = PurePosixPath(parent.path, self.components_dir, child_dir.name).as_posix()
        node = Component(
            name=child_dir.name,
            path=rel,
            kind=resolver.classify(child_dir),
            manifest=self._load_manifest(child_dir),
            parent=parent.path,
            level=parent.level + 1,
        )
        self.nodes[rel] = node
        parent.children.append(rel)
        parent.children.sort()
        self._scan(node, resolver)
        return node

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    @property
    def root(self) -> Component:
        return self.nodes[ROOT_PATH]

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and path in self.nodes

    def __iter__(self) -> Iterator[Component]:
        return self.walk()

    def relpath(self, path: str | Path) -> str:
        """把绝对路径 / 相对路径规范化为 arena 键"""
        p = Path(path)
        if p.is_absolute():
            try:
                p = p.resolve().relative_to(self.root_path.resolve())
            except ValueError:
                return str(p)
        key = PurePosixPath(p.as_posix()).as_posix()
        return ROOT_PATH if key in ("", ".") else key.rstrip("/")

    def get(self, path: str | Path) -> Component | None:
        return self.nodes.get(self.relpath(path))

    def find(self, path_or_name: str | Path) -> Component:
        """按路径精确匹配；否则按名称在确定性的先序遍历中取第一个"""
        node = self.get(path_or_name)
        if node is not None:
            return node
        name = str(path_or_name)
        for candidate in self.walk():
            if candidate.name == name:
                return candidate
        raise NotFoundError(f"组件不存在: {name}", target=name)

    def abs_path(self, node: Component) -> Path:
        if node.path == ROOT_PATH:
            return self.root_path
        return self.root_path / node.path

    def manifest_path(self, node: Component) -> Path:
        return self.abs_path(node) / self.manifest_name

    def component_dir(self, node: Component) -> Path:
        """node 存放子组件的目录"""
        return self.abs_path(node) / self.components_dir

    def parent_of(self, node: Component) -> Component | None:
        return self.nodes.get(node.parent) if node.parent is not None else None

    def children_of(self, node: Component) -> list[Component]:
        return [self.nodes[p] for p in node.children]

    def child_named(self, node: Component, name: str) -> Component | None:
        for child in self.children_of(node):
            if child.name == name:
                return child
        return None

    def ancestors(self, node: Component, *, include_self: bool = False) -> Iterator[Component]:
        current = node if include_self else self.parent_of(node)
        while current is not None:
            yield current
            current = self.parent_of(current)

    def walk(self, start: Component | None = None) -> Iterator[Component]:
        """先序遍历（子节点按名称排序，结果确定）"""
        stack = [start or self.root]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(self.children_of(node)))

    def post_order(self, start: Component | None = None) -> list[Component]:
        """后序遍历: 子节点先于父节点"""
        result: list[Component] = []

        def visit(node: Component) -> None:
            for child in self.children_of(node):
                visit(child)
            result.append(node)

        visit(start or self.root)
        return result

    def nearest_remotes(self, node: Component) -> list[Component]:
        """node 子树中最近一层的远程组件，不进入远程组件内部"""
        found: list[Component] = []
        for child in self.children_of(node):
            if child.is_remote:
                found.append(child)
            else:
                found.extend(self.nearest_remotes(child))
        return found

    def level_of(self, node: Component | str) -> int:
        if isinstance(node, str):
            node = self.find(node)
        if node.path not in self.nodes:
            raise NotFoundError(f"组件不在树中: {node.path}", target=node.path)
        return node.level

    @staticmethod
    def deepest_first(nodes: Iterable[Component]) -> list[Component]:
        """按层级降序排序（同层保持原顺序），用于批量操作"""
        return sorted(nodes, key=lambda n: -n.level)

    def aggregate_licenses(self, start: Component | None = None) -> set[str]:
        """子树内所有可达节点 license_ids 的并集（与遍历顺序无关）"""
        licenses: set[str] = set()
        for node in self.walk(start):
            if node.manifest is not None:
                licenses |= node.manifest.license_ids
        return licenses

    # ------------------------------------------------------------------
    # 快照变更（由同步引擎在磁盘变更成功后调用）
    # ------------------------------------------------------------------

    def graft(self, parent: Component, dirname: str, resolver: IdentityResolver) -> Component:
        """把磁盘上 parent/components/<dirname> 及其子树挂到快照中"""
        child_dir = self.component_dir(parent) / dirname
        existing = self.child_named(parent, dirname)
        if existing is not None:
            self.detach(existing)
        return self._make_node(parent, child_dir, resolver)

    def detach(self, node: Component) -> None:
        """从快照中移除 node 及其整个子树"""
        if node.is_root:
            raise ValueError("不能移除项目根")
        for sub in self.post_order(node):
            self.nodes.pop(sub.path, None)
        parent = self.parent_of(node)
        if parent is not None and node.path in parent.children:
            parent.children.remove(node.path)

    def reclassify(self, node: Component, kind: ComponentKind) -> None:
        node.kind = kind

    def relevel(self, start: Component | None = None) -> None:
        """自顶向下重新计算层级"""
        for node in self.walk(start):
            parent = self.parent_of(node)
            node.level = 0 if parent is None else parent.level + 1

    def reload_manifest(self, node: Component) -> None:
        node.manifest = self._load_manifest(self.abs_path(node))
