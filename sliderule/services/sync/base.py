"""同步引擎公共部分

SyncEngine 与 ComponentFetcher 共享: 协作者注入、组件树打开、
项目根查找、清单保存、许可证汇总、强制删除目录。
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
from pathlib import Path

from sliderule.core import manifest as manifest_io
from sliderule.core.config import Config, get_config
from sliderule.core.exceptions import ConfigError, TreeCorruptError, WriteError
from sliderule.core.models import Component, Manifest
from sliderule.core.protocols import RegistryBackend, RepositoryBackend
from sliderule.core.report import license_expression
from sliderule.core.resolver import IdentityResolver
from sliderule.core.tree import ComponentTree

logger = logging.getLogger(__name__)


def force_rmtree(path: Path) -> None:
    """先清除只读位再递归删除（git 对象文件通常为只读）"""
    for dirpath, dirnames, filenames in os.walk(path):
        for entry in dirnames + filenames:
            full = os.path.join(dirpath, entry)
            if not os.path.islink(full):
                os.chmod(full, os.stat(full).st_mode | stat.S_IWRITE)
    shutil.rmtree(path)


class SyncBase:
    """同步操作公共基类"""

    def __init__(
        self,
        repository: RepositoryBackend,
        *,
        resolver: IdentityResolver | None = None,
        registry: RegistryBackend | None = None,
        config: Config | None = None,
    ) -> None:
        self.repository = repository
        self.registry = registry
        self.resolver = resolver or IdentityResolver(repository, registry)
        self.config = config or get_config()

    # ------------------------------------------------------------------
    # 组件树
    # ------------------------------------------------------------------

    def open(self, root: str | Path) -> ComponentTree:
        """构建以 root 为项目根的组件树快照"""
        return ComponentTree.build(
            root,
            self.resolver,
            manifest_name=self.config.manifest_name,
            components_dir=self.config.components_dir,
            lenient=self.config.lenient_tree,
        )

    def find_project_root(self, path: str | Path) -> Path | None:
        """向上查找包含 path 的最外层项目根，找不到返回 None"""
        current = Path(path).resolve()
        candidate = None
        for directory in (current, *current.parents):
            if (directory / self.config.manifest_name).is_file():
                candidate = directory
                break
        if candidate is None:
            return None
        while (
            candidate.parent.name == self.config.components_dir
            and (candidate.parent.parent / self.config.manifest_name).is_file()
        ):
            candidate = candidate.parent.parent
        return candidate

    @staticmethod
    def _node(tree: ComponentTree, target: Component | str | Path | None) -> Component:
        if target is None:
            return tree.root
        if isinstance(target, Component):
            return tree.find(target.path)
        return tree.find(target)

    @staticmethod
    def _require_manifest(tree: ComponentTree, node: Component) -> Manifest:
        if node.manifest is None:
            raise TreeCorruptError(f"组件清单损坏，无法操作: {node.path}", target=node.path)
        return node.manifest

    def _save_manifest(self, tree: ComponentTree, node: Component) -> None:
        manifest_io.save(self._require_manifest(tree, node), tree.manifest_path(node))

    def _require_registry(self) -> RegistryBackend:
        if self.registry is None:
            raise ConfigError("未配置注册表", target=self.config.registry_file)
        return self.registry

    # ------------------------------------------------------------------
    # 许可证汇总
    # ------------------------------------------------------------------

    def amalgamate(self, tree: ComponentTree, node: Component | None = None) -> list[str]:
        """从 node 向上到项目根，逐个改写清单的 license 字段

        只有表达式变化时才写文件，返回被改写的组件路径。
        """
        start = node or tree.root
        changed: list[str] = []
        for current in tree.ancestors(start, include_self=True):
            if current.manifest is None:
                continue
            expression = license_expression(tree, current)
            if current.manifest.license == expression:
                continue
            previous = current.manifest.license
            current.manifest.license = expression
            try:
                self._save_manifest(tree, current)
            except WriteError:
                current.manifest.license = previous
                raise
            changed.append(current.path)
        if changed:
            logger.info("许可证已汇总: %s", ", ".join(changed))
        return changed

    # ------------------------------------------------------------------
    # 文件系统
    # ------------------------------------------------------------------

    @staticmethod
    def _discard(path: Path) -> None:
        """回滚时清理临时目录，失败只记录"""
        if not path.exists():
            return
        try:
            force_rmtree(path)
        except OSError as e:
            logger.warning("临时目录清理失败 %s: %s", path, e)

    @staticmethod
    def _ensure_dir(path: Path) -> None:
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WriteError(f"无法创建目录 {path}: {e}", target=str(path)) from e
