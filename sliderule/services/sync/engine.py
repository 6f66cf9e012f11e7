"""同步引擎

对组件树和外部协作者执行 create / add / download / update / remove / upload /
refactor。每个操作对调用方是原子的: 要么磁盘与快照都停在操作前状态，
要么完整到达操作后状态。download / update 由 ComponentFetcher 实现。

用法:
    engine = SyncEngine(GitBackend(), registry=PackageIndex("data/registry.yml"))
    tree = engine.open("my-project")
    gear = engine.create(tree, tree.root, "gear")
    engine.add(tree, gear, "repo://bolts", name="bolt-lib")
    engine.download(tree, gear, "bolt-lib")
"""

from __future__ import annotations

import copy
import logging
import os
import tempfile
from pathlib import Path

from sliderule.core import manifest as manifest_io
from sliderule.core.exceptions import (
    AlreadyRemoteError,
    NameCollisionError,
    NotAssociatedWithRepositoryError,
    ParentNotComponentError,
    RepositoryCreationFailedError,
    RepositoryError,
    SlideruleError,
    ValidationError,
    WriteError,
)
from sliderule.core.models import CascadeResult, Component, DependencyRef, NodeOutcome, RemoteKind
from sliderule.core.resolver import split_registry_name
from sliderule.core.templates import write_gitignore, write_scaffold
from sliderule.core.tree import ComponentTree
from sliderule.services.sync.base import force_rmtree
from sliderule.services.sync.fetcher import ComponentFetcher, derive_name, log_summary
from sliderule.utils.net import absolute_locator, is_direct_address, validate_component_name

logger = logging.getLogger(__name__)

REFACTOR_MESSAGE = "Initial commit, refactoring component"


class SyncEngine(ComponentFetcher):
    """组件图变更操作"""

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    def _scaffold(self, dest: Path, name: str) -> None:
        """在 dest 生成组件骨架与初始清单，失败时删除 dest"""
        try:
            dest.mkdir(parents=True)
        except FileExistsError as e:
            raise NameCollisionError(f"目录已存在: {dest}", target=name) from e
        except OSError as e:
            raise WriteError(f"无法创建目录 {dest}: {e}", target=str(dest)) from e
        try:
            self._ensure_dir(dest / self.config.components_dir)
            write_scaffold(dest, name)
            manifest = manifest_io.new_manifest(
                name,
                source_license=self.config.source_license,
                documentation_license=self.config.documentation_license,
            )
            ids = [i for i in (manifest.source_license, manifest.documentation_license) if i]
            manifest.license = f"({' AND '.join(ids)})" if ids else ""
            manifest_io.save(manifest, dest / self.config.manifest_name)
        except Exception:
            self._discard(dest)
            raise

    def create(self, tree: ComponentTree, parent: Component | str | None, name: str) -> Component:
        """在 parent/components/<name> 新建本地组件"""
        name = validate_component_name(name)
        try:
            parent_node = self._node(tree, parent)
        except SlideruleError as e:
            raise ParentNotComponentError(f"父组件不存在: {parent}", target=str(parent)) from e
        if parent_node.manifest is None:
            raise ParentNotComponentError(f"父组件清单损坏: {parent_node.path}", target=parent_node.path)

        if tree.child_named(parent_node, name) is not None or parent_node.manifest.get_dependency(name):
            raise NameCollisionError(f"{parent_node.path} 下已存在 {name}", target=name)

        dest = tree.component_dir(parent_node) / name
        self._scaffold(dest, name)
        node = tree.graft(parent_node, name, self.resolver)
        try:
            self.amalgamate(tree, parent_node)
        except WriteError:
            tree.detach(node)
            self._discard(dest)
            raise
        logger.info("组件已创建: %s (level %d)", node.path, node.level)
        return node

    def create_project(self, directory: str | Path, name: str) -> ComponentTree:
        """在普通目录下新建项目根 <directory>/<name>"""
        name = validate_component_name(name)
        base = Path(directory)
        if not base.is_dir():
            raise ParentNotComponentError(f"目录不存在: {base}", target=str(base))
        dest = base / name
        self._scaffold(dest, name)
        logger.info("项目已创建: %s", dest)
        return self.open(dest)

    def create_in(self, directory: str | Path, name: str) -> tuple[ComponentTree, Component]:
        """按目录自动选择: 组件目录下建子组件，项目外的普通目录下建新项目"""
        base = Path(directory).resolve()
        if not base.is_dir():
            raise ParentNotComponentError(f"目录不存在: {base}", target=str(base))
        root = self.find_project_root(base)
        if root is None:
            tree = self.create_project(base, name)
            return tree, tree.root
        if not (base / self.config.manifest_name).is_file():
            raise ParentNotComponentError(f"不是组件目录: {base}", target=str(base))
        tree = self.open(root)
        parent = tree.get(base)
        if parent is None:
            raise ParentNotComponentError(f"目录不在组件树中: {base}", target=str(base))
        return tree, self.create(tree, parent, name)

    # ------------------------------------------------------------------
    # add
    # ------------------------------------------------------------------

    def add(
        self,
        tree: ComponentTree,
        target: Component | str | None,
        reference: str,
        *,
        name: str = "",
        version: str = "",
    ) -> DependencyRef:
        """解析引用并在清单中登记依赖（installed=false），不拉取内容"""
        node = self._node(tree, target)
        manifest = self._require_manifest(tree, node)
        locator = self.resolver.resolve(reference, version)
        dep_name = validate_component_name(name or derive_name(reference))

        if manifest.get_dependency(dep_name) is not None or tree.child_named(node, dep_name) is not None:
            raise NameCollisionError(f"{node.path} 已存在依赖或组件 {dep_name}", target=dep_name)
        self.resolver.check_cycle(tree, node, dep_name, locator)

        pinned = version
        if not pinned and not is_direct_address(reference):
            pinned = split_registry_name(reference)[1]
        dep = DependencyRef(name=dep_name, source=locator, installed=False, version=pinned)
        manifest.add_dependency(dep)
        try:
            self._save_manifest(tree, node)
        except WriteError:
            manifest.remove_dependency(dep_name)
            raise
        logger.info("依赖已登记: %s -> %s (%s)", node.path, dep_name, locator)
        return dep

    # ------------------------------------------------------------------
    # remove
    # ------------------------------------------------------------------

    def remove(
        self, tree: ComponentTree, target: Component | str, *, keep_reference: bool = False,
    ) -> Component:
        """删除组件及其子树（只删本地，不触碰远程代码仓）

        父清单中的同名依赖默认一并删除；keep_reference=True 时保留条目并标记未安装。
        """
        node = self._node(tree, target)
        if node.is_root:
            raise ValidationError("不能移除项目根", target=node.path)
        parent = tree.parent_of(node)
        if parent is None:
            raise ValidationError(f"组件没有父节点: {node.path}", target=node.path)

        src = tree.abs_path(node)
        try:
            trash_root = Path(tempfile.mkdtemp(prefix=f".trash-{node.name}-", dir=src.parent))
        except OSError as e:
            raise WriteError(f"无法移除 {src}: {e}", target=node.path) from e
        trash = trash_root / node.name
        try:
            os.replace(src, trash)
        except OSError as e:
            trash_root.rmdir()
            raise WriteError(f"无法移除 {src}: {e}", target=node.path) from e

        manifest = parent.manifest
        before = copy.deepcopy(manifest.dependencies) if manifest is not None else None
        try:
            if manifest is not None:
                dep = manifest.get_dependency(node.name)
                if dep is not None:
                    if keep_reference:
                        dep.installed = False
                    else:
                        manifest.remove_dependency(node.name)
                    self._save_manifest(tree, parent)
        except SlideruleError:
            if manifest is not None and before is not None:
                manifest.dependencies = before
            os.replace(trash, src)
            trash_root.rmdir()
            raise

        tree.detach(node)
        try:
            force_rmtree(trash_root)
        except OSError as e:
            logger.warning("组件目录已移出，但删除残留失败 %s: %s", trash_root, e)
        self.amalgamate(tree, parent)
        logger.info("组件已移除: %s", node.path)
        return node

    # ------------------------------------------------------------------
    # upload
    # ------------------------------------------------------------------

    def upload(
        self,
        tree: ComponentTree,
        target: Component | str | None = None,
        *,
        message: str = "",
        url: str = "",
        publish: bool = False,
    ) -> Component:
        """把组件当前状态推送到其代码仓，可选登记到注册表

        项目根没有代码仓且给出 url 时先初始化；非根的本地组件需先 refactor。
        """
        node = self._node(tree, target)
        path = tree.abs_path(node)
        has_repo = self.repository.is_repository(path)
        url = absolute_locator(url) if url else ""

        if not node.is_root and not node.is_remote:
            raise NotAssociatedWithRepositoryError(
                f"组件未关联代码仓，请先 refactor: {node.path}", target=node.path,
            )
        if node.is_root and not has_repo and not url:
            raise NotAssociatedWithRepositoryError(
                f"项目根未关联代码仓，请提供远程地址: {path}", target=node.path,
            )

        self.amalgamate(tree, node)
        initialized = False
        if not has_repo:
            self.repository.init(path, url)
            initialized = True
        try:
            write_gitignore(path, self.config.components_dir)
            self.repository.push(
                path, message or self.config.commit_message, exclude=self._remote_paths(tree, node),
            )
        except SlideruleError:
            if initialized:
                self._discard(path / ".git")
            raise

        locator = node.locator or url or self.repository.remote_url(path)
        if publish:
            manifest = self._require_manifest(tree, node)
            self._require_registry().publish(path, manifest, locator)
        if node.is_remote:
            tree.reclassify(node, RemoteKind(locator=node.locator, ref=self.repository.head_ref(path)))
        logger.info("组件已上传: %s -> %s", node.path, locator)
        return node

    def upload_all(
        self, tree: ComponentTree, target: Component | str | None = None, *, message: str = "",
    ) -> CascadeResult:
        """按层级降序上传子树内全部远程组件，最后是 target 自身"""
        start = self._node(tree, target)
        nodes = tree.deepest_first(n for n in tree.walk(start) if n.is_remote and n is not start)
        paths = [n.path for n in nodes]
        if start.is_remote or self.repository.is_repository(tree.abs_path(start)):
            paths.append(start.path)

        result = CascadeResult(operation="upload")
        for path in paths:
            node = tree.get(path)
            if node is None:
                continue
            try:
                self.upload(tree, node, message=message)
            except SlideruleError as e:
                logger.exception("上传失败: %s", path)
                result.outcomes.append(NodeOutcome(path, node.name, "failed", str(e), e))
            else:
                result.outcomes.append(NodeOutcome(path, node.name, "ok", node.locator))
        log_summary(result)
        return result

    # ------------------------------------------------------------------
    # refactor
    # ------------------------------------------------------------------

    def refactor(self, tree: ComponentTree, target: Component | str, *, url: str = "") -> Component:
        """本地组件 → 远程组件: 新建/关联远程代码仓并推送，内容不变

        子树中的远程组件不进入新代码仓的提交，由父清单中的依赖声明重新拉取。
        """
        node = self._node(tree, target)
        if node.is_remote:
            raise AlreadyRemoteError(f"组件已是远程组件: {node.path} ({node.locator})", target=node.path)
        if node.is_root:
            raise ValidationError("项目根不能重构，请使用 upload 关联代码仓", target=node.path)
        parent = tree.parent_of(node)
        if parent is None:
            raise ValidationError(f"组件没有父节点: {node.path}", target=node.path)

        path = tree.abs_path(node)
        locator = absolute_locator(url) if url else self.repository.create_remote(node.name)
        had_repo = self.repository.is_repository(path)
        try:
            self.repository.init(path, locator)
            self.repository.push(path, REFACTOR_MESSAGE, exclude=self._remote_paths(tree, node))
        except RepositoryError as e:
            if not had_repo:
                self._discard(path / ".git")
            if isinstance(e, RepositoryCreationFailedError):
                raise
            raise RepositoryCreationFailedError(
                f"无法关联远程代码仓 {locator}: {e}", target=node.path, fault=e.fault,
            ) from e

        try:
            self._record_reference(tree, parent, node.name, locator)
        except WriteError:
            if not had_repo:
                self._discard(path / ".git")
            raise
        tree.reclassify(node, RemoteKind(locator=locator, ref=self.repository.head_ref(path)))
        logger.info("组件已重构为远程组件: %s -> %s", node.path, locator)
        return node

    def _record_reference(self, tree: ComponentTree, parent: Component, name: str, locator: str) -> None:
        """父清单登记远程来源，后续 update / download 据此拉取"""
        manifest = parent.manifest
        if manifest is None:
            return
        before = copy.deepcopy(manifest.dependencies)
        dep = manifest.get_dependency(name)
        if dep is None:
            manifest.add_dependency(DependencyRef(name=name, source=locator, installed=True))
        else:
            dep.source = locator
            dep.installed = True
        try:
            self._save_manifest(tree, parent)
        except WriteError:
            manifest.dependencies = before
            raise

    @staticmethod
    def _remote_paths(tree: ComponentTree, node: Component) -> list[str]:
        """node 子树中最近一层远程组件的相对路径（由各自代码仓管理）"""
        base = tree.abs_path(node)
        return [tree.abs_path(r).relative_to(base).as_posix() for r in tree.nearest_remotes(node)]

    # ------------------------------------------------------------------
    # 许可证
    # ------------------------------------------------------------------

    def change_licenses(
        self,
        tree: ComponentTree,
        target: Component | str | None = None,
        *,
        source_license: str = "",
        documentation_license: str = "",
    ) -> Component:
        """改写组件的源码 / 文档许可证（空值保持不变），并重新汇总"""
        node = self._node(tree, target)
        manifest = self._require_manifest(tree, node)
        if not source_license and not documentation_license:
            raise ValidationError("至少需要指定一个许可证", target=node.path)

        previous = (manifest.source_license, manifest.documentation_license)
        manifest.source_license = source_license or manifest.source_license
        manifest.documentation_license = documentation_license or manifest.documentation_license
        try:
            self._save_manifest(tree, node)
        except WriteError:
            manifest.source_license, manifest.documentation_license = previous
            raise
        self.amalgamate(tree, node)
        logger.info(
            "许可证已更新: %s (source=%s, doc=%s)",
            node.path, manifest.source_license, manifest.documentation_license,
        )
        return node
