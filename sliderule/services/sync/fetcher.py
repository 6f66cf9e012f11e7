"""组件拉取器

职责:
- download: 把远程组件拉取到父组件的 components 目录（先拉到临时目录，再 rename 到位）
- download_pending: 批量拉取清单中尚未安装的依赖
- update: 刷新远程组件；作用于项目根时按层级降序级联到全部远程后代
"""

from __future__ import annotations

import copy
import logging
import os
import tempfile
from pathlib import Path

from sliderule.core import manifest as manifest_io
from sliderule.core.exceptions import (
    FetchFailedError,
    ManifestNotFoundError,
    NameCollisionError,
    NotAssociatedWithRepositoryError,
    NotFoundError,
    RepositoryFault,
    SlideruleError,
    ValidationError,
    WriteError,
)
from sliderule.core.models import CascadeResult, Component, DependencyRef, NodeOutcome
from sliderule.core.resolver import split_registry_name
from sliderule.core.tree import ComponentTree
from sliderule.services.sync.base import SyncBase
from sliderule.utils.net import is_direct_address, name_from_locator, validate_component_name

logger = logging.getLogger(__name__)


def derive_name(reference: str) -> str:
    """由引用推导组件名: 直接地址取最后一段，注册表名称去掉 scope 和版本"""
    if is_direct_address(reference):
        return name_from_locator(reference)
    name, _ = split_registry_name(reference)
    return name.rsplit("/", 1)[-1]


def _is_placeholder(path: Path) -> bool:
    """空目录视为未安装（如父代码仓中内嵌仓库留下的占位目录）"""
    return path.is_dir() and not path.is_symlink() and not any(path.iterdir())


def log_summary(result: CascadeResult) -> None:
    failed = result.failed
    logger.info(
        "%s 汇总: %d 成功, %d 失败%s",
        result.operation,
        len(result.succeeded),
        len(failed),
        f" ({', '.join(o.name for o in failed)})" if failed else "",
    )


class ComponentFetcher(SyncBase):
    """远程组件拉取 / 更新"""

    # ------------------------------------------------------------------
    # download
    # ------------------------------------------------------------------

    def download(
        self,
        tree: ComponentTree,
        target: Component | str | None,
        name: str = "",
        *,
        reference: str = "",
        ref: str = "",
    ) -> Component:
        """拉取依赖到 target/components/<name>

        name 指向已声明的依赖时使用其 source；只给 reference 时先解析，
        组件名由引用推导。已安装且目录存在时不做任何事。
        """
        parent = self._node(tree, target)
        manifest = self._require_manifest(tree, parent)

        if not name and not reference:
            raise ValidationError("download 需要依赖名称或地址", target=parent.path)
        name = validate_component_name(name or derive_name(reference))
        dep = manifest.get_dependency(name)

        if reference:
            locator = self.resolver.resolve(reference, dep.version if dep else "")
        elif dep is None:
            raise NotFoundError(f"{parent.name} 未声明依赖 {name}", target=name)
        elif not dep.source:
            raise NotAssociatedWithRepositoryError(
                f"依赖 {name} 没有代码仓地址，无法下载", target=name,
            )
        else:
            locator = self.resolver.resolve(dep.source, dep.version)

        existing = tree.child_named(parent, name)
        if existing is not None:
            return self._reuse_existing(tree, parent, existing, dep, locator)

        dest = tree.component_dir(parent) / name
        if dest.exists() and not _is_placeholder(dest):
            raise NameCollisionError(f"目录已存在但不是组件: {dest}", target=name)

        self.resolver.check_cycle(tree, parent, name, locator)
        self._fetch_into(tree, parent, name, locator, ref)

        node = tree.graft(parent, name, self.resolver)
        try:
            self._mark_installed(tree, parent, name, locator, node)
        except WriteError:
            tree.detach(node)
            self._discard(dest)
            raise
        self.amalgamate(tree, parent)
        logger.info("组件已下载: %s -> %s (level %d)", locator, node.path, node.level)
        return node

    def _reuse_existing(
        self,
        tree: ComponentTree,
        parent: Component,
        existing: Component,
        dep: DependencyRef | None,
        locator: str,
    ) -> Component:
        if not existing.is_remote or existing.locator != locator:
            raise NameCollisionError(
                f"{parent.path} 下已存在同名组件 {existing.name}", target=existing.path,
            )
        if dep is None or not dep.installed:
            self._mark_installed(tree, parent, existing.name, locator, existing)
        logger.info("组件已安装，跳过下载: %s", existing.path)
        return existing

    def _fetch_into(self, tree: ComponentTree, parent: Component, name: str, locator: str, ref: str) -> None:
        """克隆到 components/.tmp-* 临时目录，校验后 rename 到 components/<name>"""
        comp_dir = tree.component_dir(parent)
        self._ensure_dir(comp_dir)
        try:
            staging_root = Path(tempfile.mkdtemp(prefix=f".tmp-{name}-", dir=comp_dir))
        except OSError as e:
            raise FetchFailedError(
                f"无法创建临时目录: {e}", target=locator, fault=RepositoryFault.LOCAL_OPEN,
            ) from e
        staging = staging_root / name
        try:
            self.repository.clone(locator, staging, ref=ref)
            fetched = manifest_io.load(staging / tree.manifest_name)
            self.resolver.check_manifest_cycle(tree, parent, fetched, locator)
            try:
                if _is_placeholder(comp_dir / name):
                    (comp_dir / name).rmdir()
                os.replace(staging, comp_dir / name)
            except OSError as e:
                raise WriteError(f"无法移动到 {comp_dir / name}: {e}", target=name) from e
        finally:
            self._discard(staging_root)

    def _mark_installed(
        self, tree: ComponentTree, parent: Component, name: str, locator: str, node: Component,
    ) -> None:
        manifest = self._require_manifest(tree, parent)
        before = copy.deepcopy(manifest.dependencies)
        dep = manifest.get_dependency(name)
        if dep is None:
            version = node.manifest.version if node.manifest else ""
            manifest.add_dependency(DependencyRef(name=name, source=locator, installed=True, version=version))
        else:
            dep.installed = True
            dep.source = dep.source or locator
        try:
            self._save_manifest(tree, parent)
        except WriteError:
            manifest.dependencies = before
            raise

    def download_pending(self, tree: ComponentTree, target: Component | str | None = None) -> CascadeResult:
        """拉取 target 清单中全部 installed=false 的依赖，单个失败不影响其他"""
        parent = self._node(tree, target)
        manifest = self._require_manifest(tree, parent)
        result = CascadeResult(operation="download")
        for dep in list(manifest.dependencies):
            if dep.installed and tree.child_named(parent, dep.name) is not None:
                result.outcomes.append(NodeOutcome(dep.name, dep.name, "skipped", "已安装"))
                continue
            try:
                node = self.download(tree, parent, dep.name)
            except SlideruleError as e:
                logger.exception("下载失败: %s", dep.name)
                result.outcomes.append(NodeOutcome(dep.name, dep.name, "failed", str(e), e))
            else:
                result.outcomes.append(NodeOutcome(node.path, node.name, "ok", node.locator))
        log_summary(result)
        return result

    # ------------------------------------------------------------------
    # update
    # ------------------------------------------------------------------

    def update(
        self, tree: ComponentTree, target: Component | str | None = None, *, hard: bool = False,
    ) -> CascadeResult:
        """刷新远程组件

        target 为远程组件时只刷新它；为项目根时按层级降序刷新全部远程后代，
        根自身是代码仓时最后刷新。单个节点失败记录在结果中，不阻塞兄弟节点。
        """
        node = self._node(tree, target)
        result = CascadeResult(operation="update")

        if node.is_root:
            paths = [n.path for n in tree.deepest_first(n for n in tree.walk(node) if n.is_remote)]
            root_remote = self.resolver.classify(tree.abs_path(node))
            if root_remote.is_remote:
                paths.append(node.path)
        elif node.is_remote:
            paths = [node.path]
        else:
            raise NotAssociatedWithRepositoryError(
                f"组件未关联代码仓，无法更新: {node.path}", target=node.path,
            )

        for path in paths:
            current = tree.get(path)
            if current is None:
                result.outcomes.append(NodeOutcome(path, path.rsplit("/", 1)[-1], "skipped", "已不在组件树中"))
                continue
            try:
                self._update_one(tree, current, hard=hard)
            except SlideruleError as e:
                logger.exception("更新失败: %s", path)
                result.outcomes.append(NodeOutcome(path, current.name, "failed", str(e), e))
            else:
                result.outcomes.append(NodeOutcome(path, current.name, "ok"))

        # graft 会替换节点对象，按路径重新取节点再汇总许可证
        tree.relevel()
        for outcome in result.succeeded:
            current = tree.get(outcome.path)
            if current is None:
                continue
            try:
                self.amalgamate(tree, current)
            except WriteError as e:
                outcome.status, outcome.message, outcome.error = "failed", str(e), e
        log_summary(result)
        return result

    def _update_one(self, tree: ComponentTree, node: Component, *, hard: bool) -> None:
        """fetch → 校验上游清单并合并 → checkout → 写合并结果

        checkout 之前的失败不改动工作区；之后的失败切回原 revision 并恢复清单。
        """
        path = tree.abs_path(node)
        manifest_file = tree.manifest_path(node)

        revision = self.repository.fetch(path)
        text = self.repository.read_revision(path, revision, tree.manifest_name)
        if text is None:
            raise ManifestNotFoundError(
                f"上游 {revision[:12]} 中没有清单 {tree.manifest_name}", target=node.path,
            )
        upstream = manifest_io.loads(text, path=manifest_file)
        merged = upstream if node.manifest is None else manifest_io.merge(node.manifest, upstream, hard=hard)

        previous = self.repository.head_ref(path)
        snapshot = manifest_file.read_bytes() if manifest_file.is_file() else None
        self.repository.checkout(path, revision)
        try:
            if merged != upstream:
                manifest_io.save(merged, manifest_file)
            fresh = self._regraft(tree, node)
            self._sync_installed(tree, fresh)
        except SlideruleError:
            self._rollback_update(path, previous, manifest_file, snapshot)
            self._regraft(tree, node)
            raise
        logger.info("组件已更新: %s (%s)", fresh.path, fresh.locator or revision[:12])

    def _regraft(self, tree: ComponentTree, node: Component) -> Component:
        if node.is_root:
            tree.reload_manifest(node)
            return node
        parent = tree.parent_of(node)
        if parent is None:
            raise NotFoundError(f"组件父节点不在树中: {node.path}", target=node.path)
        return tree.graft(parent, node.name, self.resolver)

    def _rollback_update(self, path: Path, previous: str, manifest_file: Path, snapshot: bytes | None) -> None:
        if previous:
            try:
                self.repository.checkout(path, previous)
            except SlideruleError:
                logger.exception("无法切回 %s: %s", previous, path)
        if snapshot is not None:
            try:
                manifest_file.write_bytes(snapshot)
            except OSError:
                logger.exception("无法恢复清单: %s", manifest_file)

    def _sync_installed(self, tree: ComponentTree, node: Component) -> None:
        """installed 标记与磁盘上的子组件保持一致"""
        if node.manifest is None:
            return
        changed = False
        for dep in node.manifest.dependencies:
            on_disk = tree.child_named(node, dep.name) is not None
            if dep.installed != on_disk:
                dep.installed = on_disk
                changed = True
        if changed:
            self._save_manifest(tree, node)
