"""组件身份解析器

职责:
- classify: 判断目录是本地组件还是远程组件（依据代码仓标记）
- resolve: 把引用（直接地址 / 注册表名称）解析为具体拉取地址
- 环检测: 挂载前拒绝会让组件（传递地）依赖自身的引用
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from sliderule.core.exceptions import CyclicReferenceError, UnresolvedReferenceError
from sliderule.core.models import LOCAL, ComponentKind, Manifest, RemoteKind
from sliderule.utils.net import absolute_locator, is_direct_address

if TYPE_CHECKING:
    from sliderule.core.models import Component
    from sliderule.core.protocols import RegistryBackend, RepositoryBackend
    from sliderule.core.tree import ComponentTree

logger = logging.getLogger(__name__)


def split_registry_name(reference: str) -> tuple[str, str]:
    """拆分 name@version；保留 @scope/name 前缀中的 @"""
    ref = reference.strip()
    head, sep, version = ref[1:].rpartition("@") if ref.startswith("@") else ref.rpartition("@")
    if not sep:
        return ref, ""
    name = f"@{head}" if ref.startswith("@") else head
    return name, version


class IdentityResolver:
    """组件身份解析器 - 本地/远程分类 + 引用解析"""

    def __init__(
        self,
        repository: RepositoryBackend,
        registry: RegistryBackend | None = None,
    ) -> None:
        self.repository = repository
        self.registry = registry

    # ------------------------------------------------------------------
    # 分类
    # ------------------------------------------------------------------

    def classify(self, path: Path) -> ComponentKind:
        """目录自身带代码仓标记且有 origin 地址 → Remote，否则 Local"""
        if not self.repository.is_repository(path):
            return LOCAL
        locator = self.repository.remote_url(path)
        if not locator:
            logger.debug("代码仓未配置 origin，按本地组件处理: %s", path)
            return LOCAL
        return RemoteKind(locator=locator, ref=self.repository.head_ref(path))

    # ------------------------------------------------------------------
    # 引用解析
    # ------------------------------------------------------------------

    def resolve(self, reference: str, version: str = "") -> str:
        """把引用解析为拉取地址

        支持两种形式:
          - 直接地址: https://... / git@host:path / repo://... / 本地路径（转为绝对路径）
          - 注册表名称: name、@scope/name、name@version
        """
        ref = reference.strip()
        if not ref:
            raise UnresolvedReferenceError("引用为空", target=reference)
        if is_direct_address(ref):
            return absolute_locator(ref)

        name, pinned = split_registry_name(ref)
        if self.registry is None:
            raise UnresolvedReferenceError(
                f"未配置注册表，无法解析名称: {ref}", target=ref,
            )
        locator = self.registry.resolve_name(name, version or pinned)
        logger.info("注册表解析: %s -> %s", ref, locator)
        return locator

    # ------------------------------------------------------------------
    # 环检测
    # ------------------------------------------------------------------

    @staticmethod
    def check_cycle(tree: ComponentTree, target: Component, name: str, locator: str = "") -> None:
        """target 若引用 name/locator，是否会指回自身或祖先"""
        for node in tree.ancestors(target, include_self=True):
            if node.name == name or (locator and node.locator == locator):
                raise CyclicReferenceError(
                    f"引用 {name} 会形成环: {node.path} 已在 {target.path} 的祖先链上",
                    target=name,
                )

    @classmethod
    def check_manifest_cycle(
        cls, tree: ComponentTree, target: Component, manifest: Manifest, locator: str = "",
    ) -> None:
        """新拉取的组件挂到 target 下之前，检查它自身及其声明的依赖"""
        cls.check_cycle(tree, target, manifest.name, locator)
        for dep in manifest.dependencies:
            cls.check_cycle(tree, target, dep.name, dep.source)
            if dep.name == manifest.name or (locator and dep.source == locator):
                raise CyclicReferenceError(
                    f"组件 {manifest.name} 声明依赖自身", target=manifest.name,
                )
