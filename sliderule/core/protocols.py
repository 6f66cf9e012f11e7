"""领域协议定义

集中定义同步引擎所依赖的外部协作者接口（Protocol），
实现依赖倒置 — 同步引擎依赖抽象而非 git / 注册表的具体实现。

使用 typing.Protocol 而非 ABC，使得测试替身无需继承即可满足协议。
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any, Protocol

from sliderule.core.models import Manifest


# =========================================================================
# 代码仓后端协议
# =========================================================================

class RepositoryBackend(Protocol):
    """代码仓后端协议

    失败时抛出 RepositoryError 子类，并用 RepositoryFault 区分
    本地打开 / 远端查找 / 传输 / 引用更新四个阶段。
    """

    def clone(self, locator: str, dest: Path, *, ref: str = "") -> None:
        """把远程内容克隆到 dest（dest 不存在或为空）"""
        ...

    def fetch(self, dest: Path) -> str:
        """拉取 dest 对应远端的最新提交（不改动工作区），返回其 revision"""
        ...

    def read_revision(self, dest: Path, revision: str, relpath: str) -> str | None:
        """读取 revision 中 relpath 的内容，文件不存在时返回 None"""
        ...

    def checkout(self, dest: Path, revision: str) -> None:
        """把工作区强制切换到 revision（后写者胜出）"""
        ...

    def push(self, dest: Path, message: str, *, exclude: Sequence[str] = ()) -> None:
        """提交 dest 的当前状态并推送到远端；exclude 中的相对目录不进入提交"""
        ...

    def create_remote(self, name: str) -> str:
        """创建新的远程代码仓，返回其地址"""
        ...

    def init(self, dest: Path, locator: str) -> None:
        """把 dest 初始化为代码仓并以 locator 作为 origin"""
        ...

    def is_repository(self, path: Path) -> bool:
        """path 是否带有代码仓标记"""
        ...

    def remote_url(self, path: Path) -> str:
        """path 所在代码仓的 origin 地址，无则返回空串"""
        ...

    def head_ref(self, path: Path) -> str:
        """当前检出的 commit，无法获取时返回空串"""
        ...


# =========================================================================
# 注册表后端协议
# =========================================================================

class RegistryBackend(Protocol):
    """注册表后端协议

    resolve_name 找不到时抛 UnresolvedReferenceError，
    匹配多个时抛 AmbiguousReferenceError；publish 被拒时抛 PublishRejectedError。
    """

    def resolve_name(self, name: str, version: str = "") -> str:
        """把注册表名称解析为拉取地址"""
        ...

    def publish(self, dest: Path, manifest: Manifest, locator: str) -> None:
        """把组件的当前版本登记到注册表"""
        ...

    def list_packages(self) -> list[dict[str, Any]]:
        """已登记的包: name / latest / versions"""
        ...
