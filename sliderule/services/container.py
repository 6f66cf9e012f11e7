"""服务容器 — 统一依赖注入

CLI 和 Web 层均通过 get_container() 获取同步引擎与后端，而非直接 import 构造。

依赖关系图（→ 表示依赖）:
  engine   → repository, registry, resolver
  resolver → repository, registry

用法:
    container = ServiceContainer()
    engine = container.engine            # 懒加载
    tree = engine.open(".")

    # 测试中注入替身后端
    container = ServiceContainer(config=cfg, repository=FakeRepository())
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sliderule.core.config import Config
    from sliderule.core.protocols import RegistryBackend, RepositoryBackend
    from sliderule.core.resolver import IdentityResolver
    from sliderule.services.sync.engine import SyncEngine

logger = logging.getLogger(__name__)


class ServiceContainer:
    """懒加载服务容器 — 每个实例持有一组共享的后端与引擎"""

    def __init__(
        self,
        config: Config | None = None,
        *,
        repository: RepositoryBackend | None = None,
        registry: RegistryBackend | None = None,
    ) -> None:
        self._instances: dict[str, object] = {}
        if config is None:
            from sliderule.core.config import get_config
            config = get_config()
        self._config = config
        if repository is not None:
            self._instances["repository"] = repository
        if registry is not None:
            self._instances["registry"] = registry

    @property
    def config(self) -> Config:
        return self._config

    # ---- 后端 ----

    @property
    def repository(self) -> RepositoryBackend:
        if "repository" not in self._instances:
            from sliderule.services.repo.git_backend import GitBackend
            self._instances["repository"] = GitBackend(
                remote_base=self._config.remote_base,
                default_branch=self._config.default_branch,
                timeout=self._config.git_timeout,
            )
        return self._instances["repository"]  # type: ignore[return-value]

    @property
    def registry(self) -> RegistryBackend:
        if "registry" not in self._instances:
            from sliderule.services.repo.registry import PackageIndex
            self._instances["registry"] = PackageIndex(self._config.registry_file)
        return self._instances["registry"]  # type: ignore[return-value]

    # ---- 核心 ----

    @property
    def resolver(self) -> IdentityResolver:
        if "resolver" not in self._instances:
            from sliderule.core.resolver import IdentityResolver
            self._instances["resolver"] = IdentityResolver(self.repository, self.registry)
        return self._instances["resolver"]  # type: ignore[return-value]

    @property
    def engine(self) -> SyncEngine:
        if "engine" not in self._instances:
            from sliderule.services.sync.engine import SyncEngine
            self._instances["engine"] = SyncEngine(
                self.repository,
                resolver=self.resolver,
                registry=self.registry,
                config=self._config,
            )
        return self._instances["engine"]  # type: ignore[return-value]


# ---- 全局单例 ----

_global: ServiceContainer | None = None
_global_lock = threading.Lock()


def get_container() -> ServiceContainer:
    """获取全局 ServiceContainer 单例（线程安全）"""
    global _global  # noqa: PLW0603
    if _global is not None:
        return _global
    with _global_lock:
        if _global is None:
            _global = ServiceContainer()
        return _global


def set_container(container: ServiceContainer) -> None:
    """替换全局容器（CLI 按 --config 构造后注册）"""
    global _global  # noqa: PLW0603
    with _global_lock:
        _global = container


def reset_container() -> None:
    """重置全局容器（仅用于测试）"""
    global _global  # noqa: PLW0603
    with _global_lock:
        _global = None
