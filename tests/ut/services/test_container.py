"""ServiceContainer 单元测试"""

from __future__ import annotations

from sliderule.core.config import Config
from sliderule.services.container import (
    ServiceContainer,
    get_container,
    reset_container,
    set_container,
)
from sliderule.services.repo.git_backend import GitBackend
from sliderule.services.repo.registry import PackageIndex


class TestServiceContainer:
    def test_lazy_loading(self, config: Config) -> None:
        c = ServiceContainer(config)
        assert len(c._instances) == 0
        _ = c.registry
        assert "registry" in c._instances

    def test_default_backends(self, config: Config) -> None:
        config.remote_base = "https://git.example.com/acme"
        c = ServiceContainer(config)
        assert isinstance(c.repository, GitBackend)
        assert c.repository.remote_base == "https://git.example.com/acme"
        assert isinstance(c.registry, PackageIndex)

    def test_engine_shares_collaborators(self, config: Config, repository) -> None:
        c = ServiceContainer(config, repository=repository)
        engine = c.engine
        assert engine is c.engine
        assert engine.repository is repository
        assert engine.resolver is c.resolver
        assert engine.registry is c.registry
        assert engine.config is config


class TestGetContainer:
    def test_singleton(self) -> None:
        c1 = get_container()
        c2 = get_container()
        assert c1 is c2

    def test_reset(self) -> None:
        c1 = get_container()
        reset_container()
        c2 = get_container()
        assert c1 is not c2

    def test_set(self, config: Config) -> None:
        c = ServiceContainer(config)
        set_container(c)
        assert get_container() is c
