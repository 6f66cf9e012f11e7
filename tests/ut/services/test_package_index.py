"""PackageIndex（YAML 注册表后端）单元测试"""

from __future__ import annotations

from pathlib import Path

import pytest

from sliderule.core.exceptions import AmbiguousReferenceError, PublishRejectedError, UnresolvedReferenceError
from sliderule.core.models import Manifest
from sliderule.services.repo.registry import PackageIndex
from sliderule.utils.yaml_io import save_yaml


def _publish(index: PackageIndex, name: str, version: str, locator: str) -> None:
    index.publish(Path("."), Manifest(name=name, version=version), locator)


class TestResolveName:
    def test_bare_name_matches_scoped_entry(self, registry: PackageIndex) -> None:
        _publish(registry, "@acme/bolt-lib", "1.0.0", "repo://bolts")
        assert registry.resolve_name("bolt-lib") == "repo://bolts"
        assert registry.resolve_name("@acme/bolt-lib") == "repo://bolts"

    def test_scoped_name_is_exact(self, registry: PackageIndex) -> None:
        _publish(registry, "@acme/bolt-lib", "1.0.0", "repo://bolts")
        with pytest.raises(UnresolvedReferenceError):
            registry.resolve_name("@other/bolt-lib")

    def test_version_pin(self, registry: PackageIndex) -> None:
        _publish(registry, "bolt-lib", "1.0.0", "repo://v1")
        _publish(registry, "bolt-lib", "2.0.0", "repo://v2")
        assert registry.resolve_name("bolt-lib") == "repo://v2"
        assert registry.resolve_name("bolt-lib", "1.0.0") == "repo://v1"
        with pytest.raises(UnresolvedReferenceError, match="可用版本"):
            registry.resolve_name("bolt-lib", "9.9.9")

    def test_ambiguous_scopes(self, registry: PackageIndex) -> None:
        _publish(registry, "@a/bolt-lib", "1.0.0", "repo://a")
        _publish(registry, "@b/bolt-lib", "1.0.0", "repo://b")
        with pytest.raises(AmbiguousReferenceError) as exc:
            registry.resolve_name("bolt-lib")
        assert exc.value.candidates == ["@a/bolt-lib", "@b/bolt-lib"]

    def test_ambiguous_versions_without_latest(self, tmp_path: Path) -> None:
        f = tmp_path / "reg.yml"
        save_yaml(f, {"packages": {"bolt-lib": {"versions": {"1.0.0": "repo://v1", "2.0.0": "repo://v2"}}}})
        with pytest.raises(AmbiguousReferenceError):
            PackageIndex(f).resolve_name("bolt-lib")

    def test_single_version_without_latest(self, tmp_path: Path) -> None:
        f = tmp_path / "reg.yml"
        save_yaml(f, {"packages": {"bolt-lib": {"versions": {"1.0.0": "repo://v1"}}}})
        assert PackageIndex(f).resolve_name("bolt-lib") == "repo://v1"

    def test_no_versions(self, tmp_path: Path) -> None:
        f = tmp_path / "reg.yml"
        save_yaml(f, {"packages": {"bolt-lib": {}}})
        with pytest.raises(UnresolvedReferenceError, match="没有任何已发布版本"):
            PackageIndex(f).resolve_name("bolt-lib")


class TestPublish:
    def test_persisted(self, registry: PackageIndex) -> None:
        _publish(registry, "bolt-lib", "1.0.0", "repo://bolts")
        assert PackageIndex(registry.registry_file).list_packages() == [
            {"name": "bolt-lib", "latest": "1.0.0", "versions": ["1.0.0"]},
        ]

    def test_republish_same_locator(self, registry: PackageIndex) -> None:
        _publish(registry, "bolt-lib", "1.0.0", "repo://bolts")
        _publish(registry, "bolt-lib", "1.0.0", "repo://bolts")
        assert registry.list_packages()[0]["versions"] == ["1.0.0"]

    def test_rewrite_rejected(self, registry: PackageIndex) -> None:
        _publish(registry, "bolt-lib", "1.0.0", "repo://bolts")
        with pytest.raises(PublishRejectedError) as exc:
            _publish(registry, "bolt-lib", "1.0.0", "repo://elsewhere")
        assert exc.value.exit_code == 202
