"""端到端场景: 新建项目 → 登记依赖 → 下载 → 重构 → 移除"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from sliderule.core import manifest as manifest_io
from sliderule.core.exceptions import NotFoundError


def _files(root: Path) -> dict[str, bytes]:
    result = {}
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d != ".git"]
        for f in filenames:
            full = Path(dirpath) / f
            result[full.relative_to(root).as_posix()] = full.read_bytes()
    return result


def _assert_levels(tree) -> None:
    for node in tree.walk():
        parent = tree.parent_of(node)
        assert node.level == (0 if parent is None else parent.level + 1)


class TestGearAndBolts:
    def test_full_lifecycle(self, engine, project, make_source) -> None:
        make_source("repo://bolts", "bolt-lib")

        # 1. 项目 P 下新建本地组件 gear
        gear = engine.create(project, project.root, "gear")
        assert not gear.is_remote
        assert gear.level == 1

        # 2. gear 登记依赖 bolt-lib，尚未安装
        dep = engine.add(project, gear, "repo://bolts", name="bolt-lib")
        assert dep.installed is False
        assert project.child_named(gear, "bolt-lib") is None

        # 3. 下载: bolt-lib 成为 level 2 的远程组件
        bolt = engine.download(project, gear, "bolt-lib")
        assert bolt.is_remote
        assert bolt.locator == "repo://bolts"
        assert project.level_of(bolt) == 2
        assert gear.manifest.get_dependency("bolt-lib").installed is True
        _assert_levels(project)

        # 4. 重构 gear: 变为远程组件，内容与 bolt-lib 不变
        gear_sr = project.manifest_path(gear).read_bytes()
        bolt_files = _files(project.abs_path(bolt))
        engine.refactor(project, gear)
        assert gear.is_remote
        assert gear.locator == "repo://created/gear"
        assert project.manifest_path(gear).read_bytes() == gear_sr
        assert _files(project.abs_path(bolt)) == bolt_files
        assert project.find("bolt-lib").locator == "repo://bolts"

        # 5. 移除 bolt-lib: 许可证汇总不再包含它
        engine.remove(project, "bolt-lib")
        with pytest.raises(NotFoundError):
            project.find("bolt-lib")
        licenses = project.aggregate_licenses()
        assert "MIT" not in licenses
        assert "CC-BY-4.0" not in licenses
        assert manifest_io.load(project.manifest_path(project.root)).license == "(Unlicense AND CC0-1.0)"
        _assert_levels(project)

    def test_snapshot_matches_disk(self, engine, project, make_source) -> None:
        make_source("repo://bolts", "bolt-lib")
        make_source("repo://washer", "washer", source_license="BSD-3-Clause")
        gear = engine.create(project, project.root, "gear")
        bolt = engine.download(project, gear, reference="repo://bolts")
        engine.download(project, bolt, reference="repo://washer")
        engine.refactor(project, gear)

        fresh = engine.open(project.root_path)
        assert sorted(fresh.nodes) == sorted(project.nodes)
        for path, node in project.nodes.items():
            other = fresh.get(path)
            assert (other.name, other.kind, other.level) == (node.name, node.kind, node.level)
        assert fresh.aggregate_licenses() == project.aggregate_licenses()
        assert "BSD-3-Clause" in fresh.aggregate_licenses()

    def test_download_twice_is_idempotent(self, engine, project, make_source) -> None:
        make_source("repo://bolts", "bolt-lib")
        gear = engine.create(project, project.root, "gear")
        engine.add(project, gear, "repo://bolts", name="bolt-lib")
        engine.download(project, gear, "bolt-lib")
        before = _files(project.root_path)
        engine.download(project, gear, "bolt-lib")
        assert _files(project.root_path) == before


class TestRefactoredComponentRoundTrip:
    def test_other_project_pulls_refactored_component(self, engine, project, make_source, workdir) -> None:
        make_source("repo://bolts", "bolt-lib", files={"part.txt": "bolt"})
        gear = engine.create(project, project.root, "gear")
        engine.add(project, gear, "repo://bolts", name="bolt-lib")
        engine.download(project, gear, "bolt-lib")
        engine.refactor(project, gear)

        other = engine.create_project(workdir, "Q")
        pulled = engine.download(other, None, reference="repo://created/gear")
        assert pulled.name == "gear"
        assert other.child_named(pulled, "bolt-lib") is None

        result = engine.download_pending(other, pulled)

        assert result.success
        bolt = other.find("components/gear/components/bolt-lib")
        assert bolt.is_remote
        assert bolt.locator == "repo://bolts"
        assert (other.abs_path(bolt) / "part.txt").read_text(encoding="utf-8") == "bolt"
        _assert_levels(other)
