"""公共测试夹具

FakeRepository 满足 RepositoryBackend 协议: 远端是 tmp 目录下的普通目录，
"代码仓标记"是组件目录下的 .git/ 目录，origin 地址写在 .git/origin 中。
"""

from __future__ import annotations

import itertools
import shutil
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pytest

import sliderule.core.config as cfgmod
from sliderule.core.exceptions import FetchFailedError, RepositoryCreationFailedError, RepositoryFault
from sliderule.services.container import reset_container
from sliderule.services.repo.registry import PackageIndex
from sliderule.services.sync.engine import SyncEngine
from sliderule.utils.yaml_io import save_yaml

_IGNORE_MARKER = shutil.ignore_patterns(".git")


class FakeRepository:
    """内存代码仓后端（测试替身）

    每次 clone / fetch / push 都在 remote_root/revisions 下留一份快照，
    快照名即 revision；工作区当前 revision 写在 .git/HEAD。
    """

    def __init__(self, remote_root: Path) -> None:
        self.remote_root = remote_root
        self.remotes: dict[str, Path] = {}
        self.revisions: dict[str, Path] = {}
        self.pushes: list[tuple[str, str]] = []
        self.checkouts: list[tuple[Path, str]] = []
        self.failures: dict[str, Exception] = {}
        self._counter = itertools.count(1)

    # ---- 测试辅助 ----

    def serve(self, locator: str, source: Path) -> None:
        self.remotes[locator] = source

    def fail(self, operation: str, error: Exception) -> None:
        self.failures[operation] = error

    def _check(self, operation: str) -> None:
        error = self.failures.get(operation)
        if error is not None:
            raise error

    def _snapshot(self, source: Path, ignore: Any = _IGNORE_MARKER) -> str:
        revision = f"rev{next(self._counter)}"
        target = self.remote_root / "revisions" / revision
        shutil.copytree(source, target, ignore=ignore)
        self.revisions[revision] = target
        return revision

    def _source(self, locator: str, target: str) -> Path:
        source = self.remotes.get(locator)
        if source is None:
            raise FetchFailedError(f"远端不存在: {locator}", target=target, fault=RepositoryFault.REMOTE_LOOKUP)
        return source

    @staticmethod
    def _mark(path: Path, locator: str, revision: str = "") -> None:
        marker = path / ".git"
        marker.mkdir(exist_ok=True)
        (marker / "origin").write_text(locator, encoding="utf-8")
        if revision:
            (marker / "HEAD").write_text(revision, encoding="utf-8")

    @staticmethod
    def _excluding(dest: Path, exclude: Sequence[str]):
        """忽略 .git 与 exclude 中的相对目录

        未排除的内嵌代码仓只留下空目录，与 git 提交内嵌仓库（gitlink）后再克隆一致。
        """
        skipped_paths = {p.strip("/") for p in exclude}

        def _ignore(directory: str, names: list[str]) -> set[str]:
            if Path(directory) != dest and (Path(directory) / ".git").is_dir():
                return set(names)
            rel = Path(directory).relative_to(dest)
            skipped = {n for n in names if (rel / n).as_posix() in skipped_paths}
            return skipped | ({".git"} & set(names))

        return _ignore

    # ---- RepositoryBackend ----

    def clone(self, locator: str, dest: Path, *, ref: str = "") -> None:
        self._check("clone")
        revision = self._snapshot(self._source(locator, locator))
        shutil.copytree(self.revisions[revision], dest)
        self._mark(dest, locator, revision)

    def fetch(self, dest: Path) -> str:
        self._check("fetch")
        return self._snapshot(self._source(self.remote_url(dest), str(dest)))

    def read_revision(self, dest: Path, revision: str, relpath: str) -> str | None:
        path = self.revisions[revision] / relpath
        return path.read_text(encoding="utf-8") if path.is_file() else None

    def checkout(self, dest: Path, revision: str) -> None:
        self._check("checkout")
        self.checkouts.append((Path(dest), revision))
        snapshot = self.revisions.get(revision)
        if snapshot is None:
            raise FetchFailedError(f"未知 revision: {revision}", target=str(dest), fault=RepositoryFault.REF_UPDATE)
        shutil.copytree(snapshot, dest, dirs_exist_ok=True)
        self._mark(Path(dest), self.remote_url(dest), revision)

    def push(self, dest: Path, message: str, *, exclude: Sequence[str] = ()) -> None:
        self._check("push")
        locator = self.remote_url(dest)
        revision = self._snapshot(Path(dest), ignore=self._excluding(Path(dest), exclude))
        self.remotes[locator] = self.revisions[revision]
        self.pushes.append((locator, message))
        self._mark(Path(dest), locator, revision)

    def create_remote(self, name: str) -> str:
        self._check("create_remote")
        locator = f"repo://created/{name}"
        if locator in self.remotes:
            raise RepositoryCreationFailedError(
                f"远程仓库已存在: {locator}", target=name, fault=RepositoryFault.REMOTE_LOOKUP,
            )
        return locator

    def init(self, dest: Path, locator: str) -> None:
        self._check("init")
        self._mark(dest, locator)

    def is_repository(self, path: Path) -> bool:
        return (Path(path) / ".git").is_dir()

    def remote_url(self, path: Path) -> str:
        origin = Path(path) / ".git" / "origin"
        return origin.read_text(encoding="utf-8") if origin.is_file() else ""

    def head_ref(self, path: Path) -> str:
        head = Path(path) / ".git" / "HEAD"
        return head.read_text(encoding="utf-8") if head.is_file() else ""


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch: pytest.MonkeyPatch):
    """每个测试使用独立的默认配置与服务容器"""
    monkeypatch.setattr(cfgmod, "_current", cfgmod.Config())
    reset_container()
    yield
    reset_container()


@pytest.fixture()
def config(tmp_path: Path) -> cfgmod.Config:
    return cfgmod.Config(registry_file=str(tmp_path / "registry.yml"))


@pytest.fixture()
def repository(tmp_path: Path) -> FakeRepository:
    root = tmp_path / "remotes"
    root.mkdir()
    return FakeRepository(root)


@pytest.fixture()
def registry(config: cfgmod.Config) -> PackageIndex:
    return PackageIndex(config.registry_file)


@pytest.fixture()
def engine(repository: FakeRepository, registry: PackageIndex, config: cfgmod.Config) -> SyncEngine:
    return SyncEngine(repository, registry=registry, config=config)


@pytest.fixture()
def make_source(tmp_path: Path, repository: FakeRepository):
    """在远端目录下生成一个组件源，并以 locator 注册到 FakeRepository"""

    def _make(
        locator: str,
        name: str,
        *,
        version: str = "1.0.0",
        source_license: str = "MIT",
        documentation_license: str = "CC-BY-4.0",
        dependencies: dict[str, Any] | None = None,
        files: dict[str, str] | None = None,
    ) -> Path:
        src = repository.remote_root / "sources" / name
        src.mkdir(parents=True, exist_ok=True)
        save_yaml(src / ".sr", {
            "name": name,
            "version": version,
            "source_license": source_license,
            "documentation_license": documentation_license,
            "dependencies": dependencies or {},
        })
        for rel, content in (files or {}).items():
            target = src / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        repository.serve(locator, src)
        return src

    return _make


@pytest.fixture()
def workdir(tmp_path: Path) -> Path:
    d = tmp_path / "work"
    d.mkdir()
    return d


@pytest.fixture()
def project(engine: SyncEngine, workdir: Path):
    """新建项目 P，返回其组件树"""
    return engine.create_project(workdir, "P")
