"""清单读写与合并单元测试"""

from __future__ import annotations

from pathlib import Path

import pytest

from sliderule.core import manifest as manifest_io
from sliderule.core.exceptions import ManifestMalformedError, ManifestNotFoundError
from sliderule.core.models import DependencyRef, Manifest


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


class TestLoad:
    def test_full_manifest(self, tmp_path: Path) -> None:
        p = _write(tmp_path / ".sr", (
            "name: gear\n"
            "version: 2.0.0\n"
            "source_license: MIT\n"
            "documentation_license: CC-BY-4.0\n"
            "license: (MIT AND CC-BY-4.0)\n"
            "dependencies:\n"
            "  bolt-lib:\n"
            "    source: repo://bolts\n"
            "    installed: true\n"
            "    version: 1.1.0\n"
            "maintainer: someone\n"
        ))
        m = manifest_io.load(p)
        assert m.name == "gear"
        assert m.version == "2.0.0"
        assert m.license_ids == {"MIT", "CC-BY-4.0"}
        assert m.dependencies == [DependencyRef("bolt-lib", "repo://bolts", True, "1.1.0")]
        assert m.extra == {"maintainer": "someone"}

    def test_shorthand_and_list_dependencies(self, tmp_path: Path) -> None:
        short = manifest_io.load(_write(tmp_path / "a.sr", "name: a\ndependencies:\n  washer: repo://w\n"))
        assert short.get_dependency("washer") == DependencyRef("washer", "repo://w")
        listed = manifest_io.load(_write(
            tmp_path / "b.sr", "name: b\ndependencies:\n  - name: nut\n    source: repo://n\n",
        ))
        assert listed.get_dependency("nut").source == "repo://n"

    def test_name_defaults_to_directory(self, tmp_path: Path) -> None:
        d = tmp_path / "gear"
        d.mkdir()
        m = manifest_io.load(_write(d / ".sr", "version: 1.0.0\n"))
        assert m.name == "gear"

    def test_empty_file(self, tmp_path: Path) -> None:
        d = tmp_path / "gear"
        d.mkdir()
        m = manifest_io.load(_write(d / ".sr", ""))
        assert m.name == "gear"
        assert m.dependencies == []

    def test_missing(self, tmp_path: Path) -> None:
        with pytest.raises(ManifestNotFoundError) as exc:
            manifest_io.load(tmp_path / ".sr")
        assert exc.value.exit_code == 13

    @pytest.mark.parametrize("text", [
        "name: [unclosed\n",
        "- just\n- a list\n",
        "name: gear\ndependencies: 42\n",
        "name: gear\nversion: {a: 1}\n",
        "name: gear\ndependencies:\n  - source: repo://x\n",
    ])
    def test_malformed(self, tmp_path: Path, text: str) -> None:
        with pytest.raises(ManifestMalformedError) as exc:
            manifest_io.load(_write(tmp_path / ".sr", text))
        assert exc.value.exit_code == 14

    def test_duplicate_dependency_in_list(self, tmp_path: Path) -> None:
        text = "name: g\ndependencies:\n  - name: a\n  - name: a\n"
        with pytest.raises(ManifestMalformedError, match="重复"):
            manifest_io.load(_write(tmp_path / ".sr", text))


class TestSave:
    def test_roundtrip_preserves_fields(self, tmp_path: Path) -> None:
        original = Manifest(
            name="gear", version="1.2.0", source_license="MIT",
            documentation_license="CC0-1.0", license="(MIT AND CC0-1.0)",
            dependencies=[DependencyRef("bolt-lib", "repo://bolts", False, "1.0.0")],
            extra={"maintainer": "someone"},
        )
        p = tmp_path / "gear" / ".sr"
        manifest_io.save(original, p)
        assert manifest_io.load(p) == original

    def test_no_temp_files_left(self, tmp_path: Path) -> None:
        manifest_io.save(Manifest(name="gear"), tmp_path / ".sr")
        assert [p.name for p in tmp_path.iterdir()] == [".sr"]


class TestMerge:
    @pytest.fixture()
    def local(self) -> Manifest:
        return Manifest(
            name="bolt-lib", version="1.0.0", source_license="MIT",
            dependencies=[
                DependencyRef("washer", "repo://w-old", installed=True),
                DependencyRef("nut", "repo://nuts", installed=False),
            ],
            extra={"notes": "local"},
        )

    @pytest.fixture()
    def upstream(self) -> Manifest:
        return Manifest(
            name="bolt-lib", version="1.1.0", source_license="Apache-2.0",
            dependencies=[DependencyRef("washer", "repo://w-new", installed=False)],
        )

    def test_upstream_wins_and_local_additions_kept(self, local: Manifest, upstream: Manifest) -> None:
        merged = manifest_io.merge(local, upstream)
        assert merged.version == "1.1.0"
        assert merged.source_license == "Apache-2.0"
        washer = merged.get_dependency("washer")
        assert washer.source == "repo://w-new"
        assert washer.installed is True
        assert merged.get_dependency("nut") == DependencyRef("nut", "repo://nuts", installed=False)
        assert merged.extra == {"notes": "local"}

    def test_hard(self, local: Manifest, upstream: Manifest) -> None:
        merged = manifest_io.merge(local, upstream, hard=True)
        assert merged == upstream
        assert merged is not upstream

    def test_inputs_untouched(self, local: Manifest, upstream: Manifest) -> None:
        manifest_io.merge(local, upstream)
        assert upstream.get_dependency("nut") is None
        assert upstream.get_dependency("washer").installed is False


class TestManifestModel:
    def test_add_duplicate(self) -> None:
        m = Manifest(name="gear")
        m.add_dependency(DependencyRef("bolt-lib"))
        with pytest.raises(ValueError, match="已存在"):
            m.add_dependency(DependencyRef("bolt-lib"))

    def test_remove(self) -> None:
        m = Manifest(name="gear", dependencies=[DependencyRef("a"), DependencyRef("b")])
        assert m.remove_dependency("a") is True
        assert m.remove_dependency("a") is False
        assert [d.name for d in m.dependencies] == ["b"]

    def test_new_manifest(self) -> None:
        m = manifest_io.new_manifest("gear", source_license="Unlicense", documentation_license="CC0-1.0")
        assert m.version == "1.0.0"
        assert m.license_ids == {"Unlicense", "CC0-1.0"}
        assert m.dependencies == []
