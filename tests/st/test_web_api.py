"""Web API 端点测试"""

from __future__ import annotations

from pathlib import Path

import pytest

from sliderule.services.container import ServiceContainer, set_container
from sliderule.web.app import app


@pytest.fixture()
def populated(engine, project, make_source):
    make_source("repo://bolts", "bolt-lib")
    gear = engine.create(project, project.root, "gear")
    engine.add(project, gear, "repo://bolts", name="bolt-lib")
    engine.download(project, gear, "bolt-lib")
    return project


@pytest.fixture()
def client(config, repository, populated):
    """Flask 测试客户端，PROJECT_ROOT 指向临时项目"""
    set_container(ServiceContainer(config, repository=repository))
    previous = app.config["PROJECT_ROOT"]
    app.config["TESTING"] = True
    app.config["PROJECT_ROOT"] = str(populated.root_path)
    with app.test_client() as c:
        yield c
    app.config["PROJECT_ROOT"] = previous


class TestGlobalErrorHandlers:
    def test_404_returns_json(self, client) -> None:
        resp = client.get("/api/nonexistent")
        assert resp.status_code == 404
        assert "error" in resp.get_json()

    def test_405_returns_json(self, client) -> None:
        resp = client.post("/api/tree")
        assert resp.status_code == 405
        assert "error" in resp.get_json()


class TestApi:
    def test_health(self, client) -> None:
        data = client.get("/api/health").get_json()
        assert data["status"] == "ok"

    def test_tree(self, client) -> None:
        resp = client.get("/api/tree")
        assert resp.status_code == 200
        data = resp.get_json()
        assert [c["name"] for c in data["components"]] == ["P", "gear", "bolt-lib"]
        assert data["levels"][0] == {"level": 2, "paths": ["components/gear/components/bolt-lib"]}

    def test_licenses(self, client) -> None:
        data = client.get("/api/licenses").get_json()
        assert data["expression"] == "(Unlicense AND MIT AND CC0-1.0 AND CC-BY-4.0)"
        assert len(data["components"]) == 3

    def test_component_by_name(self, client) -> None:
        data = client.get("/api/components/gear").get_json()["component"]
        assert data["path"] == "components/gear"
        assert data["dependencies"] == [
            {"name": "bolt-lib", "source": "repo://bolts", "installed": True, "version": ""},
        ]
        assert data["license_expression"] == "(Unlicense AND MIT AND CC0-1.0 AND CC-BY-4.0)"

    def test_component_by_path(self, client) -> None:
        resp = client.get("/api/components/components/gear/components/bolt-lib")
        data = resp.get_json()["component"]
        assert data["kind"] == "remote"
        assert data["locator"] == "repo://bolts"
        assert data["level"] == 2

    def test_missing_component(self, client) -> None:
        resp = client.get("/api/components/ghost")
        assert resp.status_code == 404
        assert resp.get_json()["detail"]["code"] == "NOT_FOUND"

    def test_not_a_project(self, client, tmp_path: Path) -> None:
        app.config["PROJECT_ROOT"] = str(tmp_path / "empty")
        resp = client.get("/api/tree")
        assert resp.status_code == 404
        assert resp.get_json()["detail"]["exit_code"] == 13

    def test_packages_empty(self, client) -> None:
        assert client.get("/api/packages").get_json()["packages"] == []

    def test_packages_lists_published(self, client, registry, populated) -> None:
        bolt = populated.find("bolt-lib")
        registry.publish(populated.abs_path(bolt), bolt.manifest, "repo://bolts")
        data = client.get("/api/packages").get_json()
        assert data["packages"] == [{"name": "bolt-lib", "latest": "1.0.0", "versions": ["1.0.0"]}]
