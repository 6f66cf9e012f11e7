"""组件与注册表查询 API Blueprint（只读）"""

from __future__ import annotations

from flask import Blueprint, Response, current_app

from sliderule.core.report import as_dicts, hierarchy, levels_descending, license_expression, list_all_licenses
from sliderule.core.tree import ComponentTree
from sliderule.web.responses import ok

components_bp = Blueprint("components", __name__, url_prefix="/api")


def _tree() -> ComponentTree:
    from sliderule.services.container import get_container
    return get_container().engine.open(current_app.config["PROJECT_ROOT"])


@components_bp.route("/tree", methods=["GET"])
def tree() -> tuple[Response, int] | Response:
    t = _tree()
    return ok({
        "project": str(t.root_path),
        "components": as_dicts(hierarchy(t)),
        "levels": [{"level": level, "paths": paths} for level, paths in levels_descending(t)],
    })


@components_bp.route("/licenses", methods=["GET"])
def licenses() -> tuple[Response, int] | Response:
    t = _tree()
    return ok({
        "expression": license_expression(t),
        "components": as_dicts(list_all_licenses(t)),
    })


@components_bp.route("/components/<path:target>", methods=["GET"])
def component(target: str) -> tuple[Response, int] | Response:
    t = _tree()
    node = t.find(target)
    data = node.to_dict()
    data["dependencies"] = as_dicts(node.manifest.dependencies) if node.manifest else []
    data["license_expression"] = license_expression(t, node)
    return ok({"component": data})


@components_bp.route("/packages", methods=["GET"])
def packages() -> tuple[Response, int] | Response:
    from sliderule.services.container import get_container
    return ok({"packages": get_container().registry.list_packages()})
