"""组件清单读写与合并

清单是组件目录下的 YAML 文件（默认 .sr），同时作为"此目录是组件"的标记:

    name: gear
    version: 1.0.0
    description: Sliderule DOF component.
    source_license: Unlicense
    documentation_license: CC0-1.0
    license: (Unlicense AND CC0-1.0)
    dependencies:
      bolt-lib:
        source: repo://bolts
        installed: false

职责:
- load / save（原子写入: 先写临时文件再 rename）
- 合并: update 时用上游清单刷新本地清单，默认保留本地新增依赖
"""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any

import yaml

from sliderule.core.exceptions import ManifestMalformedError, ManifestNotFoundError, WriteError
from sliderule.core.models import DependencyRef, Manifest
from sliderule.utils.yaml_io import MAX_YAML_SIZE, atomic_write, dump_yaml, read_yaml

logger = logging.getLogger(__name__)

_KNOWN_KEYS = (
    "name", "version", "description",
    "source_license", "documentation_license", "license", "dependencies",
)


# =========================================================================
# 序列化
# =========================================================================


def _parse_dependencies(raw: Any, path: Path) -> list[DependencyRef]:
    if raw is None:
        return []
    if isinstance(raw, list):
        # 列表形式: [{name: x, source: y}, ...]
        entries = []
        for item in raw:
            if not isinstance(item, dict) or "name" not in item:
                raise ManifestMalformedError(f"依赖条目缺少 name: {item!r}", target=str(path))
            entries.append((str(item["name"]), item))
    elif isinstance(raw, dict):
        entries = list(raw.items())
    else:
        raise ManifestMalformedError(
            f"dependencies 必须是映射或列表，实际为 {type(raw).__name__}", target=str(path),
        )

    deps: list[DependencyRef] = []
    seen: set[str] = set()
    for name, info in entries:
        name = str(name)
        if name in seen:
            raise ManifestMalformedError(f"依赖重复声明: {name}", target=str(path))
        seen.add(name)
        if info is None or isinstance(info, str):
            # 简写形式: name: <locator>
            deps.append(DependencyRef(name=name, source=info or ""))
        elif isinstance(info, dict):
            deps.append(DependencyRef(
                name=name,
                source=str(info.get("source", "") or ""),
                installed=bool(info.get("installed", False)),
                version=str(info.get("version", "") or ""),
            ))
        else:
            raise ManifestMalformedError(f"依赖 {name} 的格式无效", target=str(path))
    return deps


def manifest_from_dict(data: dict[str, Any], *, default_name: str = "", path: Path | None = None) -> Manifest:
    """从字典构造 Manifest，未知字段保存在 extra 中"""
    where = Path(path) if path is not None else Path(default_name or ".")
    name = data.get("name") or default_name
    if not name:
        raise ManifestMalformedError("清单缺少 name", target=str(where))
    for key in ("version", "source_license", "documentation_license", "license", "description"):
        value = data.get(key)
        if value is not None and not isinstance(value, (str, int, float)):
            raise ManifestMalformedError(f"字段 {key} 必须是标量", target=str(where))
    return Manifest(
        name=str(name),
        version=str(data.get("version", "1.0.0") or "1.0.0"),
        description=str(data.get("description", "") or ""),
        source_license=str(data.get("source_license", "") or ""),
        documentation_license=str(data.get("documentation_license", "") or ""),
        license=str(data.get("license", "") or ""),
        dependencies=_parse_dependencies(data.get("dependencies"), where),
        extra={k: v for k, v in data.items() if k not in _KNOWN_KEYS},
    )


def manifest_to_dict(manifest: Manifest) -> dict[str, Any]:
    data: dict[str, Any] = {
        "name": manifest.name,
        "version": manifest.version,
    }
    if manifest.description:
        data["description"] = manifest.description
    data["source_license"] = manifest.source_license
    data["documentation_license"] = manifest.documentation_license
    if manifest.license:
        data["license"] = manifest.license
    deps: dict[str, dict[str, Any]] = {}
    for dep in manifest.dependencies:
        entry: dict[str, Any] = {"source": dep.source, "installed": dep.installed}
        if dep.version:
            entry["version"] = dep.version
        deps[dep.name] = entry
    data["dependencies"] = deps
    data.update(manifest.extra)
    return data


# =========================================================================
# 读写
# =========================================================================


def load(path: str | Path) -> Manifest:
    """读取清单文件

    异常:
        ManifestNotFoundError: 文件不存在
        ManifestMalformedError: 内容无法解析或字段类型错误
    """
    p = Path(path)
    if not p.is_file():
        raise ManifestNotFoundError(f"清单文件不存在: {p}", target=str(p))
    try:
        raw = read_yaml(p)
    except (yaml.YAMLError, ValueError, UnicodeDecodeError) as e:
        raise ManifestMalformedError(f"清单无法解析 {p}: {e}", target=str(p)) from e
    except OSError as e:
        raise ManifestNotFoundError(f"清单无法读取 {p}: {e}", target=str(p)) from e
    return _from_raw(raw, p)


def loads(text: str, *, path: str | Path) -> Manifest:
    """解析清单文本（如上游 revision 中的清单），path 用于默认组件名与报错

    异常:
        ManifestMalformedError: 内容无法解析或字段类型错误
    """
    p = Path(path)
    if len(text) > MAX_YAML_SIZE:
        raise ManifestMalformedError(f"清单过大: {p}", target=str(p))
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ManifestMalformedError(f"清单无法解析 {p}: {e}", target=str(p)) from e
    return _from_raw(raw, p)


def _from_raw(raw: Any, p: Path) -> Manifest:
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ManifestMalformedError(
            f"清单内容必须是映射，实际为 {type(raw).__name__}", target=str(p),
        )
    return manifest_from_dict(raw, default_name=p.parent.name, path=p)


def save(manifest: Manifest, path: str | Path) -> None:
    """原子写入清单文件

    异常:
        WriteError: 写入或 rename 失败
    """
    p = Path(path)
    try:
        atomic_write(p, dump_yaml(manifest_to_dict(manifest)))
    except (OSError, yaml.YAMLError) as e:
        raise WriteError(f"清单写入失败 {p}: {e}", target=str(p)) from e
    logger.debug("清单已保存: %s", p)


# =========================================================================
# 合并
# =========================================================================


def merge(local: Manifest, upstream: Manifest, *, hard: bool = False) -> Manifest:
    """用上游清单刷新本地清单

    版本、许可证、描述以上游为准；上游已声明的依赖取上游的 source/version，
    installed 标记沿用本地（反映磁盘状态）。hard=False 时保留本地新增、
    上游没有的依赖与扩展字段；hard=True 时完全以上游为准。
    """
    result = copy.deepcopy(upstream)
    if hard:
        return result

    local_by_name = {d.name: d for d in local.dependencies}
    for dep in result.dependencies:
        mine = local_by_name.get(dep.name)
        if mine is not None:
            dep.installed = mine.installed

    upstream_names = {d.name for d in result.dependencies}
    kept = [copy.deepcopy(d) for d in local.dependencies if d.name not in upstream_names]
    if kept:
        logger.info(
            "保留本地新增依赖 %s: %s",
            local.name, ", ".join(d.name for d in kept),
        )
    result.dependencies.extend(kept)
    result.extra = {**copy.deepcopy(local.extra), **result.extra}
    return result


def new_manifest(
    name: str, *,
    source_license: str,
    documentation_license: str,
    version: str = "1.0.0",
    description: str = "Sliderule DOF component.",
) -> Manifest:
    """新建组件时使用的初始清单"""
    return Manifest(
        name=name,
        version=version,
        description=description,
        source_license=source_license,
        documentation_license=documentation_license,
    )
