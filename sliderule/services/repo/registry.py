"""注册表后端 - 基于 YAML 包索引

包索引结构:

    packages:
      "@acme/bolt-lib":
        latest: 1.1.0
        versions:
          1.0.0: https://git.example.com/acme/bolt-lib.git
          1.1.0: https://git.example.com/acme/bolt-lib.git

职责:
- 名称解析: 裸名 / @scope/name，可选版本
- 发布: 登记组件版本 → 代码仓地址
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from sliderule.core.exceptions import (
    AmbiguousReferenceError,
    PublishRejectedError,
    UnresolvedReferenceError,
)
from sliderule.core.models import Manifest
from sliderule.core.registry import YamlRegistry

logger = logging.getLogger(__name__)


class PackageIndex(YamlRegistry):
    """YAML 包索引（RegistryBackend 实现）"""

    section_key = "packages"

    def _candidates(self, name: str) -> list[str]:
        keys = list(self._section())
        if name.startswith("@") and "/" in name:
            return [k for k in keys if k == name]
        return [k for k in keys if k == name or k.endswith(f"/{name}")]

    @staticmethod
    def _versions(entry: dict[str, Any] | None) -> dict[str, str]:
        versions = (entry or {}).get("versions") or {}
        return {str(k): str(v) for k, v in versions.items()}

    def resolve_name(self, name: str, version: str = "") -> str:
        """把注册表名称解析为代码仓地址"""
        candidates = self._candidates(name)
        if not candidates:
            raise UnresolvedReferenceError(f"注册表中不存在: {name}", target=name)
        if len(candidates) > 1:
            raise AmbiguousReferenceError(
                f"名称 {name} 匹配多个注册表条目，请指定 scope: {', '.join(sorted(candidates))}",
                target=name, candidates=sorted(candidates),
            )

        key = candidates[0]
        entry = self._get_raw(key)
        versions = self._versions(entry)
        if version:
            if version not in versions:
                raise UnresolvedReferenceError(
                    f"{key}@{version} 不存在，可用版本: {sorted(versions)}", target=f"{key}@{version}",
                )
            return versions[version]

        latest = str((entry or {}).get("latest", "") or "")
        if latest and latest in versions:
            return versions[latest]
        if len(versions) == 1:
            return next(iter(versions.values()))
        if not versions:
            raise UnresolvedReferenceError(f"{key} 没有任何已发布版本", target=key)
        raise AmbiguousReferenceError(
            f"{key} 有多个版本且未标记 latest，请指定版本: {sorted(versions)}",
            target=key, candidates=[f"{key}@{v}" for v in sorted(versions)],
        )

    def publish(self, dest: Path, manifest: Manifest, locator: str) -> None:
        """登记组件版本；同版本指向不同地址时拒绝"""
        entry = dict(self._get_raw(manifest.name) or {})
        versions = self._versions(entry)
        existing = versions.get(manifest.version)
        if existing is not None and existing != locator:
            raise PublishRejectedError(
                f"{manifest.name}@{manifest.version} 已发布到 {existing}，拒绝改写为 {locator}",
                target=manifest.name,
            )
        if existing == locator and entry.get("latest") == manifest.version:
            logger.info("注册表已是最新: %s@%s", manifest.name, manifest.version)
            return
        versions[manifest.version] = locator
        entry["versions"] = versions
        entry["latest"] = manifest.version
        self._put(manifest.name, entry)
        logger.info("已发布到注册表: %s@%s -> %s (%s)", manifest.name, manifest.version, locator, dest)

    def list_packages(self) -> list[dict[str, Any]]:
        """格式化包列表用于查询"""
        return [
            {
                "name": item["name"],
                "latest": str(item.get("latest", "") or ""),
                "versions": sorted(self._versions(item)),
            }
            for item in self._list_raw()
        ]
