"""YAML 注册表基类

基于 YAML 文件的注册表共享加载、保存、增删改查逻辑，
子类只需指定 section_key。注册表后端（包名 → 代码仓地址）基于此实现。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from sliderule.core.exceptions import ConfigError
from sliderule.utils.yaml_io import load_yaml, save_yaml

logger = logging.getLogger(__name__)


class YamlRegistry:
    """YAML 文件注册表基类

    子类用法:
        class PackageIndex(YamlRegistry):
            section_key = "packages"
    """

    section_key: str = "entries"

    def __init__(self, registry_file: str | Path) -> None:
        self.registry_file = Path(registry_file)
        try:
            self._data: dict[str, Any] = load_yaml(self.registry_file)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigError(f"注册表文件无法读取: {self.registry_file}: {e}", target=str(self.registry_file)) from e
        section = self._data.get(self.section_key)
        if section is not None and not isinstance(section, dict):
            raise ConfigError(
                f"注册表段 {self.section_key} 必须是映射", target=str(self.registry_file),
            )

    def _section(self) -> dict[str, dict[str, Any]]:
        """获取当前 section 字典（自动创建）"""
        result: dict[str, dict[str, Any]] = self._data.setdefault(self.section_key, {})
        return result

    def _save(self) -> None:
        save_yaml(self.registry_file, self._data)

    def _put(self, name: str, entry: dict[str, Any]) -> dict[str, Any]:
        """写入条目并保存"""
        self._section()[name] = entry
        self._save()
        return entry

    def _get_raw(self, name: str) -> dict[str, Any] | None:
        return self._section().get(name)

    def _list_raw(self) -> list[dict[str, Any]]:
        """列出所有条目（带 name 字段）"""
        return [{"name": k, **(v or {})} for k, v in self._section().items()]
