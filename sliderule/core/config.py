"""集中配置管理

替代各模块散落的默认常量，提供统一的配置入口。
支持从 YAML 文件加载 + 编程式覆盖。
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field

import yaml

from sliderule.core.exceptions import ConfigError
from sliderule.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "sliderule.yml"


@dataclass
class Config:
    """全局配置"""

    # 目录 / 文件约定
    manifest_name: str = ".sr"
    components_dir: str = "components"
    registry_file: str = "data/registry.yml"

    # 代码仓
    remote_base: str = ""          # create_remote 在其下分配新仓库；为空时 refactor 需显式 URL
    default_branch: str = "master"
    git_timeout: int = 300
    commit_message: str = "Uploading changes"

    # 许可证默认值
    source_license: str = "Unlicense"
    documentation_license: str = "CC0-1.0"

    # 组件树
    lenient_tree: bool = False

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: str = DEFAULT_CONFIG_FILE) -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        try:
            data = load_yaml(path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigError(f"无法读取配置文件 {path}: {e}", target=path) from e
        if not data:
            return cls()
        known = {f for f in cls.__dataclass_fields__ if f != "extra"}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        try:
            cfg = cls(**matched)
        except TypeError as e:
            raise ConfigError(f"配置内容无效 {path}: {e}", target=path) from e
        cfg.extra = extra
        return cfg

    def to_dict(self) -> dict:
        return asdict(self)


# 全局单例，首次 import 时不加载文件；由 CLI / Web 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = DEFAULT_CONFIG_FILE) -> Config:
    """从文件初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.info("配置已加载: %s", path)
    return _current
