"""代码仓 / 注册表后端

- git_backend.py: RepositoryBackend 的 git 命令行实现
- registry.py: RegistryBackend 的 YAML 包索引实现
"""

from sliderule.services.repo.git_backend import GitBackend
from sliderule.services.repo.registry import PackageIndex

__all__ = [
    "GitBackend",
    "PackageIndex",
]
