"""同步引擎模块

拆分说明:
- base.py: 协作者注入、项目根查找、许可证汇总
- fetcher.py: download / update（先拉到临时目录，再 rename 到位）
- engine.py: create / add / remove / upload / refactor / change_licenses
"""

from sliderule.services.sync.engine import SyncEngine
from sliderule.services.sync.fetcher import ComponentFetcher

__all__ = [
    "SyncEngine",
    "ComponentFetcher",
]
