"""Web 路由模块 - Blueprint 集合

- components_bp.py: 组件树 / 许可证 / 单个组件查询
"""

from sliderule.web.routes.components_bp import components_bp

__all__ = [
    "components_bp",
]
