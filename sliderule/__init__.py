"""sliderule - 开源硬件组件层级管理"""

__version__ = "0.3.0"
