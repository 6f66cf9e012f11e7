"""Web 层统一响应辅助函数

Blueprint 与 app.py 共用的成功响应与业务异常 → HTTP 状态码映射。
"""

from __future__ import annotations

from flask import Response, jsonify

from sliderule.core.exceptions import (
    ManifestNotFoundError,
    NameCollisionError,
    NotFoundError,
    SlideruleError,
    TreeCorruptError,
)

# 业务异常 → HTTP 状态码，未列出的按 400 处理
_STATUS_BY_ERROR: tuple[tuple[type[SlideruleError], int], ...] = (
    (NotFoundError, 404),
    (ManifestNotFoundError, 404),
    (NameCollisionError, 409),
    (TreeCorruptError, 500),
)


def ok(data: dict, status: int = 200) -> tuple[Response, int] | Response:
    """成功响应"""
    if status == 200:
        return jsonify(data)
    return jsonify(data), status


def error_status(exc: SlideruleError) -> int:
    for cls, status in _STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return status
    return 400


def from_error(exc: SlideruleError) -> tuple[Response, int]:
    """业务异常 → JSON 错误体"""
    return jsonify(error=str(exc), detail=exc.to_dict()), error_status(exc)
