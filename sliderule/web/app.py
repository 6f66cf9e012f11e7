"""只读 Web API（基于 Flask）

提供：组件层级、许可证清单、单个组件详情。

启动方式: sliderule serve --port 8888
"""

from __future__ import annotations

import logging
import os

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from sliderule.core.exceptions import SlideruleError
from sliderule.web.responses import from_error
from sliderule.web.routes import components_bp

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config["PROJECT_ROOT"] = os.getenv("SLIDERULE_PROJECT", ".")
app.register_blueprint(components_bp)


# =========================================================================
# 全局 JSON 错误处理
# =========================================================================


@app.errorhandler(SlideruleError)
def handle_sliderule_error(exc: SlideruleError):
    """业务异常按类型映射 HTTP 状态码"""
    return from_error(exc)


@app.errorhandler(HTTPException)
def handle_http_exception(exc: HTTPException):
    """将所有 HTTP 异常统一返回 JSON"""
    return jsonify(error=exc.description), exc.code


@app.errorhandler(Exception)
def handle_generic_exception(exc):  # noqa: ARG001
    """捕获未处理异常，返回 500 JSON"""
    logger.exception("未处理的异常")
    return jsonify(error="服务器内部错误"), 500


@app.route("/api/health")
def health():
    return jsonify(status="ok", project=app.config["PROJECT_ROOT"])


def run_server(project: str = ".", port: int = 8888, debug: bool = False, host: str = "127.0.0.1") -> None:
    app.config["PROJECT_ROOT"] = project
    logger.info("sliderule API 已启动: http://%s:%d (project=%s)", host, port, project)
    app.run(host=host, port=port, debug=debug)
