"""统一异常体系

所有业务异常继承 SlideruleError，每个异常携带出错的路径/名称（target）。
CLI 层据 exit_code 映射进程退出码，Web 层据此映射 HTTP 状态码。

退出码约定:
  1        目标未关联代码仓，却请求了仅代码仓可用的操作
  10-19    组件树 / 清单 / 文件系统错误
  100-103  代码仓后端故障（本地打开 / 远端查找 / 传输 / 引用更新）
  200-202  注册表后端故障（未找到 / 有歧义 / 发布被拒）
"""

from __future__ import annotations

from enum import IntEnum


class SlideruleError(Exception):
    """框架基础异常"""

    code: str = "UNKNOWN"
    exit_code: int = 2

    def __init__(self, message: str, target: str = "") -> None:
        super().__init__(message)
        self.target = target

    def to_dict(self) -> dict[str, str | int]:
        return {
            "code": self.code,
            "exit_code": self.exit_code,
            "target": self.target,
            "message": str(self),
        }


class ConfigError(SlideruleError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"


class ValidationError(SlideruleError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, target: str = "", details: list[str] | None = None) -> None:
        super().__init__(message, target)
        self.details = details or []


class ExecutionError(SlideruleError):
    """外部命令执行失败"""

    code = "EXECUTION_ERROR"


# =========================================================================
# 组件树 / 清单
# =========================================================================


class NotFoundError(SlideruleError):
    """组件不存在"""

    code = "NOT_FOUND"
    exit_code = 10


class NameCollisionError(SlideruleError):
    """同级已存在同名组件或依赖"""

    code = "NAME_COLLISION"
    exit_code = 11


class ParentNotComponentError(SlideruleError):
    """目标父目录不是组件"""

    code = "PARENT_NOT_COMPONENT"
    exit_code = 12


class ManifestNotFoundError(SlideruleError):
    """组件清单文件不存在"""

    code = "MANIFEST_NOT_FOUND"
    exit_code = 13


class ManifestMalformedError(SlideruleError):
    """组件清单内容无法解析"""

    code = "MANIFEST_MALFORMED"
    exit_code = 14


class TreeCorruptError(SlideruleError):
    """构建组件树时遇到损坏的清单（非宽松模式）"""

    code = "TREE_CORRUPT"
    exit_code = 15


class WriteError(SlideruleError):
    """文件写入失败"""

    code = "WRITE_ERROR"
    exit_code = 16


class AlreadyRemoteError(SlideruleError):
    """组件已经是远程组件，不能再次重构"""

    code = "ALREADY_REMOTE"
    exit_code = 17


# =========================================================================
# 引用解析
# =========================================================================


class UnresolvedReferenceError(SlideruleError):
    """引用无法解析为拉取地址"""

    code = "UNRESOLVED_REFERENCE"
    exit_code = 200


class AmbiguousReferenceError(SlideruleError):
    """裸名称匹配到多个注册表条目"""

    code = "AMBIGUOUS_REFERENCE"
    exit_code = 201

    def __init__(self, message: str, target: str = "", candidates: list[str] | None = None) -> None:
        super().__init__(message, target)
        self.candidates = candidates or []


class PublishRejectedError(SlideruleError):
    """注册表拒绝发布"""

    code = "PUBLISH_REJECTED"
    exit_code = 202


class CyclicReferenceError(SlideruleError):
    """依赖引用会形成环"""

    code = "CYCLIC_REFERENCE"
    exit_code = 18


# =========================================================================
# 代码仓后端
# =========================================================================


class NotAssociatedWithRepositoryError(SlideruleError):
    """目标未关联代码仓，却请求了仅代码仓可用的操作"""

    code = "NOT_ASSOCIATED_WITH_REPOSITORY"
    exit_code = 1


class RepositoryFault(IntEnum):
    """代码仓故障阶段（最小粒度，调用方依赖此四分法）"""

    LOCAL_OPEN = 100
    REMOTE_LOOKUP = 101
    TRANSFER = 102
    REF_UPDATE = 103


class RepositoryError(SlideruleError):
    """代码仓后端错误基类"""

    code = "REPOSITORY_ERROR"

    def __init__(
        self, message: str, target: str = "",
        fault: RepositoryFault = RepositoryFault.TRANSFER,
    ) -> None:
        super().__init__(message, target)
        self.fault = fault

    @property
    def exit_code(self) -> int:  # type: ignore[override]
        return int(self.fault)

    def to_dict(self) -> dict[str, str | int]:
        data = super().to_dict()
        data["fault"] = self.fault.name
        return data


class FetchFailedError(RepositoryError):
    """拉取远程内容失败"""

    code = "FETCH_FAILED"


class PushRejectedError(RepositoryError):
    """推送被远端拒绝"""

    code = "PUSH_REJECTED"


class RepositoryCreationFailedError(RepositoryError):
    """无法创建/关联新的远程代码仓"""

    code = "REPOSITORY_CREATION_FAILED"
