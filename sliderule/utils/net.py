"""网络工具 — 代码仓地址识别与名称校验"""

from __future__ import annotations

import re
from pathlib import Path
from urllib.parse import urlparse

from sliderule.core.exceptions import ValidationError

# user@host:path 形式的 scp 风格地址
_SCP_LIKE_RE = re.compile(r"^[\w.\-]+@[\w.\-]+:.+$")
_SAFE_NAME_RE = re.compile(r"^[a-zA-Z0-9_][a-zA-Z0-9_.\-]*$")
_SAFE_REF_RE = re.compile(r"^[a-zA-Z0-9_./@\-]+$")


def is_direct_address(reference: str) -> bool:
    """判断引用是否为直接的代码仓地址（而非注册表名称）

    直接地址包括: scheme://...、scp 风格 user@host:path、
    以 .git 结尾的地址，以及本地绝对/相对路径。
    """
    ref = reference.strip()
    if not ref:
        return False
    if urlparse(ref).scheme and "://" in ref:
        return True
    if _SCP_LIKE_RE.match(ref):
        return True
    if ref.endswith(".git"):
        return True
    return ref.startswith(("/", "./", "../", "~"))


def is_local_path(reference: str) -> bool:
    """直接地址中的本地文件系统路径（非 URL、非 scp 风格）"""
    ref = reference.strip()
    if not is_direct_address(ref):
        return False
    if urlparse(ref).scheme and "://" in ref:
        return False
    return not _SCP_LIKE_RE.match(ref)


def absolute_locator(locator: str) -> str:
    """本地路径地址转为绝对路径，其他地址原样返回

    git 在暂存目录或组件目录中执行，相对路径会相对于那里解析。
    """
    ref = locator.strip()
    if not is_local_path(ref):
        return ref
    return str(Path(ref).expanduser().resolve())


def name_from_locator(locator: str) -> str:
    """从地址推导组件名: 取最后一段并去掉 .git 后缀"""
    tail = locator.strip().rstrip("/")
    for sep in ("/", ":"):
        if sep in tail:
            tail = tail.rsplit(sep, 1)[-1]
    if tail.endswith(".git"):
        tail = tail[: -len(".git")]
    return tail


def validate_component_name(name: str) -> str:
    """校验组件名仅包含安全字符，防止路径穿越"""
    name = str(name).strip()
    if not _SAFE_NAME_RE.match(name):
        raise ValidationError(f"组件名包含非法字符: {name!r}", target=name)
    return name


def validate_ref(ref: str) -> str:
    """校验分支/tag/commit 引用"""
    if ref and not _SAFE_REF_RE.match(ref):
        raise ValidationError(f"ref 包含非法字符: {ref}", target=ref)
    return ref
