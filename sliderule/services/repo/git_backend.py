"""代码仓后端 - 基于 git 命令行

职责:
- clone / fetch / read_revision / checkout / push / init
- create_remote: 在 remote_base 下分配新仓库（本地目录时创建 bare 仓库）
- 故障归类: 本地打开 / 远端查找 / 传输 / 引用更新
"""

from __future__ import annotations

import logging
import os
import re
import sys
from collections.abc import Sequence
from pathlib import Path

from sliderule.core.exceptions import (
    FetchFailedError,
    PushRejectedError,
    RepositoryCreationFailedError,
    RepositoryError,
    RepositoryFault,
)
from sliderule.utils.net import is_direct_address, is_local_path, validate_ref
from sliderule.utils.shell import CommandExecutor, CommandResult, get_executor
from sliderule.utils.yaml_io import atomic_write

logger = logging.getLogger(__name__)

_REMOTE_LOOKUP_RE = re.compile(
    r"not found|does not appear to be a git repository|could not resolve host"
    r"|does not exist|could not read from remote|no such remote|couldn't find remote ref",
    re.IGNORECASE,
)
_REJECTED_RE = re.compile(r"\[rejected\]|non-fast-forward|fetch first|failed to push", re.IGNORECASE)
_NOTHING_TO_COMMIT_RE = re.compile(r"nothing to commit|nothing added to commit", re.IGNORECASE)
_MISSING_PATH_RE = re.compile(r"does not exist in|exists on disk, but not in", re.IGNORECASE)
_COMMAND_MISSING_RC = 127


def classify_failure(result: CommandResult, default: RepositoryFault) -> RepositoryFault:
    """按 git 输出把失败归入四类故障之一"""
    if result.returncode == _COMMAND_MISSING_RC:
        return RepositoryFault.LOCAL_OPEN
    if _REMOTE_LOOKUP_RE.search(result.output):
        return RepositoryFault.REMOTE_LOOKUP
    return default


class GitBackend:
    """git 代码仓后端（RepositoryBackend 实现）"""

    def __init__(
        self,
        *,
        remote_base: str = "",
        default_branch: str = "master",
        timeout: int = 300,
        executor: CommandExecutor | None = None,
    ) -> None:
        self.remote_base = remote_base
        self.default_branch = default_branch
        self.timeout = timeout
        self._executor = executor

    @property
    def executor(self) -> CommandExecutor:
        return self._executor or get_executor()

    def _git(self, args: list[str], cwd: Path) -> CommandResult:
        env = {**os.environ, "GIT_TERMINAL_PROMPT": "0"}
        return self.executor.execute(
            ["git", *args], cwd=str(cwd), env=env, timeout=self.timeout,
        )

    @staticmethod
    def _tail(result: CommandResult) -> str:
        return result.output[-300:]

    # ------------------------------------------------------------------
    # 标记 / 查询
    # ------------------------------------------------------------------

    def is_repository(self, path: Path) -> bool:
        return (Path(path) / ".git").exists()

    def remote_url(self, path: Path) -> str:
        if not self.is_repository(path):
            return ""
        r = self._git(["config", "--get", "remote.origin.url"], Path(path))
        return r.stdout.strip() if r.success else ""

    def head_ref(self, path: Path) -> str:
        if not self.is_repository(path):
            return ""
        r = self._git(["rev-parse", "HEAD"], Path(path))
        return r.stdout.strip()[:12] if r.success else ""

    # ------------------------------------------------------------------
    # 拉取
    # ------------------------------------------------------------------

    def clone(self, locator: str, dest: Path, *, ref: str = "") -> None:
        """克隆到 dest；ref 不是分支/tag 时回退为完整 clone + checkout"""
        validate_ref(ref)
        parent = Path(dest).parent
        if not parent.is_dir():
            raise FetchFailedError(
                f"目标目录不可用: {parent}", target=locator, fault=RepositoryFault.LOCAL_OPEN,
            )

        args = ["clone", locator, str(dest)]
        if ref:
            args = ["clone", "--branch", ref, locator, str(dest)]
        r = self._git(args, parent)
        if r.success:
            logger.info("已克隆: %s -> %s", locator, dest)
            return
        if not ref:
            raise FetchFailedError(
                f"git clone 失败 (rc={r.returncode}): {self._tail(r)}",
                target=locator, fault=classify_failure(r, RepositoryFault.TRANSFER),
            )

        # ref 可能是 commit，回退: 完整 clone + checkout
        r2 = self._git(["clone", locator, str(dest)], parent)
        if not r2.success:
            raise FetchFailedError(
                f"git clone 失败 (rc={r2.returncode}): {self._tail(r2)}",
                target=locator, fault=classify_failure(r2, RepositoryFault.TRANSFER),
            )
        r3 = self._git(["checkout", ref], Path(dest))
        if not r3.success:
            raise FetchFailedError(
                f"git checkout {ref} 失败: {self._tail(r3)}",
                target=locator, fault=RepositoryFault.REF_UPDATE,
            )
        logger.info("已克隆: %s@%s -> %s", locator, ref, dest)

    def fetch(self, dest: Path) -> str:
        """git fetch origin HEAD，返回 FETCH_HEAD 的 commit；工作区不变"""
        if not self.is_repository(dest):
            raise FetchFailedError(
                f"不是代码仓: {dest}", target=str(dest), fault=RepositoryFault.LOCAL_OPEN,
            )
        r = self._git(["fetch", "origin", "HEAD"], Path(dest))
        if not r.success:
            raise FetchFailedError(
                f"git fetch 失败 (rc={r.returncode}): {self._tail(r)}",
                target=str(dest), fault=classify_failure(r, RepositoryFault.TRANSFER),
            )
        r = self._git(["rev-parse", "FETCH_HEAD"], Path(dest))
        if not r.success:
            raise FetchFailedError(
                f"无法解析 FETCH_HEAD: {self._tail(r)}", target=str(dest), fault=RepositoryFault.REF_UPDATE,
            )
        return r.stdout.strip()

    def read_revision(self, dest: Path, revision: str, relpath: str) -> str | None:
        """git show <revision>:<relpath>"""
        r = self._git(["show", f"{revision}:{relpath}"], Path(dest))
        if r.success:
            return r.stdout
        if _MISSING_PATH_RE.search(r.output):
            return None
        raise FetchFailedError(
            f"无法读取 {revision}:{relpath}: {self._tail(r)}",
            target=str(dest), fault=classify_failure(r, RepositoryFault.LOCAL_OPEN),
        )

    def checkout(self, dest: Path, revision: str) -> None:
        """git reset --hard <revision>（仓库级后写者胜出）"""
        r = self._git(["reset", "--hard", revision], Path(dest))
        if not r.success:
            raise FetchFailedError(
                f"git reset 失败 (rc={r.returncode}): {self._tail(r)}",
                target=str(dest), fault=RepositoryFault.REF_UPDATE,
            )
        logger.info("已更新: %s -> %s", dest, revision[:12])

    # ------------------------------------------------------------------
    # 推送
    # ------------------------------------------------------------------

    def push(self, dest: Path, message: str, *, exclude: Sequence[str] = ()) -> None:
        """git add -A → commit → push origin HEAD

        exclude 中的目录先写入 .git/info/exclude，不会以内嵌仓库形式进入提交。
        """
        if not self.is_repository(dest):
            raise PushRejectedError(
                f"不是代码仓: {dest}", target=str(dest), fault=RepositoryFault.LOCAL_OPEN,
            )
        cwd = Path(dest)
        if exclude:
            self._exclude(cwd, exclude)
        r = self._git(["add", "-A"], cwd)
        if not r.success:
            raise PushRejectedError(
                f"git add 失败: {self._tail(r)}", target=str(dest), fault=RepositoryFault.LOCAL_OPEN,
            )

        # Windows 某些配置下不关闭 sideband 时 git push 会挂起
        if sys.platform.startswith("win"):
            self._git(["config", "--local", "sendpack.sideband", "false"], cwd)

        r = self._git(["commit", "-m", message], cwd)
        if not r.success and not _NOTHING_TO_COMMIT_RE.search(r.output):
            raise PushRejectedError(
                f"git commit 失败: {self._tail(r)}", target=str(dest), fault=RepositoryFault.REF_UPDATE,
            )

        r = self._git(["push", "-u", "origin", "HEAD"], cwd)
        if not r.success:
            if _REJECTED_RE.search(r.output):
                fault = RepositoryFault.REF_UPDATE
            else:
                fault = classify_failure(r, RepositoryFault.TRANSFER)
            raise PushRejectedError(
                f"git push 失败 (rc={r.returncode}): {self._tail(r)}", target=str(dest), fault=fault,
            )
        logger.info("已推送: %s", dest)

    def _exclude(self, cwd: Path, paths: Sequence[str]) -> None:
        """追加本地忽略条目（不改动工作区文件）"""
        r = self._git(["rev-parse", "--git-path", "info/exclude"], cwd)
        if not r.success:
            raise PushRejectedError(
                f"无法定位 info/exclude: {self._tail(r)}", target=str(cwd), fault=RepositoryFault.LOCAL_OPEN,
            )
        exclude_file = cwd / r.stdout.strip()
        try:
            text = exclude_file.read_text(encoding="utf-8") if exclude_file.is_file() else ""
            present = set(text.splitlines())
            missing = [e for e in (f"/{p.strip('/')}/" for p in paths) if e not in present]
            if not missing:
                return
            if text and not text.endswith("\n"):
                text += "\n"
            atomic_write(exclude_file, text + "".join(f"{e}\n" for e in missing))
        except OSError as e:
            raise PushRejectedError(
                f"无法写入 {exclude_file}: {e}", target=str(cwd), fault=RepositoryFault.LOCAL_OPEN,
            ) from e
        logger.info("提交排除远程子组件: %s", ", ".join(missing))

    # ------------------------------------------------------------------
    # 创建 / 初始化
    # ------------------------------------------------------------------

    def create_remote(self, name: str) -> str:
        """在 remote_base 下分配新仓库地址

        remote_base 为本地目录时直接创建 bare 仓库；为远程地址时
        只拼接地址，由托管端在首次推送时创建或预先建好。
        """
        if not self.remote_base:
            raise RepositoryCreationFailedError(
                "未配置 remote_base，请显式提供远程仓库地址",
                target=name, fault=RepositoryFault.REMOTE_LOOKUP,
            )

        base = self.remote_base
        if is_direct_address(base) and not is_local_path(base):
            locator = f"{base.rstrip('/')}/{name}.git"
            logger.info("分配远程仓库地址: %s", locator)
            return locator

        bare = Path(base).expanduser().resolve() / f"{name}.git"
        if bare.exists():
            raise RepositoryCreationFailedError(
                f"远程仓库已存在: {bare}", target=name, fault=RepositoryFault.REMOTE_LOOKUP,
            )
        try:
            bare.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RepositoryCreationFailedError(
                f"无法创建目录 {bare.parent}: {e}", target=name, fault=RepositoryFault.LOCAL_OPEN,
            ) from e
        r = self._git(["init", "--bare", f"--initial-branch={self.default_branch}", str(bare)], bare.parent)
        if not r.success:
            raise RepositoryCreationFailedError(
                f"git init --bare 失败: {self._tail(r)}", target=name,
                fault=classify_failure(r, RepositoryFault.LOCAL_OPEN),
            )
        logger.info("已创建远程仓库: %s", bare)
        return str(bare)

    def init(self, dest: Path, locator: str) -> None:
        """初始化代码仓并设置 origin"""
        cwd = Path(dest)
        r = self._git(["init", f"--initial-branch={self.default_branch}"], cwd)
        if not r.success:
            raise RepositoryCreationFailedError(
                f"git init 失败: {self._tail(r)}", target=str(dest),
                fault=classify_failure(r, RepositoryFault.LOCAL_OPEN),
            )
        r = self._git(["remote", "add", "origin", locator], cwd)
        if not r.success:
            raise RepositoryCreationFailedError(
                f"无法设置远程地址: {self._tail(r)}", target=str(dest), fault=RepositoryFault.REF_UPDATE,
            )
        logger.info("代码仓已初始化: %s (origin=%s)", dest, locator)


__all__ = ["GitBackend", "RepositoryError", "classify_failure"]
