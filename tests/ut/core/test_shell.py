"""shell.py LocalExecutor 单元测试"""

from __future__ import annotations

import os

from sliderule.utils.shell import CommandResult, LocalExecutor, get_executor, set_executor


class TestLocalExecutor:
    def test_success(self, tmp_path) -> None:
        r = LocalExecutor().execute(["echo", "hello"], cwd=str(tmp_path))
        assert r.success
        assert "hello" in r.stdout

    def test_failure_returncode(self, tmp_path) -> None:
        r = LocalExecutor().execute(["false"], cwd=str(tmp_path))
        assert not r.success

    def test_missing_command(self, tmp_path) -> None:
        r = LocalExecutor().execute(["sliderule-no-such-binary"], cwd=str(tmp_path))
        assert r.returncode == 127
        assert "command not found" in r.stderr

    def test_env_passed(self, tmp_path) -> None:
        env = {**os.environ, "MY_TEST_VAR": "42"}
        r = LocalExecutor().execute(["env"], cwd=str(tmp_path), env=env)
        assert "MY_TEST_VAR=42" in r.stdout


class TestCommandResult:
    def test_output_merges_streams(self) -> None:
        assert CommandResult(1, "out", "err").output == "out\nerr"


class TestDefaultExecutor:
    def test_replace(self) -> None:
        original = get_executor()

        class Recorder:
            def execute(self, cmd, *, cwd=".", env=None, timeout=None):
                return CommandResult(0, " ".join(cmd), "")

        try:
            set_executor(Recorder())
            assert get_executor().execute(["git", "status"]).stdout == "git status"
        finally:
            set_executor(original)
