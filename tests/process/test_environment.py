from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

from helpers import write_settings
from tandem.core.config import ConfigStore
from tandem.core.config_schema import Scope
from tandem.process import environment as environment_module
from tandem.process.environment import PlatformResolver, fix_windows_path
from tandem.process.errors import ExecutableNotFoundError


def test_resolves_configured_command(tmp_path: Path, isolated_paths: Path) -> None:
    store = ConfigStore(global_dir=str(tmp_path / "cfg"))
    write_settings(store, Scope.GLOBAL, {"api.cliCommand": sys.executable})

    env = PlatformResolver(store, platform="linux").execution_environment(str(tmp_path))

    assert env.executable == sys.executable
    assert env.cwd == str(tmp_path)
    assert env.env["CLAUDE_HOME"] == str(isolated_paths / ".claude")
    assert env.shell is False


def test_missing_executable_raises(tmp_path: Path) -> None:
    store = ConfigStore(global_dir=str(tmp_path / "cfg"))
    write_settings(store, Scope.GLOBAL, {"api.cliCommand": "definitely-not-a-real-cli-xyz"})

    with pytest.raises(ExecutableNotFoundError) as excinfo:
        PlatformResolver(store, platform="linux").execution_environment()

    assert excinfo.value.command == "definitely-not-a-real-cli-xyz"


def test_windows_environment_overrides_temp(monkeypatch, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
    monkeypatch.setattr(environment_module.shutil, "which", lambda command: "/c/tools/claude.cmd")

    env = PlatformResolver(platform="win32").execution_environment()

    assert env.executable == "C:\\tools\\claude.cmd"
    assert env.env["TEMP"] == "/tmp"
    assert env.env["TMP"] == "/tmp"


def test_default_command_is_claude() -> None:
    assert PlatformResolver().cli_command() == "claude"


def test_fix_windows_path() -> None:
    assert fix_windows_path("/c/Users/me/bin/claude") == "C:\\Users\\me\\bin\\claude"
    assert fix_windows_path("D:/tools/claude.exe") == "D:\\tools\\claude.exe"


@pytest.mark.anyio
@pytest.mark.skipif(sys.platform == "win32", reason="process groups are POSIX only")
async def test_kill_process_terminates_process_group() -> None:
    proc = await asyncio.create_subprocess_exec(
        sys.executable, "-c", "import time; time.sleep(30)",
        start_new_session=True,
    )

    await PlatformResolver().kill_process(proc.pid, proc)

    assert await asyncio.wait_for(proc.wait(), 5) != 0


@pytest.mark.anyio
async def test_kill_process_ignores_missing_pid() -> None:
    await PlatformResolver(platform="linux").kill_process(2**22 + 12345)
