"""Platform specifics for launching and killing the CLI."""

from __future__ import annotations

import asyncio
import os
import shutil
import signal
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..core.config import ConfigStore
from ..core.global_paths import GlobalPath
from ..util.log import Log, Logger
from .errors import ExecutableNotFoundError

CLI_COMMAND_KEY = "api.cliCommand"
DEFAULT_CLI_COMMAND = "claude"

KILL_GRACE_SECONDS = 2.0


@dataclass
class ExecutionEnvironment:
    executable: str
    env: Dict[str, str] = field(default_factory=dict)
    cwd: Optional[str] = None
    shell: bool = False


def fix_windows_path(path: str) -> str:
    """Turn MSYS style ``/c/Users/x`` paths into ``C:\\Users\\x``."""
    if len(path) >= 3 and path[0] == "/" and path[1].isalpha() and path[2] == "/":
        path = f"{path[1].upper()}:{path[2:]}"
    return path.replace("/", "\\")


class PlatformResolver:
    """Locates the CLI executable and builds its spawn environment."""

    def __init__(
        self,
        store: Optional[ConfigStore] = None,
        platform: Optional[str] = None,
        log: Optional[Logger] = None,
    ) -> None:
        self._store = store
        self._platform = platform or sys.platform
        self._log = log or Log.create({"service": "process.environment"})

    @property
    def windows(self) -> bool:
        return self._platform == "win32"

    def cli_command(self) -> str:
        if self._store is None:
            return DEFAULT_CLI_COMMAND
        value = self._store.get(CLI_COMMAND_KEY, DEFAULT_CLI_COMMAND)
        return value if isinstance(value, str) and value.strip() else DEFAULT_CLI_COMMAND

    def execution_environment(self, cwd: Optional[str] = None) -> ExecutionEnvironment:
        """Resolve the executable and environment for one spawn.

        Raises ``ExecutableNotFoundError`` if the command is not on ``PATH``
        and is not an existing file.
        """
        command = self.cli_command()
        executable = shutil.which(command)
        if executable is None and os.path.isfile(command):
            executable = command
        if executable is None:
            self._log.error("cli executable not found", {"command": command})
            raise ExecutableNotFoundError(command)

        if self.windows:
            executable = fix_windows_path(executable)

        env = dict(os.environ)
        env["CLAUDE_HOME"] = str(GlobalPath.cli_home())
        if self.windows:
            env["TEMP"] = "/tmp"
            env["TMP"] = "/tmp"

        self._log.debug("execution environment resolved", {"executable": executable, "cwd": cwd})
        return ExecutionEnvironment(executable=executable, env=env, cwd=cwd, shell=False)

    async def kill_process(self, pid: int, process: Any = None) -> None:
        """Terminate ``pid`` and its children.  Never raises."""
        try:
            if self.windows:
                proc = await asyncio.create_subprocess_exec(
                    "taskkill", "/pid", str(pid), "/t", "/f",
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.DEVNULL,
                )
                await proc.wait()
                return

            pgid = os.getpgid(pid)
            os.killpg(pgid, signal.SIGTERM)
            if process is not None:
                try:
                    await asyncio.wait_for(process.wait(), KILL_GRACE_SECONDS)
                except asyncio.TimeoutError:
                    pass
            else:
                await asyncio.sleep(KILL_GRACE_SECONDS)
            try:
                os.killpg(pgid, signal.SIGKILL)
            except ProcessLookupError:
                pass
        except ProcessLookupError:
            return
        except OSError as e:
            self._log.warn("platform kill failed, falling back to direct kill", {"pid": pid, "error": e})
            if process is not None:
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                except OSError as kill_error:
                    self._log.error("failed to kill process", {"pid": pid, "error": kill_error})
