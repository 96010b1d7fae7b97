"""Shared test helpers."""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Any

from tandem.core.config import ConfigStore
from tandem.core.config_schema import Scope
from tandem.process.environment import ExecutionEnvironment


def write_settings(store: ConfigStore, scope: Scope, data: dict[str, Any]) -> Path:
    """Write a settings file for ``scope`` and drop the store's cache."""
    path = store.path(scope)
    assert path is not None
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    store.reload()
    return path


def fake_cli(tmp_path: Path, body: str) -> Path:
    """Write an executable Python script standing in for the CLI."""
    script = tmp_path / "fake_cli"
    script.write_text(f"#!{sys.executable}\n{body}", encoding="utf-8")
    script.chmod(0o755)
    return script


class ScriptPlatform:
    """PlatformResolver stand-in that launches a Python script."""

    def __init__(self, script: Path) -> None:
        self.script = script
        self.killed: list[int] = []

    def execution_environment(self, cwd: str | None = None) -> ExecutionEnvironment:
        return ExecutionEnvironment(executable=str(self.script), env=dict(os.environ), cwd=cwd)

    async def kill_process(self, pid: int, process: Any = None) -> None:
        self.killed.append(pid)
        if process is not None and process.returncode is None:
            process.kill()
