from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import pytest

from helpers import ScriptPlatform, fake_cli, write_settings
from tandem.core.config import ConfigStore
from tandem.core.config_schema import Scope
from tandem.mcp.artifact import ArtifactBuilder
from tandem.mcp.janitor import Janitor
from tandem.mcp.scope import ScopeResolver
from tandem.process.errors import ExecutableNotFoundError, ProcessAlreadyRunningError
from tandem.process.supervisor import (
    BASE_ARGS,
    ProcessCallbacks,
    ProcessOptions,
    ProcessState,
    ProcessSupervisor,
    build_args,
    build_user_message,
)

ECHO_CLI = """
import json, os, sys
line = sys.stdin.readline()
sys.stdout.write(json.dumps({"type": "system", "argv": sys.argv[1:], "token": os.environ.get("MCP_TOKEN")}) + "\\n")
sys.stdout.write(json.dumps({"type": "echo", "message": json.loads(line)}) + "\\n")
sys.stdout.write("plain text\\n\\n")
sys.stdout.flush()
sys.stderr.write("warning: slow network\\n")
sys.stderr.flush()
sys.stdin.read()
sys.stdout.write('{"type": "result"}')
sys.exit(3)
"""

SLEEP_CLI = """
import sys, time
sys.stdin.readline()
time.sleep(30)
"""


class _Recorder:
    def __init__(self, supervisor: Optional[ProcessSupervisor] = None) -> None:
        self.supervisor = supervisor
        self.data: list[dict[str, Any]] = []
        self.errors: list[str] = []
        self.codes: list[Optional[int]] = []
        self.running_at_close: list[bool] = []
        self.closed = asyncio.Event()

    async def on_data(self, event: dict[str, Any]) -> None:
        self.data.append(event)

    def on_error(self, line: str) -> None:
        self.errors.append(line)

    def on_close(self, code: Optional[int]) -> None:
        if self.supervisor is not None:
            self.running_at_close.append(self.supervisor.is_process_running())
        self.codes.append(code)
        self.closed.set()

    def callbacks(self) -> ProcessCallbacks:
        return ProcessCallbacks(on_data=self.on_data, on_error=self.on_error, on_close=self.on_close)


def _supervisor(tmp_path: Path, script: Path, settings: Optional[dict[str, Any]] = None) -> ProcessSupervisor:
    workspace = tmp_path / "ws"
    workspace.mkdir(exist_ok=True)
    store = ConfigStore(str(workspace), global_dir=str(tmp_path / "cfg"))
    if settings:
        write_settings(store, Scope.WORKSPACE, settings)
    builder = ArtifactBuilder(Janitor(str(tmp_path / "cli-home")), platform="linux", env={})
    return ProcessSupervisor(ScriptPlatform(script), ScopeResolver(store), builder)


@pytest.mark.anyio
async def test_turn_streams_events_and_releases_handle_before_close(tmp_path: Path) -> None:
    supervisor = _supervisor(tmp_path, fake_cli(tmp_path, ECHO_CLI))
    recorder = _Recorder(supervisor)
    options = ProcessOptions(message="hello", cwd=str(tmp_path), images=("aW1n",))

    await supervisor.start_process(options, recorder.callbacks())
    assert supervisor.state is ProcessState.RUNNING
    await asyncio.wait_for(recorder.closed.wait(), 10)

    assert recorder.codes == [3]
    assert recorder.running_at_close == [False]
    assert supervisor.state is ProcessState.IDLE
    assert supervisor.current_process is None

    kinds = [event["type"] for event in recorder.data]
    assert kinds == ["system", "echo", "text", "result"]
    assert recorder.data[0]["argv"] == list(BASE_ARGS)
    assert recorder.data[1]["message"] == build_user_message("hello", ["aW1n"])
    assert recorder.data[2] == {"type": "text", "data": "plain text"}
    assert recorder.errors == ["warning: slow network"]


@pytest.mark.anyio
async def test_second_start_is_rejected_while_running(tmp_path: Path) -> None:
    supervisor = _supervisor(tmp_path, fake_cli(tmp_path, SLEEP_CLI))
    first = _Recorder()
    await supervisor.start_process(ProcessOptions(message="one"), first.callbacks())
    process = supervisor.current_process

    with pytest.raises(ProcessAlreadyRunningError):
        await supervisor.start_process(ProcessOptions(message="two"), _Recorder().callbacks())

    assert supervisor.current_process is process
    await supervisor.stop_process()
    await asyncio.wait_for(first.closed.wait(), 10)


@pytest.mark.anyio
async def test_stop_releases_handle_immediately(tmp_path: Path) -> None:
    supervisor = _supervisor(tmp_path, fake_cli(tmp_path, SLEEP_CLI))
    first = _Recorder()
    await supervisor.start_process(ProcessOptions(message="one"), first.callbacks())

    await supervisor.stop_process()

    assert not supervisor.is_process_running()
    assert supervisor.state is ProcessState.IDLE

    second = _Recorder(supervisor)
    await supervisor.start_process(ProcessOptions(message="two"), second.callbacks())
    assert supervisor.is_process_running()

    await asyncio.wait_for(first.closed.wait(), 10)
    assert supervisor.is_process_running()

    await supervisor.stop_process()
    await asyncio.wait_for(second.closed.wait(), 10)


@pytest.mark.anyio
async def test_stop_without_process_is_noop(tmp_path: Path) -> None:
    supervisor = _supervisor(tmp_path, fake_cli(tmp_path, SLEEP_CLI))

    await supervisor.stop_process()
    supervisor.dispose()

    assert supervisor.state is ProcessState.IDLE


@pytest.mark.anyio
async def test_dispose_kills_without_waiting(tmp_path: Path) -> None:
    supervisor = _supervisor(tmp_path, fake_cli(tmp_path, SLEEP_CLI))
    recorder = _Recorder()
    await supervisor.start_process(ProcessOptions(message="one"), recorder.callbacks())

    supervisor.dispose()

    assert not supervisor.is_process_running()
    await asyncio.wait_for(recorder.closed.wait(), 10)
    assert recorder.codes[0] != 0


@pytest.mark.anyio
async def test_mcp_configuration_reaches_argv_and_environment(tmp_path: Path) -> None:
    settings = {
        "mcp.enabled": True,
        "mcp.servers": [
            {"name": "context7", "command": "npx", "args": ["-y", "@upstash/context7-mcp"]},
            {"name": "tokens", "command": "serve", "env": {"MCP_TOKEN": "abc"}},
        ],
    }
    supervisor = _supervisor(tmp_path, fake_cli(tmp_path, ECHO_CLI), settings)
    recorder = _Recorder()

    await supervisor.start_process(ProcessOptions(message="hi", model="sonnet"), recorder.callbacks())
    await asyncio.wait_for(recorder.closed.wait(), 10)

    system = recorder.data[0]
    argv = system["argv"]
    config_path = Path(argv[argv.index("--mcp-config") + 1])
    assert json.loads(config_path.read_text(encoding="utf-8"))["servers"]["tokens"] == {
        "command": "serve",
        "env": {"MCP_TOKEN": "abc"},
    }
    assert argv[argv.index("--model") + 1] == "sonnet"
    assert "## Context7" in argv[argv.index("--append-system-prompt") + 1]
    assert system["token"] == "abc"


@pytest.mark.anyio
async def test_spawn_failure_reports_and_returns_to_idle(tmp_path: Path) -> None:
    supervisor = _supervisor(tmp_path, tmp_path / "missing-cli")
    recorder = _Recorder()

    with pytest.raises(OSError):
        await supervisor.start_process(ProcessOptions(message="x"), recorder.callbacks())

    assert len(recorder.errors) == 1
    assert recorder.errors[0].startswith("Process error: ")
    assert supervisor.state is ProcessState.IDLE
    assert not supervisor.is_process_running()


@pytest.mark.anyio
async def test_missing_executable_leaves_supervisor_idle(tmp_path: Path) -> None:
    supervisor = _supervisor(tmp_path, fake_cli(tmp_path, SLEEP_CLI))

    def not_found(cwd: Optional[str] = None):  # type: ignore[no-untyped-def]
        raise ExecutableNotFoundError("claude")

    supervisor._platform.execution_environment = not_found  # type: ignore[method-assign]

    with pytest.raises(ExecutableNotFoundError):
        await supervisor.start_process(ProcessOptions(message="x"), _Recorder().callbacks())

    assert supervisor.state is ProcessState.IDLE


@pytest.mark.anyio
async def test_invalid_argument_fails_spawn_and_frees_supervisor(tmp_path: Path) -> None:
    supervisor = _supervisor(tmp_path, fake_cli(tmp_path, ECHO_CLI))
    recorder = _Recorder()

    with pytest.raises(ValueError):
        await supervisor.start_process(
            ProcessOptions(message="x", custom_instructions="a\x00b"),
            recorder.callbacks(),
        )

    assert recorder.errors[0].startswith("Process error: ")
    assert supervisor.state is ProcessState.IDLE

    second = _Recorder()
    await supervisor.start_process(ProcessOptions(message="y"), second.callbacks())
    await asyncio.wait_for(second.closed.wait(), 10)
    assert second.codes == [3]


def _gate_build(supervisor: ProcessSupervisor) -> tuple[asyncio.Event, asyncio.Event]:
    entered = asyncio.Event()
    release = asyncio.Event()
    build = supervisor._builder.build

    async def gated(*args: Any, **kwargs: Any):  # type: ignore[no-untyped-def]
        entered.set()
        await release.wait()
        return await build(*args, **kwargs)

    supervisor._builder.build = gated  # type: ignore[method-assign]
    return entered, release


@pytest.mark.anyio
async def test_stop_while_starting_kills_the_spawned_process(tmp_path: Path) -> None:
    supervisor = _supervisor(tmp_path, fake_cli(tmp_path, SLEEP_CLI))
    entered, release = _gate_build(supervisor)
    recorder = _Recorder()

    task = asyncio.create_task(supervisor.start_process(ProcessOptions(message="one"), recorder.callbacks()))
    await asyncio.wait_for(entered.wait(), 10)
    assert supervisor.state is ProcessState.STARTING

    await supervisor.stop_process()
    assert supervisor.state is ProcessState.IDLE

    release.set()
    await asyncio.wait_for(task, 10)

    assert recorder.closed.is_set()
    assert recorder.codes[0] != 0
    assert len(supervisor._platform.killed) == 1
    assert not supervisor.is_process_running()
    assert supervisor.state is ProcessState.IDLE


@pytest.mark.anyio
async def test_cancelled_start_returns_to_idle(tmp_path: Path) -> None:
    supervisor = _supervisor(tmp_path, fake_cli(tmp_path, ECHO_CLI))
    entered, release = _gate_build(supervisor)

    task = asyncio.create_task(supervisor.start_process(ProcessOptions(message="one"), _Recorder().callbacks()))
    await asyncio.wait_for(entered.wait(), 10)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert supervisor.state is ProcessState.IDLE
    release.set()

    recorder = _Recorder()
    await supervisor.start_process(ProcessOptions(message="two"), recorder.callbacks())
    await asyncio.wait_for(recorder.closed.wait(), 10)
    assert recorder.codes == [3]


def test_build_args_options() -> None:
    options = ProcessOptions(
        message="x",
        session_id="s-1",
        resume_from="r-2",
        model="opus",
        thinking_mode=True,
        thinking_intensity="think-hard",
        plan_mode=True,
        custom_instructions="be brief",
    )

    args = build_args(options, "/tmp/mcp-1/mcp-config.json", "  prompt  ")

    assert args[: len(BASE_ARGS)] == list(BASE_ARGS)
    assert args[len(BASE_ARGS):] == [
        "--mcp-config", "/tmp/mcp-1/mcp-config.json",
        "--resume", "r-2",
        "--model", "opus",
        "--think-hard",
        "--plan",
        "--custom-instructions", "be brief",
        "--append-system-prompt", "prompt",
    ]


def test_build_args_skips_default_model_and_unset_options() -> None:
    assert build_args(ProcessOptions(message="x", model="default")) == list(BASE_ARGS)
    assert build_args(ProcessOptions(message="x", thinking_intensity="think")) == list(BASE_ARGS)
    assert build_args(ProcessOptions(message="x", session_id="s-1"))[-2:] == ["--resume", "s-1"]


def test_user_message_shape() -> None:
    assert build_user_message("hi") == {
        "type": "user",
        "message": {"role": "user", "content": [{"type": "text", "text": "hi"}]},
    }
