"""Lifecycle of the single CLI subprocess that serves a conversation turn.

A supervisor owns at most one process.  ``start_process`` resolves the
executable, builds the per-turn MCP artifact, spawns the CLI in stream-json
mode, writes the user message to stdin and then streams stdout and stderr
back through the caller's callbacks.  The handle is released before
``on_close`` runs, so the callback may immediately start the next turn.
"""

from __future__ import annotations

import asyncio
import codecs
import inspect
import json
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from ..mcp.artifact import ArtifactBuilder
from ..mcp.prompts import system_prompts
from ..mcp.scope import ScopeResolver, StdioServer
from ..util.log import Log, Logger
from .environment import ExecutionEnvironment, PlatformResolver
from .errors import ProcessAlreadyRunningError
from .stream import LineBuffer, parse_line

VALID_MODELS = frozenset({"opus", "sonnet"})

BASE_ARGS = (
    "-p",
    "--input-format", "stream-json",
    "--output-format", "stream-json",
    "--verbose",
    "--dangerously-skip-permissions",
)

READ_CHUNK = 64 * 1024

Callback = Callable[..., Union[None, Awaitable[None]]]


class ProcessState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    FAILED = "failed"


@dataclass(frozen=True)
class ProcessOptions:
    """One turn's request.

    Attributes:
        message: User message text
        cwd: Working directory for the CLI
        session_id: Session to continue
        resume_from: Session to resume, preferred over ``session_id``
        model: ``opus`` or ``sonnet``; anything else uses the CLI default
        images: Base64 encoded PNG attachments
        custom_instructions: Extra instructions for the CLI
        plan_mode: Ask the CLI to plan before acting
        thinking_mode: Pass ``thinking_intensity`` as a flag
        thinking_intensity: ``think``, ``think-hard``, ``think-harder`` or ``ultrathink``
    """
    message: str
    cwd: Optional[str] = None
    session_id: Optional[str] = None
    resume_from: Optional[str] = None
    model: Optional[str] = None
    images: Sequence[str] = ()
    custom_instructions: Optional[str] = None
    plan_mode: bool = False
    thinking_mode: bool = False
    thinking_intensity: Optional[str] = None


@dataclass
class ProcessCallbacks:
    on_data: Optional[Callback] = None
    on_error: Optional[Callback] = None
    on_close: Optional[Callback] = None


@dataclass
class RunningProcess:
    process: asyncio.subprocess.Process
    readers: List[asyncio.Task] = field(default_factory=list)
    waiter: Optional[asyncio.Task] = None

    @property
    def pid(self) -> int:
        return self.process.pid


def build_user_message(message: str, images: Sequence[str] = ()) -> Dict[str, Any]:
    content: List[Dict[str, Any]] = [{"type": "text", "text": message}]
    for data in images:
        content.append({
            "type": "image",
            "source": {"type": "base64", "media_type": "image/png", "data": data},
        })
    return {"type": "user", "message": {"role": "user", "content": content}}


def build_args(
    options: ProcessOptions,
    mcp_config_path: Optional[str] = None,
    system_prompt: Optional[str] = None,
) -> List[str]:
    args = list(BASE_ARGS)
    if mcp_config_path:
        args += ["--mcp-config", mcp_config_path]

    session = options.resume_from or options.session_id
    if session:
        args += ["--resume", session]

    if options.model in VALID_MODELS:
        args += ["--model", options.model]

    if options.thinking_mode and options.thinking_intensity:
        args.append(f"--{options.thinking_intensity}")

    if options.plan_mode:
        args.append("--plan")

    if options.custom_instructions:
        args += ["--custom-instructions", options.custom_instructions]

    if system_prompt and system_prompt.strip():
        args += ["--append-system-prompt", system_prompt.strip()]
    return args


async def _invoke(callback: Optional[Callback], *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class ProcessSupervisor:
    """Runs the CLI one turn at a time."""

    def __init__(
        self,
        platform: PlatformResolver,
        resolver: ScopeResolver,
        builder: ArtifactBuilder,
        log: Optional[Logger] = None,
    ) -> None:
        self._platform = platform
        self._resolver = resolver
        self._builder = builder
        self._log = log or Log.create({"service": "process.supervisor"})
        self._state = ProcessState.IDLE
        self._current: Optional[RunningProcess] = None
        self._generation = 0

    @property
    def state(self) -> ProcessState:
        return self._state

    @property
    def current_process(self) -> Optional[asyncio.subprocess.Process]:
        return self._current.process if self._current else None

    def is_process_running(self) -> bool:
        return self._current is not None

    async def start_process(self, options: ProcessOptions, callbacks: ProcessCallbacks) -> None:
        """Spawn the CLI for one turn and return once it is streaming.

        Raises ``ProcessAlreadyRunningError`` if a process is live or still
        starting.  Executable, artifact and spawn failures propagate after the
        supervisor has returned to idle.  A ``stop_process`` issued while
        starting kills the process as soon as it is spawned; ``on_close``
        still fires for it.
        """
        if self._state is not ProcessState.IDLE or self._current is not None:
            raise ProcessAlreadyRunningError()

        self._state = ProcessState.STARTING
        self._generation += 1
        generation = self._generation
        try:
            process = await self._spawn(options, callbacks, generation)
        except BaseException:
            if self._generation == generation:
                self._state = ProcessState.IDLE
            raise

        if self._generation != generation:
            self._log.info("start cancelled, killing cli", {"pid": process.pid})
            await self._abandon(process, callbacks)
            return

        running = RunningProcess(process=process)
        self._current = running
        self._state = ProcessState.RUNNING

        running.readers = [
            asyncio.create_task(self._read_stdout(process, callbacks)),
            asyncio.create_task(self._read_stderr(process, callbacks)),
        ]
        running.waiter = asyncio.create_task(self._wait(running, callbacks))

        payload = json.dumps(build_user_message(options.message, options.images))
        try:
            process.stdin.write((payload + "\n").encode("utf-8"))
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            self._log.warn("cli closed stdin early", {"error": e})
        finally:
            process.stdin.close()

    async def _spawn(
        self,
        options: ProcessOptions,
        callbacks: ProcessCallbacks,
        generation: int,
    ) -> asyncio.subprocess.Process:
        environment, args = await self._prepare(options)

        self._log.info("spawning cli", {
            "executable": environment.executable,
            "args": len(args),
            "cwd": environment.cwd,
        })
        try:
            return await asyncio.create_subprocess_exec(
                environment.executable,
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=environment.cwd,
                env=environment.env,
                start_new_session=sys.platform != "win32",
            )
        except (OSError, ValueError) as e:
            if self._generation == generation:
                self._state = ProcessState.FAILED
            self._log.error("cli process error", {"error": e})
            await self._deliver(callbacks.on_error, f"Process error: {e}")
            raise

    async def _abandon(self, process: asyncio.subprocess.Process, callbacks: ProcessCallbacks) -> None:
        if process.stdin is not None:
            process.stdin.close()
        try:
            await self._platform.kill_process(process.pid, process)
        except Exception as e:
            self._log.error("failed to stop cli", {"pid": process.pid, "error": e})
        code = await process.wait()
        try:
            await _invoke(callbacks.on_close, code)
        except Exception as e:
            self._log.error("close callback failed", {"error": e})

    async def _prepare(self, options: ProcessOptions) -> tuple[ExecutionEnvironment, List[str]]:
        environment = self._platform.execution_environment(options.cwd)

        enabled = self._resolver.enabled()
        servers = self._resolver.servers()
        result = await self._builder.build(servers, enabled=enabled)

        prompt = None
        if result.configured:
            prompt = system_prompts(result.servers.values())
            for server in result.servers.values():
                if isinstance(server, StdioServer) and isinstance(server.env, dict):
                    environment.env.update({k: str(v) for k, v in server.env.items()})

        args = build_args(options, result.path, prompt)
        return environment, args

    async def _read_stdout(self, process: asyncio.subprocess.Process, callbacks: ProcessCallbacks) -> None:
        buffer = LineBuffer()
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await process.stdout.read(READ_CHUNK)
            if not chunk:
                break
            for line in buffer.feed(decoder.decode(chunk)):
                await self._deliver(callbacks.on_data, parse_line(line))
        for line in buffer.feed(decoder.decode(b"", final=True)) + buffer.flush():
            await self._deliver(callbacks.on_data, parse_line(line))

    async def _read_stderr(self, process: asyncio.subprocess.Process, callbacks: ProcessCallbacks) -> None:
        buffer = LineBuffer()
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await process.stderr.read(READ_CHUNK)
            if not chunk:
                break
            for line in buffer.feed(decoder.decode(chunk)):
                await self._deliver(callbacks.on_error, line)
        for line in buffer.feed(decoder.decode(b"", final=True)) + buffer.flush():
            await self._deliver(callbacks.on_error, line)

    async def _deliver(self, callback: Optional[Callback], payload: Any) -> None:
        try:
            await _invoke(callback, payload)
        except Exception as e:
            self._log.error("stream callback failed", {"error": e})

    async def _wait(self, running: RunningProcess, callbacks: ProcessCallbacks) -> None:
        await asyncio.gather(*running.readers, return_exceptions=True)
        code = await running.process.wait()
        self._log.info("cli exited", {"pid": running.pid, "code": code})

        if self._current is running:
            self._current = None
            self._state = ProcessState.IDLE

        try:
            await _invoke(callbacks.on_close, code)
        except Exception as e:
            self._log.error("close callback failed", {"error": e})

    def _cancel_start(self) -> None:
        self._generation += 1
        self._state = ProcessState.IDLE

    async def stop_process(self) -> None:
        """Kill the current process.  The handle is released before killing.

        While a start is still in flight the supervisor returns to idle at once
        and the pending start kills its process as soon as it is spawned.
        """
        if self._state is ProcessState.STARTING:
            self._log.info("stop requested while starting")
            self._cancel_start()
            return

        running = self._current
        if running is None:
            return
        self._current = None
        self._state = ProcessState.IDLE

        self._log.info("stopping cli", {"pid": running.pid})
        if running.process.returncode is not None:
            return
        try:
            await self._platform.kill_process(running.pid, running.process)
        except Exception as e:
            self._log.error("failed to stop cli", {"pid": running.pid, "error": e})

    def dispose(self) -> None:
        """Kill any live process without waiting for it."""
        if self._state is ProcessState.STARTING:
            self._cancel_start()
        running = self._current
        self._current = None
        self._state = ProcessState.IDLE
        if running is None or running.process.returncode is not None:
            return
        try:
            running.process.kill()
        except ProcessLookupError:
            pass
        except OSError as e:
            self._log.error("failed to kill cli on dispose", {"pid": running.pid, "error": e})
