"""Application service container and lifecycle."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

from ..core.config import ConfigStore
from ..mcp.artifact import ArtifactBuilder
from ..mcp.janitor import Janitor
from ..mcp.scope import ScopeResolver
from ..mcp.secret import FileSecretStore, GeminiIntegration, SecretInjector, SecretStore
from ..process.environment import PlatformResolver
from ..process.supervisor import ProcessCallbacks, ProcessOptions, ProcessSupervisor
from ..util.log import Log

log = Log.create({"service": "runtime"})


class AppContext:
    """Application-level service container.

    Created once per CLI invocation for one workspace and threaded through
    every command.  Components receive their collaborators here instead of
    constructing their own.
    """

    __slots__ = (
        "workspace",
        "folder",
        "store",
        "secrets",
        "gemini",
        "injector",
        "janitor",
        "resolver",
        "builder",
        "platform",
        "supervisor",
        "started",
    )

    def __init__(
        self,
        workspace: Optional[str] = None,
        folder: Optional[str] = None,
        *,
        store: Optional[ConfigStore] = None,
        secrets: Optional[SecretStore] = None,
        platform: Optional[PlatformResolver] = None,
        artifact_root: Optional[str] = None,
    ) -> None:
        self.workspace = workspace
        self.folder = folder
        self.store = store or ConfigStore(workspace, folder)
        self.secrets = secrets or FileSecretStore()
        self.gemini = GeminiIntegration(self.store, self.secrets)
        self.injector = SecretInjector(self.gemini)
        self.janitor = Janitor(artifact_root)
        self.resolver = ScopeResolver(self.store)
        self.builder = ArtifactBuilder(self.janitor, self.injector)
        self.platform = platform or PlatformResolver(self.store)
        self.supervisor = ProcessSupervisor(self.platform, self.resolver, self.builder)
        self.started = False

    async def startup(self) -> None:
        """Sweep scratch files left in the workspace by earlier runs."""
        if self.started:
            return
        removed = await self._sweep()
        if removed:
            log.info("startup cleanup", {"removed": removed})
        self.started = True

    async def _sweep(self, *extra: Optional[str]) -> int:
        roots = list(dict.fromkeys(root for root in (self.workspace, self.folder, *extra) if root))
        if not roots:
            return 0
        return await self.janitor.cleanup_recursive(roots)

    async def run_turn(
        self,
        options: ProcessOptions,
        on_data: Optional[Callable[[dict], Any]] = None,
        on_error: Optional[Callable[[str], Any]] = None,
    ) -> Optional[int]:
        """Run one turn to completion and return the CLI's exit code.

        Scratch files the CLI left in the workspace are swept once it exits.
        """
        done: asyncio.Future[Optional[int]] = asyncio.get_running_loop().create_future()

        def on_close(code: Optional[int]) -> None:
            if not done.done():
                done.set_result(code)

        await self.supervisor.start_process(
            options,
            ProcessCallbacks(on_data=on_data, on_error=on_error, on_close=on_close),
        )
        try:
            code = await done
        except asyncio.CancelledError:
            await self.supervisor.stop_process()
            raise

        try:
            removed = await self._sweep(options.cwd)
        except OSError as e:
            log.warn("post-turn cleanup failed", {"error": e})
        else:
            if removed:
                log.info("post-turn cleanup", {"removed": removed})
        return code

    async def shutdown(self) -> None:
        await self.supervisor.stop_process()
        self.started = False
