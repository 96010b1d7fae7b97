"""Connection check for the configured MCP servers."""

from __future__ import annotations

import asyncio
from typing import Optional

from ..process.environment import PlatformResolver
from ..util.log import Log, Logger
from .artifact import ArtifactBuilder
from .scope import McpStatus, ScopeResolver

PROBE_TIMEOUT_SECONDS = 30.0

log = Log.create({"service": "mcp.probe"})


async def probe(
    resolver: ScopeResolver,
    builder: ArtifactBuilder,
    platform: PlatformResolver,
    timeout: float = PROBE_TIMEOUT_SECONDS,
    logger: Optional[Logger] = None,
) -> McpStatus:
    """Build the artifact and ask the CLI to load it.

    The CLI is run as ``<cli> --version --mcp-config <path>``; exit code 0
    means the configuration was accepted.
    """
    logger = logger or log
    enabled = resolver.enabled()
    servers = resolver.servers()
    result = await builder.build(servers, enabled=enabled)
    if not result.configured:
        return resolver.status()

    environment = platform.execution_environment()
    try:
        proc = await asyncio.create_subprocess_exec(
            environment.executable,
            "--version",
            "--mcp-config",
            result.path,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            env=environment.env,
        )
    except OSError as e:
        logger.error("mcp probe failed to start", {"error": e})
        return McpStatus(status="error", message=str(e)[:100])

    try:
        output, _ = await asyncio.wait_for(proc.communicate(), timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.communicate()
        logger.warn("mcp probe timed out", {"timeout": timeout})
        return McpStatus(status="error", message=f"Timed out after {timeout:g}s")

    text = output.decode("utf-8", errors="replace").strip()
    servers_info = [entry.model_dump(exclude_none=True) for entry in servers.values()]
    if proc.returncode == 0:
        logger.info("mcp probe succeeded", {"servers": len(servers)})
        return McpStatus(status="connected", message="MCP servers connected successfully", servers=servers_info)

    logger.warn("mcp probe failed", {"code": proc.returncode})
    return McpStatus(status="error", message=text[:100] or f"Exit code {proc.returncode}", servers=servers_info)
