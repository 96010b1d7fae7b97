"""MCP management CLI commands."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import typer
from rich.console import Console

from ...mcp.probe import probe
from ...runtime import AppContext
from ...util.error import TandemError, format_error

app = typer.Typer(help="Inspect and build MCP configuration")
console = Console()


def _workspace(path: Optional[str]) -> str:
    return str(Path(path or Path.cwd()).resolve())


async def _with_runtime(workspace: str, fn: Callable[[AppContext], Awaitable[None]]) -> None:
    ctx = AppContext(workspace)
    try:
        await fn(ctx)
    finally:
        await ctx.shutdown()


def _run(workspace: str, fn: Callable[[AppContext], Awaitable[None]]) -> None:
    try:
        asyncio.run(_with_runtime(workspace, fn))
    except TandemError as e:
        console.print(f"[red]{format_error(e) or e}[/red]")
        raise typer.Exit(1)


def _server_line(server: dict[str, Any]) -> str:
    name = server.get("name", "?")
    kind = server.get("type", "stdio")
    target = server.get("url") if kind in ("http", "sse") else server.get("command")
    return f"  [cyan]{name}[/cyan] [dim]{kind}[/dim] {target or ''}".rstrip()


WorkspaceOption = typer.Option(None, "--workspace", "-w", help="Workspace directory")


@app.command("status")
def status_command(workspace: Optional[str] = WorkspaceOption) -> None:
    """Show the merged MCP server set."""

    async def run(ctx: AppContext) -> None:
        status = ctx.resolver.status()
        console.print(f"{status.status}: {status.message}")
        for server in status.servers:
            console.print(_server_line(server))

    _run(_workspace(workspace), run)


@app.command("build")
def build_command(workspace: Optional[str] = WorkspaceOption) -> None:
    """Write the MCP config artifact and print its path."""

    async def run(ctx: AppContext) -> None:
        result = await ctx.builder.build(ctx.resolver.servers(), enabled=ctx.resolver.enabled())
        if not result.configured:
            console.print("No MCP configuration written")
            return
        console.print(result.path)

    _run(_workspace(workspace), run)


@app.command("clean")
def clean_command(workspace: Optional[str] = WorkspaceOption) -> None:
    """Remove stale MCP artifacts and CLI scratch files."""

    async def run(ctx: AppContext) -> None:
        artifacts = ctx.janitor.cleanup_stale()
        roots = [root for root in (ctx.workspace, ctx.folder) if root]
        scratch = await ctx.janitor.cleanup_recursive(roots)
        console.print(f"Removed {artifacts} artifact(s) and {scratch} scratch file(s)")

    _run(_workspace(workspace), run)


@app.command("test")
def test_command(workspace: Optional[str] = WorkspaceOption) -> None:
    """Ask the CLI to load the MCP configuration."""

    async def run(ctx: AppContext) -> None:
        status = await probe(ctx.resolver, ctx.builder, ctx.platform)
        color = {"connected": "green", "error": "red"}.get(status.status, "yellow")
        console.print(f"[{color}]{status.status}[/{color}]: {status.message}", highlight=False)
        if status.status == "error":
            raise typer.Exit(1)

    _run(_workspace(workspace), run)
