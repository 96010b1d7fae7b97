"""Gemini integration CLI commands."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console

from ...runtime import AppContext
from ...mcp.secret import is_valid_api_key_format, mask_api_key

app = typer.Typer(help="Manage the Gemini MCP integration")
console = Console()


@app.command("status")
def status_command() -> None:
    """Show whether the integration is on and a key is stored."""
    ctx = AppContext()
    key = asyncio.run(ctx.gemini.api_key())
    state = "[green]enabled[/green]" if ctx.gemini.enabled() else "[yellow]disabled[/yellow]"
    console.print(f"Gemini integration: {state}")
    console.print(f"API key: {mask_api_key(key) if key else '[dim]not set[/dim]'}")


@app.command("set-key")
def set_key_command(
    api_key: str = typer.Option(..., "--key", prompt=True, hide_input=True, help="Gemini API key"),
) -> None:
    """Store the Gemini API key."""
    api_key = api_key.strip()
    if not is_valid_api_key_format(api_key):
        console.print("[red]Invalid API key format.[/red] Gemini keys start with AIza")
        raise typer.Exit(1)
    ctx = AppContext()
    asyncio.run(ctx.gemini.set_api_key(api_key))
    console.print(f"Stored API key {mask_api_key(api_key)}")


@app.command("delete-key")
def delete_key_command() -> None:
    """Remove the stored Gemini API key."""
    ctx = AppContext()
    asyncio.run(ctx.gemini.delete_api_key())
    console.print("API key removed")


@app.command("enable")
def enable_command() -> None:
    """Inject the stored key into Gemini MCP servers."""
    AppContext().gemini.set_enabled(True)
    console.print("Gemini integration enabled")


@app.command("disable")
def disable_command() -> None:
    """Stop injecting the Gemini key."""
    AppContext().gemini.set_enabled(False)
    console.print("Gemini integration disabled")
