"""CLI entry point for tandem.

This module provides the ``tandem`` command.  ``tandem run`` drives one turn
of the external AI CLI; the ``mcp`` and ``gemini`` groups manage the MCP
configuration handed to it.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console

from .. import __version__
from ..core.config import ConfigError, ConfigStore
from ..core.config_schema import Scope
from ..runtime.logging import bootstrap_logging
from ..util.error import TandemError, format_error
from .cmd import gemini as gemini_cmd
from .cmd import mcp as mcp_cmd

app = typer.Typer(
    name="tandem",
    help="tandem - run an AI coding CLI with scoped MCP configuration",
    no_args_is_help=True,
    add_completion=False,
)
app.add_typer(mcp_cmd.app, name="mcp")
app.add_typer(gemini_cmd.app, name="gemini")

console = Console()


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        console.print(f"tandem {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Log level (debug, info, warn, error)",
    ),
    print_logs: bool = typer.Option(
        False,
        "--print-logs",
        help="Also write logs to stderr",
    ),
):
    """tandem - run an AI coding CLI with scoped MCP configuration."""
    try:
        bootstrap_logging(
            ConfigStore(str(Path.cwd())),
            level=log_level,
            console=True if print_logs else None,
        )
    except (ConfigError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


@app.command()
def run(
    message: List[str] = typer.Argument(
        None,
        help="Message to send",
    ),
    model: Optional[str] = typer.Option(
        None,
        "--model",
        "-m",
        help="Model to use (opus or sonnet)",
    ),
    session: Optional[str] = typer.Option(
        None,
        "--session",
        "-s",
        help="Session ID to continue",
    ),
    resume: Optional[str] = typer.Option(
        None,
        "--resume",
        "-r",
        help="Session ID to resume",
    ),
    cwd: Optional[str] = typer.Option(
        None,
        "--cwd",
        help="Workspace directory",
    ),
    image: Optional[List[str]] = typer.Option(
        None,
        "--image",
        "-i",
        help="PNG image(s) to attach",
    ),
    plan: bool = typer.Option(
        False,
        "--plan",
        help="Plan before acting",
    ),
    thinking: Optional[str] = typer.Option(
        None,
        "--thinking",
        help="Thinking intensity (think, think-hard, think-harder, ultrathink)",
    ),
    custom_instructions: Optional[str] = typer.Option(
        None,
        "--custom-instructions",
        help="Extra instructions for the CLI",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output raw JSON events",
    ),
):
    """Send a message to the CLI and stream its reply."""
    from .cmd.run import run_command

    text = " ".join(message) if message else ""

    # Read from stdin if not a TTY
    if not sys.stdin.isatty():
        stdin_text = sys.stdin.read()
        if stdin_text:
            text = f"{text}\n{stdin_text}" if text else stdin_text

    if not text.strip():
        console.print("[red]Error:[/red] You must provide a message")
        raise typer.Exit(1)

    try:
        code = asyncio.run(run_command(
            message=text,
            model=model,
            session_id=session,
            resume=resume,
            cwd=cwd,
            images=image,
            plan=plan,
            thinking=thinking,
            custom_instructions=custom_instructions,
            json_output=json_output,
        ))
    except (TandemError, OSError) as e:
        console.print(f"[red]Error:[/red] {format_error(e) or e}")
        raise typer.Exit(1)
    if code:
        raise typer.Exit(code)


@app.command()
def config(
    show: bool = typer.Option(
        False,
        "--show",
        help="Show current configuration",
    ),
    path: bool = typer.Option(
        False,
        "--path",
        help="Show configuration file paths",
    ),
):
    """Inspect configuration."""
    store = ConfigStore(str(Path.cwd()))

    if path:
        for scope in Scope.ordered():
            location = store.path(scope)
            if location is not None:
                console.print(f"{scope.value}: {location}", highlight=False)
        return

    if show:
        try:
            settings = store.settings()
        except ConfigError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1)
        console.print_json(json.dumps(settings.model_dump(by_alias=True), indent=2, default=str))
        return

    console.print("Use --show to display configuration or --path to show config paths")


if __name__ == "__main__":
    app()
