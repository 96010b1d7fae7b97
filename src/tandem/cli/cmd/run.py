"""Run command - send one message to the CLI and stream the reply."""

import base64
import json
import platform
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console

from ...process.supervisor import ProcessOptions
from ...runtime import AppContext
from ...util.log import Log

# Use legacy_windows=True on Windows to avoid Unicode encoding issues with GBK
_is_windows = platform.system() == "Windows"
console = Console(legacy_windows=_is_windows)
log = Log.create({"service": "cli.run"})


def load_images(paths: Optional[List[str]]) -> List[str]:
    """Read image files as base64 strings."""
    images: List[str] = []
    for item in paths or []:
        data = Path(item).read_bytes()
        images.append(base64.b64encode(data).decode("ascii"))
    return images


class EventPrinter:
    """Renders stream-json events from the CLI."""

    def __init__(self, json_output: bool = False) -> None:
        self.json_output = json_output
        self.session_id: Optional[str] = None
        self.errors: List[str] = []

    def on_data(self, event: Dict[str, Any]) -> None:
        session_id = event.get("session_id")
        if isinstance(session_id, str) and session_id:
            self.session_id = session_id

        if self.json_output:
            console.print_json(json.dumps(event))
            return

        kind = event.get("type")
        if kind == "text":
            console.print(str(event.get("data", "")), markup=False)
        elif kind == "assistant":
            for block in (event.get("message") or {}).get("content") or []:
                self._print_block(block)
        elif kind == "result":
            if event.get("is_error"):
                console.print(f"[red]Error:[/red] {event.get('result', '')}")
            cost = event.get("total_cost_usd")
            if isinstance(cost, (int, float)):
                console.print(f"[dim]cost ${cost:.4f}[/dim]")

    def _print_block(self, block: Dict[str, Any]) -> None:
        kind = block.get("type")
        if kind == "text":
            console.print(str(block.get("text", "")), markup=False)
        elif kind == "tool_use":
            console.print(f"[cyan]→[/cyan] {block.get('name', 'tool')}")
        elif kind == "thinking":
            console.print(f"[dim]{block.get('thinking', '')}[/dim]", markup=False)

    def on_error(self, line: str) -> None:
        self.errors.append(line)
        log.debug("cli stderr", {"line": line})
        if not self.json_output:
            console.print(f"[yellow]{line}[/yellow]", markup=False)


async def run_command(
    message: str,
    model: Optional[str] = None,
    session_id: Optional[str] = None,
    resume: Optional[str] = None,
    cwd: Optional[str] = None,
    images: Optional[List[str]] = None,
    plan: bool = False,
    thinking: Optional[str] = None,
    custom_instructions: Optional[str] = None,
    json_output: bool = False,
) -> int:
    """Execute a single turn and return the CLI's exit code.

    Args:
        message: Message to send
        model: ``opus`` or ``sonnet``
        session_id: Session ID to continue
        resume: Session ID to resume, preferred over ``session_id``
        cwd: Workspace directory, defaults to the current directory
        images: PNG files to attach
        plan: Enable plan mode
        thinking: Thinking intensity flag to pass
        custom_instructions: Extra instructions for the CLI
        json_output: Output raw JSON events
    """
    workspace = str(Path(cwd or Path.cwd()).resolve())
    ctx = AppContext(workspace)
    printer = EventPrinter(json_output=json_output)

    options = ProcessOptions(
        message=message,
        cwd=workspace,
        session_id=session_id,
        resume_from=resume,
        model=model,
        images=tuple(load_images(images)),
        plan_mode=plan,
        thinking_mode=bool(thinking),
        thinking_intensity=thinking,
        custom_instructions=custom_instructions,
    )

    log.info("starting run", {"cwd": workspace, "message_length": len(message)})
    try:
        await ctx.startup()
        code = await ctx.run_turn(options, on_data=printer.on_data, on_error=printer.on_error)
    finally:
        await ctx.shutdown()

    if printer.session_id and not json_output:
        console.print(f"[dim]session {printer.session_id}[/dim]")
    return code if code is not None else 1
