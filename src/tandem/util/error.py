"""Error base class and user-facing error formatting."""

import json
import traceback
from typing import Any


class TandemError(Exception):
    """Base class for errors that end a turn."""


def format_error(error: Any) -> str | None:
    """One-line message for known errors, ``None`` for anything else."""
    from ..core.config import ConfigError
    from ..mcp.artifact import ArtifactWriteError
    from ..process.errors import ExecutableNotFoundError, ProcessAlreadyRunningError

    if isinstance(error, ProcessAlreadyRunningError):
        return "A CLI process is already running; stop it before starting another turn"
    if isinstance(error, ExecutableNotFoundError):
        return f"CLI executable not found: {error.command}. Install it or set api.cliCommand"
    if isinstance(error, ArtifactWriteError):
        return f"Failed to write MCP configuration: {error.__cause__ or error}"
    if isinstance(error, ConfigError):
        return str(error)
    return None


def format_unknown_error(error: Any) -> str:
    """Format any error, including a traceback when one is attached."""
    if isinstance(error, BaseException):
        if error.__traceback__:
            return "".join(traceback.format_exception(type(error), error, error.__traceback__))
        return f"{error.__class__.__name__}: {error}"

    if isinstance(error, (dict, list)):
        try:
            return json.dumps(error, indent=2)
        except (TypeError, ValueError):
            return "Unexpected error (unserializable)"

    return str(error)
