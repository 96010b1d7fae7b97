"""Process supervisor errors."""

from __future__ import annotations

from ..util.error import TandemError


class ProcessAlreadyRunningError(TandemError):
    """A turn was requested while another CLI process is live."""

    def __init__(self) -> None:
        super().__init__("A CLI process is already running")


class ExecutableNotFoundError(TandemError):
    """The CLI executable could not be located."""

    def __init__(self, command: str) -> None:
        self.command = command
        super().__init__(f"CLI executable path could not be determined: {command}")
