"""CLI subprocess supervision."""

from .environment import ExecutionEnvironment, PlatformResolver
from .errors import ExecutableNotFoundError, ProcessAlreadyRunningError
from .supervisor import ProcessCallbacks, ProcessOptions, ProcessState, ProcessSupervisor

__all__ = [
    "ExecutionEnvironment",
    "PlatformResolver",
    "ExecutableNotFoundError",
    "ProcessAlreadyRunningError",
    "ProcessCallbacks",
    "ProcessOptions",
    "ProcessState",
    "ProcessSupervisor",
]
