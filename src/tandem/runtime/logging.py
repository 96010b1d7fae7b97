"""Runtime logging bootstrap helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..core.config import ConfigStore
from ..util.log import Log, LogFormat, LogLevel


@dataclass(frozen=True)
class LogSettings:
    level: LogLevel
    format: LogFormat
    console: bool
    file: bool


def resolve_log_settings(
    store: ConfigStore,
    *,
    level: Optional[str] = None,
    format: Optional[str] = None,
    console: Optional[bool] = None,
    file: Optional[bool] = None,
) -> LogSettings:
    """Explicit arguments win over ``logging.*`` settings."""
    log = store.settings().logging

    use_console = console
    if use_console is None:
        use_console = log.console if log.console is not None else False

    use_file = file
    if use_file is None:
        use_file = log.file if log.file is not None else True

    return LogSettings(
        level=LogLevel.parse(level or log.level),
        format=LogFormat.parse(format or log.format),
        console=use_console,
        file=use_file,
    )


def bootstrap_logging(
    store: ConfigStore,
    *,
    level: Optional[str] = None,
    format: Optional[str] = None,
    console: Optional[bool] = None,
    file: Optional[bool] = None,
) -> LogSettings:
    """Resolve config and initialize the process logger."""
    settings = resolve_log_settings(store, level=level, format=format, console=console, file=file)
    Log.configure(
        level=settings.level,
        format=settings.format,
        console=settings.console,
        file=settings.file,
    )
    return settings
