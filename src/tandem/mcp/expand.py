"""Shell-style variable expansion for MCP server settings."""

from __future__ import annotations

import os
import re
from typing import Any, Mapping, Optional

from ..core.global_paths import GlobalPath

_ESCAPED = re.compile(r"\\\$\{([^}]+)\}")
_TOKEN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")
_HOME_NAMES = frozenset({"HOME", "USERPROFILE"})

# Marks unescaped ``${...}`` text so the expansion pass skips it.
_SENTINEL = "\x00"


def expand_variables(value: Any, env: Optional[Mapping[str, str]] = None) -> Any:
    """Expand ``${NAME}`` and ``$NAME`` in ``value``.

    ``\\${NAME}`` becomes a literal ``${NAME}`` and is never expanded.  Unknown
    names are left untouched, except ``HOME`` and ``USERPROFILE`` which fall
    back to the user's home directory.  Non-string values pass through.
    """
    if not isinstance(value, str) or not value:
        return value
    source = os.environ if env is None else env

    text = _ESCAPED.sub(lambda m: f"${_SENTINEL}{{{m.group(1)}}}", value)

    def replacer(match: re.Match[str]) -> str:
        name = match.group(1) or match.group(2)
        found = source.get(name)
        if found is not None:
            return found
        if name in _HOME_NAMES:
            return GlobalPath.home()
        return match.group(0)

    return _TOKEN.sub(replacer, text).replace(_SENTINEL, "")
