"""NDJSON framing for the CLI's stdout and stderr pipes."""

import json
from typing import Any, Dict, List


class LineBuffer:
    """Splits arbitrarily chunked text into complete lines.

    A trailing partial line is held until the next chunk completes it or
    ``flush()`` is called at end of stream.  Blank lines are dropped.
    """

    def __init__(self) -> None:
        self._pending = ""

    def feed(self, chunk: str) -> List[str]:
        data = self._pending + chunk
        *lines, self._pending = data.split("\n")
        return [line.rstrip("\r") for line in lines if line.strip()]

    def flush(self) -> List[str]:
        rest, self._pending = self._pending, ""
        rest = rest.rstrip("\r")
        return [rest] if rest.strip() else []

    @property
    def pending(self) -> str:
        return self._pending


def parse_line(line: str) -> Dict[str, Any]:
    """Decode one stdout line; non-JSON output becomes a text event."""
    try:
        event = json.loads(line)
    except ValueError:
        return {"type": "text", "data": line}
    if not isinstance(event, dict):
        return {"type": "text", "data": line}
    return event
