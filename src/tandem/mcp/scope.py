"""MCP server resolution across configuration scopes.

Entries are merged per name: iterating scopes from global to workspace folder,
a later scope's entry replaces an earlier one with the same name while keeping
the position where the name first appeared.  Only after all scopes are merged
are entries whose winning definition is ``disabled`` removed, so a workspace
can switch off a server that is defined globally.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Literal, Optional, Sequence, Union

from pydantic import ValidationError

from ..core.config import ConfigStore
from ..core.config_schema import HttpServer, Scope, SseServer, StdioServer, parse_server_entry
from ..util.log import Log, Logger

ServerConfig = Union[StdioServer, HttpServer, SseServer]
MergedServerSet = Dict[str, ServerConfig]

SERVERS_KEY = "mcp.servers"
ENABLED_KEY = "mcp.enabled"

_log = Log.create({"service": "mcp.scope"})


@dataclass
class ScopeLayer:
    """Raw entries of one scope as read from settings."""
    scope: Scope
    entries: List[Any] = field(default_factory=list)

    @classmethod
    def of(cls, scope: Scope, value: Any) -> "ScopeLayer":
        """Build a layer from a settings value.

        ``None`` is an empty layer and a bare object is the legacy
        single-server form, read as a one-element list.
        """
        if value is None:
            return cls(scope, [])
        if isinstance(value, dict):
            return cls(scope, [value])
        if isinstance(value, list):
            return cls(scope, list(value))
        return cls(scope, [value])


@dataclass(frozen=True)
class McpStatus:
    status: Literal["disabled", "configured", "connected", "error"]
    message: str
    servers: List[Dict[str, Any]] = field(default_factory=list)


def _precedence(layer: ScopeLayer) -> int:
    return Scope.ordered().index(layer.scope)


def resolve_servers(
    layers: Sequence[ScopeLayer],
    log: Optional[Logger] = None,
) -> MergedServerSet:
    """Merge ``layers`` into one name-keyed set without disabled entries."""
    log = log or _log
    merged: Dict[str, ServerConfig] = {}
    for layer in sorted(layers, key=_precedence):
        for raw in layer.entries:
            name = raw.get("name") if isinstance(raw, dict) else None
            if not isinstance(name, str) or not name.strip():
                log.warn("server missing name, skipping", {"scope": layer.scope.value})
                continue
            try:
                entry = parse_server_entry(raw)
            except ValidationError as e:
                log.warn("invalid server entry, skipping", {
                    "scope": layer.scope.value,
                    "server": name,
                    "error": str(e.errors()[0].get("msg", e)),
                })
                continue
            merged[name] = entry

    result = {name: entry for name, entry in merged.items() if not entry.disabled}
    log.debug("mcp servers merged", {
        "layers": {layer.scope.value: len(layer.entries) for layer in layers},
        "merged": len(result),
        "disabled": len(merged) - len(result),
    })
    return result


def resolve_enabled(values: Iterable[tuple[Scope, Any]], default: bool = False) -> bool:
    """Highest-precedence explicit value wins; ``None`` means unset."""
    ordered = sorted(values, key=lambda item: Scope.ordered().index(item[0]), reverse=True)
    for _, value in ordered:
        if value is not None:
            return bool(value)
    return default


class ScopeResolver:
    """Reads the MCP layers from a ``ConfigStore`` and resolves them."""

    def __init__(self, store: ConfigStore, log: Optional[Logger] = None) -> None:
        self._store = store
        self._log = log or _log

    def layers(self) -> List[ScopeLayer]:
        inspection = self._store.inspect(SERVERS_KEY)
        return [ScopeLayer.of(scope, inspection.value(scope)) for scope in Scope.ordered()]

    def servers(self) -> MergedServerSet:
        return resolve_servers(self.layers(), log=self._log)

    def enabled(self) -> bool:
        inspection = self._store.inspect(ENABLED_KEY, default=False)
        return resolve_enabled(
            ((scope, inspection.value(scope)) for scope in Scope.ordered()),
            default=bool(inspection.default_value),
        )

    def status(self) -> McpStatus:
        enabled = self.enabled()
        servers = self.servers()
        if enabled and servers:
            return McpStatus(
                status="configured",
                message=f"{len(servers)} server(s) configured",
                servers=[entry.model_dump(exclude_none=True) for entry in servers.values()],
            )
        message = "MCP enabled but no servers configured" if enabled else "MCP disabled"
        return McpStatus(status="disabled", message=message)
