"""Per-turn MCP config artifact.

The merged server set is converted into the CLI's wire format and written to
``<cli home>/mcp-XXXXXX/mcp-config.json``, a fresh directory per turn.  The
path is handed to the CLI with ``--mcp-config``.
"""

from __future__ import annotations

import json
import ntpath
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from ..util.error import TandemError
from ..util.log import Log, Logger
from .expand import expand_variables
from .janitor import ARTIFACT_DIR_PREFIX, Janitor
from .scope import HttpServer, MergedServerSet, SseServer, StdioServer
from .secret import SecretInjector

ARTIFACT_FILENAME = "mcp-config.json"

# Shell shims that cannot be spawned directly on Windows without a shell.
WINDOWS_WRAPPED_COMMANDS = frozenset({"npx", "npm", "node"})


class ArtifactWriteError(TandemError):
    """The artifact could not be created, written, or read back."""


@dataclass
class BuildResult:
    config: Optional[Dict[str, Any]] = None
    path: Optional[str] = None
    servers: MergedServerSet = field(default_factory=dict)

    @property
    def configured(self) -> bool:
        return self.path is not None


def normalize_args(raw: Union[List[Any], str, None], env: Optional[Mapping[str, str]] = None) -> List[str]:
    """Rejoin and resplit args on whitespace, then expand each token.

    Settings editors sometimes split one argument across list items
    (``["-y @scope/pk", "g"]``); joining first repairs that.
    """
    if isinstance(raw, str):
        text = raw.strip()
    elif isinstance(raw, list):
        text = " ".join(str(item) for item in raw).strip()
    else:
        return []
    if not text:
        return []
    return [expand_variables(token, env) for token in text.split()]


def normalize_env(
    raw: Union[Dict[str, Any], str, None],
    windows: bool,
    env: Optional[Mapping[str, str]] = None,
) -> Optional[Dict[str, Any]]:
    """Accept a mapping, a JSON object string, or ``KEY=VALUE`` pairs."""
    if raw is None or raw == "" or raw == {}:
        return None

    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
        pairs: Dict[str, Any] = {}
        for pair in raw.split():
            key, sep, value = pair.partition("=")
            if key and sep and value:
                pairs[key] = expand_variables(value, env)
        return pairs

    expanded: Dict[str, Any] = {}
    for key, value in raw.items():
        if isinstance(value, str):
            value = expand_variables(value, env)
            if windows:
                value = ntpath.normpath(value)
        expanded[key] = value
    return expanded


class ArtifactBuilder:
    """Builds, writes, and verifies the per-turn MCP config artifact."""

    def __init__(
        self,
        janitor: Janitor,
        injector: Optional[SecretInjector] = None,
        root: Optional[str] = None,
        platform: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        log: Optional[Logger] = None,
    ) -> None:
        self._janitor = janitor
        self._injector = injector
        self._root = root
        self._platform = platform or sys.platform
        self._env = env
        self._log = log or Log.create({"service": "mcp.artifact"})

    @property
    def windows(self) -> bool:
        return self._platform == "win32"

    @property
    def root(self) -> Path:
        return Path(self._root) if self._root else self._janitor.root

    def server_config(self, server: Union[StdioServer, HttpServer, SseServer]) -> Optional[Dict[str, Any]]:
        """Wire config for one server, or ``None`` when it must be dropped."""
        if isinstance(server, (HttpServer, SseServer)):
            if not server.url:
                self._log.warn("remote server missing url, skipping", {
                    "server": server.name,
                    "type": server.type,
                })
                return None
            config: Dict[str, Any] = {"type": server.type, "url": server.url}
            if server.headers:
                config["headers"] = dict(server.headers)
            return config

        if not server.command:
            self._log.warn("stdio server missing command, skipping", {"server": server.name})
            return None

        original = expand_variables(server.command, self._env)
        args = normalize_args(server.args, self._env)
        command = original
        if self.windows and original.lower() in WINDOWS_WRAPPED_COMMANDS:
            command = "cmd"
            args = ["/c", original, *args]
            self._log.debug("windows cmd wrapper applied", {
                "server": server.name,
                "original": original,
                "args": args,
            })

        config = {"command": command}
        if args:
            config["args"] = args
        env = normalize_env(server.env, self.windows, self._env)
        if env is not None:
            config["env"] = env
        return config

    async def build(self, servers: MergedServerSet, enabled: bool = True) -> BuildResult:
        """Materialize ``servers`` into a fresh artifact.

        Artifacts left by earlier turns are cleared first.  Returns an empty
        result when MCP is disabled or nothing is configured.  Raises
        ``ArtifactWriteError`` when the artifact cannot be written.
        """
        self._janitor.cleanup_stale(str(self.root))
        if not enabled or not servers:
            return BuildResult()

        wire: Dict[str, Dict[str, Any]] = {}
        for name, server in servers.items():
            config = self.server_config(server)
            if config is not None:
                wire[name] = config

        if self._injector is not None:
            await self._injector.inject_if_needed(wire)

        artifact = {"servers": wire}
        if not wire:
            self._log.warn("no usable mcp servers after validation")
            return BuildResult(config=artifact, servers=servers)

        path = self._write(artifact)
        return BuildResult(config=artifact, path=str(path), servers=servers)

    def _write(self, artifact: Dict[str, Any]) -> Path:
        root = self.root
        try:
            root.mkdir(parents=True, exist_ok=True)
            directory = Path(tempfile.mkdtemp(prefix=ARTIFACT_DIR_PREFIX, dir=str(root)))
            path = directory / ARTIFACT_FILENAME
            path.write_text(json.dumps(artifact, indent=2), encoding="utf-8")
            written = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            self._log.error("failed to write mcp config", {"root": str(root), "error": e})
            raise ArtifactWriteError(f"Failed to write MCP configuration: {e}") from e

        if not isinstance(written, dict) or set(written.get("servers", {})) != set(artifact["servers"]):
            raise ArtifactWriteError(f"MCP configuration at {path} did not read back intact")

        self._log.info("wrote mcp config", {"path": str(path), "servers": sorted(artifact["servers"])})
        return path
