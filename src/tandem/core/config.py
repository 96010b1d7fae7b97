"""Scoped settings store.

Settings are read from three files, lowest to highest precedence:

1. Global settings (``<config dir>/settings.json``)
2. Workspace settings (``<workspace>/.tandem/settings.json``)
3. Workspace-folder settings (``<folder>/.tandem/settings.json``)

Keys are flat and dotted (``"mcp.servers"``).  ``inspect`` returns the value
held by each scope separately so callers that merge per entry (MCP servers)
can see every layer, while ``get`` applies plain highest-scope-wins.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .config_loader import load_json_file, write_json_file
from .config_schema import Scope, Settings
from .global_paths import GlobalPath
from ..util.error import TandemError
from ..util.log import Log, Logger

SETTINGS_DIRNAME = ".tandem"
SETTINGS_FILENAME = "settings.json"


class ConfigError(TandemError):
    """Configuration error."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"Config error in {path}: {message}")


@dataclass(frozen=True)
class ScopeInspection:
    """Value of one key at every scope; ``None`` means unset there."""
    key: str
    default_value: Any = None
    global_value: Any = None
    workspace_value: Any = None
    workspace_folder_value: Any = None

    def value(self, scope: Scope) -> Any:
        if scope is Scope.GLOBAL:
            return self.global_value
        if scope is Scope.WORKSPACE:
            return self.workspace_value
        return self.workspace_folder_value


class ConfigStore:
    """File-backed settings with global, workspace and folder scopes."""

    def __init__(
        self,
        workspace: Optional[str] = None,
        folder: Optional[str] = None,
        global_dir: Optional[str] = None,
        log: Optional[Logger] = None,
    ) -> None:
        self.workspace = workspace
        self.folder = folder if folder != workspace else None
        self._global_dir = global_dir
        self._log = log or Log.create({"service": "config"})
        self._cache: Optional[Dict[Scope, Dict[str, Any]]] = None

    def path(self, scope: Scope) -> Optional[Path]:
        """Settings file backing ``scope``, or ``None`` when the scope is absent."""
        if scope is Scope.GLOBAL:
            return Path(self._global_dir or GlobalPath.config()) / SETTINGS_FILENAME
        root = self.workspace if scope is Scope.WORKSPACE else self.folder
        if not root:
            return None
        return Path(root) / SETTINGS_DIRNAME / SETTINGS_FILENAME

    def _layers(self) -> Dict[Scope, Dict[str, Any]]:
        if self._cache is None:
            layers: Dict[Scope, Dict[str, Any]] = {}
            for scope in Scope.ordered():
                path = self.path(scope)
                layers[scope] = load_json_file(path) if path else {}
                if layers[scope]:
                    self._log.debug("loaded settings", {"scope": scope.value, "path": str(path)})
            self._cache = layers
        return self._cache

    def reload(self) -> None:
        """Drop cached file contents; the next read goes back to disk."""
        self._cache = None

    def inspect(self, key: str, default: Any = None) -> ScopeInspection:
        layers = self._layers()
        return ScopeInspection(
            key=key,
            default_value=default,
            global_value=layers[Scope.GLOBAL].get(key),
            workspace_value=layers[Scope.WORKSPACE].get(key),
            workspace_folder_value=layers[Scope.WORKSPACE_FOLDER].get(key),
        )

    def get(self, key: str, default: Any = None) -> Any:
        """Highest-precedence value for ``key``."""
        layers = self._layers()
        for scope in reversed(Scope.ordered()):
            value = layers[scope].get(key)
            if value is not None:
                return value
        return default

    def settings(self) -> Settings:
        """Effective settings with plain highest-scope-wins per key."""
        merged: Dict[str, Any] = {}
        for scope in Scope.ordered():
            merged.update(self._layers()[scope])
        try:
            return Settings.model_validate(merged)
        except ValueError as e:
            raise ConfigError(str(self.path(Scope.GLOBAL)), str(e)) from e

    def update(self, key: str, value: Any, scope: Scope = Scope.GLOBAL) -> None:
        """Write ``key`` at ``scope``; ``None`` removes it."""
        path = self.path(scope)
        if path is None:
            raise ConfigError(scope.value, "scope is not available without a workspace")
        data = load_json_file(path)
        if value is None:
            data.pop(key, None)
        else:
            data[key] = value
        write_json_file(path, data)
        self._log.info("updated settings", {"scope": scope.value, "key": key, "path": str(path)})
        self.reload()
