"""Secure credential storage and runtime injection into MCP server configs.

The Gemini API key is kept out of settings files.  When the Gemini
integration is switched on and a key is stored, the key is written into the
``env`` of every server that looks like a Gemini MCP server at the moment the
per-turn config artifact is built.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from ..core.config import ConfigStore
from ..core.config_schema import Scope
from ..core.global_paths import GlobalPath
from ..util.log import Log, Logger

log = Log.create({"service": "mcp.secret"})

GEMINI_API_KEY = "gemini-api-key"
GEMINI_ENABLED_KEY = "gemini.integrationEnabled"
GEMINI_ENV_VAR = "GEMINI_API_KEY"

GEMINI_NAME_MARKER = "gemini"
GEMINI_ARG_MARKERS = ("gemini-mcp", "gemini_mcp")


class SecretStore(Protocol):
    """Named credential storage."""

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class FileSecretStore:
    """Secrets in a JSON file in the data directory, readable only by the owner."""

    def __init__(self, path: Optional[str] = None) -> None:
        self._path = Path(path) if path else Path(GlobalPath.data()) / "secrets.json"

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        with open(self._path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        try:
            os.chmod(self._path, 0o600)
        except (OSError, AttributeError):
            pass  # Windows doesn't support chmod

    async def get(self, key: str) -> Optional[str]:
        value = self._read().get(key)
        return value if isinstance(value, str) and value else None

    async def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    async def delete(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


def is_valid_api_key_format(api_key: Any) -> bool:
    """Gemini keys start with ``AIza`` and are about 39 characters long."""
    return isinstance(api_key, str) and api_key.startswith("AIza") and len(api_key) >= 35


def mask_api_key(api_key: Optional[str]) -> str:
    """Mask a key for display, keeping the first four characters."""
    if not api_key:
        return ""
    if len(api_key) <= 8:
        return "•" * 8
    return api_key[:4] + "•" * min(len(api_key) - 4, 20)


class GeminiIntegration:
    """Gemini integration flag (settings) and API key (secret store)."""

    def __init__(self, store: ConfigStore, secrets: SecretStore) -> None:
        self._store = store
        self._secrets = secrets

    def enabled(self) -> bool:
        return bool(self._store.get(GEMINI_ENABLED_KEY, False))

    def set_enabled(self, enabled: bool) -> None:
        self._store.update(GEMINI_ENABLED_KEY, enabled, Scope.GLOBAL)

    async def api_key(self) -> Optional[str]:
        return await self._secrets.get(GEMINI_API_KEY)

    async def set_api_key(self, api_key: str) -> None:
        await self._secrets.set(GEMINI_API_KEY, api_key)
        log.info("gemini api key stored")

    async def delete_api_key(self) -> None:
        await self._secrets.delete(GEMINI_API_KEY)
        log.info("gemini api key deleted")

    async def should_inject(self) -> bool:
        """Inject only when the integration is on and a key is stored."""
        if not self.enabled():
            return False
        return bool(await self.api_key())


def is_gemini_server(name: str, config: Dict[str, Any]) -> bool:
    if GEMINI_NAME_MARKER in name.lower():
        return True
    args = config.get("args")
    if isinstance(args, list):
        joined = " ".join(str(arg) for arg in args).lower()
        return any(marker in joined for marker in GEMINI_ARG_MARKERS)
    return False


class SecretInjector:
    """Best-effort injection of the stored Gemini key into built server configs."""

    def __init__(self, integration: GeminiIntegration, log: Optional[Logger] = None) -> None:
        self._integration = integration
        self._log = log or Log.create({"service": "mcp.secret"})

    async def inject_if_needed(self, servers: Dict[str, Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        """Set ``GEMINI_API_KEY`` on matching servers in place and return them.

        Never raises: a failing secret store only skips injection.
        """
        try:
            if not await self._integration.should_inject():
                self._log.debug("gemini integration off or key not set, skipping injection")
                return servers
            api_key = await self._integration.api_key()
            if not api_key:
                self._log.debug("gemini api key unavailable, skipping injection")
                return servers

            injected = 0
            for name, config in servers.items():
                if not is_gemini_server(name, config):
                    continue
                env = config.get("env")
                if not isinstance(env, dict):
                    env = {}
                    config["env"] = env
                previous = env.get(GEMINI_ENV_VAR)
                env[GEMINI_ENV_VAR] = api_key
                injected += 1
                self._log.debug("injected gemini api key", {
                    "server": name,
                    "had_previous": bool(previous),
                })

            self._log.debug("gemini api key injection complete", {"servers": injected})
        except Exception as e:
            self._log.error("gemini api key injection failed", {"error": e})
        return servers
