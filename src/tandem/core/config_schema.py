"""Configuration schema: pydantic models for settings files and MCP entries."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class Scope(str, Enum):
    """Configuration scope, listed from lowest to highest precedence."""
    GLOBAL = "global"
    WORKSPACE = "workspace"
    WORKSPACE_FOLDER = "workspaceFolder"

    @classmethod
    def ordered(cls) -> List["Scope"]:
        return [cls.GLOBAL, cls.WORKSPACE, cls.WORKSPACE_FOLDER]


def _scalar_text(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return value


class _ServerBase(BaseModel):
    name: str
    disabled: bool = False
    prompt: Optional[str] = None

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("server name must not be empty")
        return value


class StdioServer(_ServerBase):
    """Locally spawned MCP server speaking over stdio.

    ``args`` and ``env`` keep the loose shapes users write in settings files;
    the artifact builder normalizes them.
    """
    type: Literal["stdio"] = "stdio"
    command: Optional[str] = None
    args: Optional[Union[List[str], str]] = None
    env: Optional[Union[Dict[str, Any], str]] = None

    @field_validator("args", mode="before")
    @classmethod
    def _args_as_text(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [_scalar_text(item) for item in value]
        return value


class _RemoteServer(_ServerBase):
    url: Optional[str] = None
    headers: Optional[Dict[str, str]] = None

    @field_validator("headers", mode="before")
    @classmethod
    def _headers_as_text(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {key: _scalar_text(item) for key, item in value.items()}
        return value


class HttpServer(_RemoteServer):
    """Remote MCP server over streamable HTTP."""
    type: Literal["http"]


class SseServer(_RemoteServer):
    """Remote MCP server over server-sent events."""
    type: Literal["sse"]


ServerEntry = Annotated[
    Union[StdioServer, HttpServer, SseServer],
    Field(discriminator="type"),
]

_server_adapter: TypeAdapter[Union[StdioServer, HttpServer, SseServer]] = TypeAdapter(ServerEntry)


def parse_server_entry(raw: Any) -> Union[StdioServer, HttpServer, SseServer]:
    """Validate one raw settings entry; a missing ``type`` means stdio."""
    if isinstance(raw, dict) and not raw.get("type"):
        raw = {**raw, "type": "stdio"}
    return _server_adapter.validate_python(raw)


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: Optional[str] = None
    format: Optional[Literal["kv", "json", "pretty"]] = None
    console: Optional[bool] = None
    file: Optional[bool] = None


class Settings(BaseModel):
    """Effective settings after scope resolution.

    Settings files use flat dotted keys (``"mcp.enabled": true``); the aliases
    below map them onto attributes.
    """
    mcp_enabled: bool = Field(False, alias="mcp.enabled")
    mcp_servers: List[Dict[str, Any]] = Field(default_factory=list, alias="mcp.servers")
    gemini_integration_enabled: bool = Field(False, alias="gemini.integrationEnabled")
    cli_command: str = Field("claude", alias="api.cliCommand")
    logging_level: Optional[str] = Field(None, alias="logging.level")
    logging_format: Optional[Literal["kv", "json", "pretty"]] = Field(None, alias="logging.format")
    logging_console: Optional[bool] = Field(None, alias="logging.console")
    logging_file: Optional[bool] = Field(None, alias="logging.file")

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    @field_validator("mcp_servers", mode="before")
    @classmethod
    def _wrap_legacy_object(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return [value]
        return value

    @property
    def logging(self) -> LoggingSettings:
        return LoggingSettings(
            level=self.logging_level,
            format=self.logging_format,
            console=self.logging_console,
            file=self.logging_file,
        )
