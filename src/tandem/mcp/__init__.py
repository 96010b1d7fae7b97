"""MCP server configuration for the CLI.

Server definitions are read from every settings scope, merged by name,
enriched with stored secrets and written to a per-turn JSON artifact whose
path is passed to the CLI.

Example:
    from tandem.mcp import ArtifactBuilder, Janitor, ScopeResolver

    servers = ScopeResolver(store).servers()
    result = await ArtifactBuilder(Janitor()).build(servers)
"""

from .artifact import ArtifactBuilder, ArtifactWriteError, BuildResult
from .expand import expand_variables
from .janitor import Janitor
from .scope import McpStatus, MergedServerSet, ScopeLayer, ScopeResolver, resolve_enabled, resolve_servers
from .secret import FileSecretStore, GeminiIntegration, SecretInjector, SecretStore

__all__ = [
    "ArtifactBuilder",
    "ArtifactWriteError",
    "BuildResult",
    "expand_variables",
    "Janitor",
    "McpStatus",
    "MergedServerSet",
    "ScopeLayer",
    "ScopeResolver",
    "resolve_enabled",
    "resolve_servers",
    "FileSecretStore",
    "GeminiIntegration",
    "SecretInjector",
    "SecretStore",
]
