"""Tandem - process orchestration and MCP configuration for an external AI CLI.

Resolves MCP server definitions across settings scopes, writes a per-turn
configuration artifact and drives one CLI subprocess per conversation turn.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
