"""Core infrastructure modules."""

from .global_paths import GlobalPath

__all__ = ["GlobalPath"]

# ConfigStore is imported from .config directly; it depends on util.log.
