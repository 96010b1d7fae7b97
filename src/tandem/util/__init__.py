"""Utility modules."""

from .log import Log
from .error import TandemError, format_error, format_unknown_error

__all__ = ["Log", "TandemError", "format_error", "format_unknown_error"]
