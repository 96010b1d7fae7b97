"""Application directory paths.

Application-owned data lives in the platformdirs locations for ``tandem``.
The CLI's own home (``~/.claude``) is where per-turn MCP artifacts are written,
because the CLI resolves relative state from there.
"""

import os
from pathlib import Path

from platformdirs import user_config_dir, user_data_dir

APP_NAME = "tandem"
CLI_HOME_DIRNAME = ".claude"


class GlobalPath:
    """Well-known directories, with a home override for tests."""

    @classmethod
    def home(cls) -> str:
        """User home directory, overridable with ``TANDEM_TEST_HOME``."""
        return os.environ.get("TANDEM_TEST_HOME", str(Path.home()))

    @classmethod
    def data(cls) -> str:
        return os.environ.get("TANDEM_TEST_DATA", user_data_dir(APP_NAME))

    @classmethod
    def log(cls) -> str:
        return str(Path(cls.data()) / "log")

    @classmethod
    def config(cls) -> str:
        return os.environ.get("TANDEM_TEST_CONFIG", user_config_dir(APP_NAME))

    @classmethod
    def cli_home(cls) -> str:
        """Root under which MCP config artifacts are created."""
        return str(Path(cls.home()) / CLI_HOME_DIRNAME)
