"""Removal of temporary files left behind by earlier turns.

Two kinds of leftovers exist: per-turn ``mcp-*`` artifact directories under
the CLI home, and ``tmpclaude-<hex>-cwd`` scratch files the CLI drops into the
workspace.  Several editor windows may share both locations, so nothing is
locked; deletion relies on the naming convention and is idempotent.
"""

from __future__ import annotations

import asyncio
import os
import re
import shutil
from fnmatch import fnmatch
from pathlib import Path
from typing import Iterable, List, Optional

from ..core.global_paths import GlobalPath
from ..util.log import Log, Logger

ARTIFACT_DIR_PREFIX = "mcp-"
SCRATCH_GLOB = "tmpclaude-*-cwd"
SCRATCH_PATTERN = re.compile(r"^tmpclaude-[0-9a-f]+-cwd$")

EXCLUDED_DIRS = frozenset({
    "node_modules",
    ".git",
    "dist",
    "build",
    ".next",
    ".nuxt",
    "target",
    "bin",
    "obj",
    ".venv",
    "__pycache__",
})


class Janitor:
    """Finds and deletes orphaned artifacts and scratch files."""

    def __init__(self, root: Optional[str] = None, log: Optional[Logger] = None) -> None:
        self._root = root
        self._log = log or Log.create({"service": "mcp.janitor"})

    @property
    def root(self) -> Path:
        return Path(self._root or GlobalPath.cli_home())

    def cleanup_stale(self, root: Optional[str] = None) -> int:
        """Delete every ``mcp-*`` directory directly under the artifact root."""
        base = Path(root) if root else self.root
        if not base.is_dir():
            return 0

        removed = 0
        try:
            entries = list(base.iterdir())
        except OSError as e:
            self._log.warn("cannot list artifact root", {"root": str(base), "error": e})
            return 0

        for entry in entries:
            if not entry.name.startswith(ARTIFACT_DIR_PREFIX):
                continue
            try:
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink(missing_ok=True)
                removed += 1
                self._log.debug("removed stale mcp config", {"path": str(entry)})
            except FileNotFoundError:
                continue
            except OSError as e:
                self._log.error("failed to remove stale mcp config", {"path": str(entry), "error": e})
        return removed

    def find_scratch_files(self, root: str) -> List[Path]:
        """Candidate scratch files under ``root``, skipping dependency dirs."""
        found: List[Path] = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = [d for d in dirnames if d not in EXCLUDED_DIRS]
            for filename in filenames:
                if fnmatch(filename, SCRATCH_GLOB):
                    found.append(Path(dirpath) / filename)
        return found

    async def cleanup_recursive(self, roots: Iterable[str]) -> int:
        """Delete leftover scratch files below each workspace root.

        Glob hits are re-checked against the strict name pattern before
        anything is removed.
        """
        candidates: List[Path] = []
        for root in roots:
            if not Path(root).is_dir():
                continue
            found = await asyncio.to_thread(self.find_scratch_files, root)
            candidates.extend(found)

        targets = [path for path in candidates if SCRATCH_PATTERN.match(path.name)]
        skipped = len(candidates) - len(targets)
        if skipped:
            self._log.warn("ignored files not matching scratch pattern", {"count": skipped})
        if not targets:
            return 0

        results = await asyncio.gather(
            *(asyncio.to_thread(self._remove_file, path) for path in targets)
        )
        removed = sum(1 for ok in results if ok)
        self._log.info("removed scratch files", {"count": removed})
        return removed

    def _remove_file(self, path: Path) -> bool:
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            self._log.warn("failed to remove scratch file", {"path": str(path), "error": e})
            return False
