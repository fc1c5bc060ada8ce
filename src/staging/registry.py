"""Registry of staging directories that must not outlive the process."""

from __future__ import annotations

import logging
import os
import shutil
from typing import List, Set

logger = logging.getLogger(__name__)


def rm_recursive(path: str) -> None:
    """Delete ``path`` whatever it is; a missing path is not an error.

    Symlinks are removed, never followed.
    """
    try:
        if os.path.islink(path) or not os.path.isdir(path):
            os.unlink(path)
        else:
            shutil.rmtree(path)
    except FileNotFoundError:
        pass


class StagingRegistry:
    """Tracks staging directories created by this process.

    The host program calls :meth:`drain_all` on shutdown (the CLI registers
    it with ``atexit``). Cleanup is best-effort: a process killed abruptly
    leaves its staging directories behind for
    :func:`staging.transaction.sweep_orphans`.
    """

    def __init__(self) -> None:
        self._paths: Set[str] = set()

    def register(self, path: str) -> None:
        self._paths.add(os.path.abspath(path))

    def deregister(self, path: str) -> None:
        self._paths.discard(os.path.abspath(path))

    def __contains__(self, path: str) -> bool:
        return os.path.abspath(path) in self._paths

    def __len__(self) -> int:
        return len(self._paths)

    def paths(self) -> List[str]:
        return sorted(self._paths)

    def drain_all(self) -> List[str]:
        """Delete every registered path that still exists and empty the registry.

        Returns:
            The paths that were removed.
        """
        removed: List[str] = []
        for path in sorted(self._paths):
            if os.path.lexists(path):
                try:
                    rm_recursive(path)
                    removed.append(path)
                except OSError as exc:
                    logger.warning("Could not remove staging directory %s: %s", path, exc)
        self._paths.clear()
        return removed
