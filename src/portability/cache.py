"""Portability classification of installed npm packages.

A package is portable when nothing under it is a compiled ``.node`` binary,
so its directory can be copied to another machine unchanged. Results are
cached in a hidden marker file inside each package directory that has a
``package.json``; reinstalling the package replaces the directory and with it
the marker, so a marker never outlives the contents it describes.
"""

from __future__ import annotations

import json
import logging
import os
import stat
from typing import Optional

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled

logger = logging.getLogger(__name__)


class PortabilityCache:
    """Reads, computes, and persists portability markers.

    Marker writes and stale-marker deletes are best-effort; a read-only
    filesystem only means more scanning next time.
    """

    def __init__(
        self,
        marker_name: str = Constants.PORTABLE_MARKER_FILE,
        native_extension: str = Constants.NATIVE_EXTENSION,
    ):
        self.marker_name = marker_name
        self.native_extension = native_extension

    def _is_cacheable(self, path: str) -> bool:
        manifest = os.path.join(path, Constants.PACKAGE_JSON_FILE)
        try:
            return stat.S_ISREG(os.stat(manifest).st_mode)
        except OSError:
            return False

    def read_marker(self, path: str) -> Optional[bool]:
        """Cached value for ``path``, or None if absent or unreadable."""
        marker = os.path.join(path, self.marker_name)
        try:
            with open(marker, "r", encoding="utf-8") as f:
                value = json.load(f)
        except (OSError, ValueError):
            return None
        if isinstance(value, bool):
            return value
        return None

    def write_marker(self, path: str, portable: bool) -> None:
        marker = os.path.join(path, self.marker_name)
        try:
            with open(marker, "w", encoding="utf-8") as f:
                f.write(json.dumps(portable) + "\n")
        except OSError as exc:
            logger.debug("Could not write portability marker %s: %s", marker, exc)

    def _discard_stale_marker(self, path: str) -> None:
        try:
            os.unlink(os.path.join(path, self.marker_name))
        except OSError:
            pass

    def is_portable(self, path: str) -> bool:
        """Return True if ``path`` contains no compiled binaries.

        Non-directories (symlinks included) are portable unless their name
        ends with the native extension. Dot entries inside a directory are
        ignored.
        """
        mode = os.lstat(path).st_mode
        if not stat.S_ISDIR(mode):
            return not path.endswith(self.native_extension)

        can_cache = self._is_cacheable(path)
        if can_cache:
            cached = self.read_marker(path)
            if cached is not None:
                return cached
        else:
            self._discard_stale_marker(path)

        result = all(
            self.is_portable(os.path.join(path, item))
            for item in sorted(os.listdir(path))
            if not item.startswith(".")
        )

        if can_cache:
            self.write_marker(path, result)
            if is_debug_enabled(logger):
                logger.debug(
                    "Computed portability",
                    extra=extra_context(
                        event="portability_scan",
                        component="portability",
                        target=path,
                        outcome="portable" if result else "native",
                    ),
                )
        return result

    def dependencies_are_portable(self, node_modules_dir: str) -> bool:
        """Return True if every package under ``node_modules_dir`` is portable.

        Raises:
            ValueError: If the directory is not named like ``node_modules``.
        """
        base = os.path.basename(node_modules_dir.rstrip(os.sep))
        if not base.startswith(Constants.NODE_MODULES):
            raise ValueError(f"Bad node_modules directory: {node_modules_dir}")
        return self.is_portable(node_modules_dir)
