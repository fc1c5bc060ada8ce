"""Isolated ``npm rebuild`` of native packages.

Packages whose compiled binaries may not match the current runtime are
copied into a private staging directory, rebuilt there in a single npm
invocation, and only swapped back over the originals if the rebuild
succeeded. A failed rebuild leaves every original package untouched.
"""

from __future__ import annotations

import logging
import os
import shutil
from typing import Dict, List

from constants import Constants
from common.logging_utils import Timer, extra_context
from portability.cache import PortabilityCache
from portability.stamp import RebuildStampStore
from registry.npm.client import NpmClient
from staging.registry import StagingRegistry
from staging.transaction import DirectoryTransaction, random_token, rename_dir_almost_atomically

logger = logging.getLogger(__name__)


def _copy_entry(src: str, dst: str) -> None:
    if os.path.isdir(src) and not os.path.islink(src):
        shutil.copytree(src, dst, symlinks=True)
    else:
        shutil.copy2(src, dst, follow_symlinks=False)


def copy_package_with_symlinked_node_modules(from_pkg_dir: str, to_pkg_dir: str) -> None:
    """Copy a package directory, symlinking its nested dependencies.

    Everything except ``node_modules`` is copied. Each package directory in
    the nested ``node_modules`` becomes a symlink to the original (or a real
    copy where symlinks are not available); ``.bin`` and stray files there
    are left out because they confuse ``npm rebuild``.
    """
    os.makedirs(to_pkg_dir)

    has_node_modules = False
    for item in sorted(os.listdir(from_pkg_dir)):
        if item == Constants.NODE_MODULES:
            has_node_modules = True
            continue
        _copy_entry(os.path.join(from_pkg_dir, item), os.path.join(to_pkg_dir, item))

    if not has_node_modules:
        return

    from_node_modules = os.path.join(from_pkg_dir, Constants.NODE_MODULES)
    to_node_modules = os.path.join(to_pkg_dir, Constants.NODE_MODULES)
    os.mkdir(to_node_modules)

    for dep in sorted(os.listdir(from_node_modules)):
        if dep == Constants.BIN_DIR:
            continue
        abs_from = os.path.abspath(os.path.join(from_node_modules, dep))
        if not os.path.isdir(abs_from):
            continue
        abs_to = os.path.join(to_node_modules, dep)
        try:
            os.symlink(abs_from, abs_to, target_is_directory=True)
        except OSError:
            shutil.copytree(abs_from, abs_to, symlinks=True)


class RebuildPipeline:
    """Finds stale native packages under a node_modules directory and rebuilds them."""

    def __init__(
        self,
        npm: NpmClient,
        portability: PortabilityCache,
        stamps: RebuildStampStore,
        registry: StagingRegistry,
    ):
        self.npm = npm
        self.portability = portability
        self.stamps = stamps
        self.registry = registry

    def packages_to_rebuild(self, node_modules_dir: str) -> List[str]:
        """Top-level package directories that are native and not built for this runtime."""
        stale: List[str] = []
        for pkg in sorted(os.listdir(node_modules_dir)):
            if pkg.startswith("."):
                continue
            pkg_path = os.path.join(node_modules_dir, pkg)
            if not os.path.isdir(pkg_path):
                continue
            if self.portability.is_portable(pkg_path):
                continue
            if self.stamps.is_current(pkg_path):
                continue
            stale.append(pkg_path)
        return stale

    def rebuild_if_non_portable(self, node_modules_dir: str) -> bool:
        """Rebuild native packages in ``node_modules_dir`` if needed.

        Returns:
            bool: True iff any package directory was replaced.
        """
        # Nested symlinks in the staged copies must not be relative.
        node_modules_dir = os.path.abspath(node_modules_dir)
        dirs_to_rebuild = self.packages_to_rebuild(node_modules_dir)
        if not dirs_to_rebuild:
            return False

        staging_root = os.path.join(
            node_modules_dir, Constants.REBUILD_TEMP_PREFIX + random_token()
        )
        with DirectoryTransaction(node_modules_dir, self.registry, staging_path=staging_root):
            # npm rebuild works on <cwd>/node_modules, so the staged copies
            # must live in a directory with exactly that name.
            temp_node_modules = os.path.join(staging_root, Constants.NODE_MODULES)
            os.mkdir(temp_node_modules)

            temp_pkg_dirs: Dict[str, str] = {}
            for pkg_path in dirs_to_rebuild:
                temp_pkg_dir = os.path.join(temp_node_modules, os.path.basename(pkg_path))
                temp_pkg_dirs[pkg_path] = temp_pkg_dir
                copy_package_with_symlinked_node_modules(pkg_path, temp_pkg_dir)
                # Recorded before the rebuild; a failed rebuild discards the copy.
                self.stamps.write(temp_pkg_dir)

            names = ", ".join(os.path.basename(p) for p in dirs_to_rebuild)
            logger.info("Rebuilding native npm packages: %s", names)
            with Timer() as timer:
                result = self.npm.rebuild(staging_root)
            if not result.success:
                logger.error(
                    "npm rebuild failed: %s",
                    result.error,
                    extra=extra_context(
                        event="npm_rebuild",
                        component="rebuild",
                        outcome="failure",
                        duration_ms=timer.duration_ms(),
                        target=node_modules_dir,
                    ),
                )
                return False

            for pkg_path in dirs_to_rebuild:
                actual_node_modules = os.path.join(pkg_path, Constants.NODE_MODULES)
                if os.path.isdir(actual_node_modules) and not os.path.islink(actual_node_modules):
                    # Put the real nested packages back in place of the symlinks.
                    rename_dir_almost_atomically(
                        actual_node_modules,
                        os.path.join(temp_pkg_dirs[pkg_path], Constants.NODE_MODULES),
                    )
                rename_dir_almost_atomically(temp_pkg_dirs[pkg_path], pkg_path)

            logger.info(
                "Rebuilt %d native npm package%s",
                len(dirs_to_rebuild),
                "" if len(dirs_to_rebuild) == 1 else "s",
                extra=extra_context(
                    event="npm_rebuild",
                    component="rebuild",
                    outcome="success",
                    duration_ms=timer.duration_ms(),
                    target=node_modules_dir,
                ),
            )
        return True
