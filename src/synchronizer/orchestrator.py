"""Synchronization of a dependency root with a desired npm dependency spec.

A dependency root (conventionally ``<package>/.npm/package``) holds the lock
file ``npm-shrinkwrap.json``, a ``.gitignore``, a ``README``, and the
installed ``node_modules``. Every change is assembled in a staging sibling
and renamed into place, so the root is always either the complete old state
or the complete new one.
"""

from __future__ import annotations

import logging
import os
import shutil

from constants import Constants
from common.exceptions import CorruptedDependencyRoot
from common.logging_utils import extra_context
from common.outcome import Outcome
from deptree.compare import desired_tree, is_subtree_of, minimize
from deptree.io import read_installed_tree, read_lock_tree, write_lock_tree
from deptree.models import DependencySpec, DependencyTree
from portability.stamp import RuntimeIdentity, runtime_file_compatible, write_runtime_file
from registry.npm.client import NpmClient
from staging.registry import StagingRegistry, rm_recursive
from staging.transaction import DirectoryTransaction, remove_dir_atomically, sweep_orphans

logger = logging.getLogger(__name__)


class DependencySynchronizer:
    """Installs, updates, or removes the npm dependencies of one dependency root."""

    def __init__(
        self,
        npm: NpmClient,
        runtime: RuntimeIdentity,
        registry: StagingRegistry,
        registry_url: str = Constants.REGISTRY_URL_NPM,
        stale_staging_age_sec: float = Constants.STALE_STAGING_AGE_SEC,
        quiet: bool = False,
    ):
        self.npm = npm
        self.runtime = runtime
        self.registry = registry
        self.registry_url = registry_url
        self.stale_staging_age_sec = stale_staging_age_sec
        self.quiet = quiet

    def sync(self, package_name: str, desired: DependencySpec, root: str) -> bool:
        """Bring ``root`` in line with ``desired``.

        Args:
            package_name: Owning package, used in log messages.
            desired: Package name -> version or source URL. Empty removes ``root``.
            root: Dependency root directory.

        Returns:
            bool: True iff dependencies are installed and present afterwards.
            False when ``desired`` is empty or an expected failure (unknown
            package, no network, ...) abandoned the update.

        Raises:
            CorruptedDependencyRoot: If ``root`` loses its lock file mid-update.
        """
        sweep_orphans(root, self.stale_staging_age_sec)

        if not desired:
            # Rename first so a concurrent run never sees a half-deleted root.
            if remove_dir_atomically(root):
                logger.debug("Removed dependency root %s", root)
            return False

        lock_path = os.path.join(root, Constants.LOCK_FILE)
        if os.path.lexists(root) and not os.path.exists(lock_path):
            # Left behind by an interrupted legacy install; start over.
            logger.warning("Removing dependency root without %s: %s", Constants.LOCK_FILE, root)
            rm_recursive(root)

        if os.path.exists(root):
            outcome = self._update_existing(package_name, root, desired)
        else:
            outcome = self._create_fresh(package_name, root, desired)

        if not outcome.is_ok:
            logger.error(
                "%s: %s",
                package_name,
                outcome.message,
                extra=extra_context(
                    event="npm_sync", component="synchronizer", outcome="recoverable", target=root
                ),
            )
            return False
        return True

    def _log_update(self, package_name: str, desired: DependencySpec) -> None:
        if not self.quiet:
            logger.info(
                "%s: updating npm dependencies -- %s...", package_name, ", ".join(desired.keys())
            )

    def _installed_tree(self, root: str) -> DependencyTree:
        node_modules = os.path.join(root, Constants.NODE_MODULES)
        if os.path.isdir(node_modules) and not runtime_file_compatible(node_modules, self.runtime):
            # Installed for another runtime; binaries may be unusable.
            logger.debug("Ignoring %s installed for a different runtime", node_modules)
            return DependencyTree()
        return read_installed_tree(root)

    def _update_existing(self, package_name: str, root: str, desired: DependencySpec) -> Outcome:
        if not os.path.isdir(root):
            raise CorruptedDependencyRoot(root, "should be a directory")
        if not os.path.exists(os.path.join(root, Constants.LOCK_FILE)):
            raise CorruptedDependencyRoot(root, f"can't find {Constants.LOCK_FILE}")

        installed = self._installed_tree(root)
        locked = read_lock_tree(root)

        min_installed = minimize(installed, self.registry_url)
        min_locked = minimize(locked, self.registry_url)
        wanted = desired_tree(desired)

        if is_subtree_of(wanted, min_installed) and is_subtree_of(min_locked, min_installed):
            return Outcome.ok()

        self._log_update(package_name, desired)

        if is_subtree_of(wanted, min_locked):
            # Reuse previously resolved sub-dependency versions.
            preserved = locked
        else:
            preserved = DependencyTree.from_spec(desired)

        with DirectoryTransaction(root, self.registry) as tx:
            self._prepare_staging(tx.staging_path)
            if not preserved.is_empty():
                staged_lock = os.path.join(tx.staging_path, Constants.LOCK_FILE)
                write_lock_tree(staged_lock, preserved)
                outcome = self.npm.install_from_lock(tx.staging_path)
                if not outcome.is_ok:
                    return outcome
                os.unlink(staged_lock)
            self._complete(tx)
        return Outcome.ok()

    def _create_fresh(self, package_name: str, root: str, desired: DependencySpec) -> Outcome:
        self._log_update(package_name, desired)
        with DirectoryTransaction(root, self.registry) as tx:
            self._prepare_staging(tx.staging_path)
            for name, version in desired.items():
                outcome = self.npm.install_module(name, version, tx.staging_path)
                if not outcome.is_ok:
                    return outcome
            self._complete(tx)
        return Outcome.ok()

    def _prepare_staging(self, staging_path: str) -> None:
        # An empty node_modules stops npm from installing into one further up.
        os.mkdir(os.path.join(staging_path, Constants.NODE_MODULES))
        with open(os.path.join(staging_path, Constants.GITIGNORE_FILE), "w", encoding="utf-8") as f:
            f.write(Constants.NODE_MODULES + "\n")

    def _complete(self, tx: DirectoryTransaction) -> None:
        staging_path = tx.staging_path
        node_modules = os.path.join(staging_path, Constants.NODE_MODULES)
        lock_path = os.path.join(staging_path, Constants.LOCK_FILE)

        write_lock_tree(lock_path, read_installed_tree(staging_path))
        shutil.copyfile(lock_path, os.path.join(node_modules, Constants.LOCK_MIRROR_FILE))
        with open(os.path.join(staging_path, Constants.README_FILE), "w", encoding="utf-8") as f:
            f.write(Constants.README_TEXT)
        write_runtime_file(node_modules, self.runtime)
        tx.commit()
