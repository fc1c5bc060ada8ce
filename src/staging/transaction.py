"""Stage-then-rename directory transactions.

New directory contents are assembled in a sibling of the target whose name
carries a random token, then renamed over the target. Rename is the only
synchronization primitive: two processes updating the same target each use
their own staging directory and the last commit wins.
"""

from __future__ import annotations

import logging
import os
import re
import time
import uuid
from typing import List, Optional

from constants import Constants
from common.logging_utils import extra_context
from staging.registry import StagingRegistry, rm_recursive

logger = logging.getLogger(__name__)


def random_token() -> str:
    return uuid.uuid4().hex[:12]


def staging_path_for(target: str) -> str:
    """Sibling staging path for ``target``: ``<target>-new-<token>``."""
    return target.rstrip(os.sep) + Constants.STAGING_INFIX + random_token()


def rename_dir_almost_atomically(src: str, dst: str) -> None:
    """Replace ``dst`` with ``src``.

    ``os.rename`` cannot replace a non-empty directory, so the old ``dst`` is
    first renamed to a garbage sibling, then ``src`` takes its place, then the
    garbage is deleted. ``dst`` is only ever absent between two renames.
    """
    garbage = dst.rstrip(os.sep) + Constants.GARBAGE_INFIX + random_token()
    moved_old = True
    try:
        os.rename(dst, garbage)
    except FileNotFoundError:
        moved_old = False
    os.rename(src, dst)
    if moved_old:
        rm_recursive(garbage)


def remove_dir_atomically(path: str) -> bool:
    """Rename ``path`` aside and delete it.

    Returns:
        True if this call removed the directory, False if it was already gone
        (possibly removed by a concurrent process).
    """
    doomed = staging_path_for(path)
    try:
        os.rename(path, doomed)
    except FileNotFoundError:
        return False
    rm_recursive(doomed)
    return True


def _last_activity(path: str) -> float:
    # npm writes into node_modules, which leaves the staging directory's own
    # mtime untouched once its first entries exist.
    mtime = os.lstat(path).st_mtime
    try:
        mtime = max(mtime, os.lstat(os.path.join(path, Constants.NODE_MODULES)).st_mtime)
    except OSError:
        pass
    return mtime


def sweep_orphans(target: str, max_age_seconds: float = Constants.STALE_STAGING_AGE_SEC) -> List[str]:
    """Delete stale staging and garbage siblings of ``target``.

    Only entries named ``<basename>-new-<token>`` or
    ``<basename>-garbage-<token>`` are removed, and only when neither the
    entry nor its ``node_modules`` was modified within ``max_age_seconds``;
    younger ones may belong to a live process.

    Returns:
        The removed paths.
    """
    target = target.rstrip(os.sep)
    parent = os.path.dirname(target) or "."
    base = os.path.basename(target)
    pattern = re.compile(
        r"^"
        + re.escape(base)
        + "(?:"
        + re.escape(Constants.STAGING_INFIX)
        + "|"
        + re.escape(Constants.GARBAGE_INFIX)
        + r")[0-9a-f]+$"
    )
    try:
        entries = os.listdir(parent)
    except FileNotFoundError:
        return []

    cutoff = time.time() - max_age_seconds
    removed: List[str] = []
    for entry in entries:
        if not pattern.match(entry):
            continue
        path = os.path.join(parent, entry)
        try:
            mtime = _last_activity(path)
        except FileNotFoundError:
            continue
        if mtime > cutoff:
            continue
        rm_recursive(path)
        removed.append(path)

    if removed:
        logger.info(
            "Removed %d orphaned staging director%s next to %s",
            len(removed),
            "y" if len(removed) == 1 else "ies",
            target,
            extra=extra_context(event="staging_sweep", component="staging", target=target),
        )
    return removed


class DirectoryTransaction:
    """Scoped staging directory that is committed over a target or discarded.

    Use as a context manager; leaving the block without calling
    :meth:`commit` (normally or through an exception) deletes the staging
    directory.

        with DirectoryTransaction(target, registry) as tx:
            build_into(tx.staging_path)
            tx.commit()
    """

    def __init__(
        self,
        target: str,
        registry: StagingRegistry,
        staging_path: Optional[str] = None,
    ):
        self.target = target
        self.registry = registry
        self.staging_path = staging_path or staging_path_for(target)
        self._active = False
        self.committed = False

    def begin(self) -> str:
        """Register and create the staging directory."""
        self.registry.register(self.staging_path)
        self._active = True
        os.makedirs(self.staging_path)
        logger.debug(
            "Began staging %s",
            self.staging_path,
            extra=extra_context(event="staging_begin", component="staging", target=self.target),
        )
        return self.staging_path

    def commit(self) -> None:
        """Swap the staging directory over the target."""
        if not self._active:
            raise RuntimeError(f"No active staging directory for {self.target}")
        rename_dir_almost_atomically(self.staging_path, self.target)
        self.registry.deregister(self.staging_path)
        self._active = False
        self.committed = True
        logger.debug(
            "Committed %s",
            self.target,
            extra=extra_context(event="staging_commit", component="staging", target=self.target),
        )

    def abort(self) -> None:
        """Delete the staging directory; a no-op after commit."""
        if not self._active:
            return
        try:
            rm_recursive(self.staging_path)
        finally:
            self.registry.deregister(self.staging_path)
            self._active = False

    def __enter__(self) -> "DirectoryTransaction":
        self.begin()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.abort()
