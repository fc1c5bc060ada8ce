"""npm operations used by the synchronizer and the rebuild pipeline.

Install failures that are out of our control (unknown package, unknown
version, no network, filenames that would break on Windows) come back as
recoverable :class:`Outcome` values; the caller abandons the update.
"""

from __future__ import annotations

import json
import logging
import os
import re
import sys
from typing import Any, Callable, Dict, List, Optional, Set

from constants import Constants
from common.exceptions import DepsyncError
from common.outcome import Outcome
from deptree.compare import is_source_url
from portability.cache import PortabilityCache
from portability.stamp import RebuildStampStore
from registry.http import ensure_connected
from registry.npm.runner import NpmResult, NpmRunner

logger = logging.getLogger(__name__)

# Returns OK when the registry is reachable.
ConnectivityProbe = Callable[[], Outcome]

_MAX_LISTED_PATHS = 10


def install_arg(name: str, version: str) -> str:
    """Argument for ``npm install``: the URL itself, or ``name@version``."""
    return version if is_source_url(version) else f"{name}@{version}"


def classify_install_failure(name: str, version: str, result: NpmResult) -> str:
    """User-facing message for a failed ``npm install name@version``."""
    stderr = result.stderr or ""
    quoted_name = re.escape(name)
    not_found = (
        rf"404 '{quoted_name}' is not in the npm registry",
        rf"404 Not Found - GET \S*/{quoted_name}(?:\s|$)",
    )
    version_missing = (
        rf"version not found: {quoted_name}@{re.escape(version)}",
        rf"No matching version found for {quoted_name}@{re.escape(version)}",
    )
    if any(re.search(p, stderr) for p in not_found):
        return f"there is no npm package named '{name}'"
    if any(re.search(p, stderr) for p in version_missing):
        return f"{name} version {version} is not available in the npm registry"
    return f"couldn't install npm package {name}@{version}: {result.error}"


def find_paths_with_colons(root: str) -> List[str]:
    """Relative paths under ``root`` whose names contain ``:``."""
    found: List[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for item in sorted(dirnames + filenames):
            if ":" in item:
                found.append(os.path.relpath(os.path.join(dirpath, item), root))
    return found


class NpmClient:
    """High-level npm operations on a staged dependency root."""

    def __init__(
        self,
        runner: NpmRunner,
        portability: PortabilityCache,
        stamps: RebuildStampStore,
        probe: Optional[ConnectivityProbe] = None,
        rebuild_args: Optional[List[str]] = None,
    ):
        self.runner = runner
        self.portability = portability
        self.stamps = stamps
        self.probe = probe or ensure_connected
        self.rebuild_args = list(rebuild_args or Constants.NPM_REBUILD_ARGS)

    def _stamp_if_native(self, pkg_dir: str) -> None:
        # Freshly installed native packages were just built for this runtime.
        if os.path.isdir(pkg_dir) and not self.portability.is_portable(pkg_dir):
            self.stamps.try_write(pkg_dir)

    def install_module(self, name: str, version: str, root: str) -> Outcome:
        """``npm install name@version`` inside ``root``."""
        connected = self.probe()
        if not connected.is_ok:
            return connected

        result = self.runner.run(["install", install_arg(name, version)], cwd=root)
        if not result.success:
            return Outcome.recoverable(classify_install_failure(name, version, result))

        node_modules = os.path.join(root, Constants.NODE_MODULES)
        self._stamp_if_native(os.path.join(node_modules, name))

        if sys.platform != "win32":
            bad = find_paths_with_colons(node_modules)
            if bad:
                listed = bad[:_MAX_LISTED_PATHS]
                if len(bad) > _MAX_LISTED_PATHS:
                    listed.append(f"... {len(bad) - _MAX_LISTED_PATHS} paths omitted.")
                return Outcome.recoverable(
                    "Some filenames in your package have invalid characters.\n"
                    f"The following file paths in the NPM module '{name}' have colons, "
                    "':', which won't work on Windows:\n" + "\n".join(listed)
                )
        return Outcome.ok()

    def install_from_lock(self, root: str) -> Outcome:
        """Plain ``npm install`` in ``root``, which reads ``npm-shrinkwrap.json``.

        Raises:
            DepsyncError: If ``root`` has no lock file.
        """
        if not os.path.exists(os.path.join(root, Constants.LOCK_FILE)):
            raise DepsyncError(
                f"Can't call `npm install` without a {Constants.LOCK_FILE} file present"
            )

        connected = self.probe()
        if not connected.is_ok:
            return connected

        # An empty package.json keeps npm from warning (and sometimes failing)
        # about a missing manifest.
        placeholder = os.path.join(root, Constants.PACKAGE_JSON_FILE)
        created_placeholder = not os.path.exists(placeholder)
        if created_placeholder:
            with open(placeholder, "w", encoding="utf-8") as f:
                f.write("{}\n")
        try:
            result = self.runner.run(["install"], cwd=root)
        finally:
            if created_placeholder:
                os.unlink(placeholder)

        if not result.success:
            return Outcome.recoverable(
                f"couldn't install npm packages from {Constants.LOCK_FILE}: {result.error}"
            )

        node_modules = os.path.join(root, Constants.NODE_MODULES)
        if os.path.isdir(node_modules):
            for name in sorted(os.listdir(node_modules)):
                if not name.startswith("."):
                    self._stamp_if_native(os.path.join(node_modules, name))
        return Outcome.ok()

    def list_installed(self, node_modules_dir: str) -> Dict[str, Any]:
        """``npm ls --json`` for the project owning ``node_modules_dir``.

        ``--production`` is only passed when the parent directory has a
        ``package.json``; without one npm would report nothing.
        """
        parent = os.path.dirname(os.path.abspath(node_modules_dir))
        args = ["ls", "--json"]
        if os.path.isfile(os.path.join(parent, Constants.PACKAGE_JSON_FILE)):
            args.append("--production")
        result = self.runner.run(args, cwd=node_modules_dir)
        # npm ls exits non-zero for extraneous or missing packages but still
        # prints the tree.
        try:
            data = json.loads(result.stdout or "{}")
        except ValueError as exc:
            raise DepsyncError(f"Unexpected output from npm ls: {result.error or exc}") from exc
        return data if isinstance(data, dict) else {}

    def get_prod_package_names(self, node_modules_dir: str) -> Set[str]:
        """Flattened set of package names used in production."""
        names: Set[str] = set()

        def walk(deps: Optional[Dict[str, Any]]) -> None:
            if not isinstance(deps, dict):
                return
            for name, info in deps.items():
                names.add(name)
                if isinstance(info, dict):
                    walk(info.get("dependencies"))

        walk(self.list_installed(node_modules_dir).get("dependencies"))
        return names

    def rebuild(self, cwd: str) -> NpmResult:
        """``npm rebuild`` in ``cwd``; the node_modules below it is rebuilt."""
        return self.runner.run(self.rebuild_args, cwd=cwd)
