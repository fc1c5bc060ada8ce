"""Runtime identity and the per-package rebuild stamp.

Native packages record the runtime (platform, architecture, component
versions) their binaries were last built against. A later run skips the
rebuild when the current runtime is compatible with that record: platform
and architecture must match exactly, versions only at major.minor.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from constants import Constants
from common.exceptions import DepsyncError
from deptree.compare import is_subtree_of, parse_version, versions_compatible

logger = logging.getLogger(__name__)

_DETECT_SCRIPT = (
    "process.stdout.write(JSON.stringify("
    "{platform: process.platform, arch: process.arch, versions: process.versions}))"
)


@dataclass(frozen=True)
class RuntimeIdentity:
    """The runtime native artifacts are compiled for."""

    platform: str
    arch: str
    versions: Dict[str, str] = field(default_factory=dict)

    @property
    def node_version(self) -> Optional[str]:
        return self.versions.get("node")

    def to_dict(self) -> Dict[str, Any]:
        return {"platform": self.platform, "arch": self.arch, "versions": dict(self.versions)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RuntimeIdentity":
        return cls(
            platform=str(data["platform"]),
            arch=str(data["arch"]),
            versions={str(k): str(v) for k, v in (data.get("versions") or {}).items()},
        )


def detect_runtime(node_path: str = Constants.NODE_PATH) -> RuntimeIdentity:
    """Ask the ``node`` executable for its platform, arch and versions.

    Raises:
        DepsyncError: If node cannot be run or prints something unexpected.
    """
    try:
        proc = subprocess.run(
            [node_path, "-e", _DETECT_SCRIPT],
            capture_output=True,
            text=True,
            timeout=30,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        raise DepsyncError(f"Could not run {node_path}: {exc}") from exc
    if proc.returncode != 0:
        raise DepsyncError(f"{node_path} exited with {proc.returncode}: {proc.stderr.strip()}")
    try:
        return RuntimeIdentity.from_dict(json.loads(proc.stdout))
    except (ValueError, KeyError, TypeError, AttributeError) as exc:
        raise DepsyncError(f"Unexpected runtime description from {node_path}: {exc}") from exc


def stamp_compatible(current: RuntimeIdentity, recorded: Any) -> bool:
    """Return True if binaries built for ``recorded`` work on ``current``."""
    if not isinstance(recorded, Mapping):
        return False
    if recorded.get("platform") != current.platform or recorded.get("arch") != current.arch:
        return False
    return is_subtree_of(current.versions, recorded.get("versions"), versions_compatible)


class RebuildStampStore:
    """Reads and writes rebuild stamps inside package directories."""

    def __init__(self, runtime: RuntimeIdentity, stamp_name: str = Constants.REBUILD_STAMP_FILE):
        self.runtime = runtime
        self.stamp_name = stamp_name
        self._payload = json.dumps(runtime.to_dict(), indent=2) + "\n"

    def read(self, pkg_dir: str) -> Optional[Any]:
        """Recorded stamp, or None when missing or not valid JSON.

        Other I/O errors propagate.
        """
        path = os.path.join(pkg_dir, self.stamp_name)
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (FileNotFoundError, ValueError):
            return None

    def write(self, pkg_dir: str) -> None:
        """Record the current runtime in ``pkg_dir``."""
        with open(os.path.join(pkg_dir, self.stamp_name), "w", encoding="utf-8") as f:
            f.write(self._payload)

    def try_write(self, pkg_dir: str) -> None:
        """Like :meth:`write`, ignoring failures."""
        try:
            self.write(pkg_dir)
        except OSError as exc:
            logger.debug("Could not write rebuild stamp in %s: %s", pkg_dir, exc)

    def is_current(self, pkg_dir: str) -> bool:
        return stamp_compatible(self.runtime, self.read(pkg_dir))


def runtime_record(runtime: RuntimeIdentity) -> Dict[str, Any]:
    """Record written to ``node_modules/.node_version``."""
    return {"platform": runtime.platform, "arch": runtime.arch, "node": runtime.node_version}


def write_runtime_file(node_modules_dir: str, runtime: RuntimeIdentity) -> None:
    path = os.path.join(node_modules_dir, Constants.RUNTIME_VERSION_FILE)
    with open(path, "w", encoding="utf-8") as f:
        f.write(json.dumps(runtime_record(runtime), indent=2) + "\n")


def runtime_file_compatible(node_modules_dir: str, runtime: RuntimeIdentity) -> bool:
    """Return True if ``node_modules`` was installed for a compatible runtime.

    Accepts both the JSON record and the older plain version string
    (``v0.10.*``). A missing file counts as incompatible.
    """
    path = os.path.join(node_modules_dir, Constants.RUNTIME_VERSION_FILE)
    try:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
    except FileNotFoundError:
        return False

    try:
        record = json.loads(text)
    except ValueError:
        record = text.strip()

    if isinstance(record, Mapping):
        if record.get("platform") != runtime.platform or record.get("arch") != runtime.arch:
            return False
        recorded_version = record.get("node")
    elif isinstance(record, str):
        recorded_version = record
    else:
        return False

    if not recorded_version or not runtime.node_version:
        return False
    recorded = parse_version(str(recorded_version))
    current = parse_version(runtime.node_version)
    if recorded is None or current is None:
        return False
    return recorded.major == current.major and recorded.minor == current.minor
