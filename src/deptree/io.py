"""Reading and writing dependency trees on disk."""

from __future__ import annotations

import json
import logging
import os
from typing import Dict, Optional

from constants import Constants
from deptree.models import DependencyNode, DependencyTree

logger = logging.getLogger(__name__)


def _read_package_json(pkg_dir: str) -> Optional[dict]:
    path = os.path.join(pkg_dir, Constants.PACKAGE_JSON_FILE)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def _node_from_package_dir(pkg_dir: str) -> Optional[DependencyNode]:
    pkg = _read_package_json(pkg_dir)
    if pkg is None:
        return None
    node = DependencyNode(
        version=pkg.get("version"),
        resolved=pkg.get("_resolved") or pkg.get("resolved") or None,
        from_=pkg.get("_from") or pkg.get("from") or None,
    )
    nested = _walk_node_modules(os.path.join(pkg_dir, Constants.NODE_MODULES))
    if nested:
        node.dependencies = nested
    return node


def _walk_node_modules(node_modules_dir: str) -> Dict[str, DependencyNode]:
    try:
        entries = sorted(os.listdir(node_modules_dir))
    except OSError:
        return {}

    result: Dict[str, DependencyNode] = {}
    for item in entries:
        # Skips .bin, the lock mirror, and our own marker files.
        if item.startswith("."):
            continue
        item_path = os.path.join(node_modules_dir, item)
        if item.startswith("@") and os.path.isdir(item_path):
            try:
                scoped = sorted(os.listdir(item_path))
            except OSError:
                continue
            for sub in scoped:
                if sub.startswith("."):
                    continue
                node = _node_from_package_dir(os.path.join(item_path, sub))
                if node is not None:
                    result[f"{item}/{sub}"] = node
            continue
        node = _node_from_package_dir(item_path)
        if node is not None:
            result[item] = node
    return result


def read_installed_tree(root: str) -> DependencyTree:
    """Walk ``root/node_modules`` and return what is actually installed.

    Entries without a readable ``package.json`` are skipped, as are dot
    entries. Children are visited in sorted order.
    """
    return DependencyTree(
        dependencies=_walk_node_modules(os.path.join(root, Constants.NODE_MODULES))
    )


def read_lock_tree(root: str) -> DependencyTree:
    """Load ``root/npm-shrinkwrap.json``.

    Raises:
        OSError: If the lock file cannot be read.
        ValueError: If it is not valid JSON.
    """
    path = os.path.join(root, Constants.LOCK_FILE)
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Lock file is not a JSON object: {path}")
    return DependencyTree.from_dict(data)


def dump_tree(tree: DependencyTree) -> str:
    """Serialize a tree the way lock files are written: 2-space indent, trailing newline."""
    return json.dumps(tree.to_dict(), indent=2) + "\n"


def write_lock_tree(path: str, tree: DependencyTree) -> None:
    with open(path, "w", encoding="utf-8") as f:
        f.write(dump_tree(tree))
    logger.debug("Wrote lock tree with %d top-level entries to %s", len(tree.dependencies), path)
