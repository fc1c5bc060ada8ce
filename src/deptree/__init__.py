"""Dependency tree model, comparison, and on-disk access.

- models.py: DependencyNode / DependencyTree dataclasses
- compare.py: canonical versions, minimization, subtree containment
- io.py: installed-tree walk and lock file (de)serialization
"""

from .models import DependencyNode, DependencySpec, DependencyTree
from .compare import (
    canonical_version,
    desired_tree,
    is_source_url,
    is_subtree_of,
    minimize,
    versions_compatible,
)
from .io import read_installed_tree, read_lock_tree, write_lock_tree

__all__ = [
    "DependencyNode",
    "DependencySpec",
    "DependencyTree",
    "canonical_version",
    "desired_tree",
    "is_source_url",
    "is_subtree_of",
    "minimize",
    "versions_compatible",
    "read_installed_tree",
    "read_lock_tree",
    "write_lock_tree",
]
