"""Crash-safe directory replacement.

- registry.py: process-lifetime registry of in-flight staging directories
- transaction.py: stage-then-rename transactions and the orphan sweep
"""

from .registry import StagingRegistry, rm_recursive
from .transaction import (
    DirectoryTransaction,
    random_token,
    remove_dir_atomically,
    rename_dir_almost_atomically,
    staging_path_for,
    sweep_orphans,
)

__all__ = [
    "StagingRegistry",
    "DirectoryTransaction",
    "random_token",
    "remove_dir_atomically",
    "rename_dir_almost_atomically",
    "rm_recursive",
    "staging_path_for",
    "sweep_orphans",
]
