"""Keeps a package's dependency root in sync with its declared npm dependencies."""

from .orchestrator import DependencySynchronizer

__all__ = ["DependencySynchronizer"]
