"""Rebuilding native npm packages for the current runtime."""

from .pipeline import RebuildPipeline, copy_package_with_symlinked_node_modules

__all__ = ["RebuildPipeline", "copy_package_with_symlinked_node_modules"]
