"""Portability cache and rebuild stamps for installed npm packages."""

from .cache import PortabilityCache
from .stamp import (
    RebuildStampStore,
    RuntimeIdentity,
    detect_runtime,
    runtime_file_compatible,
    stamp_compatible,
    write_runtime_file,
)

__all__ = [
    "PortabilityCache",
    "RebuildStampStore",
    "RuntimeIdentity",
    "detect_runtime",
    "runtime_file_compatible",
    "stamp_compatible",
    "write_runtime_file",
]
