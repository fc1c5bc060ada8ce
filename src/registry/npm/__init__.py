"""npm package manager support.

- runner.py: subprocess wrapper around the npm executable
- client.py: install, install-from-lock, ls, and rebuild operations
"""

from .runner import NpmResult, NpmRunner
from .client import NpmClient, classify_install_failure, find_paths_with_colons, install_arg

__all__ = [
    "NpmClient",
    "NpmResult",
    "NpmRunner",
    "classify_install_failure",
    "find_paths_with_colons",
    "install_arg",
]
