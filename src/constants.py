"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    NOT_SYNCED = 2


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    REGISTRY_URL_NPM = "https://registry.npmjs.org/"
    DEFAULT_PROBE_URL = "http://registry.npmjs.org"
    ENV_NPM_REGISTRY = "NPM_CONFIG_REGISTRY"
    ENV_CONFIG_PATH = "DEPSYNC_CONFIG"
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for the connectivity probe

    # Dependency root layout
    LOCK_FILE = "npm-shrinkwrap.json"
    LOCK_MIRROR_FILE = ".npm-shrinkwrap.json"
    NODE_MODULES = "node_modules"
    PACKAGE_JSON_FILE = "package.json"
    GITIGNORE_FILE = ".gitignore"
    README_FILE = "README"
    RUNTIME_VERSION_FILE = ".node_version"
    BIN_DIR = ".bin"

    # Per-package cache files
    PORTABLE_MARKER_FILE = ".depsync-portable"
    REBUILD_STAMP_FILE = ".depsync-last-rebuild-version.json"
    NATIVE_EXTENSION = ".node"

    # Staging names
    STAGING_INFIX = "-new-"
    GARBAGE_INFIX = "-garbage-"
    REBUILD_TEMP_PREFIX = ".temp-"
    STALE_STAGING_AGE_SEC = 3600

    # npm process
    NPM_PATH = "npm"
    NODE_PATH = "node"
    NPM_MAX_BUFFER = 10 * 1024 * 1024
    NPM_REBUILD_ARGS = ["rebuild", "--update-binary"]

    # Shown in generated dependency roots; users commit it, keep it stable.
    README_TEXT = (
        "This directory and the files immediately inside it are automatically generated\n"
        "when you change this package's NPM dependencies. Commit the files in this\n"
        "directory (npm-shrinkwrap.json, .gitignore, and this README) to source control\n"
        "so that others run the same versions of sub-dependencies.\n"
        "\n"
        "You should NOT check in the node_modules directory that is automatically\n"
        "created; if you are using git, the .gitignore file tells git to ignore it.\n"
    )
