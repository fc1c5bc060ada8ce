"""Argument parsing functionality for depsync."""

import argparse


def _add_common(parser):
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to a YAML config file (default: $DEPSYNC_CONFIG)",
                        action="store", type=str)
    parser.add_argument("--npm",
                        dest="NPM_PATH",
                        help="npm executable to run",
                        action="store", type=str)
    parser.add_argument("--node",
                        dest="NODE_PATH",
                        help="node executable used to identify the runtime",
                        action="store", type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store", type=str,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                        default="INFO")


def _dependency(value):
    name, sep, version = value.partition("=")
    if not sep or not name or not version:
        raise argparse.ArgumentTypeError(f"expected NAME=VERSION, got {value!r}")
    return name, version


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog="depsync",
        description="Keep a package's npm dependency directory in sync and rebuilt.",
        add_help=True,
    )
    sub = parser.add_subparsers(dest="COMMAND", required=True)

    sync = sub.add_parser("sync", help="Install or update dependencies in a dependency root")
    _add_common(sync)
    sync.add_argument("ROOT", help="Dependency root directory (e.g. .npm/package)")
    sync.add_argument("-d", "--dep",
                      dest="DEPENDENCIES",
                      help="Desired dependency as NAME=VERSION (repeatable; none removes the root)",
                      action="append", type=_dependency, default=[])
    sync.add_argument("-n", "--name",
                      dest="PACKAGE_NAME",
                      help="Package name used in messages",
                      action="store", type=str, default="package")
    sync.add_argument("-q", "--quiet",
                      dest="QUIET",
                      help="Do not announce dependency updates",
                      action="store_true")

    rebuild = sub.add_parser("rebuild", help="Rebuild stale native packages")
    _add_common(rebuild)
    rebuild.add_argument("NODE_MODULES", help="node_modules directory")

    portable = sub.add_parser("portable", help="Report whether dependencies are portable")
    _add_common(portable)
    portable.add_argument("NODE_MODULES", help="node_modules directory")

    prod = sub.add_parser("prod-names", help="List production package names")
    _add_common(prod)
    prod.add_argument("NODE_MODULES", help="node_modules directory")

    sweep = sub.add_parser("sweep", help="Delete orphaned staging directories")
    _add_common(sweep)
    sweep.add_argument("ROOT", help="Dependency root directory")
    sweep.add_argument("--max-age",
                       dest="STALE_STAGING_AGE_SEC",
                       help="Minimum age in seconds before a staging directory is removed",
                       action="store", type=float)

    return parser.parse_args(argv)
