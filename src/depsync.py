"""depsync - keep npm dependency directories synchronized and natively rebuilt.

    Returns:
        int: Exit code
"""
import atexit
import logging
import sys

from args import parse_args
from cli_config import SyncConfig, build_config
from common.exceptions import DepsyncError
from common.logging_utils import configure_logging
from constants import ExitCodes
from portability.cache import PortabilityCache
from portability.stamp import RebuildStampStore, RuntimeIdentity, detect_runtime
from rebuild.pipeline import RebuildPipeline
from registry.http import ensure_connected
from registry.npm.client import NpmClient
from registry.npm.runner import NpmRunner
from staging.registry import StagingRegistry
from staging.transaction import sweep_orphans
from synchronizer.orchestrator import DependencySynchronizer

logger = logging.getLogger(__name__)


class Components:  # pylint: disable=too-few-public-methods
    """Wired collaborators sharing one staging registry and runtime identity."""

    def __init__(self, config: SyncConfig, runtime: RuntimeIdentity, registry: StagingRegistry):
        self.config = config
        self.runtime = runtime
        self.registry = registry
        self.portability = PortabilityCache()
        self.stamps = RebuildStampStore(runtime)
        self.npm = NpmClient(
            NpmRunner(
                npm_path=config.npm_path,
                userconfig=config.npm_userconfig,
                max_buffer=config.max_buffer,
            ),
            self.portability,
            self.stamps,
            probe=lambda: ensure_connected(config.probe_url),
            rebuild_args=config.rebuild_args,
        )
        self.synchronizer = DependencySynchronizer(
            self.npm,
            runtime,
            registry,
            registry_url=config.registry_url,
            stale_staging_age_sec=config.stale_staging_age_sec,
        )
        self.rebuilder = RebuildPipeline(self.npm, self.portability, self.stamps, registry)


def run(args, registry: StagingRegistry) -> int:
    """Execute one parsed command and return its exit code."""
    config = build_config(args)

    if args.COMMAND == "sweep":
        for path in sweep_orphans(args.ROOT, config.stale_staging_age_sec):
            print(path)
        return ExitCodes.SUCCESS.value

    if args.COMMAND == "portable":
        portable = PortabilityCache().dependencies_are_portable(args.NODE_MODULES)
        print("portable" if portable else "not portable")
        return ExitCodes.SUCCESS.value

    components = Components(config, detect_runtime(config.node_path), registry)

    if args.COMMAND == "prod-names":
        for name in sorted(components.npm.get_prod_package_names(args.NODE_MODULES)):
            print(name)
        return ExitCodes.SUCCESS.value

    if args.COMMAND == "rebuild":
        changed = components.rebuilder.rebuild_if_non_portable(args.NODE_MODULES)
        logger.info("Rebuilt native packages" if changed else "Nothing to rebuild")
        return ExitCodes.SUCCESS.value

    components.synchronizer.quiet = args.QUIET
    desired = dict(args.DEPENDENCIES)
    installed = components.synchronizer.sync(args.PACKAGE_NAME, desired, args.ROOT)
    if installed or not desired:
        return ExitCodes.SUCCESS.value
    return ExitCodes.NOT_SYNCED.value


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    configure_logging(args.LOG_LEVEL)

    registry = StagingRegistry()
    atexit.register(registry.drain_all)

    try:
        code = run(args, registry)
    except FileNotFoundError as e:
        logger.error("File not found: %s, aborting", e)
        code = ExitCodes.FILE_ERROR.value
    except (DepsyncError, ValueError) as e:
        logger.error("%s", e)
        code = ExitCodes.FILE_ERROR.value
    sys.exit(code)


if __name__ == "__main__":
    main()
