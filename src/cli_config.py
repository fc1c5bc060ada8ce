"""Runtime configuration for depsync.

Values come from ``Constants`` defaults, then an optional YAML file, then the
environment, then CLI flags (highest precedence).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from constants import Constants

logger = logging.getLogger(__name__)


@dataclass
class SyncConfig:
    """Tunables for the npm runner, probe, staging sweep, and rebuild."""

    npm_path: str = Constants.NPM_PATH
    node_path: str = Constants.NODE_PATH
    npm_userconfig: Optional[str] = None
    registry_url: str = Constants.REGISTRY_URL_NPM
    probe_url: Optional[str] = None
    max_buffer: int = Constants.NPM_MAX_BUFFER
    stale_staging_age_sec: float = Constants.STALE_STAGING_AGE_SEC
    rebuild_args: List[str] = field(default_factory=lambda: list(Constants.NPM_REBUILD_ARGS))


_INT_KEYS = ("max_buffer",)
_FLOAT_KEYS = ("stale_staging_age_sec",)
_STR_KEYS = ("npm_path", "node_path", "npm_userconfig", "registry_url", "probe_url")


def load_config_file(path: Optional[str]) -> Dict[str, Any]:
    """Read a YAML config file; a missing path yields an empty mapping.

    A ``depsync:`` top-level section is used when present.

    Raises:
        ValueError: If the file exists but is not a YAML mapping.
    """
    if not path:
        return {}
    if not os.path.isfile(path):
        logger.warning("Config file not found: %s", path)
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")
    section = data.get("depsync", data)
    return section if isinstance(section, dict) else {}


def _apply(config: SyncConfig, values: Dict[str, Any]) -> None:
    for key in _STR_KEYS:
        if values.get(key):
            setattr(config, key, str(values[key]))
    for key in _INT_KEYS:
        if values.get(key) is not None:
            setattr(config, key, int(values[key]))
    for key in _FLOAT_KEYS:
        if values.get(key) is not None:
            setattr(config, key, float(values[key]))
    if values.get("rebuild_args"):
        args = values["rebuild_args"]
        if isinstance(args, str):
            args = args.split()
        config.rebuild_args = [str(a) for a in args]


def build_config(args: Any = None, environ: Optional[Dict[str, str]] = None) -> SyncConfig:
    """Resolve the effective configuration.

    Args:
        args: Parsed CLI namespace (attributes named like ``SyncConfig`` fields
            in upper case, plus ``CONFIG``), or None.
        environ: Environment mapping; defaults to ``os.environ``.
    """
    env = os.environ if environ is None else environ
    config = SyncConfig()

    config_path = getattr(args, "CONFIG", None) or env.get(Constants.ENV_CONFIG_PATH)
    _apply(config, load_config_file(config_path))

    registry = env.get(Constants.ENV_NPM_REGISTRY)
    if registry:
        # npm installs from this registry too, so its tarball URLs are not forks.
        config.registry_url = registry
        config.probe_url = registry

    cli_values = {
        key: getattr(args, key.upper(), None)
        for key in _STR_KEYS + _INT_KEYS + _FLOAT_KEYS
    }
    _apply(config, cli_values)
    return config
