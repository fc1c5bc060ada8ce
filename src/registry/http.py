"""Connectivity preflight for npm registry access.

``npm install`` takes more than a minute to time out when the registry is
unreachable, so installs probe the registry first and bail out early.
"""
from __future__ import annotations

import logging
import os
from typing import Optional

import requests

from constants import Constants
from common.logging_utils import Timer, extra_context, is_debug_enabled
from common.outcome import Outcome

logger = logging.getLogger(__name__)

NOT_CONNECTED_MESSAGE = "Can't install npm dependencies. Are you connected to the internet?"


def probe_url(override: Optional[str] = None) -> str:
    """Registry URL to probe: explicit override, then $NPM_CONFIG_REGISTRY, then the default."""
    if override:
        return override
    return os.environ.get(Constants.ENV_NPM_REGISTRY) or Constants.DEFAULT_PROBE_URL


def ensure_connected(url: Optional[str] = None) -> Outcome:
    """GET the registry URL; any request failure is a recoverable outcome.

    Args:
        url: Optional override of the probe target.

    Returns:
        Outcome: OK when the registry answered at all (any status code).
    """
    target = probe_url(url)
    with Timer() as timer:
        try:
            requests.get(target, timeout=Constants.REQUEST_TIMEOUT)
        except requests.RequestException as exc:  # includes ConnectionError and Timeout
            logger.debug(
                "Registry probe failed: %s",
                exc,
                extra=extra_context(
                    event="http_error",
                    component="http",
                    action="GET",
                    outcome="exception",
                    target=target,
                ),
            )
            return Outcome.recoverable(NOT_CONNECTED_MESSAGE)
    if is_debug_enabled(logger):
        logger.debug(
            "Registry probe ok",
            extra=extra_context(
                event="http_response",
                component="http",
                action="GET",
                outcome="success",
                duration_ms=timer.duration_ms(),
                target=target,
            ),
        )
    return Outcome.ok()
