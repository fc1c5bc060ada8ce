"""Subprocess wrapper for the npm executable."""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Dict, List, Optional

from constants import Constants
from common.logging_utils import Timer, extra_context, is_debug_enabled

logger = logging.getLogger(__name__)

# Empty npmrc shipped with the package so npm never reads the user's ~/.npmrc.
DEFAULT_USERCONFIG = os.path.join(os.path.dirname(os.path.abspath(__file__)), "npm-userconfig")


def _byte_len(text: str) -> int:
    return len(text.encode("utf-8"))


def _clip(text: str, max_bytes: int) -> str:
    """First ``max_bytes`` bytes of ``text``, never splitting a character."""
    return text.encode("utf-8")[:max_bytes].decode("utf-8", errors="ignore")


@dataclass
class NpmResult:
    """Outcome of one npm invocation."""

    success: bool
    stdout: str = ""
    stderr: str = ""
    error: str = ""


class NpmRunner:
    """Runs npm commands with a fixed user config and bounded output."""

    def __init__(
        self,
        npm_path: str = Constants.NPM_PATH,
        userconfig: Optional[str] = None,
        max_buffer: int = Constants.NPM_MAX_BUFFER,
        env: Optional[Dict[str, str]] = None,
    ):
        self.npm_path = npm_path
        self.userconfig = userconfig or DEFAULT_USERCONFIG
        self.max_buffer = max_buffer
        self.env = env

    def _build_env(self) -> Dict[str, str]:
        env = dict(os.environ if self.env is None else self.env)
        env["npm_config_userconfig"] = self.userconfig
        return env

    def run(self, args: List[str], cwd: Optional[str] = None) -> NpmResult:
        """Run ``npm <args>`` in ``cwd`` and capture its output.

        Output is decoded as UTF-8 with undecodable bytes replaced. A missing
        executable, or more than ``max_buffer`` bytes on either stream, is
        reported as a failed result rather than raised.
        """
        cmd = [self.npm_path] + list(args)
        if is_debug_enabled(logger):
            logger.debug(
                "npm command",
                extra=extra_context(
                    event="npm_command", component="npm", action=" ".join(args), target=cwd
                ),
            )

        with Timer() as timer:
            try:
                proc = subprocess.run(
                    cmd,
                    cwd=cwd,
                    env=self._build_env(),
                    capture_output=True,
                    encoding="utf-8",
                    errors="replace",
                    check=False,
                )
            except OSError as exc:
                return NpmResult(success=False, error=f"{exc}")

        stdout, stderr = proc.stdout or "", proc.stderr or ""
        if _byte_len(stdout) > self.max_buffer or _byte_len(stderr) > self.max_buffer:
            result = NpmResult(
                success=False,
                stdout=_clip(stdout, self.max_buffer),
                stderr=_clip(stderr, self.max_buffer),
                error="npm output exceeded the configured buffer limit",
            )
        elif proc.returncode != 0:
            message = f"Command failed: {' '.join(cmd)} (exit code {proc.returncode})\n"
            result = NpmResult(success=False, stdout=stdout, stderr=stderr, error=message + stderr)
        else:
            result = NpmResult(success=True, stdout=stdout, stderr=stderr, error=stderr)

        logger.debug(
            "npm command finished",
            extra=extra_context(
                event="npm_result",
                component="npm",
                action=" ".join(args),
                outcome="success" if result.success else "failure",
                duration_ms=timer.duration_ms(),
                target=cwd,
            ),
        )
        return result
