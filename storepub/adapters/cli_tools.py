"""Invocation of third-party release CLIs (fastlane, EAS)."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from storepub.core.cancel import CancellationToken
from storepub.core.errors import PublishError
from storepub.core.result import Err, Ok, Result
from storepub.output.log import PublishLogger
from storepub.platform.process import run as run_process
from storepub.platform.process import which

from .base import process_failure

# Uploads of large bundles routinely take several minutes.
CLI_TIMEOUT_SECONDS = 30 * 60


class CommandRunner:
    """Runs one CLI with extra environment and redacted failure output."""

    def __init__(
        self,
        tool: str,
        *,
        logger: PublishLogger,
        secrets: Mapping[str, str],
        timeout: float = CLI_TIMEOUT_SECONDS,
    ) -> None:
        self.tool = tool
        self._logger = logger
        self._secrets = dict(secrets)
        self._timeout = timeout

    def available(self) -> bool:
        return which(self.tool) is not None

    def require(self) -> Result[None, PublishError]:
        if not self.available():
            return Err(
                PublishError.configuration(
                    f"{self.tool} not found on PATH",
                    hint=f"install {self.tool} or choose another delivery mechanism",
                )
            )
        return Ok(None)

    def run(
        self,
        args: list[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
        token: CancellationToken,
        action: str,
    ) -> Result[str, PublishError]:
        cmd = [self.tool, *args]
        self._logger.debug(f"Running {' '.join(cmd[:3])} ...", {"cwd": str(cwd)})
        full_env = {**os.environ, **env} if env else None
        result = run_process(cmd, cwd=cwd, env=full_env, timeout=self._timeout, token=token)
        if isinstance(result, Err):
            return Err(process_failure(action, result.error, self._secrets))
        return Ok(result.value)
