"""Subprocess execution for CLI-backed adapters.

Wraps ``subprocess.Popen`` so callers get a ``Result`` instead of raising,
and so a running tool (fastlane, eas) is killed as soon as the job's
cancellation token fires.

Usage:
    result = run(["fastlane", "pilot", "upload"], cwd=build_dir, token=token)
    match result:
        case Ok(stdout):
            ...
        case Err(error) if error.cancelled:
            ...
"""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from storepub.core.cancel import CancellationToken
from storepub.core.result import Err, Ok, Result

__all__ = ["ProcessError", "run", "which"]

CANCELLED_RETURNCODE = -2
TIMEOUT_RETURNCODE = -1
_POLL_SLICE_SECONDS = 0.2


@dataclass(frozen=True, slots=True)
class ProcessError:
    """Error from a failed subprocess execution.

    Attributes:
        command: The command that was executed.
        returncode: Exit code; -1 on timeout/OS error, -2 when cancelled.
        stdout: Standard output (may be empty).
        stderr: Standard error (contains error details).
    """

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def cancelled(self) -> bool:
        return self.returncode == CANCELLED_RETURNCODE

    @property
    def timed_out(self) -> bool:
        return self.returncode == TIMEOUT_RETURNCODE and "timed out" in self.stderr

    def __str__(self) -> str:
        cmd_str = " ".join(self.command[:3])
        if len(self.command) > 3:
            cmd_str += " ..."
        return f"{cmd_str} failed (exit {self.returncode})"


def which(tool: str) -> str | None:
    return shutil.which(tool)


def run(
    cmd: list[str],
    cwd: Path,
    env: dict[str, str] | None = None,
    *,
    timeout: float | None = None,
    token: CancellationToken | None = None,
) -> Result[str, ProcessError]:
    """Execute a command and return stdout or error.

    Args:
        cmd: Command and arguments to execute.
        cwd: Working directory for the command.
        env: Environment variables (uses current env if None).
        timeout: Maximum seconds to wait (None for no limit).
        token: Cancellation token; the process is killed when it fires.

    Returns:
        Ok(stdout) on success, Err(ProcessError) on failure.
    """
    command = tuple(cmd)
    try:
        proc = subprocess.Popen(
            cmd,
            cwd=str(cwd),
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
    except OSError as e:
        return Err(ProcessError(command=command, returncode=-1, stdout="", stderr=str(e)))

    waited = 0.0
    while True:
        if token is not None and token.cancelled:
            proc.kill()
            stdout, _ = proc.communicate()
            return Err(
                ProcessError(
                    command=command,
                    returncode=CANCELLED_RETURNCODE,
                    stdout=stdout or "",
                    stderr="Command cancelled",
                )
            )
        try:
            stdout, stderr = proc.communicate(timeout=_POLL_SLICE_SECONDS)
            break
        except subprocess.TimeoutExpired:
            waited += _POLL_SLICE_SECONDS
            if timeout is not None and waited >= timeout:
                proc.kill()
                stdout, _ = proc.communicate()
                return Err(
                    ProcessError(
                        command=command,
                        returncode=TIMEOUT_RETURNCODE,
                        stdout=stdout or "",
                        stderr=f"Command timed out after {timeout}s",
                    )
                )

    if proc.returncode != 0:
        return Err(
            ProcessError(
                command=command,
                returncode=proc.returncode,
                stdout=stdout,
                stderr=stderr,
            )
        )
    return Ok(stdout)
