"""Store adapter contract and the helpers shared by every variant.

An adapter is one (platform, delivery mechanism) pair exposing the same
capability set. Every capability:

- returns ``Result[..., PublishError]`` instead of raising
- takes a ``CancellationToken`` and checks it before any wait
- in dry-run, does no I/O and returns deterministic placeholders after a
  short simulated delay, without needing credentials
- outside dry-run, fails with a ``configuration`` error when the
  credentials (or transport) it needs are missing
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from storepub.core.cancel import CancellationToken
from storepub.core.config import PollingConfig
from storepub.core.errors import PublishError
from storepub.core.result import Err, Ok, Result
from storepub.core.structured import StrDict
from storepub.jobs.model import (
    AndroidSubmission,
    DeliveryMechanism,
    IosSubmission,
    Platform,
    RolloutRequest,
)
from storepub.metadata.types import RemoteVersion
from storepub.platform.process import ProcessError
from storepub.secrets.vault import redact_secrets

__all__ = [
    "ApiTransport",
    "BuildState",
    "PollPolicy",
    "StoreAdapter",
    "Submission",
    "UploadReceipt",
    "cancelled",
    "expect_android",
    "expect_ios",
    "poll_until_processed",
    "parse_build_state",
    "process_failure",
    "require_transport",
    "rollout_unsupported",
    "simulate",
]

type Submission = IosSubmission | AndroidSubmission


class BuildState(StrEnum):
    PROCESSING = "PROCESSING"
    VALID = "VALID"
    INVALID = "INVALID"
    FAILED = "FAILED"


@dataclass(frozen=True, slots=True)
class UploadReceipt:
    upload_id: str
    mechanism: DeliveryMechanism


@dataclass(frozen=True, slots=True)
class PollPolicy:
    max_attempts: int = 60
    delay_seconds: float = 5.0

    @classmethod
    def from_config(cls, config: PollingConfig) -> PollPolicy:
        return cls(max_attempts=config.max_attempts, delay_seconds=config.delay_seconds)


class ApiTransport(Protocol):
    """Performs one named store API operation.

    Operation names are symbolic (``"ios.upload_build"``,
    ``"android.commit_edit"``); request/response wire formats belong to the
    transport. No network transport ships with this package.
    """

    def call(
        self,
        operation: str,
        params: Mapping[str, object],
        *,
        token: CancellationToken,
    ) -> Result[StrDict, PublishError]: ...


class StoreAdapter(Protocol):
    platform: Platform
    mechanism: DeliveryMechanism
    dry_run: bool

    def is_configured(self) -> bool: ...

    def validate_submission(
        self, submission: Submission, *, token: CancellationToken
    ) -> Result[None, PublishError]: ...

    def upload_build(
        self, submission: Submission, *, token: CancellationToken
    ) -> Result[UploadReceipt, PublishError]: ...

    def poll_status(
        self, upload_id: str, *, token: CancellationToken
    ) -> Result[BuildState, PublishError]: ...

    def assign_track(
        self, submission: Submission, upload_id: str, *, token: CancellationToken
    ) -> Result[str, PublishError]: ...

    def commit(
        self, submission: Submission, ref: str, *, token: CancellationToken
    ) -> Result[str, PublishError]: ...

    def expand_rollout(
        self, request: RolloutRequest, *, token: CancellationToken
    ) -> Result[None, PublishError]: ...

    def halt_rollout(
        self, request: RolloutRequest, *, token: CancellationToken
    ) -> Result[None, PublishError]: ...

    def rollback(
        self, request: RolloutRequest, *, token: CancellationToken
    ) -> Result[None, PublishError]: ...

    def last_remote_version(
        self, identifier: str, *, token: CancellationToken | None = None
    ) -> Result[RemoteVersion | None, PublishError]: ...


def cancelled(token: CancellationToken) -> PublishError:
    return PublishError.cancelled(token.reason or "cancelled")


def simulate[T](token: CancellationToken, seconds: float, value: T) -> Result[T, PublishError]:
    """Dry-run stand-in for a remote call: wait, then return ``value``."""
    if token.cancelled or token.wait(seconds):
        return Err(cancelled(token))
    return Ok(value)


def expect_ios(submission: Submission) -> Result[IosSubmission, PublishError]:
    if isinstance(submission, IosSubmission):
        return Ok(submission)
    return Err(PublishError.validation("iOS adapter received a non-iOS submission"))


def expect_android(submission: Submission) -> Result[AndroidSubmission, PublishError]:
    if isinstance(submission, AndroidSubmission):
        return Ok(submission)
    return Err(PublishError.validation("Android adapter received a non-Android submission"))


def poll_until_processed(
    fetch: Callable[[], Result[BuildState, PublishError]],
    *,
    policy: PollPolicy,
    token: CancellationToken,
    label: str,
) -> Result[BuildState, PublishError]:
    """Poll ``fetch`` until the build is VALID, bounded by ``policy``.

    The token is checked before every attempt and during every delay.
    """
    for attempt in range(policy.max_attempts):
        if token.cancelled:
            return Err(cancelled(token))

        state = fetch()
        if isinstance(state, Err):
            return state
        match state.value:
            case BuildState.VALID:
                return Ok(BuildState.VALID)
            case BuildState.INVALID | BuildState.FAILED:
                return Err(PublishError.transient(f"{label} processing failed: {state.value}"))
            case BuildState.PROCESSING:
                pass

        if attempt < policy.max_attempts - 1 and token.wait(policy.delay_seconds):
            return Err(cancelled(token))

    return Err(
        PublishError.timeout(
            f"{label} processing timed out",
            hint=f"{policy.max_attempts} attempts, {policy.delay_seconds}s apart",
        )
    )


def process_failure(
    message: str, error: ProcessError, secrets: Mapping[str, str]
) -> PublishError:
    """Map a failed CLI invocation onto the error taxonomy."""
    if error.cancelled:
        return PublishError.cancelled(f"{message}: cancelled")
    detail = redact_secrets(error.stderr.strip(), secrets) or None
    if error.timed_out:
        return PublishError.timeout(f"{message}: {error}", hint=detail)
    return PublishError.transient(f"{message}: {error}", hint=detail)


def require_transport(
    transport: ApiTransport | None,
    *,
    has_credentials: bool,
    store: str,
    hint: str,
) -> Result[ApiTransport, PublishError]:
    if not has_credentials:
        return Err(PublishError.configuration(f"{store} credentials not configured", hint=hint))
    if transport is None:
        return Err(
            PublishError.configuration(
                f"no {store} API transport configured",
                hint="enable dry-run or inject an ApiTransport",
            )
        )
    return Ok(transport)


def parse_build_state(response: Mapping[str, object], label: str) -> Result[BuildState, PublishError]:
    raw = response.get("state")
    try:
        return Ok(BuildState(str(raw)))
    except ValueError:
        return Err(PublishError.transient(f"unexpected {label} state: {raw!r}"))


def rollout_unsupported(platform: Platform) -> PublishError:
    return PublishError.validation(
        f"rollout control is not supported on {platform}",
        hint="staged rollouts are managed on Google Play only",
    )
