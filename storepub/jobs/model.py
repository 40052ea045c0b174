"""Job definitions for the publishing queue.

A ``Job`` is one unit of work: a store submission, a rollout control
action, a metadata validation or an asset check. Jobs are built through
the ``create_*`` factories, which pick the ``JobType`` from the caller's
intent (release type, track, rollout action).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum, StrEnum
from pathlib import Path
from typing import Literal
from uuid import uuid4

from storepub.core.clock import Clock, utc_now
from storepub.core.structured import StrDict

__all__ = [
    "AndroidSubmission",
    "AndroidTrack",
    "AssetRequest",
    "AttemptRecord",
    "DeliveryMechanism",
    "IosReleaseType",
    "IosSubmission",
    "Job",
    "JobOutcome",
    "JobPayload",
    "JobPriority",
    "JobStatus",
    "JobType",
    "MetadataRequest",
    "Platform",
    "RolloutAction",
    "RolloutRequest",
    "calculate_retry_delay",
    "create_android_submit_job",
    "create_ios_submit_job",
    "create_job",
    "create_normalize_assets_job",
    "create_preflight_check_job",
    "create_rollout_job",
    "create_validate_metadata_job",
    "resource_key",
    "should_retry",
]

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY_MS = 1000


class Platform(StrEnum):
    IOS = "ios"
    ANDROID = "android"
    BOTH = "both"


class JobStatus(StrEnum):
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    # Sub-state of RUNNING while blocked on remote processing.
    WAITING = "WAITING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELLED)

    @property
    def is_active(self) -> bool:
        return self in (JobStatus.RUNNING, JobStatus.WAITING)


class JobType(StrEnum):
    IOS_SUBMIT_TESTFLIGHT_INTERNAL = "IOS_SUBMIT_TESTFLIGHT_INTERNAL"
    IOS_SUBMIT_TESTFLIGHT_EXTERNAL = "IOS_SUBMIT_TESTFLIGHT_EXTERNAL"
    IOS_SUBMIT_APP_STORE = "IOS_SUBMIT_APP_STORE"

    ANDROID_SUBMIT_INTERNAL = "ANDROID_SUBMIT_INTERNAL"
    ANDROID_SUBMIT_ALPHA = "ANDROID_SUBMIT_ALPHA"
    ANDROID_SUBMIT_BETA = "ANDROID_SUBMIT_BETA"
    ANDROID_SUBMIT_PRODUCTION = "ANDROID_SUBMIT_PRODUCTION"
    ANDROID_ROLLOUT_EXPAND = "ANDROID_ROLLOUT_EXPAND"
    ANDROID_ROLLOUT_HALT = "ANDROID_ROLLOUT_HALT"
    ANDROID_ROLLBACK = "ANDROID_ROLLBACK"

    VALIDATE_METADATA = "VALIDATE_METADATA"
    NORMALIZE_ASSETS = "NORMALIZE_ASSETS"
    PREFLIGHT_CHECK = "PREFLIGHT_CHECK"


class JobPriority(IntEnum):
    LOW = 0
    NORMAL = 1
    HIGH = 2
    CRITICAL = 3


class DeliveryMechanism(StrEnum):
    DIRECT = "direct"  # store API client
    FASTLANE = "fastlane"  # third-party CLI wrapper
    EAS = "eas"  # managed build service


IosReleaseType = Literal["testflight-internal", "testflight-external", "appStore"]
AndroidTrack = Literal["internal", "alpha", "beta", "production"]
RolloutAction = Literal["expand", "halt", "rollback"]


def _empty_changelogs() -> dict[str, str]:
    return {}


@dataclass(frozen=True, slots=True)
class IosSubmission:
    bundle_id: str
    version: str
    build_number: str
    release_type: IosReleaseType
    build_path: Path | None = None
    metadata: StrDict | None = None
    release_notes: str | None = None
    skip_metadata: bool = False
    skip_screenshots: bool = False

    @property
    def is_testflight(self) -> bool:
        return self.release_type != "appStore"


@dataclass(frozen=True, slots=True)
class AndroidSubmission:
    package_name: str
    version_name: str
    version_code: int
    track: AndroidTrack
    build_path: Path | None = None
    metadata: StrDict | None = None
    user_fraction: float | None = None
    changelogs: Mapping[str, str] = field(default_factory=_empty_changelogs)
    skip_metadata: bool = False
    skip_screenshots: bool = False

    @property
    def staged(self) -> bool:
        return (
            self.track == "production"
            and self.user_fraction is not None
            and 0 < self.user_fraction < 1
        )


@dataclass(frozen=True, slots=True)
class RolloutRequest:
    """Rollout control on an already published Android release."""

    package_name: str
    action: RolloutAction
    track: AndroidTrack = "production"
    user_fraction: float | None = None


@dataclass(frozen=True, slots=True)
class MetadataRequest:
    metadata: StrDict
    platform: Platform = Platform.BOTH


@dataclass(frozen=True, slots=True)
class AssetRequest:
    platform: Platform
    icon: Path
    screenshots: Mapping[str, tuple[Path, ...]]
    output_dir: Path
    feature_graphic: Path | None = None


type JobPayload = IosSubmission | AndroidSubmission | RolloutRequest | MetadataRequest | AssetRequest


@dataclass(slots=True)
class AttemptRecord:
    """Timestamps of a single dispatch attempt."""

    number: int
    started_at: datetime
    finished_at: datetime | None = None
    error: str | None = None


def _empty_attempts() -> list[AttemptRecord]:
    return []


@dataclass(slots=True)
class Job:
    """One unit of work.

    ``started_at`` is set on the first attempt and kept across retries, so
    ``completed_at - started_at`` is total wall time including backoff.
    Per-attempt timings live in ``attempts``.
    """

    id: str
    type: JobType
    platform: Platform
    priority: int
    payload: JobPayload
    created_at: datetime
    status: JobStatus = JobStatus.QUEUED
    dry_run: bool = True
    mechanism: DeliveryMechanism | None = None
    retry_count: int = 0
    max_retries: int = DEFAULT_MAX_RETRIES
    # Not dispatched before this time (used for retry backoff).
    scheduled_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    result: Mapping[str, object] | None = None
    attempts: list[AttemptRecord] = field(default_factory=_empty_attempts)

    def is_ready(self, now: datetime) -> bool:
        return self.scheduled_at is None or self.scheduled_at <= now


@dataclass(frozen=True, slots=True)
class JobOutcome:
    """Successful result of a job's step sequence."""

    data: Mapping[str, object]
    warnings: tuple[str, ...] = ()
    url: str | None = None
    version: str | None = None


_IOS_TYPES = frozenset(
    {
        JobType.IOS_SUBMIT_TESTFLIGHT_INTERNAL,
        JobType.IOS_SUBMIT_TESTFLIGHT_EXTERNAL,
        JobType.IOS_SUBMIT_APP_STORE,
    }
)
_ANDROID_SUBMIT_TYPES = frozenset(
    {
        JobType.ANDROID_SUBMIT_INTERNAL,
        JobType.ANDROID_SUBMIT_ALPHA,
        JobType.ANDROID_SUBMIT_BETA,
        JobType.ANDROID_SUBMIT_PRODUCTION,
    }
)
_ROLLOUT_TYPES = frozenset(
    {JobType.ANDROID_ROLLOUT_EXPAND, JobType.ANDROID_ROLLOUT_HALT, JobType.ANDROID_ROLLBACK}
)


def _payload_matches(job_type: JobType, payload: JobPayload) -> bool:
    if job_type in _IOS_TYPES:
        return isinstance(payload, IosSubmission)
    if job_type in _ANDROID_SUBMIT_TYPES:
        return isinstance(payload, AndroidSubmission)
    if job_type in _ROLLOUT_TYPES:
        return isinstance(payload, RolloutRequest)
    if job_type == JobType.NORMALIZE_ASSETS:
        return isinstance(payload, AssetRequest)
    return isinstance(payload, MetadataRequest)


def _required_platform(job_type: JobType) -> Platform | None:
    if job_type in _IOS_TYPES:
        return Platform.IOS
    if job_type in _ANDROID_SUBMIT_TYPES or job_type in _ROLLOUT_TYPES:
        return Platform.ANDROID
    return None


def create_job(
    job_type: JobType,
    platform: Platform,
    payload: JobPayload,
    *,
    priority: int = JobPriority.NORMAL,
    dry_run: bool = True,
    max_retries: int = DEFAULT_MAX_RETRIES,
    mechanism: DeliveryMechanism | None = None,
    scheduled_at: datetime | None = None,
    clock: Clock = utc_now,
) -> Job:
    """Create a new queued job.

    Raises:
        ValueError: If the payload type or platform does not fit
            ``job_type``, or ``max_retries`` is negative.
    """
    if not _payload_matches(job_type, payload):
        raise ValueError(f"{type(payload).__name__} is not a valid payload for {job_type}")
    required = _required_platform(job_type)
    if required is not None and platform != required:
        raise ValueError(f"{job_type} requires platform {required}, got {platform}")
    if max_retries < 0:
        raise ValueError("max_retries must be >= 0")

    return Job(
        id=str(uuid4()),
        type=job_type,
        platform=platform,
        priority=int(priority),
        payload=payload,
        created_at=clock(),
        dry_run=dry_run,
        mechanism=mechanism,
        max_retries=max_retries,
        scheduled_at=scheduled_at,
    )


_RELEASE_TYPE_TO_JOB: dict[IosReleaseType, JobType] = {
    "testflight-internal": JobType.IOS_SUBMIT_TESTFLIGHT_INTERNAL,
    "testflight-external": JobType.IOS_SUBMIT_TESTFLIGHT_EXTERNAL,
    "appStore": JobType.IOS_SUBMIT_APP_STORE,
}

_TRACK_TO_JOB: dict[AndroidTrack, JobType] = {
    "internal": JobType.ANDROID_SUBMIT_INTERNAL,
    "alpha": JobType.ANDROID_SUBMIT_ALPHA,
    "beta": JobType.ANDROID_SUBMIT_BETA,
    "production": JobType.ANDROID_SUBMIT_PRODUCTION,
}

_ACTION_TO_JOB: dict[RolloutAction, JobType] = {
    "expand": JobType.ANDROID_ROLLOUT_EXPAND,
    "halt": JobType.ANDROID_ROLLOUT_HALT,
    "rollback": JobType.ANDROID_ROLLBACK,
}


def create_ios_submit_job(
    submission: IosSubmission,
    *,
    dry_run: bool = True,
    priority: int = JobPriority.NORMAL,
    max_retries: int = DEFAULT_MAX_RETRIES,
    mechanism: DeliveryMechanism | None = None,
    clock: Clock = utc_now,
) -> Job:
    return create_job(
        _RELEASE_TYPE_TO_JOB[submission.release_type],
        Platform.IOS,
        submission,
        priority=priority,
        dry_run=dry_run,
        max_retries=max_retries,
        mechanism=mechanism,
        clock=clock,
    )


def create_android_submit_job(
    submission: AndroidSubmission,
    *,
    dry_run: bool = True,
    priority: int = JobPriority.NORMAL,
    max_retries: int = DEFAULT_MAX_RETRIES,
    mechanism: DeliveryMechanism | None = None,
    clock: Clock = utc_now,
) -> Job:
    return create_job(
        _TRACK_TO_JOB[submission.track],
        Platform.ANDROID,
        submission,
        priority=priority,
        dry_run=dry_run,
        max_retries=max_retries,
        mechanism=mechanism,
        clock=clock,
    )


def create_rollout_job(
    request: RolloutRequest,
    *,
    dry_run: bool = True,
    priority: int = JobPriority.HIGH,
    mechanism: DeliveryMechanism | None = None,
    clock: Clock = utc_now,
) -> Job:
    # Halting or rolling back a bad release should jump the queue.
    return create_job(
        _ACTION_TO_JOB[request.action],
        Platform.ANDROID,
        request,
        priority=priority,
        dry_run=dry_run,
        mechanism=mechanism,
        clock=clock,
    )


def create_validate_metadata_job(
    metadata: StrDict,
    *,
    dry_run: bool = True,
    clock: Clock = utc_now,
) -> Job:
    return create_job(
        JobType.VALIDATE_METADATA,
        Platform.BOTH,
        MetadataRequest(metadata=metadata),
        dry_run=dry_run,
        clock=clock,
    )


def create_normalize_assets_job(
    request: AssetRequest,
    *,
    priority: int = JobPriority.NORMAL,
    clock: Clock = utc_now,
) -> Job:
    return create_job(
        JobType.NORMALIZE_ASSETS,
        request.platform,
        request,
        priority=priority,
        clock=clock,
    )


def create_preflight_check_job(
    metadata: StrDict,
    platform: Platform,
    *,
    dry_run: bool = True,
    clock: Clock = utc_now,
) -> Job:
    return create_job(
        JobType.PREFLIGHT_CHECK,
        platform,
        MetadataRequest(metadata=metadata, platform=platform),
        dry_run=dry_run,
        clock=clock,
    )


def should_retry(job: Job) -> bool:
    return job.retry_count < job.max_retries


def calculate_retry_delay(retry_count: int, base_delay: int = DEFAULT_RETRY_BASE_DELAY_MS) -> int:
    """Exponential backoff in milliseconds: ``base_delay * 2**retry_count``."""
    return base_delay * (2**retry_count)


def resource_key(job: Job) -> str | None:
    """Store listing touched by the job; jobs sharing a key never overlap."""
    match job.payload:
        case IosSubmission(bundle_id=bundle_id):
            return f"ios:{bundle_id}"
        case AndroidSubmission(package_name=package_name):
            return f"android:{package_name}"
        case RolloutRequest(package_name=package_name):
            return f"android:{package_name}"
        case _:
            return None
