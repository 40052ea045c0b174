"""Tests for storepub.jobs.model."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from storepub.core.clock import ManualClock
from storepub.jobs.model import (
    AndroidSubmission,
    AssetRequest,
    IosSubmission,
    JobPriority,
    JobStatus,
    JobType,
    MetadataRequest,
    Platform,
    RolloutRequest,
    calculate_retry_delay,
    create_android_submit_job,
    create_ios_submit_job,
    create_job,
    create_normalize_assets_job,
    create_preflight_check_job,
    create_rollout_job,
    create_validate_metadata_job,
    resource_key,
    should_retry,
)


def _ios(release_type: str = "testflight-internal") -> IosSubmission:
    return IosSubmission(
        bundle_id="com.example.app",
        version="1.2.0",
        build_number="42",
        release_type=release_type,  # type: ignore[arg-type]
    )


def _android(track: str = "internal", fraction: float | None = None) -> AndroidSubmission:
    return AndroidSubmission(
        package_name="com.example.app",
        version_name="1.2.0",
        version_code=42,
        track=track,  # type: ignore[arg-type]
        user_fraction=fraction,
    )


class TestFactories:
    """Job type follows the caller's intent."""

    @pytest.mark.parametrize(
        ("release_type", "expected"),
        [
            ("testflight-internal", JobType.IOS_SUBMIT_TESTFLIGHT_INTERNAL),
            ("testflight-external", JobType.IOS_SUBMIT_TESTFLIGHT_EXTERNAL),
            ("appStore", JobType.IOS_SUBMIT_APP_STORE),
        ],
    )
    def test_ios_release_type(self, release_type: str, expected: JobType) -> None:
        job = create_ios_submit_job(_ios(release_type))
        assert job.type == expected
        assert job.platform == Platform.IOS

    @pytest.mark.parametrize(
        ("track", "expected"),
        [
            ("internal", JobType.ANDROID_SUBMIT_INTERNAL),
            ("alpha", JobType.ANDROID_SUBMIT_ALPHA),
            ("beta", JobType.ANDROID_SUBMIT_BETA),
            ("production", JobType.ANDROID_SUBMIT_PRODUCTION),
        ],
    )
    def test_android_track(self, track: str, expected: JobType) -> None:
        job = create_android_submit_job(_android(track))
        assert job.type == expected
        assert job.platform == Platform.ANDROID

    def test_rollout_jobs_default_to_high_priority(self) -> None:
        job = create_rollout_job(RolloutRequest("com.example.app", "halt"))
        assert job.type == JobType.ANDROID_ROLLOUT_HALT
        assert job.priority == JobPriority.HIGH

    def test_new_job_defaults(self, clock: ManualClock) -> None:
        job = create_ios_submit_job(_ios(), clock=clock)
        assert job.status == JobStatus.QUEUED
        assert job.retry_count == 0
        assert job.max_retries == 3
        assert job.dry_run is True
        assert job.created_at == clock.now
        assert job.started_at is None
        assert job.attempts == []

    def test_ids_are_unique(self) -> None:
        ids = {create_ios_submit_job(_ios()).id for _ in range(20)}
        assert len(ids) == 20

    def test_metadata_and_asset_jobs(self, tmp_path: Path) -> None:
        assert create_validate_metadata_job({}).type == JobType.VALIDATE_METADATA
        preflight = create_preflight_check_job({}, Platform.IOS)
        assert preflight.type == JobType.PREFLIGHT_CHECK
        assert isinstance(preflight.payload, MetadataRequest)
        assert preflight.payload.platform == Platform.IOS

        request = AssetRequest(
            platform=Platform.ANDROID,
            icon=tmp_path / "icon.png",
            screenshots={},
            output_dir=tmp_path / "out",
        )
        assets = create_normalize_assets_job(request)
        assert assets.type == JobType.NORMALIZE_ASSETS
        assert assets.platform == Platform.ANDROID

    def test_payload_must_match_type(self) -> None:
        with pytest.raises(ValueError):
            create_job(JobType.IOS_SUBMIT_APP_STORE, Platform.IOS, _android())

    @pytest.mark.parametrize("platform", [Platform.BOTH, Platform.ANDROID])
    def test_ios_type_requires_ios_platform(self, platform: Platform) -> None:
        with pytest.raises(ValueError, match="requires platform ios"):
            create_job(JobType.IOS_SUBMIT_APP_STORE, platform, _ios("appStore"))

    @pytest.mark.parametrize(
        ("job_type", "payload"),
        [
            (JobType.ANDROID_SUBMIT_BETA, _android("beta")),
            (JobType.ANDROID_ROLLOUT_HALT, RolloutRequest("com.example.app", "halt")),
        ],
    )
    def test_android_types_require_android_platform(
        self, job_type: JobType, payload: AndroidSubmission | RolloutRequest
    ) -> None:
        with pytest.raises(ValueError, match="requires platform android"):
            create_job(job_type, Platform.IOS, payload)

    def test_platform_free_types_accept_any_platform(self) -> None:
        job = create_job(JobType.VALIDATE_METADATA, Platform.BOTH, MetadataRequest({}))
        assert job.platform == Platform.BOTH

    def test_negative_retries_rejected(self) -> None:
        with pytest.raises(ValueError):
            create_job(JobType.VALIDATE_METADATA, Platform.BOTH, MetadataRequest({}), max_retries=-1)


class TestRetryPolicy:
    def test_delay_doubles(self) -> None:
        assert calculate_retry_delay(0) == 1000
        assert calculate_retry_delay(1) == 2000
        assert calculate_retry_delay(3) == 8000

    def test_custom_base(self) -> None:
        assert calculate_retry_delay(2, 50) == 200

    def test_should_retry_until_budget_spent(self) -> None:
        job = create_ios_submit_job(_ios(), max_retries=2)
        assert should_retry(job)
        job.retry_count = 1
        assert should_retry(job)
        job.retry_count = 2
        assert not should_retry(job)


class TestJobHelpers:
    def test_is_ready(self, clock: ManualClock) -> None:
        job = create_ios_submit_job(_ios(), clock=clock)
        assert job.is_ready(clock.now)
        job.scheduled_at = clock.now + timedelta(seconds=5)
        assert not job.is_ready(clock.now)
        assert job.is_ready(clock.now + timedelta(seconds=5))

    def test_resource_key(self) -> None:
        assert resource_key(create_ios_submit_job(_ios())) == "ios:com.example.app"
        android = create_android_submit_job(_android())
        rollout = create_rollout_job(RolloutRequest("com.example.app", "expand", user_fraction=0.5))
        assert resource_key(android) == resource_key(rollout) == "android:com.example.app"
        assert resource_key(create_validate_metadata_job({})) is None

    def test_staged_only_on_partial_production(self) -> None:
        assert _android("production", 0.1).staged
        assert not _android("production", 1.0).staged
        assert not _android("beta", 0.1).staged
        assert not _android("production").staged

    def test_terminal_statuses(self) -> None:
        assert {s for s in JobStatus if s.is_terminal} == {
            JobStatus.SUCCEEDED,
            JobStatus.FAILED,
            JobStatus.CANCELLED,
        }
        assert JobStatus.WAITING.is_active
