"""Step sequences per job type.

Each sequence runs its adapter capabilities in order, emitting a progress
event before or after each one. The cancellation token is checked before
every step, and the first ``Err`` aborts the rest of the attempt.
Percentages only grow within a sequence.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from storepub.adapters.base import StoreAdapter, cancelled
from storepub.adapters.factory import AdapterFactory
from storepub.assets.checker import AssetChecker
from storepub.core.cancel import CancellationToken
from storepub.core.errors import PublishError
from storepub.core.result import Err, Ok, Result
from storepub.metadata.types import ValidationResult
from storepub.metadata.validator import (
    run_preflight_validations,
    validate_staged_rollout,
    validate_store_metadata,
)
from storepub.status.codes import ProgressCode
from storepub.status.reporter import StatusReporter

from .model import (
    AndroidSubmission,
    AssetRequest,
    IosSubmission,
    Job,
    JobOutcome,
    JobStatus,
    JobType,
    MetadataRequest,
    Platform,
    RolloutRequest,
)

IOS_CONSOLE_URL = "https://appstoreconnect.apple.com/apps"
PLAY_CONSOLE_URL = "https://play.google.com/console/developers"


@dataclass(slots=True)
class StepContext:
    job: Job
    reporter: StatusReporter
    adapters: AdapterFactory
    assets: AssetChecker
    token: CancellationToken

    def progress(
        self,
        code: ProgressCode,
        message: str,
        percentage: int | None = None,
        data: Mapping[str, object] | None = None,
    ) -> Result[None, PublishError]:
        if self.token.cancelled:
            return Err(cancelled(self.token))
        self.reporter.add_progress(self.job.id, code, message, percentage, data)
        return Ok(None)

    def adapter(self) -> StoreAdapter:
        return self.adapters.for_job(self.job)


def run_job_steps(ctx: StepContext) -> Result[JobOutcome, PublishError]:
    """Run the sequence matching the job's payload."""
    if ctx.token.cancelled:
        return Err(cancelled(ctx.token))
    match ctx.job.payload:
        case IosSubmission() as sub:
            return submit_ios(ctx, sub)
        case AndroidSubmission() as sub:
            return submit_android(ctx, sub)
        case RolloutRequest() as request:
            return control_rollout(ctx, request)
        case AssetRequest() as request:
            return check_assets(ctx, request)
        case MetadataRequest() as request:
            if ctx.job.type == JobType.PREFLIGHT_CHECK:
                return preflight(ctx, request)
            return validate_metadata(ctx, request)


def _metadata_failure(message: str, result: ValidationResult) -> PublishError:
    return PublishError(
        kind="validation",
        message=message,
        errors=tuple(result.error_messages()),
    )


def _check_attached_metadata(
    metadata: Mapping[str, object] | None, platform: Platform, skip: bool
) -> Result[tuple[str, ...], PublishError]:
    if metadata is None or skip:
        return Ok(())
    result = validate_store_metadata(metadata, platform)
    if not result.valid:
        return Err(_metadata_failure("Attached metadata is invalid", result))
    return Ok(tuple(result.warning_messages()))


def _wait_for_processing(
    ctx: StepContext, adapter: StoreAdapter, upload_id: str, percentage: int
) -> Result[None, PublishError]:
    step = ctx.progress(
        ProgressCode.BUILD_PROCESSING, "Waiting for build processing", percentage, {"uploadId": upload_id}
    )
    if isinstance(step, Err):
        return step
    ctx.reporter.update_status(ctx.job.id, JobStatus.WAITING)
    polled = adapter.poll_status(upload_id, token=ctx.token)
    if isinstance(polled, Err):
        return polled
    ctx.reporter.update_status(ctx.job.id, JobStatus.RUNNING)
    return Ok(None)


def submit_ios(ctx: StepContext, sub: IosSubmission) -> Result[JobOutcome, PublishError]:
    adapter = ctx.adapter()

    step = ctx.progress(ProgressCode.VALIDATION_START, "Validating iOS submission", 10)
    if isinstance(step, Err):
        return step
    warnings = _check_attached_metadata(sub.metadata, Platform.IOS, sub.skip_metadata)
    if isinstance(warnings, Err):
        return warnings
    validated = adapter.validate_submission(sub, token=ctx.token)
    if isinstance(validated, Err):
        return validated
    step = ctx.progress(ProgressCode.VALIDATION_COMPLETE, "iOS submission validated", 20)
    if isinstance(step, Err):
        return step

    step = ctx.progress(ProgressCode.UPLOAD_START, "Uploading iOS build", 30)
    if isinstance(step, Err):
        return step
    uploaded = adapter.upload_build(sub, token=ctx.token)
    if isinstance(uploaded, Err):
        return uploaded
    upload_id = uploaded.value.upload_id
    step = ctx.progress(
        ProgressCode.UPLOAD_COMPLETE, "Build uploaded successfully", 60, {"buildId": upload_id}
    )
    if isinstance(step, Err):
        return step

    processed = _wait_for_processing(ctx, adapter, upload_id, 70)
    if isinstance(processed, Err):
        return processed
    step = ctx.progress(ProgressCode.BUILD_PROCESSED, "Build processing complete", 80)
    if isinstance(step, Err):
        return step

    assigned = adapter.assign_track(sub, upload_id, token=ctx.token)
    if isinstance(assigned, Err):
        return assigned
    destination = "TestFlight" if sub.is_testflight else "App Store"
    step = ctx.progress(
        ProgressCode.TRACK_ASSIGNED, f"Build assigned to {destination}", 85, {"ref": assigned.value}
    )
    if isinstance(step, Err):
        return step

    committed = adapter.commit(sub, assigned.value, token=ctx.token)
    if isinstance(committed, Err):
        return committed
    data: dict[str, object] = {
        "bundleId": sub.bundle_id,
        "version": sub.version,
        "buildNumber": sub.build_number,
        "buildId": upload_id,
    }
    if sub.release_type != "testflight-internal":
        data["submissionId"] = committed.value
        step = ctx.progress(ProgressCode.VERSION_SUBMITTED, "Version submitted for review", 90)
        if isinstance(step, Err):
            return step
        step = ctx.progress(ProgressCode.REVIEW_PENDING, f"{destination} review pending", 95)
        if isinstance(step, Err):
            return step

    return Ok(
        JobOutcome(
            data=data,
            warnings=warnings.value,
            url=IOS_CONSOLE_URL,
            version=f"{sub.version} ({sub.build_number})",
        )
    )


def submit_android(ctx: StepContext, sub: AndroidSubmission) -> Result[JobOutcome, PublishError]:
    adapter = ctx.adapter()

    step = ctx.progress(ProgressCode.VALIDATION_START, "Validating Android submission", 10)
    if isinstance(step, Err):
        return step
    warnings = _check_attached_metadata(sub.metadata, Platform.ANDROID, sub.skip_metadata)
    if isinstance(warnings, Err):
        return warnings
    rollout = validate_staged_rollout(sub.track, sub.user_fraction)
    if not rollout.valid:
        return Err(_metadata_failure("Invalid staged rollout fraction", rollout))
    validated = adapter.validate_submission(sub, token=ctx.token)
    if isinstance(validated, Err):
        return validated
    step = ctx.progress(ProgressCode.VALIDATION_COMPLETE, "Android submission validated", 20)
    if isinstance(step, Err):
        return step

    step = ctx.progress(ProgressCode.UPLOAD_START, "Uploading Android bundle", 30)
    if isinstance(step, Err):
        return step
    uploaded = adapter.upload_build(sub, token=ctx.token)
    if isinstance(uploaded, Err):
        return uploaded
    upload_id = uploaded.value.upload_id
    step = ctx.progress(
        ProgressCode.UPLOAD_COMPLETE, "Bundle uploaded successfully", 60, {"uploadId": upload_id}
    )
    if isinstance(step, Err):
        return step

    processed = _wait_for_processing(ctx, adapter, upload_id, 65)
    if isinstance(processed, Err):
        return processed
    step = ctx.progress(ProgressCode.BUILD_PROCESSED, "Bundle processed", 70)
    if isinstance(step, Err):
        return step

    assigned = adapter.assign_track(sub, upload_id, token=ctx.token)
    if isinstance(assigned, Err):
        return assigned
    step = ctx.progress(
        ProgressCode.TRACK_ASSIGNED, f"Assigned to {sub.track} track", 75, {"track": sub.track}
    )
    if isinstance(step, Err):
        return step
    if sub.changelogs:
        step = ctx.progress(
            ProgressCode.RELEASE_NOTES_ADDED,
            "Release notes added",
            80,
            {"locales": sorted(sub.changelogs)},
        )
        if isinstance(step, Err):
            return step

    committed = adapter.commit(sub, assigned.value, token=ctx.token)
    if isinstance(committed, Err):
        return committed
    step = ctx.progress(ProgressCode.EDIT_COMMITTED, "Edit committed", 85, {"editId": committed.value})
    if isinstance(step, Err):
        return step

    if sub.staged:
        step = ctx.progress(
            ProgressCode.ROLLOUT_STARTED,
            "Starting staged rollout",
            90,
            {"userFraction": sub.user_fraction},
        )
        if isinstance(step, Err):
            return step

    return Ok(
        JobOutcome(
            data={
                "packageName": sub.package_name,
                "versionCode": sub.version_code,
                "track": sub.track,
                "uploadId": upload_id,
            },
            warnings=warnings.value,
            url=PLAY_CONSOLE_URL,
            version=f"{sub.version_name} ({sub.version_code})",
        )
    )


def control_rollout(ctx: StepContext, request: RolloutRequest) -> Result[JobOutcome, PublishError]:
    adapter = ctx.adapter()
    step = ctx.progress(
        ProgressCode.VALIDATION_START,
        f"Preparing rollout {request.action}",
        10,
        {"packageName": request.package_name, "track": request.track},
    )
    if isinstance(step, Err):
        return step

    match request.action:
        case "expand":
            done = adapter.expand_rollout(request, token=ctx.token)
            code, message = ProgressCode.ROLLOUT_EXPANDED, "Rollout expanded"
        case "halt":
            done = adapter.halt_rollout(request, token=ctx.token)
            code, message = ProgressCode.ROLLOUT_HALTED, "Rollout halted"
        case "rollback":
            done = adapter.rollback(request, token=ctx.token)
            code, message = ProgressCode.ROLLBACK_COMPLETE, "Rolled back to previous release"
    if isinstance(done, Err):
        return done

    step = ctx.progress(code, message, 90, {"userFraction": request.user_fraction})
    if isinstance(step, Err):
        return step
    return Ok(
        JobOutcome(
            data={
                "packageName": request.package_name,
                "track": request.track,
                "action": request.action,
                "userFraction": request.user_fraction,
            },
            url=PLAY_CONSOLE_URL,
        )
    )


def validate_metadata(ctx: StepContext, request: MetadataRequest) -> Result[JobOutcome, PublishError]:
    step = ctx.progress(ProgressCode.VALIDATION_START, "Validating store metadata", 10)
    if isinstance(step, Err):
        return step
    result = validate_store_metadata(request.metadata, request.platform)
    return _validation_outcome(ctx, result, "Metadata validation failed")


def preflight(ctx: StepContext, request: MetadataRequest) -> Result[JobOutcome, PublishError]:
    step = ctx.progress(ProgressCode.VALIDATION_START, "Running preflight checks", 10)
    if isinstance(step, Err):
        return step
    dry_run = ctx.job.dry_run
    report = run_preflight_validations(
        request.metadata,
        ios_source=ctx.adapters.direct(Platform.IOS, dry_run=dry_run),
        android_source=ctx.adapters.direct(Platform.ANDROID, dry_run=dry_run),
        dry_run=dry_run,
        platform=request.platform,
        token=ctx.token,
    )
    if ctx.token.cancelled:
        return Err(cancelled(ctx.token))
    return _validation_outcome(ctx, report.flatten(), "Preflight check failed")


def _validation_outcome(
    ctx: StepContext, result: ValidationResult, failure: str
) -> Result[JobOutcome, PublishError]:
    if not result.valid:
        ctx.reporter.add_progress(
            ctx.job.id,
            ProgressCode.METADATA_VALIDATION_ERROR,
            failure,
            data={"errors": result.error_messages()},
        )
        return Err(_metadata_failure(failure, result))

    step = ctx.progress(
        ProgressCode.METADATA_VALIDATED,
        "Metadata is valid",
        90,
        {"warnings": len(result.warnings)},
    )
    if isinstance(step, Err):
        return step
    return Ok(JobOutcome(data={"valid": True}, warnings=tuple(result.warning_messages())))


def check_assets(ctx: StepContext, request: AssetRequest) -> Result[JobOutcome, PublishError]:
    step = ctx.progress(
        ProgressCode.ASSET_NORMALIZATION_START,
        "Checking store assets",
        10,
        {"outputDir": str(request.output_dir)},
    )
    if isinstance(step, Err):
        return step

    report = ctx.assets.check(request)
    if not report.valid:
        ctx.reporter.add_progress(
            ctx.job.id,
            ProgressCode.ASSET_VALIDATION_ERROR,
            "Asset check failed",
            data={"errors": list(report.errors)},
        )
        return Err(
            PublishError(kind="validation", message="Asset check failed", errors=report.errors)
        )

    step = ctx.progress(
        ProgressCode.ASSET_NORMALIZATION_COMPLETE,
        "Assets ready",
        90,
        {"staged": len(report.staged)},
    )
    if isinstance(step, Err):
        return step
    return Ok(
        JobOutcome(
            data={"normalized": True, "staged": [str(p) for p in report.staged]},
            warnings=report.warnings,
        )
    )
