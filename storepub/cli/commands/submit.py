"""``storepub submit ios|android``: queue one submission and run it inline."""

from __future__ import annotations

from pathlib import Path
from typing import cast, get_args

import typer

from storepub.cli.commands._helpers import exit_with_code, load_document_or_exit
from storepub.cli.context import CLIContext, build_context
from storepub.core.errors import ErrorCode
from storepub.core.result import Err, Ok, Result
from storepub.core.structured import StrDict, get_float, get_int, get_str, get_table
from storepub.jobs.model import (
    AndroidSubmission,
    AndroidTrack,
    DeliveryMechanism,
    IosReleaseType,
    IosSubmission,
    JobStatus,
)
from storepub.output.console import Style

submit_app = typer.Typer(add_completion=False, no_args_is_help=True)

_DOCUMENT = typer.Argument(Path("store.json"), help="Store metadata document (JSON)")
_DRY_RUN = typer.Option(
    None, "--dry-run/--live", help="Override PUBLISH_DRY_RUN for this submission."
)
_MECHANISM = typer.Option(None, "--mechanism", "-m", help="direct, fastlane or eas")
_BUILD = typer.Option(None, "--build", help="Path to the .ipa/.aab to upload")


def ios_submission_from_document(
    doc: StrDict, build_path: Path | None = None
) -> Result[IosSubmission, str]:
    section = get_table(doc, "ios")
    if section is None:
        return Err("document has no 'ios' section")
    bundle_id = get_str(section, "bundleId")
    version = get_str(section, "version")
    build_number = get_str(section, "buildNumber")
    release_type = get_str(section, "releaseType")
    if not bundle_id or not version or not build_number:
        return Err("ios.bundleId, ios.version and ios.buildNumber are required")
    if release_type not in get_args(IosReleaseType):
        return Err(f"unsupported ios.releaseType: {release_type!r}")
    return Ok(
        IosSubmission(
            bundle_id=bundle_id,
            version=version,
            build_number=build_number,
            release_type=cast(IosReleaseType, release_type),
            build_path=build_path,
            metadata=doc,
            release_notes=get_str(section, "releaseNotes"),
        )
    )


def android_submission_from_document(
    doc: StrDict, build_path: Path | None = None
) -> Result[AndroidSubmission, str]:
    section = get_table(doc, "android")
    if section is None:
        return Err("document has no 'android' section")
    package_name = get_str(section, "packageName")
    version_name = get_str(section, "versionName")
    version_code = get_int(section, "versionCode")
    track = get_str(section, "track")
    if not package_name or not version_name or version_code is None:
        return Err("android.packageName, android.versionName and android.versionCode are required")
    if track not in get_args(AndroidTrack):
        return Err(f"unsupported android.track: {track!r}")
    changelogs = get_table(section, "changelogs") or {}
    return Ok(
        AndroidSubmission(
            package_name=package_name,
            version_name=version_name,
            version_code=version_code,
            track=cast(AndroidTrack, track),
            build_path=build_path,
            metadata=doc,
            user_fraction=get_float(section, "userFraction"),
            changelogs={k: v for k, v in changelogs.items() if isinstance(v, str)},
        )
    )


def _mechanism(value: str | None, ctx: CLIContext) -> DeliveryMechanism | None:
    if value is None:
        return None
    try:
        return DeliveryMechanism(value.lower())
    except ValueError:
        ctx.console.error(f"unknown mechanism: {value} (expected direct, fastlane or eas)")
        exit_with_code(int(ErrorCode.USER_ERROR))


def _run_inline(ctx: CLIContext, job_id: str) -> None:
    """Run the worker until the job is terminal and print its progress."""
    publisher = ctx.publisher
    publisher.run_until_idle()

    for event in publisher.get_job_progress(job_id):
        pct = f"{event.percentage:3d}%" if event.percentage is not None else "    "
        ctx.console.print(f"{pct} {event.code}: {event.message}", Style.DIM)

    record = publisher.get_job(job_id)
    if record is None:
        ctx.console.error(f"job {job_id} disappeared")
        exit_with_code(int(ErrorCode.SUBMISSION_ERROR))

    result = record.result
    if result is not None:
        for warning in result.warnings:
            ctx.console.warning(warning)

    match record.status:
        case JobStatus.SUCCEEDED:
            suffix = f" ({result.url})" if result is not None and result.url else ""
            ctx.console.success(f"job {job_id} succeeded{suffix}")
        case JobStatus.CANCELLED:
            ctx.console.warning(f"job {job_id} was cancelled")
            exit_with_code(int(ErrorCode.CANCELLED))
        case _:
            ctx.console.error(f"job {job_id} {record.status}")
            if result is not None:
                for err in result.errors:
                    ctx.console.bullet(err, Style.ERROR)
            exit_with_code(int(ErrorCode.SUBMISSION_ERROR))


@submit_app.command("ios")
def submit_ios(
    file: Path = _DOCUMENT,
    dry_run: bool | None = _DRY_RUN,
    mechanism: str | None = _MECHANISM,
    build: Path | None = _BUILD,
) -> None:
    """Submit the iOS section to TestFlight or the App Store."""
    ctx = build_context()
    doc = load_document_or_exit(file, ctx.console)
    submission = ios_submission_from_document(doc, build)
    if isinstance(submission, Err):
        ctx.console.error(submission.error)
        exit_with_code(int(ErrorCode.USER_ERROR))

    job_id = ctx.publisher.submit_ios(
        submission.value, dry_run=dry_run, mechanism=_mechanism(mechanism, ctx)
    )
    ctx.console.print(f"queued job {job_id}", Style.DIM)
    _run_inline(ctx, job_id)


@submit_app.command("android")
def submit_android(
    file: Path = _DOCUMENT,
    dry_run: bool | None = _DRY_RUN,
    mechanism: str | None = _MECHANISM,
    build: Path | None = _BUILD,
) -> None:
    """Submit the Android section to a Google Play track."""
    ctx = build_context()
    doc = load_document_or_exit(file, ctx.console)
    submission = android_submission_from_document(doc, build)
    if isinstance(submission, Err):
        ctx.console.error(submission.error)
        exit_with_code(int(ErrorCode.USER_ERROR))

    job_id = ctx.publisher.submit_android(
        submission.value, dry_run=dry_run, mechanism=_mechanism(mechanism, ctx)
    )
    ctx.console.print(f"queued job {job_id}", Style.DIM)
    _run_inline(ctx, job_id)
