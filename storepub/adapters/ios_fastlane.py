"""iOS delivery through fastlane (pilot for TestFlight, deliver for the App Store).

fastlane performs the upload and the review submission. Build processing
status and remote version lookups go through the App Store Connect client.
"""

from __future__ import annotations

from storepub.core.cancel import CancellationToken
from storepub.core.errors import PublishError
from storepub.core.result import Err, Ok, Result
from storepub.jobs.model import DeliveryMechanism, IosSubmission, Platform, RolloutRequest
from storepub.metadata.types import RemoteVersion
from storepub.output.log import PublishLogger

from .base import (
    BuildState,
    Submission,
    UploadReceipt,
    expect_ios,
    rollout_unsupported,
    simulate,
)
from .cli_tools import CommandRunner
from .ios_direct import IosDirectAdapter

_CREDENTIALS_HINT = "set FASTLANE_USER and FASTLANE_PASSWORD"


def pilot_upload_args(sub: IosSubmission, build_path: str) -> list[str]:
    args = [
        "pilot",
        "upload",
        "--ipa",
        build_path,
        "--app_identifier",
        sub.bundle_id,
        "--skip_waiting_for_build_processing",
        "--skip_submission",
    ]
    if sub.release_notes:
        args.extend(["--changelog", sub.release_notes])
    return args


def deliver_upload_args(sub: IosSubmission, build_path: str) -> list[str]:
    args = ["deliver", "--ipa", build_path, "--app_identifier", sub.bundle_id, "--force"]
    if sub.skip_metadata:
        args.append("--skip_metadata")
    if sub.skip_screenshots:
        args.append("--skip_screenshots")
    return args


class IosFastlaneAdapter:
    platform = Platform.IOS
    mechanism = DeliveryMechanism.FASTLANE

    def __init__(
        self,
        *,
        direct: IosDirectAdapter,
        fastlane_env: dict[str, str] | None,
        runner: CommandRunner,
        logger: PublishLogger,
        dry_run: bool,
        simulated_delay: float = 1.0,
    ) -> None:
        self._direct = direct
        self._env = fastlane_env
        self._runner = runner
        self._logger = logger
        self.dry_run = dry_run
        self._delay = simulated_delay

    def is_configured(self) -> bool:
        return self._env is not None and self._runner.available()

    def _require(self) -> Result[dict[str, str], PublishError]:
        if self._env is None:
            return Err(
                PublishError.configuration("fastlane credentials not configured", hint=_CREDENTIALS_HINT)
            )
        tool = self._runner.require()
        if isinstance(tool, Err):
            return tool
        return Ok(self._env)

    def validate_submission(
        self, submission: Submission, *, token: CancellationToken
    ) -> Result[None, PublishError]:
        checked = expect_ios(submission)
        if isinstance(checked, Err):
            return checked
        sub = checked.value
        if not sub.bundle_id:
            return Err(PublishError.validation("Bundle ID is required"))
        if not sub.version or not sub.build_number:
            return Err(PublishError.validation("Version and build number are required"))

        if self.dry_run:
            self._logger.info("Dry run: skipping fastlane validation")
            return simulate(token, self._delay, None)

        env = self._require()
        if isinstance(env, Err):
            return env
        if sub.build_path is None:
            return Err(PublishError.validation("Build path is required for upload"))
        return Ok(None)

    def upload_build(
        self, submission: Submission, *, token: CancellationToken
    ) -> Result[UploadReceipt, PublishError]:
        checked = expect_ios(submission)
        if isinstance(checked, Err):
            return checked
        sub = checked.value
        self._logger.info(
            "Uploading with fastlane",
            {"bundleId": sub.bundle_id, "version": sub.version, "method": "fastlane"},
        )

        if self.dry_run:
            self._logger.info("Dry run: skipping fastlane upload")
            return simulate(token, self._delay, UploadReceipt("dry-run-build-id", self.mechanism))

        if sub.build_path is None:
            return Err(PublishError.validation("Build path is required for upload"))
        env = self._require()
        if isinstance(env, Err):
            return env

        path = str(sub.build_path)
        args = pilot_upload_args(sub, path) if sub.is_testflight else deliver_upload_args(sub, path)
        uploaded = self._runner.run(
            args,
            cwd=sub.build_path.parent,
            env=env.value,
            token=token,
            action="fastlane upload failed",
        )
        if isinstance(uploaded, Err):
            return uploaded
        return Ok(UploadReceipt(f"{sub.bundle_id}:{sub.build_number}", self.mechanism))

    def poll_status(
        self, upload_id: str, *, token: CancellationToken
    ) -> Result[BuildState, PublishError]:
        return self._direct.poll_status(upload_id, token=token)

    def assign_track(
        self, submission: Submission, upload_id: str, *, token: CancellationToken
    ) -> Result[str, PublishError]:
        # The lane picked at upload (pilot or deliver) already fixes the destination.
        checked = expect_ios(submission)
        if isinstance(checked, Err):
            return checked
        if self.dry_run:
            return simulate(token, self._delay, upload_id)
        return Ok(upload_id)

    def commit(
        self, submission: Submission, ref: str, *, token: CancellationToken
    ) -> Result[str, PublishError]:
        checked = expect_ios(submission)
        if isinstance(checked, Err):
            return checked
        sub = checked.value

        if sub.release_type == "testflight-internal":
            return Ok(ref)
        if self.dry_run:
            self._logger.info("Dry run: skipping fastlane submission")
            return simulate(token, self._delay, "dry-run-submission-id")

        if sub.build_path is None:
            return Err(PublishError.validation("Build path is required for submission"))
        env = self._require()
        if isinstance(env, Err):
            return env
        if sub.is_testflight:
            args = [
                "pilot",
                "distribute",
                "--app_identifier",
                sub.bundle_id,
                "--build_number",
                sub.build_number,
                "--distribute_external",
                "true",
            ]
        else:
            args = [
                "deliver",
                "submit_build",
                "--app_identifier",
                sub.bundle_id,
                "--build_number",
                sub.build_number,
                "--submit_for_review",
                "--force",
            ]
        submitted = self._runner.run(
            args,
            cwd=sub.build_path.parent,
            env=env.value,
            token=token,
            action="fastlane submission failed",
        )
        if isinstance(submitted, Err):
            return submitted
        return Ok(ref)

    def expand_rollout(
        self, request: RolloutRequest, *, token: CancellationToken
    ) -> Result[None, PublishError]:
        return Err(rollout_unsupported(self.platform))

    def halt_rollout(
        self, request: RolloutRequest, *, token: CancellationToken
    ) -> Result[None, PublishError]:
        return Err(rollout_unsupported(self.platform))

    def rollback(
        self, request: RolloutRequest, *, token: CancellationToken
    ) -> Result[None, PublishError]:
        return Err(rollout_unsupported(self.platform))

    def last_remote_version(
        self, identifier: str, *, token: CancellationToken | None = None
    ) -> Result[RemoteVersion | None, PublishError]:
        return self._direct.last_remote_version(identifier, token=token)
