"""Android delivery through fastlane supply.

``supply`` uploads the bundle, assigns the track and commits the edit in a
single run, so ``assign_track`` and ``commit`` have nothing left to do.
The service account JSON is handed over through ``SUPPLY_JSON_KEY_DATA``
rather than the command line.
"""

from __future__ import annotations

from pathlib import Path

from storepub.core.cancel import CancellationToken
from storepub.core.errors import PublishError
from storepub.core.result import Err, Ok, Result
from storepub.jobs.model import AndroidSubmission, DeliveryMechanism, Platform, RolloutRequest
from storepub.metadata.types import RemoteVersion
from storepub.output.log import PublishLogger
from storepub.secrets.vault import GooglePlayCredentials

from .android_direct import AndroidDirectAdapter
from .base import BuildState, Submission, UploadReceipt, cancelled, expect_android, simulate
from .cli_tools import CommandRunner

_CREDENTIALS_HINT = "set GOOGLE_PLAY_SERVICE_ACCOUNT_JSON_B64"
_SKIP_LISTING = ["--skip_upload_metadata", "--skip_upload_images", "--skip_upload_screenshots"]


def supply_upload_args(sub: AndroidSubmission, build_path: str) -> list[str]:
    args = [
        "supply",
        "--aab",
        build_path,
        "--package_name",
        sub.package_name,
        "--track",
        sub.track,
    ]
    if sub.skip_metadata:
        args.append("--skip_upload_metadata")
    if sub.skip_screenshots:
        args.append("--skip_upload_screenshots")
    if sub.staged:
        args.extend(["--rollout", str(sub.user_fraction)])
    return args


class AndroidFastlaneAdapter:
    platform = Platform.ANDROID
    mechanism = DeliveryMechanism.FASTLANE

    def __init__(
        self,
        *,
        direct: AndroidDirectAdapter,
        credentials: GooglePlayCredentials | None,
        runner: CommandRunner,
        logger: PublishLogger,
        dry_run: bool,
        workdir: Path | None = None,
        simulated_delay: float = 1.0,
    ) -> None:
        self._direct = direct
        self._credentials = credentials
        self._runner = runner
        self._logger = logger
        self.dry_run = dry_run
        self._workdir = workdir or Path.cwd()
        self._delay = simulated_delay

    def is_configured(self) -> bool:
        return self._credentials is not None and self._runner.available()

    def _env(self) -> Result[dict[str, str], PublishError]:
        if self._credentials is None:
            return Err(
                PublishError.configuration(
                    "Google Play credentials not configured", hint=_CREDENTIALS_HINT
                )
            )
        tool = self._runner.require()
        if isinstance(tool, Err):
            return tool
        return Ok({"SUPPLY_JSON_KEY_DATA": self._credentials.service_account_json})

    def _supply(
        self, args: list[str], *, cwd: Path, token: CancellationToken, action: str
    ) -> Result[None, PublishError]:
        env = self._env()
        if isinstance(env, Err):
            return env
        done = self._runner.run(args, cwd=cwd, env=env.value, token=token, action=action)
        if isinstance(done, Err):
            return done
        return Ok(None)

    def validate_submission(
        self, submission: Submission, *, token: CancellationToken
    ) -> Result[None, PublishError]:
        checked = expect_android(submission)
        if isinstance(checked, Err):
            return checked
        sub = checked.value
        if not sub.package_name:
            return Err(PublishError.validation("Package name is required"))
        if sub.version_code <= 0:
            return Err(PublishError.validation("Version code must be a positive integer"))

        if self.dry_run:
            self._logger.info("Dry run: skipping fastlane validation")
            return simulate(token, self._delay, None)

        env = self._env()
        if isinstance(env, Err):
            return env
        return Ok(None)

    def upload_build(
        self, submission: Submission, *, token: CancellationToken
    ) -> Result[UploadReceipt, PublishError]:
        checked = expect_android(submission)
        if isinstance(checked, Err):
            return checked
        sub = checked.value
        self._logger.info(
            "Uploading with fastlane supply",
            {"packageName": sub.package_name, "track": sub.track, "method": "fastlane"},
        )

        if self.dry_run:
            self._logger.info("Dry run: skipping fastlane supply")
            return simulate(token, self._delay, UploadReceipt("dry-run-upload-id", self.mechanism))

        if sub.build_path is None:
            return Err(PublishError.validation("Build path is required for upload"))
        uploaded = self._supply(
            supply_upload_args(sub, str(sub.build_path)),
            cwd=sub.build_path.parent,
            token=token,
            action="fastlane supply failed",
        )
        if isinstance(uploaded, Err):
            return uploaded
        return Ok(UploadReceipt(f"{sub.package_name}:{sub.version_code}", self.mechanism))

    def poll_status(
        self, upload_id: str, *, token: CancellationToken
    ) -> Result[BuildState, PublishError]:
        if token.cancelled:
            return Err(cancelled(token))
        return Ok(BuildState.VALID)

    def assign_track(
        self, submission: Submission, upload_id: str, *, token: CancellationToken
    ) -> Result[str, PublishError]:
        if self.dry_run:
            return simulate(token, self._delay, upload_id)
        return Ok(upload_id)

    def commit(
        self, submission: Submission, ref: str, *, token: CancellationToken
    ) -> Result[str, PublishError]:
        if self.dry_run:
            return simulate(token, self._delay, ref)
        return Ok(ref)

    def expand_rollout(
        self, request: RolloutRequest, *, token: CancellationToken
    ) -> Result[None, PublishError]:
        fraction = request.user_fraction
        if fraction is None or not 0 < fraction <= 1:
            return Err(PublishError.validation("User fraction must be between 0 and 1"))
        if self.dry_run:
            return simulate(token, self._delay, None)
        return self._supply(
            [
                "supply",
                "--package_name",
                request.package_name,
                "--track",
                request.track,
                "--rollout",
                str(fraction),
                *_SKIP_LISTING,
            ],
            cwd=self._workdir,
            token=token,
            action="fastlane rollout update failed",
        )

    def halt_rollout(
        self, request: RolloutRequest, *, token: CancellationToken
    ) -> Result[None, PublishError]:
        if self.dry_run:
            return simulate(token, self._delay, None)
        return self._supply(
            [
                "supply",
                "--package_name",
                request.package_name,
                "--track",
                request.track,
                "--release_status",
                "halted",
                *_SKIP_LISTING,
            ],
            cwd=self._workdir,
            token=token,
            action="fastlane rollout halt failed",
        )

    def rollback(
        self, request: RolloutRequest, *, token: CancellationToken
    ) -> Result[None, PublishError]:
        # supply has no rollback lane.
        return self._direct.rollback(request, token=token)

    def last_remote_version(
        self, identifier: str, *, token: CancellationToken | None = None
    ) -> Result[RemoteVersion | None, PublishError]:
        return self._direct.last_remote_version(identifier, token=token)
