"""iOS delivery through EAS Submit.

``eas submit`` waits for the submission to finish, so there is no separate
processing phase to poll. Remote version lookups use App Store Connect.
"""

from __future__ import annotations

from pathlib import Path

from storepub.core.cancel import CancellationToken
from storepub.core.errors import PublishError
from storepub.core.result import Err, Ok, Result
from storepub.jobs.model import DeliveryMechanism, Platform, RolloutRequest
from storepub.metadata.types import RemoteVersion
from storepub.output.log import PublishLogger
from storepub.secrets.vault import EasToken

from .base import (
    BuildState,
    Submission,
    UploadReceipt,
    cancelled,
    expect_ios,
    rollout_unsupported,
    simulate,
)
from .cli_tools import CommandRunner
from .ios_direct import IosDirectAdapter

EAS_TOKEN_HINT = "set EAS_ACCESS_TOKEN"


def eas_submit_args(platform: Platform, build_path: Path | None, *, latest: bool) -> list[str]:
    args = ["submit", "--platform", str(platform), "--non-interactive"]
    if build_path is not None:
        args.extend(["--path", str(build_path)])
    elif latest:
        args.append("--latest")
    return args


def eas_env(token: EasToken | None) -> Result[dict[str, str], PublishError]:
    if token is None:
        return Err(PublishError.configuration("EAS access token not configured", hint=EAS_TOKEN_HINT))
    return Ok({"EXPO_TOKEN": token.value})


class IosEasAdapter:
    platform = Platform.IOS
    mechanism = DeliveryMechanism.EAS

    def __init__(
        self,
        *,
        direct: IosDirectAdapter,
        token: EasToken | None,
        runner: CommandRunner,
        logger: PublishLogger,
        dry_run: bool,
        workdir: Path | None = None,
        simulated_delay: float = 1.0,
    ) -> None:
        self._direct = direct
        self._token = token
        self._runner = runner
        self._logger = logger
        self.dry_run = dry_run
        self._workdir = workdir or Path.cwd()
        self._delay = simulated_delay

    def is_configured(self) -> bool:
        return self._token is not None and self._runner.available()

    def validate_submission(
        self, submission: Submission, *, token: CancellationToken
    ) -> Result[None, PublishError]:
        checked = expect_ios(submission)
        if isinstance(checked, Err):
            return checked
        if not checked.value.bundle_id:
            return Err(PublishError.validation("Bundle ID is required"))

        if self.dry_run:
            self._logger.info("Dry run: skipping EAS validation")
            return simulate(token, self._delay, None)

        env = eas_env(self._token)
        if isinstance(env, Err):
            return env
        tool = self._runner.require()
        if isinstance(tool, Err):
            return tool
        return Ok(None)

    def upload_build(
        self, submission: Submission, *, token: CancellationToken
    ) -> Result[UploadReceipt, PublishError]:
        checked = expect_ios(submission)
        if isinstance(checked, Err):
            return checked
        sub = checked.value
        self._logger.info(
            "Submitting with EAS",
            {"bundleId": sub.bundle_id, "version": sub.version, "method": "eas-submit"},
        )

        if self.dry_run:
            self._logger.info("Dry run: skipping EAS submit")
            return simulate(token, self._delay, UploadReceipt("dry-run-build-id", self.mechanism))

        env = eas_env(self._token)
        if isinstance(env, Err):
            return env
        submitted = self._runner.run(
            eas_submit_args(self.platform, sub.build_path, latest=True),
            cwd=self._workdir,
            env=env.value,
            token=token,
            action="eas submit failed",
        )
        if isinstance(submitted, Err):
            return submitted
        return Ok(UploadReceipt(f"{sub.bundle_id}:{sub.build_number}", self.mechanism))

    def poll_status(
        self, upload_id: str, *, token: CancellationToken
    ) -> Result[BuildState, PublishError]:
        if token.cancelled:
            return Err(cancelled(token))
        return Ok(BuildState.VALID)

    def assign_track(
        self, submission: Submission, upload_id: str, *, token: CancellationToken
    ) -> Result[str, PublishError]:
        # The submit profile in eas.json decides the destination.
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
