"""Android delivery through EAS Submit.

Rollout control and remote lookups are not available through EAS and go
through the Google Play client.
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

from .android_direct import AndroidDirectAdapter
from .base import BuildState, Submission, UploadReceipt, cancelled, expect_android, simulate
from .cli_tools import CommandRunner
from .ios_eas import eas_env, eas_submit_args


class AndroidEasAdapter:
    platform = Platform.ANDROID
    mechanism = DeliveryMechanism.EAS

    def __init__(
        self,
        *,
        direct: AndroidDirectAdapter,
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
        checked = expect_android(submission)
        if isinstance(checked, Err):
            return checked
        sub = checked.value
        if not sub.package_name:
            return Err(PublishError.validation("Package name is required"))
        if sub.version_code <= 0:
            return Err(PublishError.validation("Version code must be a positive integer"))

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
        checked = expect_android(submission)
        if isinstance(checked, Err):
            return checked
        sub = checked.value
        self._logger.info(
            "Submitting with EAS",
            {"packageName": sub.package_name, "track": sub.track, "method": "eas-submit"},
        )

        if self.dry_run:
            self._logger.info("Dry run: skipping EAS submit")
            return simulate(token, self._delay, UploadReceipt("dry-run-build-id", self.mechanism))

        env = eas_env(self._token)
        if isinstance(env, Err):
            return env
        submitted = self._runner.run(
            eas_submit_args(self.platform, sub.build_path, latest=sub.track == "internal"),
            cwd=self._workdir,
            env=env.value,
            token=token,
            action="eas submit failed",
        )
        if isinstance(submitted, Err):
            return submitted
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
        return self._direct.expand_rollout(request, token=token)

    def halt_rollout(
        self, request: RolloutRequest, *, token: CancellationToken
    ) -> Result[None, PublishError]:
        return self._direct.halt_rollout(request, token=token)

    def rollback(
        self, request: RolloutRequest, *, token: CancellationToken
    ) -> Result[None, PublishError]:
        return self._direct.rollback(request, token=token)

    def last_remote_version(
        self, identifier: str, *, token: CancellationToken | None = None
    ) -> Result[RemoteVersion | None, PublishError]:
        return self._direct.last_remote_version(identifier, token=token)
