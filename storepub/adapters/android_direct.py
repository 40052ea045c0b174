"""Google Play Developer API adapter.

Submissions go through an edit: upload the bundle, assign it to a track
with release notes, then commit the edit.
"""

from __future__ import annotations

from collections.abc import Mapping

from storepub.core.cancel import CancellationToken
from storepub.core.errors import PublishError
from storepub.core.result import Err, Ok, Result
from storepub.core.structured import StrDict, get_int, get_str
from storepub.jobs.model import DeliveryMechanism, Platform, RolloutRequest
from storepub.metadata.types import RemoteVersion
from storepub.output.log import PublishLogger
from storepub.secrets.vault import GooglePlayCredentials

from .base import (
    ApiTransport,
    BuildState,
    PollPolicy,
    Submission,
    UploadReceipt,
    expect_android,
    parse_build_state,
    poll_until_processed,
    require_transport,
    simulate,
)

_STORE = "Google Play"
_CREDENTIALS_HINT = "set GOOGLE_PLAY_SERVICE_ACCOUNT_JSON_B64"

DRY_RUN_LAST_VERSION_CODE = 1


class AndroidDirectAdapter:
    platform = Platform.ANDROID
    mechanism = DeliveryMechanism.DIRECT

    def __init__(
        self,
        *,
        credentials: GooglePlayCredentials | None,
        transport: ApiTransport | None,
        logger: PublishLogger,
        dry_run: bool,
        poll: PollPolicy | None = None,
        simulated_delay: float = 1.0,
    ) -> None:
        self._credentials = credentials
        self._transport = transport
        self._logger = logger
        self.dry_run = dry_run
        self._poll = poll or PollPolicy()
        self._delay = simulated_delay

    def is_configured(self) -> bool:
        return self._credentials is not None and self._transport is not None

    def _call(
        self, operation: str, params: Mapping[str, object], token: CancellationToken
    ) -> Result[StrDict, PublishError]:
        api = require_transport(
            self._transport,
            has_credentials=self._credentials is not None,
            store=_STORE,
            hint=_CREDENTIALS_HINT,
        )
        if isinstance(api, Err):
            return api
        return api.value.call(operation, params, token=token)

    def validate_submission(
        self, submission: Submission, *, token: CancellationToken
    ) -> Result[None, PublishError]:
        checked = expect_android(submission)
        if isinstance(checked, Err):
            return checked
        sub = checked.value
        self._logger.debug("Validating Android submission", {"packageName": sub.package_name})

        if not sub.package_name:
            return Err(PublishError.validation("Package name is required"))
        if sub.version_code <= 0:
            return Err(PublishError.validation("Version code must be a positive integer"))

        if self.dry_run:
            self._logger.info("Dry run: skipping Google Play validation")
            return simulate(token, self._delay, None)

        validated = self._call(
            "android.validate_submission",
            {"package_name": sub.package_name, "version_code": sub.version_code},
            token,
        )
        if isinstance(validated, Err):
            return validated
        return Ok(None)

    def upload_build(
        self, submission: Submission, *, token: CancellationToken
    ) -> Result[UploadReceipt, PublishError]:
        checked = expect_android(submission)
        if isinstance(checked, Err):
            return checked
        sub = checked.value

        if self.dry_run:
            self._logger.info("Dry run: skipping bundle upload", {"packageName": sub.package_name})
            return simulate(token, self._delay, UploadReceipt("dry-run-upload-id", self.mechanism))

        if sub.build_path is None:
            return Err(PublishError.validation("Build path is required for upload"))
        uploaded = self._call(
            "android.upload_bundle",
            {"package_name": sub.package_name, "build_path": str(sub.build_path)},
            token,
        )
        if isinstance(uploaded, Err):
            return uploaded
        upload_id = get_str(uploaded.value, "upload_id")
        if upload_id is None:
            return Err(PublishError.transient("upload response did not include an upload id"))
        return Ok(UploadReceipt(upload_id, self.mechanism))

    def poll_status(
        self, upload_id: str, *, token: CancellationToken
    ) -> Result[BuildState, PublishError]:
        if self.dry_run:
            return simulate(token, self._delay, BuildState.VALID)

        def fetch() -> Result[BuildState, PublishError]:
            status = self._call("android.bundle_status", {"upload_id": upload_id}, token)
            if isinstance(status, Err):
                return status
            return parse_build_state(status.value, "bundle")

        return poll_until_processed(fetch, policy=self._poll, token=token, label="Bundle")

    def assign_track(
        self, submission: Submission, upload_id: str, *, token: CancellationToken
    ) -> Result[str, PublishError]:
        """Put the uploaded bundle on its track with release notes; returns the edit id."""
        checked = expect_android(submission)
        if isinstance(checked, Err):
            return checked
        sub = checked.value
        self._logger.info(
            "Assigning bundle to track", {"track": sub.track, "versionCode": sub.version_code}
        )

        if self.dry_run:
            return simulate(token, self._delay, "dry-run-edit-id")

        assigned = self._call(
            "android.assign_track",
            {
                "upload_id": upload_id,
                "package_name": sub.package_name,
                "track": sub.track,
                "version_code": sub.version_code,
                "user_fraction": sub.user_fraction if sub.staged else None,
                "release_notes": dict(sub.changelogs),
            },
            token,
        )
        if isinstance(assigned, Err):
            return assigned
        return Ok(get_str(assigned.value, "edit_id") or upload_id)

    def commit(
        self, submission: Submission, ref: str, *, token: CancellationToken
    ) -> Result[str, PublishError]:
        if self.dry_run:
            self._logger.info("Dry run: skipping edit commit", {"editId": ref})
            return simulate(token, self._delay, ref)

        committed = self._call("android.commit_edit", {"edit_id": ref}, token)
        if isinstance(committed, Err):
            return committed
        return Ok(ref)

    def expand_rollout(
        self, request: RolloutRequest, *, token: CancellationToken
    ) -> Result[None, PublishError]:
        fraction = request.user_fraction
        if fraction is None or not 0 < fraction <= 1:
            return Err(PublishError.validation("User fraction must be between 0 and 1"))
        self._logger.info(
            "Expanding rollout", {"packageName": request.package_name, "userFraction": fraction}
        )
        if self.dry_run:
            return simulate(token, self._delay, None)
        return self._rollout_call(
            "android.update_rollout",
            {"package_name": request.package_name, "track": request.track, "user_fraction": fraction},
            token,
        )

    def halt_rollout(
        self, request: RolloutRequest, *, token: CancellationToken
    ) -> Result[None, PublishError]:
        self._logger.info("Halting rollout", {"packageName": request.package_name})
        if self.dry_run:
            return simulate(token, self._delay, None)
        return self._rollout_call(
            "android.halt_rollout",
            {"package_name": request.package_name, "track": request.track},
            token,
        )

    def rollback(
        self, request: RolloutRequest, *, token: CancellationToken
    ) -> Result[None, PublishError]:
        self._logger.info("Rolling back to previous release", {"packageName": request.package_name})
        if self.dry_run:
            return simulate(token, self._delay, None)
        return self._rollout_call(
            "android.rollback",
            {"package_name": request.package_name, "track": request.track},
            token,
        )

    def _rollout_call(
        self, operation: str, params: Mapping[str, object], token: CancellationToken
    ) -> Result[None, PublishError]:
        done = self._call(operation, params, token)
        if isinstance(done, Err):
            return done
        return Ok(None)

    def last_remote_version(
        self, identifier: str, *, token: CancellationToken | None = None
    ) -> Result[RemoteVersion | None, PublishError]:
        if self.dry_run:
            self._logger.info("Dry run: returning simulated last version code")
            return Ok(RemoteVersion(build=str(DRY_RUN_LAST_VERSION_CODE)))

        found = self._call(
            "android.last_version_code", {"package_name": identifier}, token or CancellationToken()
        )
        if isinstance(found, Err):
            return found
        code = get_int(found.value, "version_code")
        if code is None:
            return Ok(None)
        return Ok(RemoteVersion(version=get_str(found.value, "version_name"), build=str(code)))
