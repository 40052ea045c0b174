"""App Store Connect API adapter."""

from __future__ import annotations

from storepub.core.cancel import CancellationToken
from storepub.core.errors import PublishError
from storepub.core.result import Err, Ok, Result
from storepub.core.structured import get_str
from storepub.jobs.model import DeliveryMechanism, Platform, RolloutRequest
from storepub.metadata.types import RemoteVersion
from storepub.output.log import PublishLogger
from storepub.secrets.vault import AscCredentials

from .base import (
    ApiTransport,
    BuildState,
    PollPolicy,
    Submission,
    UploadReceipt,
    expect_ios,
    parse_build_state,
    poll_until_processed,
    require_transport,
    rollout_unsupported,
    simulate,
)

_STORE = "App Store Connect"
_CREDENTIALS_HINT = "set ASC_ISSUER_ID, ASC_KEY_ID and ASC_PRIVATE_KEY_B64"

# Placeholders returned by dry-run lookups.
DRY_RUN_LAST_VERSION = "1.0.0"
DRY_RUN_LAST_BUILD = "1"


class IosDirectAdapter:
    platform = Platform.IOS
    mechanism = DeliveryMechanism.DIRECT

    def __init__(
        self,
        *,
        credentials: AscCredentials | None,
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

    def _api(self) -> Result[ApiTransport, PublishError]:
        return require_transport(
            self._transport,
            has_credentials=self._credentials is not None,
            store=_STORE,
            hint=_CREDENTIALS_HINT,
        )

    def validate_submission(
        self, submission: Submission, *, token: CancellationToken
    ) -> Result[None, PublishError]:
        checked = expect_ios(submission)
        if isinstance(checked, Err):
            return checked
        sub = checked.value
        self._logger.debug("Validating iOS submission", {"bundleId": sub.bundle_id})

        if not sub.bundle_id:
            return Err(PublishError.validation("Bundle ID is required"))
        if not sub.version or not sub.build_number:
            return Err(PublishError.validation("Version and build number are required"))

        if self.dry_run:
            self._logger.info("Dry run: skipping App Store Connect validation")
            return simulate(token, self._delay, None)

        api = self._api()
        if isinstance(api, Err):
            return api
        checked_remote = api.value.call(
            "ios.validate_submission",
            {"bundle_id": sub.bundle_id, "version": sub.version, "build_number": sub.build_number},
            token=token,
        )
        if isinstance(checked_remote, Err):
            return checked_remote
        return Ok(None)

    def upload_build(
        self, submission: Submission, *, token: CancellationToken
    ) -> Result[UploadReceipt, PublishError]:
        checked = expect_ios(submission)
        if isinstance(checked, Err):
            return checked
        sub = checked.value

        if self.dry_run:
            self._logger.info("Dry run: skipping build upload", {"bundleId": sub.bundle_id})
            return simulate(token, self._delay, UploadReceipt("dry-run-build-id", self.mechanism))

        if sub.build_path is None:
            return Err(PublishError.validation("Build path is required for upload"))
        api = self._api()
        if isinstance(api, Err):
            return api

        uploaded = api.value.call(
            "ios.upload_build",
            {
                "bundle_id": sub.bundle_id,
                "version": sub.version,
                "build_number": sub.build_number,
                "build_path": str(sub.build_path),
            },
            token=token,
        )
        if isinstance(uploaded, Err):
            return uploaded
        build_id = get_str(uploaded.value, "build_id")
        if build_id is None:
            return Err(PublishError.transient("upload response did not include a build id"))
        return Ok(UploadReceipt(build_id, self.mechanism))

    def poll_status(
        self, upload_id: str, *, token: CancellationToken
    ) -> Result[BuildState, PublishError]:
        if self.dry_run:
            self._logger.info("Dry run: simulating build processing", {"buildId": upload_id})
            return simulate(token, self._delay, BuildState.VALID)

        api = self._api()
        if isinstance(api, Err):
            return api
        transport = api.value

        def fetch() -> Result[BuildState, PublishError]:
            status = transport.call("ios.build_status", {"build_id": upload_id}, token=token)
            if isinstance(status, Err):
                return status
            return parse_build_state(status.value, "build")

        return poll_until_processed(fetch, policy=self._poll, token=token, label="Build")

    def assign_track(
        self, submission: Submission, upload_id: str, *, token: CancellationToken
    ) -> Result[str, PublishError]:
        """Attach the build to a TestFlight group or a new App Store version."""
        checked = expect_ios(submission)
        if isinstance(checked, Err):
            return checked
        sub = checked.value

        if self.dry_run:
            placeholder = "dry-run-group-id" if sub.is_testflight else "dry-run-version-id"
            return simulate(token, self._delay, placeholder)

        api = self._api()
        if isinstance(api, Err):
            return api
        if sub.is_testflight:
            assigned = api.value.call(
                "ios.assign_beta_group",
                {"build_id": upload_id, "external": sub.release_type == "testflight-external"},
                token=token,
            )
            key = "group_id"
        else:
            assigned = api.value.call(
                "ios.create_version",
                {
                    "bundle_id": sub.bundle_id,
                    "version": sub.version,
                    "build_id": upload_id,
                    "release_notes": sub.release_notes,
                },
                token=token,
            )
            key = "version_id"
        if isinstance(assigned, Err):
            return assigned
        ref = get_str(assigned.value, key)
        if ref is None:
            return Err(PublishError.transient(f"response did not include {key}"))
        return Ok(ref)

    def commit(
        self, submission: Submission, ref: str, *, token: CancellationToken
    ) -> Result[str, PublishError]:
        """Submit for review. Internal TestFlight builds need no review."""
        checked = expect_ios(submission)
        if isinstance(checked, Err):
            return checked
        sub = checked.value

        if sub.release_type == "testflight-internal":
            return Ok(ref)
        if self.dry_run:
            return simulate(token, self._delay, "dry-run-submission-id")

        api = self._api()
        if isinstance(api, Err):
            return api
        operation = "ios.submit_beta_review" if sub.is_testflight else "ios.submit_for_review"
        submitted = api.value.call(operation, {"ref": ref}, token=token)
        if isinstance(submitted, Err):
            return submitted
        return Ok(get_str(submitted.value, "submission_id") or ref)

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
        if self.dry_run:
            self._logger.info("Dry run: returning simulated last version")
            return Ok(RemoteVersion(version=DRY_RUN_LAST_VERSION, build=DRY_RUN_LAST_BUILD))

        api = self._api()
        if isinstance(api, Err):
            return api
        found = api.value.call(
            "ios.last_version", {"bundle_id": identifier}, token=token or CancellationToken()
        )
        if isinstance(found, Err):
            return found
        version = get_str(found.value, "version")
        build = get_str(found.value, "build_number")
        if version is None and build is None:
            return Ok(None)
        return Ok(RemoteVersion(version=version, build=build))
