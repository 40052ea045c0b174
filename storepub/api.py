"""Public entry point for callers embedding the orchestrator.

``build_publisher`` composes the queue, status reporter, adapters, asset
checker and worker once at process start. Async operations return a job id
immediately; ``*_sync`` operations run validators inline and return their
report.

Example::

    publisher = build_publisher()
    job_id = publisher.submit_ios(
        IosSubmission(
            bundle_id="com.example.app",
            version="1.2.0",
            build_number="42",
            release_type="testflight-internal",
        )
    )
    publisher.run_until_idle()
    print(publisher.get_summary(job_id))
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from storepub.adapters.base import ApiTransport
from storepub.adapters.factory import AdapterFactory
from storepub.assets.checker import AssetChecker, AssetReport, FileAssetChecker
from storepub.core.clock import Clock, utc_now
from storepub.core.config import Settings
from storepub.core.structured import StrDict
from storepub.jobs.model import (
    AndroidSubmission,
    AssetRequest,
    DeliveryMechanism,
    IosSubmission,
    Job,
    JobPriority,
    Platform,
    RolloutRequest,
    create_android_submit_job,
    create_ios_submit_job,
    create_normalize_assets_job,
    create_preflight_check_job,
    create_rollout_job,
    create_validate_metadata_job,
)
from storepub.jobs.queue import InMemoryJobQueue, JobQueueStore
from storepub.jobs.worker import JobWorker, WorkerStatistics
from storepub.metadata.types import ValidationResult
from storepub.metadata.validator import (
    PreflightReport,
    run_preflight_validations,
    validate_store_metadata,
)
from storepub.output.log import LogEntry, LogSink, PublishLogger
from storepub.secrets.vault import CredentialStatus, SecretsProvider, SecretsReport
from storepub.status.reporter import (
    JobProgress,
    JobRecord,
    JobStatistics,
    JobSummary,
    StatusReporter,
)

__all__ = ["Publisher", "build_publisher"]


@dataclass(slots=True)
class Publisher:
    settings: Settings
    secrets: SecretsProvider
    logger: PublishLogger
    queue: JobQueueStore
    reporter: StatusReporter
    adapters: AdapterFactory
    assets: AssetChecker
    worker: JobWorker
    clock: Clock = utc_now

    @property
    def dry_run(self) -> bool:
        return self.secrets.dry_run

    # -- async submissions ---------------------------------------------------

    def submit_job(self, job: Job) -> str:
        return self.worker.submit_job(job)

    def submit_ios(
        self,
        submission: IosSubmission,
        *,
        dry_run: bool | None = None,
        priority: int = JobPriority.NORMAL,
        mechanism: DeliveryMechanism | None = None,
    ) -> str:
        dry_run = self.dry_run if dry_run is None else dry_run
        job = create_ios_submit_job(
            submission,
            dry_run=dry_run,
            priority=priority,
            max_retries=self.settings.retry.max_retries,
            mechanism=mechanism,
            clock=self.clock,
        )
        self.logger.info(
            f"Submitting iOS app: {submission.bundle_id} v{submission.version}",
            {"jobId": job.id, "releaseType": submission.release_type, "dryRun": dry_run},
        )
        return self.worker.submit_job(job)

    def submit_android(
        self,
        submission: AndroidSubmission,
        *,
        dry_run: bool | None = None,
        priority: int = JobPriority.NORMAL,
        mechanism: DeliveryMechanism | None = None,
    ) -> str:
        dry_run = self.dry_run if dry_run is None else dry_run
        job = create_android_submit_job(
            submission,
            dry_run=dry_run,
            priority=priority,
            max_retries=self.settings.retry.max_retries,
            mechanism=mechanism,
            clock=self.clock,
        )
        self.logger.info(
            f"Submitting Android app: {submission.package_name} v{submission.version_code}",
            {"jobId": job.id, "track": submission.track, "dryRun": dry_run},
        )
        return self.worker.submit_job(job)

    def submit_rollout(
        self,
        request: RolloutRequest,
        *,
        dry_run: bool | None = None,
        mechanism: DeliveryMechanism | None = None,
    ) -> str:
        dry_run = self.dry_run if dry_run is None else dry_run
        job = create_rollout_job(request, dry_run=dry_run, mechanism=mechanism, clock=self.clock)
        self.logger.info(
            f"Rollout {request.action} for {request.package_name}",
            {"jobId": job.id, "track": request.track, "dryRun": dry_run},
        )
        return self.worker.submit_job(job)

    def validate_metadata(self, metadata: StrDict, *, dry_run: bool = True) -> str:
        job = create_validate_metadata_job(metadata, dry_run=dry_run, clock=self.clock)
        self.logger.info("Validating store metadata", {"jobId": job.id, "dryRun": dry_run})
        return self.worker.submit_job(job)

    def normalize_assets(self, request: AssetRequest, *, priority: int = JobPriority.NORMAL) -> str:
        job = create_normalize_assets_job(request, priority=priority, clock=self.clock)
        self.logger.info(f"Checking assets for {request.platform}", {"jobId": job.id})
        return self.worker.submit_job(job)

    def run_preflight(
        self, metadata: StrDict, platform: Platform = Platform.BOTH, *, dry_run: bool = True
    ) -> str:
        job = create_preflight_check_job(metadata, platform, dry_run=dry_run, clock=self.clock)
        self.logger.info(f"Running preflight check for {platform}", {"jobId": job.id, "dryRun": dry_run})
        return self.worker.submit_job(job)

    def cancel_job(self, job_id: str) -> bool:
        return self.worker.cancel_job(job_id)

    # -- queries -------------------------------------------------------------

    def get_job(self, job_id: str) -> JobRecord | None:
        return self.reporter.get_job(job_id)

    def get_summary(self, job_id: str) -> JobSummary | None:
        return self.reporter.get_summary(job_id)

    def get_progress(self, job_id: str) -> int:
        return self.reporter.get_progress_percentage(job_id)

    def get_job_progress(self, job_id: str) -> list[JobProgress]:
        return self.reporter.get_job_progress(job_id)

    def get_job_logs(self, job_id: str) -> list[LogEntry]:
        return self.reporter.get_job_logs(job_id)

    def export_job_logs(self, job_id: str) -> str:
        return self.reporter.export_job_logs(job_id)

    def list_jobs(self) -> list[JobRecord]:
        return self.reporter.list_jobs()

    def get_statistics(self) -> JobStatistics:
        return self.reporter.get_statistics()

    def get_queue_statistics(self) -> WorkerStatistics:
        return self.worker.get_statistics()

    # -- inline validation ---------------------------------------------------

    def validate_metadata_sync(self, metadata: object) -> ValidationResult:
        return validate_store_metadata(metadata)

    def run_preflight_sync(
        self, metadata: object, *, dry_run: bool = True, platform: Platform = Platform.BOTH
    ) -> PreflightReport:
        """Run every preflight check inline.

        Remote version lookups go through the direct adapters, so a live run
        (``dry_run=False``) needs store credentials and a transport.
        """
        return run_preflight_validations(
            metadata,
            ios_source=self.adapters.direct(Platform.IOS, dry_run=dry_run),
            android_source=self.adapters.direct(Platform.ANDROID, dry_run=dry_run),
            dry_run=dry_run,
            platform=platform,
        )

    def validate_assets_sync(self, request: AssetRequest) -> AssetReport:
        return FileAssetChecker(stage=False).check(request)

    def validate_secrets(self) -> SecretsReport:
        return self.secrets.validate_required_secrets()

    def credential_status(self) -> CredentialStatus:
        return self.secrets.credential_status()

    # -- worker lifecycle ----------------------------------------------------

    def start(self, tick_interval: float | None = None) -> None:
        self.worker.start(tick_interval)

    def stop(self) -> None:
        self.worker.stop()

    def run_until_idle(self) -> int:
        return self.worker.run_until_idle()


def build_publisher(
    env: Mapping[str, str] | None = None,
    *,
    settings: Settings | None = None,
    sink: LogSink | None = None,
    transport: ApiTransport | None = None,
    assets: AssetChecker | None = None,
    workdir: Path | None = None,
    clock: Clock = utc_now,
) -> Publisher:
    """Compose a ``Publisher`` from the environment and settings."""
    settings = settings or Settings()
    secrets = SecretsProvider.from_env(env)
    logger = PublishLogger(sink, secrets=secrets.known_secrets(), clock=clock)
    queue = InMemoryJobQueue(clock=clock)
    reporter = StatusReporter(logger, clock=clock)
    adapters = AdapterFactory(
        secrets=secrets,
        settings=settings,
        logger=logger,
        transport=transport,
        workdir=workdir,
    )
    asset_checker = assets or FileAssetChecker()
    worker = JobWorker(
        queue=queue,
        reporter=reporter,
        adapters=adapters,
        assets=asset_checker,
        logger=logger,
        settings=settings,
        clock=clock,
    )
    return Publisher(
        settings=settings,
        secrets=secrets,
        logger=logger,
        queue=queue,
        reporter=reporter,
        adapters=adapters,
        assets=asset_checker,
        worker=worker,
        clock=clock,
    )
