"""Tests for storepub.jobs.worker."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import replace

import pytest

from storepub.adapters.base import BuildState, Submission, UploadReceipt, cancelled, rollout_unsupported
from storepub.adapters.factory import AdapterFactory
from storepub.assets.checker import FileAssetChecker
from storepub.core.cancel import CancellationToken
from storepub.core.clock import Clock, ManualClock, utc_now
from storepub.core.config import Settings, WorkerConfig
from storepub.core.errors import PublishError
from storepub.core.result import Err, Ok, Result
from storepub.jobs.model import (
    AndroidSubmission,
    DeliveryMechanism,
    IosSubmission,
    Job,
    JobStatus,
    Platform,
    RolloutRequest,
    create_android_submit_job,
    create_ios_submit_job,
    create_validate_metadata_job,
)
from storepub.jobs.queue import InMemoryJobQueue
from storepub.jobs.worker import JobWorker
from storepub.metadata.sample import sample_store_metadata
from storepub.metadata.types import RemoteVersion
from storepub.output.log import LogLevel, MemoryLogSink, PublishLogger
from storepub.secrets.vault import SecretsProvider
from storepub.status.codes import TERMINAL_CODES, ProgressCode
from storepub.status.reporter import JobRecord, StatusReporter

type UploadScript = PublishError | Exception


class FakeIosAdapter:
    """Scripted adapter: each upload pops the next failure, then succeeds."""

    platform = Platform.IOS
    mechanism = DeliveryMechanism.DIRECT
    dry_run = True

    def __init__(
        self,
        failures: list[UploadScript] | None = None,
        on_upload: Callable[[CancellationToken], None] | None = None,
    ) -> None:
        self.failures = list(failures or [])
        self.on_upload = on_upload
        self.calls: list[str] = []

    def is_configured(self) -> bool:
        return True

    def validate_submission(
        self, submission: Submission, *, token: CancellationToken
    ) -> Result[None, PublishError]:
        self.calls.append("validate")
        return Ok(None)

    def upload_build(
        self, submission: Submission, *, token: CancellationToken
    ) -> Result[UploadReceipt, PublishError]:
        self.calls.append("upload")
        if self.on_upload is not None:
            self.on_upload(token)
        if self.failures:
            failure = self.failures.pop(0)
            if isinstance(failure, PublishError):
                return Err(failure)
            raise failure
        return Ok(UploadReceipt("build-1", self.mechanism))

    def poll_status(
        self, upload_id: str, *, token: CancellationToken
    ) -> Result[BuildState, PublishError]:
        self.calls.append("poll")
        if token.cancelled:
            return Err(cancelled(token))
        return Ok(BuildState.VALID)

    def assign_track(
        self, submission: Submission, upload_id: str, *, token: CancellationToken
    ) -> Result[str, PublishError]:
        self.calls.append("assign")
        return Ok("group-1")

    def commit(
        self, submission: Submission, ref: str, *, token: CancellationToken
    ) -> Result[str, PublishError]:
        self.calls.append("commit")
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
        return Ok(None)


class FakeAndroidAdapter(FakeIosAdapter):
    platform = Platform.ANDROID


class ResourceTrackingAdapter(FakeIosAdapter):
    """Holds every upload except ``other_bundle``'s until that one has uploaded."""

    def __init__(self, other_bundle: str) -> None:
        super().__init__()
        self.other_bundle = other_bundle
        self.other_uploaded = threading.Event()
        self.events: list[tuple[str, str, str]] = []
        self._lock = threading.Lock()

    def _record(self, submission: Submission, call: str) -> IosSubmission:
        assert isinstance(submission, IosSubmission)
        with self._lock:
            self.events.append((submission.bundle_id, submission.build_number, call))
        return submission

    def validate_submission(
        self, submission: Submission, *, token: CancellationToken
    ) -> Result[None, PublishError]:
        self._record(submission, "validate")
        return Ok(None)

    def upload_build(
        self, submission: Submission, *, token: CancellationToken
    ) -> Result[UploadReceipt, PublishError]:
        sub = self._record(submission, "upload")
        if sub.bundle_id == self.other_bundle:
            self.other_uploaded.set()
        else:
            self.other_uploaded.wait(5.0)
        return Ok(UploadReceipt(f"build-{sub.build_number}", self.mechanism))

    def commit(
        self, submission: Submission, ref: str, *, token: CancellationToken
    ) -> Result[str, PublishError]:
        self._record(submission, "commit")
        return Ok(ref)


class Harness:
    def __init__(
        self,
        settings: Settings,
        logger: PublishLogger,
        clock: Clock,
        adapter: FakeIosAdapter | None = None,
    ) -> None:
        self.clock = clock
        self.queue = InMemoryJobQueue(clock=clock)
        self.reporter = StatusReporter(logger, clock=clock)
        self.adapters = AdapterFactory(
            secrets=SecretsProvider.from_env({}), settings=settings, logger=logger
        )
        if adapter is not None:
            self.adapters.register(Platform.IOS, DeliveryMechanism.DIRECT, adapter)
        self.worker = JobWorker(
            queue=self.queue,
            reporter=self.reporter,
            adapters=self.adapters,
            assets=FileAssetChecker(stage=False),
            logger=logger,
            settings=settings,
            clock=clock,
        )

    def record(self, job_id: str) -> JobRecord:
        record = self.reporter.get_job(job_id)
        assert record is not None
        return record


def _ios_job(clock: Clock, *, max_retries: int = 3) -> Job:
    sub = IosSubmission("com.example.app", "1.2.0", "42", "testflight-internal")
    return create_ios_submit_job(sub, max_retries=max_retries, clock=clock)


def _collapsed(history: list[JobStatus]) -> list[JobStatus]:
    """Drop WAITING and repeated neighbours so only the attempt shape remains."""
    out: list[JobStatus] = []
    for status in history:
        if status == JobStatus.WAITING:
            continue
        if out and out[-1] == status:
            continue
        out.append(status)
    return out


def _codes(record: JobRecord) -> list[ProgressCode]:
    return [p.code for p in record.progress]


def _terminal_events(record: JobRecord) -> int:
    return sum(1 for code in _codes(record) if code in TERMINAL_CODES)


@pytest.fixture
def no_sleep(monkeypatch: pytest.MonkeyPatch, clock: ManualClock) -> None:
    """Idle waits advance the manual clock instead of sleeping."""
    monkeypatch.setattr("storepub.jobs.worker.sleep", clock.advance)


class TestRetry:
    def test_transient_failures_are_retried_with_backoff(
        self, fast_settings: Settings, logger: PublishLogger, clock: ManualClock, no_sleep: None
    ) -> None:
        adapter = FakeIosAdapter(
            [PublishError.transient("network down"), PublishError.transient("network down")]
        )
        h = Harness(fast_settings, logger, clock, adapter)
        start = clock.now
        job = _ios_job(clock)
        job_id = h.worker.submit_job(job)

        assert h.worker.run_until_idle() == 3

        record = h.record(job_id)
        assert record.status == JobStatus.SUCCEEDED
        assert record.retry_count == 2
        assert _collapsed(record.status_history) == [
            JobStatus.QUEUED,
            JobStatus.RUNNING,
            JobStatus.QUEUED,
            JobStatus.RUNNING,
            JobStatus.QUEUED,
            JobStatus.RUNNING,
            JobStatus.SUCCEEDED,
        ]
        retries = [p for p in record.progress if p.code == ProgressCode.JOB_RETRY_SCHEDULED]
        assert [p.data["delayMs"] for p in retries if p.data] == [2000, 4000]
        assert _terminal_events(record) == 1
        assert record.started_at == start
        assert record.completed_at == clock.now
        assert record.percentage == 100
        assert len(job.attempts) == 3
        assert [a.error for a in job.attempts] == ["network down", "network down", None]

    def test_timeout_is_retried(
        self, fast_settings: Settings, logger: PublishLogger, clock: ManualClock, no_sleep: None
    ) -> None:
        adapter = FakeIosAdapter([PublishError.timeout("processing timed out")])
        h = Harness(fast_settings, logger, clock, adapter)
        job_id = h.worker.submit_job(_ios_job(clock))

        h.worker.run_until_idle()

        assert h.record(job_id).status == JobStatus.SUCCEEDED
        assert h.record(job_id).retry_count == 1

    def test_retry_waits_for_ready_time(
        self, fast_settings: Settings, logger: PublishLogger, clock: ManualClock
    ) -> None:
        adapter = FakeIosAdapter([PublishError.transient("flaky")])
        h = Harness(fast_settings, logger, clock, adapter)
        job_id = h.worker.submit_job(_ios_job(clock))

        assert h.worker.process_next()
        assert h.record(job_id).status == JobStatus.QUEUED
        assert not h.worker.process_next()

        clock.advance(1.999)
        assert not h.worker.process_next()
        clock.advance(0.001)
        assert h.worker.process_next()
        assert h.record(job_id).status == JobStatus.SUCCEEDED

    def test_exhausted_retries_fail_the_job(
        self, fast_settings: Settings, logger: PublishLogger, clock: ManualClock, no_sleep: None
    ) -> None:
        adapter = FakeIosAdapter([PublishError.transient("network down")] * 4)
        h = Harness(fast_settings, logger, clock, adapter)
        job_id = h.worker.submit_job(_ios_job(clock, max_retries=3))

        assert h.worker.run_until_idle() == 4

        record = h.record(job_id)
        assert record.status == JobStatus.FAILED
        assert record.retry_count == 3
        assert record.error == "network down"
        assert record.result is not None
        assert record.result.success is False
        assert _codes(record).count(ProgressCode.JOB_FAILED) == 1
        assert _terminal_events(record) == 1


class TestClassification:
    @pytest.mark.parametrize(
        "error",
        [
            PublishError.validation("Bundle ID is required"),
            PublishError.configuration("credentials not configured", hint="set ASC_KEY_ID"),
        ],
    )
    def test_non_retryable_errors_fail_immediately(
        self,
        error: PublishError,
        fast_settings: Settings,
        logger: PublishLogger,
        clock: ManualClock,
    ) -> None:
        adapter = FakeIosAdapter([error])
        h = Harness(fast_settings, logger, clock, adapter)
        job_id = h.worker.submit_job(_ios_job(clock))

        assert h.worker.run_until_idle() == 1

        record = h.record(job_id)
        assert record.status == JobStatus.FAILED
        assert record.retry_count == 0
        assert adapter.calls == ["validate", "upload"]
        assert record.result is not None
        assert record.result.errors[0] == error.pretty()
        assert ProgressCode.JOB_RETRY_SCHEDULED not in _codes(record)

    def test_unknown_exception_is_treated_as_transient(
        self,
        fast_settings: Settings,
        logger: PublishLogger,
        sink: MemoryLogSink,
        clock: ManualClock,
        no_sleep: None,
    ) -> None:
        adapter = FakeIosAdapter([RuntimeError("socket reset")])
        h = Harness(fast_settings, logger, clock, adapter)
        job_id = h.worker.submit_job(_ios_job(clock))

        h.worker.run_until_idle()

        record = h.record(job_id)
        assert record.status == JobStatus.SUCCEEDED
        assert record.retry_count == 1
        assert any("Unclassified error" in e.message for e in sink.by_level(LogLevel.WARN))

    def test_unknown_exception_without_retries_fails(
        self, fast_settings: Settings, logger: PublishLogger, clock: ManualClock
    ) -> None:
        adapter = FakeIosAdapter([RuntimeError("socket reset")])
        h = Harness(fast_settings, logger, clock, adapter)
        job_id = h.worker.submit_job(_ios_job(clock, max_retries=0))

        h.worker.run_until_idle()

        record = h.record(job_id)
        assert record.status == JobStatus.FAILED
        assert record.error == "socket reset"


class TestStagedRolloutGuard:
    @pytest.mark.parametrize("fraction", [0.0, -0.2, 1.5])
    def test_invalid_production_fraction_fails_before_upload(
        self, fast_settings: Settings, logger: PublishLogger, clock: ManualClock, fraction: float
    ) -> None:
        adapter = FakeAndroidAdapter()
        h = Harness(fast_settings, logger, clock)
        h.adapters.register(Platform.ANDROID, DeliveryMechanism.DIRECT, adapter)
        sub = AndroidSubmission("com.example.app", "1.2.0", 42, "production", user_fraction=fraction)
        job_id = h.worker.submit_job(create_android_submit_job(sub, clock=clock))

        assert h.worker.run_until_idle() == 1

        record = h.record(job_id)
        assert record.status == JobStatus.FAILED
        assert record.retry_count == 0
        assert adapter.calls == []
        assert record.result is not None
        assert any(e.startswith("android.userFraction") for e in record.result.errors)
        assert _terminal_events(record) == 1

    def test_valid_fraction_starts_staged_rollout(
        self, fast_settings: Settings, logger: PublishLogger, clock: ManualClock
    ) -> None:
        adapter = FakeAndroidAdapter()
        h = Harness(fast_settings, logger, clock)
        h.adapters.register(Platform.ANDROID, DeliveryMechanism.DIRECT, adapter)
        sub = AndroidSubmission("com.example.app", "1.2.0", 42, "production", user_fraction=0.2)
        job_id = h.worker.submit_job(create_android_submit_job(sub, clock=clock))

        h.worker.run_until_idle()

        record = h.record(job_id)
        assert record.status == JobStatus.SUCCEEDED
        assert "upload" in adapter.calls
        assert ProgressCode.ROLLOUT_STARTED in _codes(record)


class TestCancellation:
    def test_cancel_queued_job_never_reaches_adapter(
        self, fast_settings: Settings, logger: PublishLogger, clock: ManualClock
    ) -> None:
        adapter = FakeIosAdapter()
        h = Harness(fast_settings, logger, clock, adapter)
        job_id = h.worker.submit_job(_ios_job(clock))

        assert h.worker.cancel_job(job_id)
        assert not h.worker.process_next()

        record = h.record(job_id)
        assert record.status == JobStatus.CANCELLED
        assert adapter.calls == []
        assert len(h.queue) == 0
        assert _codes(record).count(ProgressCode.JOB_CANCELLED) == 1

    def test_cancel_twice_is_a_no_op(
        self, fast_settings: Settings, logger: PublishLogger, clock: ManualClock
    ) -> None:
        h = Harness(fast_settings, logger, clock, FakeIosAdapter())
        job_id = h.worker.submit_job(_ios_job(clock))
        assert h.worker.cancel_job(job_id)
        assert not h.worker.cancel_job(job_id)
        assert not h.worker.cancel_job("unknown")

    def test_cancel_running_job(
        self, fast_settings: Settings, logger: PublishLogger, clock: ManualClock
    ) -> None:
        h = Harness(fast_settings, logger, clock)
        job = _ios_job(clock)

        def cancel_mid_upload(token: CancellationToken) -> None:
            assert h.worker.cancel_job(job.id)
            assert token.cancelled

        adapter = FakeIosAdapter(on_upload=cancel_mid_upload)
        h.adapters.register(Platform.IOS, DeliveryMechanism.DIRECT, adapter)
        h.worker.submit_job(job)

        assert h.worker.run_until_idle() == 1

        record = h.record(job.id)
        assert record.status == JobStatus.CANCELLED
        assert "poll" not in adapter.calls
        assert _terminal_events(record) == 1
        assert record.retry_count == 0

    def test_cancelled_error_is_never_retried(
        self, fast_settings: Settings, logger: PublishLogger, clock: ManualClock
    ) -> None:
        adapter = FakeIosAdapter([PublishError.cancelled("aborted")])
        h = Harness(fast_settings, logger, clock, adapter)
        job_id = h.worker.submit_job(_ios_job(clock))

        assert h.worker.run_until_idle() == 1
        assert h.record(job_id).status == JobStatus.CANCELLED


class TestBookkeeping:
    def test_metadata_job_runs_through_worker(
        self, fast_settings: Settings, logger: PublishLogger, clock: ManualClock
    ) -> None:
        h = Harness(fast_settings, logger, clock)
        job = create_validate_metadata_job(sample_store_metadata(), clock=clock)
        h.worker.submit_job(job)

        h.worker.run_until_idle()

        assert h.record(job.id).status == JobStatus.SUCCEEDED
        assert h.queue.job_counter(job.type) == 1

    def test_retention_evicts_old_terminal_jobs(
        self, logger: PublishLogger, clock: ManualClock
    ) -> None:
        settings = Settings(worker=WorkerConfig(retention=2))
        h = Harness(settings, logger, clock)
        ids: list[str] = []
        for _ in range(4):
            ids.append(h.worker.submit_job(create_validate_metadata_job({}, clock=clock)))
            clock.advance(1)

        h.worker.run_until_idle()

        assert [r.id for r in h.reporter.list_jobs()] == [ids[3], ids[2]]

    def test_statistics(
        self, fast_settings: Settings, logger: PublishLogger, clock: ManualClock
    ) -> None:
        h = Harness(fast_settings, logger, clock, FakeIosAdapter())
        h.worker.submit_job(_ios_job(clock))
        stats = h.worker.get_statistics()
        assert stats.queue_length == 1
        assert stats.active_jobs == 0
        assert stats.running is False

    def test_duplicate_submission_rejected(
        self, fast_settings: Settings, logger: PublishLogger, clock: ManualClock
    ) -> None:
        h = Harness(fast_settings, logger, clock, FakeIosAdapter())
        job = _ios_job(clock)
        h.worker.submit_job(job)
        with pytest.raises(ValueError):
            h.worker.submit_job(job)


class TestBackgroundLoop:
    def test_start_processes_jobs_and_stop_joins(
        self, fast_settings: Settings, logger: PublishLogger, sink: MemoryLogSink
    ) -> None:
        h = Harness(fast_settings, logger, utc_now, FakeIosAdapter())
        job_id = h.worker.submit_job(_ios_job(utc_now))

        h.worker.start(tick_interval=0.01)
        try:
            h.worker.start()
            deadline = time.monotonic() + 5.0
            while not h.record(job_id).status.is_terminal and time.monotonic() < deadline:
                time.sleep(0.01)
            assert h.worker.get_statistics().running
        finally:
            h.worker.stop()

        assert h.record(job_id).status == JobStatus.SUCCEEDED
        assert not h.worker.get_statistics().running
        assert "Worker already started" in sink.messages

    def test_stop_cancels_running_job_and_dispatches_nothing_new(
        self, fast_settings: Settings, logger: PublishLogger
    ) -> None:
        uploading = threading.Event()

        def block_until_cancelled(token: CancellationToken) -> None:
            uploading.set()
            token.wait(5.0)

        adapter = FakeIosAdapter(on_upload=block_until_cancelled)
        h = Harness(fast_settings, logger, utc_now, adapter)
        running_id = h.worker.submit_job(_ios_job(utc_now))
        waiting_id = h.worker.submit_job(_ios_job(utc_now))

        h.worker.start(tick_interval=0.01)
        try:
            assert uploading.wait(5.0)
            assert h.record(running_id).status == JobStatus.RUNNING
        finally:
            h.worker.stop()

        record = h.record(running_id)
        assert record.status == JobStatus.CANCELLED
        assert _codes(record).count(ProgressCode.JOB_CANCELLED) == 1
        assert _terminal_events(record) == 1
        assert "poll" not in adapter.calls
        assert adapter.calls.count("upload") == 1
        assert h.record(waiting_id).status == JobStatus.QUEUED
        assert h.worker.get_statistics().active_jobs == 0

    def test_worker_can_run_synchronously_after_stop(
        self, fast_settings: Settings, logger: PublishLogger
    ) -> None:
        h = Harness(fast_settings, logger, utc_now, FakeIosAdapter())
        h.worker.start(tick_interval=0.01)
        h.worker.stop()

        job_id = h.worker.submit_job(_ios_job(utc_now))
        assert h.worker.process_next()
        assert h.record(job_id).status == JobStatus.SUCCEEDED

    def test_explicit_zero_tick_interval_is_kept(
        self, fast_settings: Settings, logger: PublishLogger, sink: MemoryLogSink
    ) -> None:
        h = Harness(fast_settings, logger, utc_now, FakeIosAdapter())
        h.worker.start(tick_interval=0)
        h.worker.stop()

        started = [e for e in sink.entries if e.message == "Job worker started"]
        assert len(started) == 1
        assert started[0].data == {"tickInterval": 0}


def _submission_job(bundle_id: str, build_number: str) -> Job:
    sub = IosSubmission(bundle_id, "1.2.0", build_number, "testflight-internal")
    return create_ios_submit_job(sub, clock=utc_now)


class TestResourceSerialization:
    def test_same_bundle_never_overlaps_while_others_run(
        self, fast_settings: Settings, logger: PublishLogger
    ) -> None:
        settings = replace(fast_settings, worker=WorkerConfig(max_concurrent=2))
        adapter = ResourceTrackingAdapter("com.example.other")
        h = Harness(settings, logger, utc_now, adapter)
        ids = [
            h.worker.submit_job(_submission_job("com.example.app", "1")),
            h.worker.submit_job(_submission_job("com.example.app", "2")),
            h.worker.submit_job(_submission_job("com.example.other", "1")),
        ]

        h.worker.start(tick_interval=0.01)
        try:
            deadline = time.monotonic() + 10.0
            while time.monotonic() < deadline:
                if all(h.record(i).status.is_terminal for i in ids):
                    break
                time.sleep(0.01)
        finally:
            h.worker.stop()

        assert [h.record(i).status for i in ids] == [JobStatus.SUCCEEDED] * 3
        events = adapter.events
        first_commit = events.index(("com.example.app", "1", "commit"))
        second_start = min(
            i for i, e in enumerate(events) if e[:2] == ("com.example.app", "2")
        )
        other_upload = events.index(("com.example.other", "1", "upload"))
        assert second_start > first_commit
        assert other_upload < first_commit
