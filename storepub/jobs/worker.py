"""Job worker: queue-to-terminal lifecycle.

``submit_job`` enqueues and registers a job; a scheduling tick dequeues the
highest-priority ready job and runs its step sequence. Failures are
classified by ``PublishError.kind``:

- transient / timeout: retried with exponential backoff while the retry
  budget lasts (the job goes back to the queue with a later ready time)
- validation / configuration: terminal FAILED
- cancelled: terminal CANCELLED, never retried

Exceptions escaping a step sequence are treated as transient and logged
as a warning.

Dispatch runs either synchronously (``process_next``/``run_until_idle``)
or on a background loop (``start``/``stop``) feeding a thread pool of
``max_concurrent`` workers. Jobs touching the same store listing never run
at the same time.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import timedelta
from time import sleep

from storepub.adapters.factory import AdapterFactory
from storepub.assets.checker import AssetChecker
from storepub.core.cancel import CancellationToken
from storepub.core.clock import Clock, utc_now
from storepub.core.config import Settings
from storepub.core.errors import PublishError
from storepub.core.result import Err, Ok
from storepub.output.log import LogLevel, PublishLogger
from storepub.secrets.vault import redact_secrets
from storepub.status.codes import ProgressCode
from storepub.status.reporter import JobResultInfo, StatusReporter

from .model import (
    AttemptRecord,
    Job,
    JobOutcome,
    JobStatus,
    calculate_retry_delay,
    resource_key,
    should_retry,
)
from .queue import JobQueueStore
from .steps import StepContext, run_job_steps

__all__ = ["JobWorker", "WorkerStatistics"]

# Upper bound on a single idle wait in run_until_idle.
_MAX_IDLE_WAIT_SECONDS = 1.0


@dataclass(frozen=True, slots=True)
class WorkerStatistics:
    queue_length: int
    active_jobs: int
    running: bool


@dataclass(slots=True)
class _Active:
    job: Job
    token: CancellationToken


class JobWorker:
    def __init__(
        self,
        *,
        queue: JobQueueStore,
        reporter: StatusReporter,
        adapters: AdapterFactory,
        assets: AssetChecker,
        logger: PublishLogger,
        settings: Settings | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._queue = queue
        self._reporter = reporter
        self._adapters = adapters
        self._assets = assets
        self._logger = logger
        self._settings = settings or Settings()
        self._clock = clock

        self._lock = threading.RLock()
        self._active: dict[str, _Active] = {}
        self._stop = threading.Event()
        self._loop: threading.Thread | None = None
        self._pool: ThreadPoolExecutor | None = None

    # -- submission ----------------------------------------------------------

    def submit_job(self, job: Job) -> str:
        """Register and enqueue ``job``; returns its id without waiting."""
        with self._lock:
            self._reporter.create_job(job)
            self._queue.enqueue(job)
        self._logger.debug(
            f"Job {job.id} enqueued", {"type": str(job.type), "priority": job.priority}
        )
        return job.id

    def cancel_job(self, job_id: str) -> bool:
        """Cancel a queued or running job.

        A queued job is removed and marked CANCELLED immediately. A running
        job has its token cancelled; it becomes CANCELLED once its step
        sequence observes the signal. Returns False for unknown or
        already finished jobs.
        """
        with self._lock:
            queued = self._queue.remove(job_id)
            if queued is not None:
                self._mark_cancelled(queued, "Job was cancelled before dispatch")
                return True
            active = self._active.get(job_id)
            if active is not None:
                active.token.cancel("Job was cancelled")
                self._logger.info(f"Cancellation requested for job {job_id}")
                return True
        return False

    # -- dispatch ------------------------------------------------------------

    def _claim(self) -> _Active | None:
        with self._lock:
            if self._stop.is_set():
                return None
            if len(self._active) >= self._settings.worker.max_concurrent:
                return None
            busy = {
                key for a in self._active.values() if (key := resource_key(a.job)) is not None
            }
            job = self._queue.dequeue(self._clock(), busy=busy)
            if job is None:
                return None
            active = _Active(job=job, token=CancellationToken())
            self._active[job.id] = active
            return active

    def process_next(self) -> bool:
        """Run one ready job synchronously; False when nothing was ready."""
        active = self._claim()
        if active is None:
            return False
        self._run(active)
        return True

    def run_until_idle(self, *, max_dispatches: int | None = None) -> int:
        """Dispatch until the queue is empty, waiting out retry backoff.

        Returns the number of dispatch attempts.
        """
        dispatched = 0
        while max_dispatches is None or dispatched < max_dispatches:
            if self.process_next():
                dispatched += 1
                continue
            if self._queue.length() == 0:
                break
            ready_at = self._queue.next_ready_at()
            if ready_at is None:
                break
            wait = (ready_at - self._clock()).total_seconds()
            sleep(min(max(wait, 0.0), _MAX_IDLE_WAIT_SECONDS))
        return dispatched

    def tick(self) -> int:
        """Hand every ready job the pool has room for to the pool."""
        pool = self._pool
        if pool is None:
            return 1 if self.process_next() else 0
        started = 0
        while (active := self._claim()) is not None:
            pool.submit(self._run, active)
            started += 1
        return started

    def start(self, tick_interval: float | None = None) -> None:
        with self._lock:
            if self._loop is not None:
                self._logger.warn("Worker already started")
                return
            interval = (
                tick_interval
                if tick_interval is not None
                else self._settings.worker.tick_interval_seconds
            )
            self._stop.clear()
            self._pool = ThreadPoolExecutor(
                max_workers=self._settings.worker.max_concurrent,
                thread_name_prefix="storepub-job",
            )
            self._loop = threading.Thread(
                target=self._tick_loop, args=(interval,), name="storepub-worker", daemon=True
            )
            self._loop.start()
        self._logger.info("Job worker started", {"tickInterval": interval})

    def stop(self) -> None:
        """Stop ticking, cancel every in-flight job and wait for them."""
        with self._lock:
            loop, pool = self._loop, self._pool
            self._loop = None
            self._stop.set()
            for active in self._active.values():
                active.token.cancel("Worker stopped")
        if loop is not None:
            loop.join()
        with self._lock:
            for active in self._active.values():
                active.token.cancel("Worker stopped")
        if pool is not None:
            pool.shutdown(wait=True)
        with self._lock:
            self._pool = None
            self._stop.clear()
        self._logger.info("Job worker stopped")

    def _tick_loop(self, interval: float) -> None:
        while not self._stop.is_set():
            self.tick()
            self._stop.wait(interval)

    def get_statistics(self) -> WorkerStatistics:
        with self._lock:
            return WorkerStatistics(
                queue_length=self._queue.length(),
                active_jobs=len(self._active),
                running=self._loop is not None,
            )

    # -- execution -----------------------------------------------------------

    def _run(self, active: _Active) -> None:
        try:
            self._execute(active.job, active.token)
        finally:
            with self._lock:
                self._active.pop(active.job.id, None)

    def _execute(self, job: Job, token: CancellationToken) -> None:
        now = self._clock()
        job.status = JobStatus.RUNNING
        if job.started_at is None:
            job.started_at = now
        attempt = AttemptRecord(number=len(job.attempts) + 1, started_at=now)
        job.attempts.append(attempt)
        self._reporter.update_status(job.id, JobStatus.RUNNING)
        self._reporter.add_progress(
            job.id,
            ProgressCode.JOB_STARTED,
            f"Job started (attempt {attempt.number} of {job.max_retries + 1})",
            data={"attempt": attempt.number, "type": str(job.type)},
        )

        ctx = StepContext(
            job=job,
            reporter=self._reporter,
            adapters=self._adapters,
            assets=self._assets,
            token=token,
        )
        try:
            outcome = run_job_steps(ctx)
        except Exception as e:
            self._logger.warn(
                f"Unclassified error in job {job.id}; treating as transient",
                {"exception": type(e).__name__},
            )
            outcome = Err(PublishError.transient(redact_secrets(str(e)) or type(e).__name__))

        attempt.finished_at = self._clock()
        match outcome:
            case Ok(value):
                self._succeed(job, value)
            case Err(error):
                attempt.error = error.message
                self._fail(job, error, token)

    def _succeed(self, job: Job, outcome: JobOutcome) -> None:
        with self._lock:
            self._active.pop(job.id, None)
            job.status = JobStatus.SUCCEEDED
            job.completed_at = self._clock()
            job.result = outcome.data
            self._reporter.set_result(
                job.id,
                JobResultInfo(
                    success=True,
                    url=outcome.url,
                    version=outcome.version,
                    data=outcome.data,
                    warnings=outcome.warnings,
                ),
            )
            self._finish(job)

    def _fail(self, job: Job, error: PublishError, token: CancellationToken) -> None:
        with self._lock:
            self._active.pop(job.id, None)
            if error.kind == "cancelled" or token.cancelled:
                self._mark_cancelled(job, token.reason or error.message)
                return

            job.error = error.message
            self._reporter.add_log(
                job.id,
                LogLevel.WARN,
                f"Attempt {len(job.attempts)} failed: {error.pretty()}",
                {"kind": error.kind},
            )

            if error.retryable and should_retry(job):
                self._schedule_retry(job, error)
                return

            job.status = JobStatus.FAILED
            job.completed_at = self._clock()
            self._reporter.set_result(
                job.id,
                JobResultInfo(success=False, errors=(error.pretty(), *error.errors)),
            )
            self._finish(job)

    def _schedule_retry(self, job: Job, error: PublishError) -> None:
        job.retry_count += 1
        delay_ms = calculate_retry_delay(job.retry_count, self._settings.retry.base_delay_ms)
        job.scheduled_at = self._clock() + timedelta(milliseconds=delay_ms)
        job.status = JobStatus.QUEUED
        self._reporter.record_attempt(job.id, retry_count=job.retry_count, error=error.message)
        self._reporter.update_status(job.id, JobStatus.QUEUED)
        self._reporter.add_progress(
            job.id,
            ProgressCode.JOB_RETRY_SCHEDULED,
            f"Retrying job {job.id} (retry {job.retry_count} of {job.max_retries}) after {delay_ms}ms",
            data={"retryCount": job.retry_count, "delayMs": delay_ms, "kind": error.kind},
        )
        self._queue.enqueue(job)

    def _mark_cancelled(self, job: Job, reason: str) -> None:
        job.status = JobStatus.CANCELLED
        job.completed_at = self._clock()
        self._reporter.cancel_job(job.id, reason)
        self._finish(job)

    def _finish(self, job: Job) -> None:
        self._queue.increment_job_counter(job.type)
        evicted = self._reporter.cleanup_old_jobs(self._settings.worker.retention)
        if evicted:
            self._logger.debug(f"Evicted {evicted} old job record(s)")
