"""Authoritative job status for external callers.

The worker drives transitions; callers poll ``get_job``/``get_summary``.
Every record carries its progress events, job-scoped logs and the ordered
list of statuses it went through. A terminal result, once set, is final:
later ``set_result``/``cancel_job`` calls are ignored with a warning.
"""

from __future__ import annotations

import itertools
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Protocol

from storepub.core.clock import Clock, iso, utc_now
from storepub.jobs.model import Job, JobStatus, JobType, Platform
from storepub.output.log import LogEntry, LogLevel, PublishLogger

from .codes import ProgressCode

__all__ = [
    "InMemoryJobRecordStore",
    "JobProgress",
    "JobRecord",
    "JobRecordStore",
    "JobResultInfo",
    "JobStatistics",
    "JobSummary",
    "StatusReporter",
]


@dataclass(frozen=True, slots=True)
class JobProgress:
    code: ProgressCode
    message: str
    timestamp: datetime
    percentage: int | None = None
    data: Mapping[str, object] | None = None


@dataclass(frozen=True, slots=True)
class JobResultInfo:
    success: bool
    url: str | None = None
    version: str | None = None
    data: Mapping[str, object] | None = None
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


def _empty_logs() -> list[LogEntry]:
    return []


def _empty_progress() -> list[JobProgress]:
    return []


def _empty_history() -> list[JobStatus]:
    return []


@dataclass(slots=True)
class JobRecord:
    """Externally visible job state."""

    id: str
    type: JobType
    platform: Platform
    status: JobStatus
    created_at: datetime
    dry_run: bool
    seq: int
    max_retries: int = 0
    retry_count: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    result: JobResultInfo | None = None
    logs: list[LogEntry] = field(default_factory=_empty_logs)
    progress: list[JobProgress] = field(default_factory=_empty_progress)
    status_history: list[JobStatus] = field(default_factory=_empty_history)

    def snapshot(self) -> JobRecord:
        """Copy safe to hand out while the worker keeps mutating the original."""
        return replace(
            self,
            logs=list(self.logs),
            progress=list(self.progress),
            status_history=list(self.status_history),
        )

    @property
    def percentage(self) -> int:
        for p in reversed(self.progress):
            if p.percentage is not None:
                return p.percentage
        return 0


@dataclass(frozen=True, slots=True)
class JobSummary:
    id: str
    type: JobType
    platform: Platform
    status: JobStatus
    created_at: datetime
    duration_seconds: float | None
    progress_percentage: int
    latest_progress: str | None
    error_count: int
    warning_count: int
    retry_count: int


@dataclass(frozen=True, slots=True)
class JobStatistics:
    total: int = 0
    queued: int = 0
    running: int = 0
    waiting: int = 0
    succeeded: int = 0
    failed: int = 0
    cancelled: int = 0


class JobRecordStore(Protocol):
    """Storage seam for job records (in-memory by default)."""

    def put(self, record: JobRecord) -> None: ...

    def get(self, job_id: str) -> JobRecord | None: ...

    def delete(self, job_id: str) -> None: ...

    def values(self) -> list[JobRecord]: ...


class InMemoryJobRecordStore:
    def __init__(self) -> None:
        self._records: dict[str, JobRecord] = {}

    def put(self, record: JobRecord) -> None:
        self._records[record.id] = record

    def get(self, job_id: str) -> JobRecord | None:
        return self._records.get(job_id)

    def delete(self, job_id: str) -> None:
        self._records.pop(job_id, None)

    def values(self) -> list[JobRecord]:
        return list(self._records.values())


class StatusReporter:
    """Single source of truth for job state visible to callers."""

    def __init__(
        self,
        logger: PublishLogger,
        *,
        store: JobRecordStore | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._logger = logger
        self._store: JobRecordStore = store or InMemoryJobRecordStore()
        self._clock = clock
        self._seq = itertools.count()
        self._lock = threading.RLock()

    # -- transitions -------------------------------------------------------

    def create_job(self, job: Job) -> JobRecord:
        with self._lock:
            if self._store.get(job.id) is not None:
                raise ValueError(f"job already registered: {job.id}")
            record = JobRecord(
                id=job.id,
                type=job.type,
                platform=job.platform,
                status=JobStatus.QUEUED,
                created_at=job.created_at,
                dry_run=job.dry_run,
                seq=next(self._seq),
                max_retries=job.max_retries,
                status_history=[JobStatus.QUEUED],
            )
            self._store.put(record)
            self.add_progress(
                job.id,
                ProgressCode.JOB_QUEUED,
                f"Job {job.id} created and queued",
                data={"type": str(job.type), "platform": str(job.platform), "dryRun": job.dry_run},
            )
            return record.snapshot()

    def update_status(self, job_id: str, status: JobStatus) -> bool:
        """Move a job between non-terminal states.

        Terminal states are only reachable through ``set_result`` and
        ``cancel_job`` so each one gets exactly one terminal event.

        Raises:
            ValueError: If ``status`` is terminal.
        """
        if status.is_terminal:
            raise ValueError(f"use set_result/cancel_job for terminal status {status}")
        with self._lock:
            record = self._store.get(job_id)
            if record is None:
                return False
            if record.status.is_terminal:
                self._logger.warn(
                    f"Ignoring {status} for job {job_id}: already {record.status}"
                )
                return False
            self._transition(record, status)
            return True

    def record_attempt(self, job_id: str, *, retry_count: int, error: str | None = None) -> None:
        with self._lock:
            record = self._store.get(job_id)
            if record is None:
                return
            record.retry_count = retry_count
            if error is not None:
                record.error = error

    def add_progress(
        self,
        job_id: str,
        code: ProgressCode,
        message: str,
        percentage: int | None = None,
        data: Mapping[str, object] | None = None,
    ) -> None:
        """Append a progress event.

        The reported percentage never goes backwards within a job: a retried
        attempt re-running early steps reports the high-water mark.
        """
        with self._lock:
            record = self._store.get(job_id)
            if record is None:
                return
            if percentage is not None:
                percentage = max(0, min(100, max(percentage, record.percentage)))
            record.progress.append(
                JobProgress(
                    code=code,
                    message=message,
                    timestamp=self._clock(),
                    percentage=percentage,
                    data=dict(data) if data else None,
                )
            )
        self._logger.info(message, data, code=str(code))

    def add_log(
        self,
        job_id: str,
        level: LogLevel,
        message: str,
        data: Mapping[str, object] | None = None,
        code: str | None = None,
    ) -> None:
        """Log through the shared logger and attach the entry to the job."""
        entry = self._logger.log(level, message, data, code)
        with self._lock:
            record = self._store.get(job_id)
            if record is not None:
                record.logs.append(entry)

    def set_result(self, job_id: str, result: JobResultInfo) -> bool:
        """Record the terminal result and emit the matching terminal event."""
        with self._lock:
            record = self._store.get(job_id)
            if record is None:
                return False
            if record.status.is_terminal:
                self._logger.warn(
                    f"Ignoring result for job {job_id}: already {record.status}",
                    {"success": result.success},
                )
                return False

            record.result = result
            if result.success:
                self._transition(record, JobStatus.SUCCEEDED)
                self.add_progress(
                    job_id,
                    ProgressCode.JOB_COMPLETED,
                    "Job completed successfully",
                    100,
                    {"url": result.url, "version": result.version},
                )
            else:
                record.error = result.errors[0] if result.errors else (record.error or "failed")
                self._transition(record, JobStatus.FAILED)
                self.add_progress(
                    job_id,
                    ProgressCode.JOB_FAILED,
                    "Job failed",
                    data={"errors": list(result.errors)},
                )
            return True

    def cancel_job(self, job_id: str, reason: str = "Job was cancelled") -> bool:
        """Cancel a queued/running/waiting job; no-op once terminal."""
        with self._lock:
            record = self._store.get(job_id)
            if record is None:
                return False
            if record.status.is_terminal:
                return False
            self._transition(record, JobStatus.CANCELLED)
            self.add_progress(job_id, ProgressCode.JOB_CANCELLED, reason)
            return True

    def _transition(self, record: JobRecord, status: JobStatus) -> None:
        record.status = status
        record.status_history.append(status)
        now = self._clock()
        if status == JobStatus.RUNNING and record.started_at is None:
            record.started_at = now
        if status.is_terminal:
            record.completed_at = now
        self._logger.debug(f"Job {record.id} status updated to {status}")

    # -- queries -----------------------------------------------------------

    def get_job(self, job_id: str) -> JobRecord | None:
        with self._lock:
            record = self._store.get(job_id)
            return record.snapshot() if record is not None else None

    def list_jobs(self) -> list[JobRecord]:
        """All jobs, most recently created first."""
        with self._lock:
            records = [r.snapshot() for r in self._store.values()]
        return sorted(records, key=lambda r: (r.created_at, r.seq), reverse=True)

    def list_jobs_by_status(self, status: JobStatus) -> list[JobRecord]:
        return [r for r in self.list_jobs() if r.status == status]

    def get_progress_percentage(self, job_id: str) -> int:
        record = self.get_job(job_id)
        return record.percentage if record is not None else 0

    def get_job_logs(self, job_id: str) -> list[LogEntry]:
        record = self.get_job(job_id)
        return record.logs if record is not None else []

    def get_job_progress(self, job_id: str) -> list[JobProgress]:
        record = self.get_job(job_id)
        return record.progress if record is not None else []

    def get_summary(self, job_id: str) -> JobSummary | None:
        record = self.get_job(job_id)
        if record is None:
            return None

        duration: float | None = None
        if record.started_at is not None and record.completed_at is not None:
            duration = (record.completed_at - record.started_at).total_seconds()

        error_count = sum(1 for entry in record.logs if entry.level == LogLevel.ERROR)
        warning_count = sum(1 for entry in record.logs if entry.level == LogLevel.WARN)
        if record.result is not None:
            error_count += len(record.result.errors)
            warning_count += len(record.result.warnings)

        return JobSummary(
            id=record.id,
            type=record.type,
            platform=record.platform,
            status=record.status,
            created_at=record.created_at,
            duration_seconds=duration,
            progress_percentage=record.percentage,
            latest_progress=record.progress[-1].message if record.progress else None,
            error_count=error_count,
            warning_count=warning_count,
            retry_count=record.retry_count,
        )

    def get_statistics(self) -> JobStatistics:
        jobs = self.list_jobs()

        def count(status: JobStatus) -> int:
            return sum(1 for j in jobs if j.status == status)

        return JobStatistics(
            total=len(jobs),
            queued=count(JobStatus.QUEUED),
            running=count(JobStatus.RUNNING),
            waiting=count(JobStatus.WAITING),
            succeeded=count(JobStatus.SUCCEEDED),
            failed=count(JobStatus.FAILED),
            cancelled=count(JobStatus.CANCELLED),
        )

    def cleanup_old_jobs(self, keep: int = 100) -> int:
        """Evict terminal jobs beyond the ``keep`` most recently created.

        Jobs still queued or running are never evicted.
        """
        with self._lock:
            jobs = self.list_jobs()
            if len(jobs) <= keep:
                return 0
            evicted = [j for j in jobs[keep:] if j.status.is_terminal]
            for job in evicted:
                self._store.delete(job.id)

        if evicted:
            self._logger.info(f"Cleaned up {len(evicted)} old jobs")
        return len(evicted)

    def export_job_logs(self, job_id: str) -> str:
        record = self.get_job(job_id)
        if record is None:
            return ""

        lines = [
            f"Job ID: {record.id}",
            f"Type: {record.type}",
            f"Platform: {record.platform}",
            f"Status: {record.status}",
            f"Created: {iso(record.created_at)}",
        ]
        if record.started_at is not None:
            lines.append(f"Started: {iso(record.started_at)}")
        if record.completed_at is not None:
            lines.append(f"Completed: {iso(record.completed_at)}")
        lines.append("Mode: DRY RUN" if record.dry_run else "Mode: REAL")
        lines.append("")
        lines.append("Progress:")
        for p in record.progress:
            pct = f" [{p.percentage}%]" if p.percentage is not None else ""
            lines.append(f"  {iso(p.timestamp)}{pct} [{p.code}] {p.message}")
        lines.append("")
        lines.append("Logs:")
        for entry in record.logs:
            lines.append(f"  {iso(entry.timestamp)} [{entry.level}] {entry.message}")
        return "\n".join(lines)
