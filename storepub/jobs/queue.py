"""Pending-job queue.

Jobs are ordered by priority (higher first) and, within a priority, by
insertion order. A job scheduled for later (retry backoff) stays in the
queue but is skipped by ``dequeue`` until it is ready. The queue never
changes job status; that belongs to the worker.
"""

from __future__ import annotations

import itertools
import threading
from collections import Counter
from collections.abc import Container
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from storepub.core.clock import Clock, utc_now

from .model import Job, JobType, resource_key

__all__ = ["InMemoryJobQueue", "JobQueueStore"]


class JobQueueStore(Protocol):
    """Storage seam for pending jobs (in-memory by default)."""

    def enqueue(self, job: Job) -> None: ...

    def dequeue(
        self, now: datetime | None = None, *, busy: Container[str] = ()
    ) -> Job | None: ...

    def remove(self, job_id: str) -> Job | None: ...

    def length(self) -> int: ...

    def jobs_by_type(self, job_type: JobType) -> list[Job]: ...

    def snapshot(self) -> list[Job]: ...

    def next_ready_at(self) -> datetime | None: ...

    def job_counter(self, job_type: JobType) -> int: ...

    def increment_job_counter(self, job_type: JobType) -> None: ...


@dataclass(slots=True)
class _Entry:
    priority: int
    seq: int
    job: Job


class InMemoryJobQueue:
    """Mutex-guarded queue kept sorted on insert."""

    def __init__(self, *, clock: Clock = utc_now) -> None:
        self._entries: list[_Entry] = []
        self._seq = itertools.count()
        self._lock = threading.Lock()
        self._clock = clock
        self._completed: Counter[JobType] = Counter()

    def enqueue(self, job: Job) -> None:
        """Insert ``job`` after every entry of equal or higher priority."""
        with self._lock:
            if any(e.job.id == job.id for e in self._entries):
                raise ValueError(f"job already queued: {job.id}")
            entry = _Entry(priority=job.priority, seq=next(self._seq), job=job)
            index = len(self._entries)
            for i, existing in enumerate(self._entries):
                if existing.priority < entry.priority:
                    index = i
                    break
            self._entries.insert(index, entry)

    def dequeue(self, now: datetime | None = None, *, busy: Container[str] = ()) -> Job | None:
        """Pop the first ready job whose resource is not ``busy``."""
        now = now or self._clock()
        with self._lock:
            for i, entry in enumerate(self._entries):
                if not entry.job.is_ready(now):
                    continue
                key = resource_key(entry.job)
                if key is not None and key in busy:
                    continue
                del self._entries[i]
                return entry.job
            return None

    def remove(self, job_id: str) -> Job | None:
        with self._lock:
            for i, entry in enumerate(self._entries):
                if entry.job.id == job_id:
                    del self._entries[i]
                    return entry.job
            return None

    def length(self) -> int:
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.length()

    def jobs_by_type(self, job_type: JobType) -> list[Job]:
        with self._lock:
            return [e.job for e in self._entries if e.job.type == job_type]

    def snapshot(self) -> list[Job]:
        with self._lock:
            return [e.job for e in self._entries]

    def next_ready_at(self) -> datetime | None:
        """Earliest ``scheduled_at`` among delayed jobs, if any."""
        with self._lock:
            times = [e.job.scheduled_at for e in self._entries if e.job.scheduled_at is not None]
        return min(times) if times else None

    def job_counter(self, job_type: JobType) -> int:
        """Number of jobs of ``job_type`` that reached a terminal state."""
        with self._lock:
            return self._completed[job_type]

    def increment_job_counter(self, job_type: JobType) -> None:
        with self._lock:
            self._completed[job_type] += 1
