"""Stable progress codes.

These string values are the wire contract for progress polling. Add new
codes freely; never rename or remove existing ones.
"""

from __future__ import annotations

from enum import StrEnum

__all__ = ["ProgressCode", "TERMINAL_CODES"]


class ProgressCode(StrEnum):
    # Lifecycle
    JOB_QUEUED = "JOB_QUEUED"
    JOB_STARTED = "JOB_STARTED"
    JOB_RETRY_SCHEDULED = "JOB_RETRY_SCHEDULED"
    JOB_COMPLETED = "JOB_COMPLETED"
    JOB_FAILED = "JOB_FAILED"
    JOB_CANCELLED = "JOB_CANCELLED"

    # Submission
    VALIDATION_START = "VALIDATION_START"
    VALIDATION_COMPLETE = "VALIDATION_COMPLETE"
    UPLOAD_START = "UPLOAD_START"
    UPLOAD_COMPLETE = "UPLOAD_COMPLETE"
    BUILD_PROCESSING = "BUILD_PROCESSING"
    BUILD_PROCESSED = "BUILD_PROCESSED"
    TRACK_ASSIGNED = "TRACK_ASSIGNED"
    RELEASE_NOTES_ADDED = "RELEASE_NOTES_ADDED"
    EDIT_COMMITTED = "EDIT_COMMITTED"
    VERSION_SUBMITTED = "VERSION_SUBMITTED"
    REVIEW_PENDING = "REVIEW_PENDING"

    # Rollout
    ROLLOUT_STARTED = "ROLLOUT_STARTED"
    ROLLOUT_EXPANDED = "ROLLOUT_EXPANDED"
    ROLLOUT_HALTED = "ROLLOUT_HALTED"
    ROLLBACK_COMPLETE = "ROLLBACK_COMPLETE"

    # Metadata
    METADATA_VALIDATED = "METADATA_VALIDATED"
    METADATA_VALIDATION_ERROR = "METADATA_VALIDATION_ERROR"

    # Assets
    ASSET_NORMALIZATION_START = "ASSET_NORMALIZATION_START"
    ASSET_NORMALIZATION_COMPLETE = "ASSET_NORMALIZATION_COMPLETE"
    ASSET_VALIDATION_ERROR = "ASSET_VALIDATION_ERROR"


TERMINAL_CODES = frozenset(
    {ProgressCode.JOB_COMPLETED, ProgressCode.JOB_FAILED, ProgressCode.JOB_CANCELLED}
)
