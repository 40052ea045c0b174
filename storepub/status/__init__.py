"""Job status reporting."""

from .codes import TERMINAL_CODES, ProgressCode
from .reporter import (
    JobProgress,
    JobRecord,
    JobResultInfo,
    JobStatistics,
    JobSummary,
    StatusReporter,
)

__all__ = [
    "TERMINAL_CODES",
    "JobProgress",
    "JobRecord",
    "JobResultInfo",
    "JobStatistics",
    "JobSummary",
    "ProgressCode",
    "StatusReporter",
]
