"""Release metadata validation."""

from .sample import sample_store_metadata
from .types import (
    FieldIssue,
    FieldWarning,
    RemoteVersion,
    RemoteVersionSource,
    ValidationResult,
    VersionValidationResult,
)
from .validator import (
    PreflightReport,
    run_preflight_validations,
    validate_android_versioning,
    validate_export_compliance,
    validate_ios_versioning,
    validate_metadata_completeness,
    validate_staged_rollout,
    validate_store_metadata,
)

__all__ = [
    "FieldIssue",
    "FieldWarning",
    "PreflightReport",
    "RemoteVersion",
    "RemoteVersionSource",
    "ValidationResult",
    "VersionValidationResult",
    "run_preflight_validations",
    "sample_store_metadata",
    "validate_android_versioning",
    "validate_export_compliance",
    "validate_ios_versioning",
    "validate_metadata_completeness",
    "validate_staged_rollout",
    "validate_store_metadata",
]
