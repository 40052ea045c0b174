"""Composable metadata checks and the composite preflight report.

Every function here returns a ``ValidationResult`` and never raises on a
malformed document: the schema check reports shape problems, the other
checks skip what they cannot read.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from storepub.core.cancel import CancellationToken
from storepub.core.result import Err
from storepub.core.structured import as_obj_list, as_str_dict, get_path
from storepub.jobs.model import Platform
from storepub.secrets.vault import redact_secrets

from .schema import check_android_section, check_ios_section
from .types import (
    FieldIssue,
    FieldWarning,
    RemoteVersionSource,
    ValidationResult,
    VersionValidationResult,
)
from .versioning import (
    compare_versions,
    is_valid_build_number,
    parse_version,
    suggest_next_build_number,
    suggest_next_version_code,
)

__all__ = [
    "PreflightReport",
    "run_preflight_validations",
    "validate_android_versioning",
    "validate_export_compliance",
    "validate_ios_versioning",
    "validate_metadata_completeness",
    "validate_staged_rollout",
    "validate_store_metadata",
]


def _covers(platform: Platform, target: Platform) -> bool:
    return platform in (target, Platform.BOTH)


def validate_store_metadata(
    doc: object, platform: Platform = Platform.BOTH
) -> ValidationResult:
    """Check field shapes and constraints for the sections ``platform`` needs."""
    data = as_str_dict(doc)
    if data is None:
        return ValidationResult(errors=(FieldIssue(field="", message="Expected object"),))

    issues: list[FieldIssue] = []
    if _covers(platform, Platform.IOS):
        issues.extend(check_ios_section(data))
    if _covers(platform, Platform.ANDROID):
        issues.extend(check_android_section(data))
    return ValidationResult(errors=tuple(issues))


def _blank(value: object) -> bool:
    return not isinstance(value, str) or not value.strip()


def _count(value: object) -> int:
    items = as_obj_list(value)
    return len(items) if items is not None else 0


def validate_metadata_completeness(
    doc: object, platform: Platform = Platform.BOTH
) -> ValidationResult:
    """Cross-field checks for contact, legal and listing fields."""
    data = as_str_dict(doc)
    if data is None:
        return ValidationResult()

    errors: list[FieldIssue] = []
    warnings: list[FieldWarning] = []

    if _covers(platform, Platform.IOS) and as_str_dict(data.get("ios")) is not None:
        if _blank(get_path(data, "ios.reviewInformation.contactEmail")):
            errors.append(
                FieldIssue(
                    field="ios.reviewInformation.contactEmail",
                    message="Review contact email is required",
                )
            )
        description = get_path(data, "ios.appInformation.description")
        if not isinstance(description, str) or len(description) < 10:
            errors.append(
                FieldIssue(
                    field="ios.appInformation.description",
                    message="App description must be at least 10 characters",
                )
            )
        if _blank(get_path(data, "ios.appInformation.privacyPolicyUrl")):
            errors.append(
                FieldIssue(
                    field="ios.appInformation.privacyPolicyUrl",
                    message="Privacy policy URL is required",
                )
            )
        if _count(get_path(data, "ios.screenshots.iphone67")) < 3:
            errors.append(
                FieldIssue(
                    field="ios.screenshots.iphone67",
                    message='At least 3 iPhone 6.7" screenshots are required',
                )
            )
        if get_path(data, "ios.signInRequired") is True:
            for key in ("demoUser", "demoPassword"):
                if _blank(get_path(data, f"ios.reviewInformation.{key}")):
                    errors.append(
                        FieldIssue(
                            field=f"ios.reviewInformation.{key}",
                            message="Demo account is required when sign-in is required",
                        )
                    )

    if _covers(platform, Platform.ANDROID) and as_str_dict(data.get("android")) is not None:
        title = get_path(data, "android.listing.title")
        if _blank(title) or (isinstance(title, str) and len(title) > 30):
            errors.append(
                FieldIssue(
                    field="android.listing.title",
                    message="Title is required and must be 30 characters or less",
                )
            )
        short = get_path(data, "android.listing.shortDescription")
        if not isinstance(short, str) or len(short) != 80:
            warnings.append(
                FieldWarning(
                    field="android.listing.shortDescription",
                    message="Short description should be exactly 80 characters for optimal display",
                )
            )
        if _blank(get_path(data, "android.listing.privacyPolicyUrl")):
            errors.append(
                FieldIssue(
                    field="android.listing.privacyPolicyUrl",
                    message="Privacy policy URL is required",
                )
            )
        safety = as_str_dict(get_path(data, "android.dataSafety"))
        if safety is None:
            errors.append(
                FieldIssue(field="android.dataSafety", message="Data safety information is required")
            )
        elif safety.get("collectsData") is True and _count(safety.get("collectedData")) == 0:
            errors.append(
                FieldIssue(
                    field="android.dataSafety.collectedData",
                    message="Collected data types are required when the app collects data",
                )
            )

    return ValidationResult(errors=tuple(errors), warnings=tuple(warnings))


def _lookup_failed(
    scope: str, store: str, message: str, *, dry_run: bool
) -> VersionValidationResult:
    if dry_run:
        return VersionValidationResult(
            warnings=(
                FieldWarning(
                    field=scope,
                    message=f"Dry run: Skipping {store} version check - {redact_secrets(message)}",
                ),
            )
        )
    return VersionValidationResult(
        errors=(
            FieldIssue(
                field=scope,
                message=f"Failed to validate {scope} versioning: {redact_secrets(message)}",
            ),
        )
    )


def _violation(
    issue: FieldIssue, *, dry_run: bool, last_known: str, suggested: str
) -> VersionValidationResult:
    """A monotonicity violation is an error, or a warning in dry-run."""
    if dry_run:
        return VersionValidationResult(
            warnings=(FieldWarning(field=issue.field, message=issue.message),),
            last_known=last_known,
            suggested=suggested,
        )
    return VersionValidationResult(errors=(issue,), last_known=last_known, suggested=suggested)


def validate_ios_versioning(
    bundle_id: str,
    version: str,
    build_number: str,
    *,
    source: RemoteVersionSource,
    dry_run: bool = True,
    token: CancellationToken | None = None,
) -> VersionValidationResult:
    """Compare against the last version/build known to the store.

    A lower marketing version is rejected. The same marketing version needs
    a strictly greater build number.
    """
    looked_up = source.last_remote_version(bundle_id, token=token)
    if isinstance(looked_up, Err):
        return _lookup_failed("ios", "App Store Connect", looked_up.error.message, dry_run=dry_run)

    remote = looked_up.value
    if remote is None or remote.version is None:
        return VersionValidationResult()

    last_label = f"{remote.version} ({remote.build or '0'})"
    try:
        order = compare_versions(version, remote.version)
    except ValueError as e:
        return VersionValidationResult(
            warnings=(FieldWarning(field="ios.version", message=f"Skipping version check: {e}"),),
            last_known=last_label,
        )

    if order < 0:
        last = parse_version(remote.version)
        suggested = str(last.bump("patch")) if last is not None else remote.version
        return _violation(
            FieldIssue(
                field="ios.version",
                message=(
                    "Version number should not decrease. "
                    f"Last version was {remote.version}, new is {version}"
                ),
            ),
            dry_run=dry_run,
            last_known=last_label,
            suggested=suggested,
        )

    if order == 0:
        last_build = remote.build if remote.build and is_valid_build_number(remote.build) else "0"
        current = int(build_number) if is_valid_build_number(build_number) else 0
        if current <= int(last_build):
            return _violation(
                FieldIssue(
                    field="ios.buildNumber",
                    message=(
                        "Build number must increase. "
                        f"Last build number was {last_build}, new is {build_number}"
                    ),
                ),
                dry_run=dry_run,
                last_known=last_label,
                suggested=suggest_next_build_number(last_build),
            )

    return VersionValidationResult(last_known=last_label)


def validate_android_versioning(
    package_name: str,
    version_code: int,
    *,
    source: RemoteVersionSource,
    dry_run: bool = True,
    token: CancellationToken | None = None,
) -> VersionValidationResult:
    """Version codes must be strictly increasing."""
    looked_up = source.last_remote_version(package_name, token=token)
    if isinstance(looked_up, Err):
        return _lookup_failed("android", "Google Play", looked_up.error.message, dry_run=dry_run)

    remote = looked_up.value
    if remote is None or remote.build is None or not is_valid_build_number(remote.build):
        return VersionValidationResult()

    last_code = int(remote.build)
    if version_code <= last_code:
        return _violation(
            FieldIssue(
                field="android.versionCode",
                message=(
                    "Version code must be strictly increasing. "
                    f"Last version code was {last_code}, new is {version_code}"
                ),
            ),
            dry_run=dry_run,
            last_known=str(last_code),
            suggested=str(suggest_next_version_code(last_code)),
        )
    return VersionValidationResult(last_known=str(last_code))


def validate_export_compliance(uses_encryption: bool, is_exempt: bool) -> ValidationResult:
    if uses_encryption and not is_exempt:
        return ValidationResult(
            warnings=(
                FieldWarning(
                    field="ios.exportCompliance",
                    message=(
                        "App uses encryption and is not exempt. This may require "
                        "additional documentation and review time."
                    ),
                ),
            )
        )
    return ValidationResult()


def validate_staged_rollout(track: str, user_fraction: float | None) -> ValidationResult:
    """A fraction must lie in (0, 1] and only applies to production."""
    if user_fraction is None:
        return ValidationResult()

    if track == "production":
        if user_fraction <= 0 or user_fraction > 1:
            return ValidationResult(
                errors=(
                    FieldIssue(
                        field="android.userFraction",
                        message="User fraction must be between 0 and 1 for production staged rollout",
                    ),
                )
            )
        return ValidationResult()

    if user_fraction > 0:
        return ValidationResult(
            warnings=(
                FieldWarning(
                    field="android.userFraction",
                    message="Staged rollout is only available for production track",
                ),
            )
        )
    return ValidationResult()


def _empty_version_result() -> VersionValidationResult:
    return VersionValidationResult()


@dataclass(frozen=True, slots=True)
class PreflightReport:
    """Every preflight category; any one of them can block a submission."""

    schema: ValidationResult = field(default_factory=ValidationResult)
    completeness: ValidationResult = field(default_factory=ValidationResult)
    ios_version: VersionValidationResult = field(default_factory=_empty_version_result)
    android_version: VersionValidationResult = field(default_factory=_empty_version_result)
    export_compliance: ValidationResult = field(default_factory=ValidationResult)
    staged_rollout: ValidationResult = field(default_factory=ValidationResult)

    def categories(self) -> dict[str, ValidationResult]:
        return {
            "schema": self.schema,
            "completeness": self.completeness,
            "ios_version": self.ios_version,
            "android_version": self.android_version,
            "export_compliance": self.export_compliance,
            "staged_rollout": self.staged_rollout,
        }

    @property
    def valid(self) -> bool:
        return all(r.valid for r in self.categories().values())

    def flatten(self) -> ValidationResult:
        return ValidationResult.combine(self.categories().values())


def _str_at(data: Mapping[str, object], path: str) -> str | None:
    value = get_path(data, path)
    return value if isinstance(value, str) else None


def run_preflight_validations(
    doc: object,
    *,
    ios_source: RemoteVersionSource,
    android_source: RemoteVersionSource,
    dry_run: bool = True,
    platform: Platform = Platform.BOTH,
    token: CancellationToken | None = None,
) -> PreflightReport:
    """Run schema, completeness, version, compliance and rollout checks."""
    schema = validate_store_metadata(doc, platform)
    completeness = validate_metadata_completeness(doc, platform)
    data = as_str_dict(doc)
    if data is None:
        return PreflightReport(schema=schema, completeness=completeness)

    ios_version = VersionValidationResult()
    compliance = ValidationResult()
    if _covers(platform, Platform.IOS):
        bundle_id = _str_at(data, "ios.bundleId")
        version = _str_at(data, "ios.version")
        build = _str_at(data, "ios.buildNumber")
        if bundle_id and version and build:
            ios_version = validate_ios_versioning(
                bundle_id, version, build, source=ios_source, dry_run=dry_run, token=token
            )
        uses = get_path(data, "ios.exportCompliance.usesEncryption")
        exempt = get_path(data, "ios.exportCompliance.isExempt")
        if isinstance(uses, bool) and isinstance(exempt, bool):
            compliance = validate_export_compliance(uses, exempt)

    android_version = VersionValidationResult()
    rollout = ValidationResult()
    if _covers(platform, Platform.ANDROID):
        package = _str_at(data, "android.packageName")
        code = get_path(data, "android.versionCode")
        if package and isinstance(code, int) and not isinstance(code, bool):
            android_version = validate_android_versioning(
                package, code, source=android_source, dry_run=dry_run, token=token
            )
        track = _str_at(data, "android.track")
        fraction = get_path(data, "android.userFraction")
        if track is not None and isinstance(fraction, (int, float)) and not isinstance(fraction, bool):
            rollout = validate_staged_rollout(track, float(fraction))

    return PreflightReport(
        schema=schema,
        completeness=completeness,
        ios_version=ios_version,
        android_version=android_version,
        export_compliance=compliance,
        staged_rollout=rollout,
    )
