"""Tests for storepub.metadata.validator."""

from __future__ import annotations

import copy

import pytest

from storepub.core.cancel import CancellationToken
from storepub.core.errors import PublishError
from storepub.core.result import Err, Ok, Result
from storepub.core.structured import StrDict
from storepub.jobs.model import Platform
from storepub.metadata.sample import sample_store_metadata
from storepub.metadata.types import RemoteVersion
from storepub.metadata.validator import (
    run_preflight_validations,
    validate_android_versioning,
    validate_export_compliance,
    validate_ios_versioning,
    validate_metadata_completeness,
    validate_staged_rollout,
    validate_store_metadata,
)


class FixedSource:
    """Remote version lookup returning a canned answer."""

    def __init__(self, answer: Result[RemoteVersion | None, PublishError]) -> None:
        self.answer = answer
        self.lookups: list[str] = []

    def last_remote_version(
        self, identifier: str, *, token: CancellationToken | None = None
    ) -> Result[RemoteVersion | None, PublishError]:
        self.lookups.append(identifier)
        return self.answer


def _doc() -> StrDict:
    return copy.deepcopy(sample_store_metadata())


def _section(doc: StrDict, name: str) -> StrDict:
    section = doc[name]
    assert isinstance(section, dict)
    return section  # type: ignore[return-value]


class TestSchema:
    def test_sample_document_is_valid(self) -> None:
        result = validate_store_metadata(_doc())
        assert result.valid, result.error_messages()

    def test_non_object(self) -> None:
        assert not validate_store_metadata(["not", "a", "dict"]).valid

    def test_missing_section_is_required(self) -> None:
        doc = _doc()
        del doc["android"]
        result = validate_store_metadata(doc)
        assert "android: Required" in result.error_messages()
        assert validate_store_metadata(doc, Platform.IOS).valid

    def test_field_errors_carry_paths(self) -> None:
        doc = _doc()
        ios = _section(doc, "ios")
        ios["bundleId"] = "Not A Bundle"
        ios["releaseType"] = "beta"
        fields = {issue.field for issue in validate_store_metadata(doc).errors}
        assert {"ios.bundleId", "ios.releaseType"} <= fields

    def test_screenshot_minimum(self) -> None:
        doc = _doc()
        shots = _section(_section(doc, "ios"), "screenshots")
        shots["iphone67"] = ["one.png"]
        messages = validate_store_metadata(doc).error_messages()
        assert any("iPhone 6.7" in m for m in messages)


class TestCompleteness:
    def test_missing_contact_email(self) -> None:
        doc = _doc()
        review = _section(_section(doc, "ios"), "reviewInformation")
        del review["contactEmail"]

        result = validate_metadata_completeness(doc)
        assert not result.valid
        assert any(
            issue.field == "ios.reviewInformation.contactEmail"
            and issue.message == "Review contact email is required"
            for issue in result.errors
        )
        schema_fields = {issue.field for issue in validate_store_metadata(doc).errors}
        assert "ios.reviewInformation.contactEmail" in schema_fields

    def test_sign_in_needs_demo_account(self) -> None:
        doc = _doc()
        _section(doc, "ios")["signInRequired"] = True
        fields = {issue.field for issue in validate_metadata_completeness(doc).errors}
        assert fields == {"ios.reviewInformation.demoUser", "ios.reviewInformation.demoPassword"}

    def test_data_safety_required(self) -> None:
        doc = _doc()
        del _section(doc, "android")["dataSafety"]
        fields = {issue.field for issue in validate_metadata_completeness(doc).errors}
        assert "android.dataSafety" in fields

    def test_short_description_length_is_a_warning(self) -> None:
        doc = _doc()
        _section(_section(doc, "android"), "listing")["shortDescription"] = "too short"
        result = validate_metadata_completeness(doc)
        assert result.valid
        assert [w.field for w in result.warnings] == ["android.listing.shortDescription"]


class TestIosVersioning:
    def test_lower_version_suggests_patch_bump(self) -> None:
        source = FixedSource(Ok(RemoteVersion("1.2.0", "7")))
        result = validate_ios_versioning(
            "com.example.app", "1.1.0", "1", source=source, dry_run=False
        )
        assert not result.valid
        assert result.errors[0].field == "ios.version"
        assert result.suggested == "1.2.1"
        assert result.last_known == "1.2.0 (7)"
        assert source.lookups == ["com.example.app"]

    def test_same_version_needs_higher_build(self) -> None:
        source = FixedSource(Ok(RemoteVersion("1.2.0", "7")))
        result = validate_ios_versioning("com.example.app", "1.2", "7", source=source, dry_run=False)
        assert result.errors[0].field == "ios.buildNumber"
        assert result.suggested == "8"

    def test_higher_build_passes(self) -> None:
        source = FixedSource(Ok(RemoteVersion("1.2.0", "7")))
        result = validate_ios_versioning("com.example.app", "1.2.0", "8", source=source, dry_run=False)
        assert result.valid
        assert not result.warnings

    def test_violation_is_a_warning_in_dry_run(self) -> None:
        source = FixedSource(Ok(RemoteVersion("1.2.0", "7")))
        result = validate_ios_versioning("com.example.app", "1.0.0", "1", source=source)
        assert result.valid
        assert [w.field for w in result.warnings] == ["ios.version"]
        assert result.suggested == "1.2.1"

    def test_no_remote_version(self) -> None:
        result = validate_ios_versioning(
            "com.example.app", "1.0.0", "1", source=FixedSource(Ok(None)), dry_run=False
        )
        assert result.valid

    def test_lookup_failure(self) -> None:
        source = FixedSource(Err(PublishError.transient("503 from store")))
        dry = validate_ios_versioning("com.example.app", "1.0.0", "1", source=source)
        assert dry.valid
        assert dry.warnings[0].message.startswith(
            "Dry run: Skipping App Store Connect version check - "
        )

        live = validate_ios_versioning("com.example.app", "1.0.0", "1", source=source, dry_run=False)
        assert not live.valid
        assert live.errors[0].message == "Failed to validate ios versioning: 503 from store"


class TestAndroidVersioning:
    def test_code_must_increase(self) -> None:
        source = FixedSource(Ok(RemoteVersion(build="41")))
        result = validate_android_versioning("com.example.app", 41, source=source, dry_run=False)
        assert result.errors[0].field == "android.versionCode"
        assert result.suggested == "42"

        ok = validate_android_versioning("com.example.app", 42, source=source, dry_run=False)
        assert ok.valid
        assert ok.last_known == "41"


class TestComplianceAndRollout:
    def test_export_compliance(self) -> None:
        assert validate_export_compliance(True, False).warnings
        assert not validate_export_compliance(True, True).warnings
        assert not validate_export_compliance(False, False).warnings

    @pytest.mark.parametrize("fraction", [0.0, -0.1, 1.5])
    def test_production_fraction_out_of_range(self, fraction: float) -> None:
        result = validate_staged_rollout("production", fraction)
        assert not result.valid
        assert result.errors[0].field == "android.userFraction"

    def test_production_fraction_in_range(self) -> None:
        assert validate_staged_rollout("production", 0.25).valid
        assert validate_staged_rollout("production", 1.0).valid

    def test_non_production_fraction_warns(self) -> None:
        result = validate_staged_rollout("beta", 0.5)
        assert result.valid
        assert result.warnings[0].message == "Staged rollout is only available for production track"

    def test_no_fraction(self) -> None:
        result = validate_staged_rollout("production", None)
        assert result.valid
        assert not result.warnings


class TestPreflight:
    def test_sample_against_dry_run_remotes(self) -> None:
        report = run_preflight_validations(
            _doc(),
            ios_source=FixedSource(Ok(RemoteVersion("1.0.0", "1"))),
            android_source=FixedSource(Ok(RemoteVersion(build="1"))),
            dry_run=True,
        )
        assert report.valid
        assert set(report.categories()) == {
            "schema",
            "completeness",
            "ios_version",
            "android_version",
            "export_compliance",
            "staged_rollout",
        }
        warned = {w.field for w in report.flatten().warnings}
        assert {"ios.buildNumber", "android.versionCode"} <= warned

    def test_same_inputs_fail_live(self) -> None:
        report = run_preflight_validations(
            _doc(),
            ios_source=FixedSource(Ok(RemoteVersion("1.0.0", "1"))),
            android_source=FixedSource(Ok(RemoteVersion(build="1"))),
            dry_run=False,
        )
        assert not report.valid
        assert not report.ios_version.valid
        assert not report.android_version.valid
        assert report.schema.valid

    def test_platform_scoping_skips_other_lookups(self) -> None:
        android = FixedSource(Ok(RemoteVersion(build="1")))
        run_preflight_validations(
            _doc(),
            ios_source=FixedSource(Ok(None)),
            android_source=android,
            platform=Platform.IOS,
        )
        assert android.lookups == []

    def test_staged_rollout_from_document(self) -> None:
        doc = _doc()
        android = _section(doc, "android")
        android["track"] = "production"
        android["userFraction"] = 2
        report = run_preflight_validations(
            doc,
            ios_source=FixedSource(Ok(None)),
            android_source=FixedSource(Ok(None)),
        )
        assert not report.staged_rollout.valid
        assert not report.valid
