"""Tests for storepub.metadata.versioning."""

from __future__ import annotations

import pytest

from storepub.metadata.versioning import (
    StoreVersion,
    compare_versions,
    is_valid_build_number,
    is_valid_version,
    is_valid_version_code,
    parse_version,
    suggest_next_build_number,
)


class TestParse:
    @pytest.mark.parametrize("text", ["1.0", "1.0.0", "12.34.56", " 2.1 "])
    def test_valid(self, text: str) -> None:
        assert is_valid_version(text)

    @pytest.mark.parametrize("text", ["", "1", "1.0.0.0", "v1.0", "1.a"])
    def test_invalid(self, text: str) -> None:
        assert parse_version(text) is None

    def test_zero_patch_is_dropped(self) -> None:
        assert str(parse_version("1.0.0")) == "1.0"
        assert str(StoreVersion(1, 0, 1)) == "1.0.1"


class TestCompare:
    def test_ordering(self) -> None:
        assert compare_versions("1.0", "1.0.0") == 0
        assert compare_versions("1.2.0", "1.10.0") == -1
        assert compare_versions("2.0", "1.9.9") == 1

    def test_invalid_raises(self) -> None:
        with pytest.raises(ValueError, match="invalid version: nope"):
            compare_versions("nope", "1.0")


class TestBumpsAndSuggestions:
    def test_bump(self) -> None:
        v = StoreVersion(1, 2, 3)
        assert v.bump("major") == StoreVersion(2, 0, 0)
        assert v.bump("minor") == StoreVersion(1, 3, 0)
        assert v.bump("patch") == StoreVersion(1, 2, 4)

    def test_version_code(self) -> None:
        assert StoreVersion(1, 2, 3).to_version_code() == 10203

    def test_next_build_number(self) -> None:
        assert suggest_next_build_number("41") == "42"
        assert suggest_next_build_number(None) == "1"
        assert suggest_next_build_number("abc") == "1"

    def test_identifier_checks(self) -> None:
        assert is_valid_build_number("12")
        assert not is_valid_build_number("1.2")
        assert is_valid_version_code(3)
        assert not is_valid_version_code(0)
        assert not is_valid_version_code(True)
