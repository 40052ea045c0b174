"""Tests for storepub.core.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from storepub.core.config import (
    Settings,
    apply_env_overrides,
    load_settings,
    load_settings_or_default,
)
from storepub.core.result import Err, Ok


class TestDefaults:
    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.worker.max_concurrent == 1
        assert settings.worker.retention == 100
        assert settings.retry.base_delay_ms == 1000
        assert settings.retry.max_retries == 3
        assert settings.polling.max_attempts == 60
        assert settings.polling.delay_seconds == 5.0
        assert settings.delivery.ios == "direct"

    def test_frozen(self) -> None:
        with pytest.raises(AttributeError):
            Settings().worker.retention = 5  # type: ignore[misc]


class TestLoadSettings:
    def test_load_full_file(self, tmp_path: Path) -> None:
        path = tmp_path / "storepub.toml"
        path.write_text(
            "[worker]\nmax_concurrent = 2\nretention = 10\n"
            "[retry]\nbase_delay_ms = 50\n"
            "[polling]\nmax_attempts = 5\n"
            '[delivery]\nandroid = "fastlane"\n',
            encoding="utf-8",
        )
        result = load_settings(path)
        assert isinstance(result, Ok)
        settings = result.value
        assert settings.worker.max_concurrent == 2
        assert settings.worker.retention == 10
        assert settings.retry.base_delay_ms == 50
        assert settings.retry.max_retries == 3
        assert settings.polling.max_attempts == 5
        assert settings.delivery.android == "fastlane"

    def test_missing_file(self, tmp_path: Path) -> None:
        result = load_settings(tmp_path / "nope.toml")
        assert isinstance(result, Err)
        assert "not found" in result.error.message

    def test_invalid_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.toml"
        path.write_text("[worker\n", encoding="utf-8")
        result = load_settings(path)
        assert isinstance(result, Err)
        assert "Invalid TOML" in result.error.message

    def test_out_of_range_value(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.toml"
        path.write_text("[worker]\nmax_concurrent = 0\n", encoding="utf-8")
        result = load_settings(path)
        assert isinstance(result, Err)
        assert "max_concurrent" in result.error.message

    def test_unknown_mechanism(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.toml"
        path.write_text('[delivery]\nios = "carrier-pigeon"\n', encoding="utf-8")
        assert isinstance(load_settings(path), Err)

    def test_or_default(self, tmp_path: Path) -> None:
        assert load_settings_or_default(None) == Settings()
        assert load_settings_or_default(tmp_path / "nope.toml") == Settings()


class TestEnvOverrides:
    def test_overrides_apply(self) -> None:
        settings = apply_env_overrides(
            Settings(),
            {
                "STOREPUB_RETRY_BASE_DELAY_MS": "10",
                "STOREPUB_MAX_RETRIES": "1",
                "STOREPUB_MAX_CONCURRENT": "4",
                "STOREPUB_IOS_MECHANISM": "EAS",
            },
        )
        assert settings.retry.base_delay_ms == 10
        assert settings.retry.max_retries == 1
        assert settings.worker.max_concurrent == 4
        assert settings.delivery.ios == "eas"

    def test_empty_env_is_identity(self) -> None:
        assert apply_env_overrides(Settings(), {}) == Settings()

    def test_bad_override_raises(self) -> None:
        with pytest.raises(ValueError):
            apply_env_overrides(Settings(), {"STOREPUB_MAX_CONCURRENT": "many"})
