"""Typed orchestrator settings.

Settings come from an optional ``storepub.toml`` and can be overridden by
environment variables. Every field has a default so an empty file (or no
file at all) yields a usable configuration.

Example ``storepub.toml``::

    [worker]
    tick_interval_seconds = 1.0
    max_concurrent = 1
    retention = 100

    [retry]
    base_delay_ms = 1000
    max_retries = 3

    [polling]
    max_attempts = 60
    delay_seconds = 5.0

    [delivery]
    ios = "direct"
    android = "fastlane"
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Literal, cast

from .result import Err, Ok, Result
from .structured import StrDict, as_str_dict, get_float, get_int, get_str, get_table

__all__ = [
    "ConfigError",
    "DeliveryConfig",
    "PollingConfig",
    "RetryConfig",
    "Settings",
    "WorkerConfig",
    "load_settings",
    "load_settings_or_default",
    "apply_env_overrides",
]

MechanismName = Literal["direct", "fastlane", "eas"]
_MECHANISMS: tuple[MechanismName, ...] = ("direct", "fastlane", "eas")

DEFAULT_TICK_INTERVAL_SECONDS = 1.0
DEFAULT_MAX_CONCURRENT = 1
DEFAULT_RETENTION = 100
DEFAULT_RETRY_BASE_DELAY_MS = 1000
DEFAULT_MAX_RETRIES = 3
DEFAULT_POLL_MAX_ATTEMPTS = 60
DEFAULT_POLL_DELAY_SECONDS = 5.0
DEFAULT_SIMULATED_DELAY_SECONDS = 1.0


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when settings cannot be loaded or parsed."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class WorkerConfig:
    tick_interval_seconds: float = DEFAULT_TICK_INTERVAL_SECONDS
    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    retention: int = DEFAULT_RETENTION


@dataclass(frozen=True, slots=True)
class RetryConfig:
    base_delay_ms: int = DEFAULT_RETRY_BASE_DELAY_MS
    max_retries: int = DEFAULT_MAX_RETRIES


@dataclass(frozen=True, slots=True)
class PollingConfig:
    """Bounded polling used while waiting on remote build processing."""

    max_attempts: int = DEFAULT_POLL_MAX_ATTEMPTS
    delay_seconds: float = DEFAULT_POLL_DELAY_SECONDS
    # Delay used by dry-run capabilities to simulate remote latency.
    simulated_delay_seconds: float = DEFAULT_SIMULATED_DELAY_SECONDS


@dataclass(frozen=True, slots=True)
class DeliveryConfig:
    """Default delivery mechanism per platform."""

    ios: MechanismName = "direct"
    android: MechanismName = "direct"


@dataclass(frozen=True, slots=True)
class Settings:
    """Top-level settings container."""

    worker: WorkerConfig = field(default_factory=WorkerConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Settings:
        """Create Settings from a mapping (parsed TOML).

        Raises:
            ValueError: If a value is out of range.
        """
        worker: StrDict = get_table(data, "worker") or {}
        retry: StrDict = get_table(data, "retry") or {}
        polling: StrDict = get_table(data, "polling") or {}
        delivery: StrDict = get_table(data, "delivery") or {}

        settings = cls(
            worker=WorkerConfig(
                tick_interval_seconds=_or(
                    get_float(worker, "tick_interval_seconds"), DEFAULT_TICK_INTERVAL_SECONDS
                ),
                max_concurrent=_or(get_int(worker, "max_concurrent"), DEFAULT_MAX_CONCURRENT),
                retention=_or(get_int(worker, "retention"), DEFAULT_RETENTION),
            ),
            retry=RetryConfig(
                base_delay_ms=_or(get_int(retry, "base_delay_ms"), DEFAULT_RETRY_BASE_DELAY_MS),
                max_retries=_or(get_int(retry, "max_retries"), DEFAULT_MAX_RETRIES),
            ),
            polling=PollingConfig(
                max_attempts=_or(get_int(polling, "max_attempts"), DEFAULT_POLL_MAX_ATTEMPTS),
                delay_seconds=_or(
                    get_float(polling, "delay_seconds"), DEFAULT_POLL_DELAY_SECONDS
                ),
                simulated_delay_seconds=_or(
                    get_float(polling, "simulated_delay_seconds"),
                    DEFAULT_SIMULATED_DELAY_SECONDS,
                ),
            ),
            delivery=DeliveryConfig(
                ios=_mechanism(get_str(delivery, "ios"), "delivery.ios"),
                android=_mechanism(get_str(delivery, "android"), "delivery.android"),
            ),
        )
        settings.check()
        return settings

    def check(self) -> None:
        """Raise ValueError when a value is out of range."""
        if self.worker.tick_interval_seconds <= 0:
            raise ValueError("worker.tick_interval_seconds must be > 0")
        if self.worker.max_concurrent < 1:
            raise ValueError("worker.max_concurrent must be >= 1")
        if self.worker.retention < 1:
            raise ValueError("worker.retention must be >= 1")
        if self.retry.base_delay_ms < 0:
            raise ValueError("retry.base_delay_ms must be >= 0")
        if self.retry.max_retries < 0:
            raise ValueError("retry.max_retries must be >= 0")
        if self.polling.max_attempts < 1:
            raise ValueError("polling.max_attempts must be >= 1")
        if self.polling.delay_seconds < 0 or self.polling.simulated_delay_seconds < 0:
            raise ValueError("polling delays must be >= 0")


def _or[T](value: T | None, default: T) -> T:
    return default if value is None else value


def _mechanism(value: str | None, key: str) -> MechanismName:
    if value is None:
        return "direct"
    lowered = value.lower()
    if lowered not in _MECHANISMS:
        raise ValueError(f"{key} must be one of {', '.join(_MECHANISMS)} (got {value!r})")
    return cast(MechanismName, lowered)


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    import tomllib

    try:
        data_obj: object = tomllib.loads(path.read_bytes().decode("utf-8"))
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))

    data = as_str_dict(data_obj)
    if data is None:
        return Err(ConfigError("Config root must be a TOML table", path=path))
    return Ok(data)


def load_settings(path: Path) -> Result[Settings, ConfigError]:
    """Load and parse settings from a TOML file."""
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    try:
        return Ok(Settings.from_dict(result.value))
    except (KeyError, TypeError, ValueError) as e:
        return Err(ConfigError(f"Invalid config structure: {e}", path=path))


def load_settings_or_default(path: Path | None) -> Settings:
    """Load settings from ``path`` or fall back to defaults if it is missing."""
    if path is None:
        return Settings()
    result = load_settings(path)
    if isinstance(result, Ok):
        return result.value
    return Settings()


def apply_env_overrides(settings: Settings, env: Mapping[str, str]) -> Settings:
    """Apply ``STOREPUB_*`` environment overrides on top of ``settings``.

    Raises:
        ValueError: If an override cannot be parsed.
    """
    out = settings
    base_delay = env.get("STOREPUB_RETRY_BASE_DELAY_MS")
    if base_delay:
        out = replace(out, retry=replace(out.retry, base_delay_ms=int(base_delay)))
    max_retries = env.get("STOREPUB_MAX_RETRIES")
    if max_retries:
        out = replace(out, retry=replace(out.retry, max_retries=int(max_retries)))
    concurrency = env.get("STOREPUB_MAX_CONCURRENT")
    if concurrency:
        out = replace(out, worker=replace(out.worker, max_concurrent=int(concurrency)))
    ios = env.get("STOREPUB_IOS_MECHANISM")
    if ios:
        out = replace(out, delivery=replace(out.delivery, ios=_mechanism(ios, "ios")))
    android = env.get("STOREPUB_ANDROID_MECHANISM")
    if android:
        out = replace(
            out, delivery=replace(out.delivery, android=_mechanism(android, "android"))
        )
    out.check()
    return out
