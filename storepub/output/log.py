"""Leveled, redaction-safe logging for the orchestrator.

``PublishLogger`` turns log calls into ``LogEntry`` records (keyed by an
optional progress code), redacts secrets from messages and structured
data, keeps a bounded in-memory history and forwards each entry to a
``LogSink``. Sinks are swappable: ``RichLogSink`` renders to the terminal,
``MemoryLogSink`` captures entries for tests.
"""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Protocol

from storepub.core.clock import Clock, iso, utc_now
from storepub.secrets.vault import REDACTED, redact_secrets

__all__ = [
    "LogEntry",
    "LogLevel",
    "LogSink",
    "MemoryLogSink",
    "PublishLogger",
    "RichLogSink",
]

_MAX_DATA_STRING = 50
_SENSITIVE_KEYS = frozenset(
    {"password", "private_key", "privatekey", "token", "secret", "authorization", "keystore"}
)


class LogLevel(StrEnum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


@dataclass(frozen=True, slots=True)
class LogEntry:
    timestamp: datetime
    level: LogLevel
    message: str
    code: str | None = None
    data: Mapping[str, object] | None = None

    def format(self) -> str:
        code = f" [{self.code}]" if self.code else ""
        data = f" {dict(self.data)}" if self.data else ""
        return f"{iso(self.timestamp)} [{self.level}]{code} {self.message}{data}"


class LogSink(Protocol):
    """Destination for log entries."""

    def emit(self, entry: LogEntry) -> None: ...


class RichLogSink:
    """Terminal sink using Rich styles per level."""

    def __init__(self, *, min_level: LogLevel = LogLevel.INFO) -> None:
        # Import Rich lazily to keep the core importable without a terminal.
        from rich.console import Console

        self._console = Console(stderr=True, highlight=False)
        self._min_level = min_level
        self._style_map = {
            LogLevel.DEBUG: "dim",
            LogLevel.INFO: "cyan",
            LogLevel.WARN: "yellow",
            LogLevel.ERROR: "red bold",
        }

    def emit(self, entry: LogEntry) -> None:
        if _LEVEL_ORDER[entry.level] < _LEVEL_ORDER[self._min_level]:
            return
        from rich.markup import escape

        style = self._style_map[entry.level]
        stamp = entry.timestamp.strftime("%H:%M:%S")
        code = f" [dim]\\[{escape(entry.code)}][/dim]" if entry.code else ""
        data = f" [dim]{escape(str(dict(entry.data)))}[/dim]" if entry.data else ""
        self._console.print(
            f"[{style}]{entry.level.value.lower()}[/{style}] {stamp}{code} "
            f"{escape(entry.message)}{data}"
        )


def _empty_entries() -> list[LogEntry]:
    return []


@dataclass
class MemoryLogSink:
    """Sink that captures entries for assertions in tests."""

    entries: list[LogEntry] = field(default_factory=_empty_entries)

    def emit(self, entry: LogEntry) -> None:
        self.entries.append(entry)

    @property
    def messages(self) -> list[str]:
        return [e.message for e in self.entries]

    @property
    def text(self) -> str:
        return "\n".join(e.format() for e in self.entries)

    def by_level(self, level: LogLevel) -> list[LogEntry]:
        return [e for e in self.entries if e.level == level]

    def by_code(self, code: str) -> list[LogEntry]:
        return [e for e in self.entries if e.code == code]

    def has_warning(self) -> bool:
        return any(e.level == LogLevel.WARN for e in self.entries)


_LEVEL_ORDER = {LogLevel.DEBUG: 0, LogLevel.INFO: 1, LogLevel.WARN: 2, LogLevel.ERROR: 3}


def _redact_data(data: Mapping[str, object], secrets: Mapping[str, str]) -> dict[str, object]:
    out: dict[str, object] = {}
    for key, value in data.items():
        if key.lower() in _SENSITIVE_KEYS:
            out[key] = REDACTED
        elif isinstance(value, str):
            out[key] = REDACTED if len(value) > _MAX_DATA_STRING else redact_secrets(value, secrets)
        elif isinstance(value, Mapping):
            out[key] = _redact_data(value, secrets)  # pyright: ignore[reportUnknownArgumentType]
        else:
            out[key] = value
    return out


class PublishLogger:
    """Thread-safe logger with a bounded history."""

    def __init__(
        self,
        sink: LogSink | None = None,
        *,
        max_entries: int = 1000,
        secrets: Mapping[str, str] | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._sink = sink
        self._entries: deque[LogEntry] = deque(maxlen=max_entries)
        self._secrets = dict(secrets or {})
        self._clock = clock
        self._lock = threading.Lock()

    def log(
        self,
        level: LogLevel,
        message: str,
        data: Mapping[str, object] | None = None,
        code: str | None = None,
    ) -> LogEntry:
        entry = LogEntry(
            timestamp=self._clock(),
            level=level,
            message=redact_secrets(message, self._secrets),
            code=code,
            data=_redact_data(data, self._secrets) if data else None,
        )
        with self._lock:
            self._entries.append(entry)
        if self._sink is not None:
            self._sink.emit(entry)
        return entry

    def debug(
        self, message: str, data: Mapping[str, object] | None = None, code: str | None = None
    ) -> LogEntry:
        return self.log(LogLevel.DEBUG, message, data, code)

    def info(
        self, message: str, data: Mapping[str, object] | None = None, code: str | None = None
    ) -> LogEntry:
        return self.log(LogLevel.INFO, message, data, code)

    def warn(
        self, message: str, data: Mapping[str, object] | None = None, code: str | None = None
    ) -> LogEntry:
        return self.log(LogLevel.WARN, message, data, code)

    def error(
        self, message: str, data: Mapping[str, object] | None = None, code: str | None = None
    ) -> LogEntry:
        return self.log(LogLevel.ERROR, message, data, code)

    def entries(self) -> list[LogEntry]:
        with self._lock:
            return list(self._entries)

    def by_level(self, level: LogLevel) -> list[LogEntry]:
        return [e for e in self.entries() if e.level == level]

    def by_code(self, code: str) -> list[LogEntry]:
        return [e for e in self.entries() if e.code == code]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def export(self) -> str:
        return "\n".join(e.format() for e in self.entries())

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(self.entries())
