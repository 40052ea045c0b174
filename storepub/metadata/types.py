from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Literal, Protocol

from storepub.core.cancel import CancellationToken
from storepub.core.errors import PublishError
from storepub.core.result import Result

__all__ = [
    "FieldIssue",
    "FieldWarning",
    "RemoteVersion",
    "RemoteVersionSource",
    "Severity",
    "ValidationResult",
    "VersionValidationResult",
]

Severity = Literal["error", "warning"]


@dataclass(frozen=True, slots=True)
class FieldIssue:
    field: str
    message: str
    severity: Severity = "error"

    def pretty(self) -> str:
        return f"{self.field}: {self.message}"


@dataclass(frozen=True, slots=True)
class FieldWarning:
    field: str
    message: str

    def pretty(self) -> str:
        return f"{self.field}: {self.message}"


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of one or more independent checks.

    Only issues with severity ``error`` make a result invalid.
    """

    errors: tuple[FieldIssue, ...] = ()
    warnings: tuple[FieldWarning, ...] = ()

    @property
    def valid(self) -> bool:
        return not any(issue.severity == "error" for issue in self.errors)

    def error_messages(self) -> list[str]:
        return [issue.pretty() for issue in self.errors]

    def warning_messages(self) -> list[str]:
        return [w.pretty() for w in self.warnings]

    @staticmethod
    def combine(results: Iterable[ValidationResult]) -> ValidationResult:
        errors: list[FieldIssue] = []
        warnings: list[FieldWarning] = []
        for r in results:
            errors.extend(r.errors)
            warnings.extend(r.warnings)
        return ValidationResult(errors=tuple(errors), warnings=tuple(warnings))


@dataclass(frozen=True, slots=True)
class VersionValidationResult(ValidationResult):
    """Remote monotonicity check outcome with the next acceptable identifier."""

    last_known: str | None = None
    suggested: str | None = None


@dataclass(frozen=True, slots=True)
class RemoteVersion:
    """Latest identifiers known to the store for one app."""

    version: str | None = None
    build: str | None = None


class RemoteVersionSource(Protocol):
    def last_remote_version(
        self, identifier: str, *, token: CancellationToken | None = None
    ) -> Result[RemoteVersion | None, PublishError]: ...
