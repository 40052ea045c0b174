"""Error taxonomy and exit codes.

``PublishError`` is the canonical failure payload carried by ``Err`` values
across adapters, steps and the worker. Its ``kind`` drives retry decisions:

- validation: bad input shape/content; never retried
- configuration: missing/invalid credentials or transport; not retried
- transient: network or remote processing failure; retried with backoff
- timeout: bounded polling exhausted; retried like transient
- cancelled: cooperative cancellation observed; never retried
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Literal

__all__ = [
    "ErrorCode",
    "ErrorKind",
    "PublishError",
    "RETRYABLE_KINDS",
    "exit_code_for",
]

ErrorKind = Literal["validation", "configuration", "transient", "timeout", "cancelled"]

RETRYABLE_KINDS: frozenset[ErrorKind] = frozenset({"transient", "timeout"})


@dataclass(frozen=True, slots=True)
class PublishError:
    """Failure payload shared by every layer.

    Attributes:
        kind: Taxonomy bucket (see module docstring).
        message: Human-readable, redaction-safe description.
        hint: Optional remediation hint or upstream detail.
        errors: Structured sub-errors (e.g. validator messages).
    """

    kind: ErrorKind
    message: str
    hint: str | None = None
    errors: tuple[str, ...] = ()

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def pretty(self) -> str:
        if self.hint:
            return f"{self.message} (hint: {self.hint})"
        return self.message

    @classmethod
    def validation(cls, message: str, *, hint: str | None = None) -> PublishError:
        return cls(kind="validation", message=message, hint=hint)

    @classmethod
    def configuration(cls, message: str, *, hint: str | None = None) -> PublishError:
        return cls(kind="configuration", message=message, hint=hint)

    @classmethod
    def transient(cls, message: str, *, hint: str | None = None) -> PublishError:
        return cls(kind="transient", message=message, hint=hint)

    @classmethod
    def timeout(cls, message: str, *, hint: str | None = None) -> PublishError:
        return cls(kind="timeout", message=message, hint=hint)

    @classmethod
    def cancelled(cls, message: str = "cancelled") -> PublishError:
        return cls(kind="cancelled", message=message)


class ErrorCode(IntEnum):
    """Process exit codes for CLI commands.

    These values are part of the CLI contract and should remain stable.
    """

    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    SUBMISSION_ERROR = 3
    NETWORK_ERROR = 4
    IO_ERROR = 5
    CANCELLED = 6

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK


def exit_code_for(kind: ErrorKind) -> ErrorCode:
    """Map an error kind to the CLI exit code."""
    match kind:
        case "validation":
            return ErrorCode.USER_ERROR
        case "configuration":
            return ErrorCode.ENV_ERROR
        case "transient" | "timeout":
            return ErrorCode.NETWORK_ERROR
        case "cancelled":
            return ErrorCode.CANCELLED
