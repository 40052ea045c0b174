from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

VersionBump = Literal["major", "minor", "patch"]

_VERSION_RE = re.compile(r"^(\d+)\.(\d+)(?:\.(\d+))?$")
_BUILD_RE = re.compile(r"^\d+$")


@dataclass(frozen=True, slots=True, order=True)
class StoreVersion:
    """Marketing version (``X.Y`` or ``X.Y.Z``) shared by both stores."""

    major: int
    minor: int
    patch: int = 0

    def __str__(self) -> str:
        if self.patch:
            return f"{self.major}.{self.minor}.{self.patch}"
        return f"{self.major}.{self.minor}"

    def bump(self, kind: VersionBump) -> StoreVersion:
        match kind:
            case "major":
                return StoreVersion(self.major + 1, 0, 0)
            case "minor":
                return StoreVersion(self.major, self.minor + 1, 0)
            case "patch":
                return StoreVersion(self.major, self.minor, self.patch + 1)

    def to_version_code(self) -> int:
        """Conventional Android version code: ``major*10000 + minor*100 + patch``."""
        return self.major * 10000 + self.minor * 100 + self.patch


def parse_version(text: str) -> StoreVersion | None:
    m = _VERSION_RE.match(text.strip())
    if m is None:
        return None
    return StoreVersion(int(m.group(1)), int(m.group(2)), int(m.group(3) or 0))


def is_valid_version(text: str) -> bool:
    return parse_version(text) is not None


def is_valid_build_number(text: str) -> bool:
    return _BUILD_RE.match(text) is not None


def is_valid_version_code(code: object) -> bool:
    return isinstance(code, int) and not isinstance(code, bool) and code > 0


def compare_versions(a: str, b: str) -> int:
    """Return -1, 0 or 1. Unparsable versions raise ValueError."""
    va, vb = parse_version(a), parse_version(b)
    if va is None or vb is None:
        raise ValueError(f"invalid version: {a if va is None else b}")
    return (va > vb) - (va < vb)


def suggest_next_build_number(current: str | None) -> str:
    if current is None or not is_valid_build_number(current):
        return "1"
    return str(int(current) + 1)


def suggest_next_version_code(current: int) -> int:
    return current + 1
