"""Store asset checks.

The checker validates the files a submission will reference (format,
size, minimum screenshot counts) and stages the valid ones into an output
directory. Image resizing is out of scope: files are copied as-is.
"""

from __future__ import annotations

import shutil
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from storepub.jobs.model import AssetRequest, Platform

__all__ = [
    "AssetChecker",
    "AssetReport",
    "FileAssetChecker",
    "IMAGE_SUFFIXES",
    "MAX_ASSET_BYTES",
]

IMAGE_SUFFIXES = frozenset({".png", ".jpg", ".jpeg", ".webp"})
MAX_ASSET_BYTES = 10 * 1024 * 1024

_REQUIRED_SCREENSHOTS: dict[Platform, dict[str, int]] = {
    Platform.IOS: {"iphone67": 3, "ipad129": 3},
    Platform.ANDROID: {"phone": 2},
}


@dataclass(frozen=True, slots=True)
class AssetReport:
    valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    staged: tuple[Path, ...] = ()


class AssetChecker(Protocol):
    def check(self, request: AssetRequest) -> AssetReport: ...


def _file_problem(path: Path, max_bytes: int) -> str | None:
    if path.suffix.lower() not in IMAGE_SUFFIXES:
        return "invalid format"
    try:
        size = path.stat().st_size
    except OSError:
        return "file not found"
    if size > max_bytes:
        return "file too large"
    return None


class FileAssetChecker:
    def __init__(self, *, max_bytes: int = MAX_ASSET_BYTES, stage: bool = True) -> None:
        self._max_bytes = max_bytes
        self._stage = stage

    def check(self, request: AssetRequest) -> AssetReport:
        platforms = (
            [Platform.IOS, Platform.ANDROID]
            if request.platform == Platform.BOTH
            else [request.platform]
        )
        errors: list[str] = []
        warnings: list[str] = []
        valid_files: list[tuple[Path, Path]] = []

        problem = _file_problem(request.icon, self._max_bytes)
        if problem is None:
            valid_files.append((request.icon, Path(request.icon.name)))
        else:
            errors.append(f"App icon {request.icon}: {problem}")

        for platform in platforms:
            errors.extend(self._count_errors(platform, request.screenshots))

        for device, paths in sorted(request.screenshots.items()):
            for path in paths:
                problem = _file_problem(path, self._max_bytes)
                if problem is None:
                    valid_files.append((path, Path("screenshots", device, path.name)))
                else:
                    errors.append(f"{device} screenshot {path}: {problem}")

        if Platform.ANDROID in platforms:
            if request.feature_graphic is None:
                warnings.append("Android feature graphic is missing")
            else:
                problem = _file_problem(request.feature_graphic, self._max_bytes)
                if problem is None:
                    valid_files.append((request.feature_graphic, Path(request.feature_graphic.name)))
                else:
                    warnings.append(f"Android feature graphic {request.feature_graphic}: {problem}")

        staged: tuple[Path, ...] = ()
        if self._stage and not errors:
            staged, stage_errors = self._stage_files(valid_files, request.output_dir)
            errors.extend(stage_errors)

        return AssetReport(
            valid=not errors,
            errors=tuple(errors),
            warnings=tuple(warnings),
            staged=staged,
        )

    @staticmethod
    def _count_errors(platform: Platform, screenshots: Mapping[str, tuple[Path, ...]]) -> list[str]:
        out: list[str] = []
        for device, minimum in _REQUIRED_SCREENSHOTS.get(platform, {}).items():
            if len(screenshots.get(device, ())) < minimum:
                out.append(f"{platform} {device} requires at least {minimum} screenshots")
        return out

    @staticmethod
    def _stage_files(
        files: list[tuple[Path, Path]], output_dir: Path
    ) -> tuple[tuple[Path, ...], list[str]]:
        staged: list[Path] = []
        errors: list[str] = []
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return (), [f"cannot create {output_dir}: {e}"]
        for src, relative in files:
            dest = output_dir / relative
            try:
                dest.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(src, dest)
            except OSError as e:
                errors.append(f"cannot stage {src}: {e}")
                continue
            staged.append(dest)
        return tuple(staged), errors
