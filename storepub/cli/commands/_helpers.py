"""Shared helpers for CLI commands."""

from __future__ import annotations

import json
from pathlib import Path
from typing import NoReturn

import typer

from storepub.core.errors import ErrorCode
from storepub.core.result import Err, Ok, Result
from storepub.core.structured import StrDict, as_str_dict
from storepub.metadata.types import ValidationResult
from storepub.output.console import ConsoleProtocol, Style


def read_document(path: Path) -> Result[StrDict, str]:
    """Read a store metadata document (JSON object)."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return Err(f"file not found: {path}")
    except OSError as e:
        return Err(f"cannot read {path}: {e}")
    try:
        raw: object = json.loads(text)
    except json.JSONDecodeError as e:
        return Err(f"invalid JSON in {path}: {e}")
    doc = as_str_dict(raw)
    if doc is None:
        return Err(f"{path}: top-level value must be an object")
    return Ok(doc)


def load_document_or_exit(path: Path, console: ConsoleProtocol) -> StrDict:
    doc = read_document(path)
    if isinstance(doc, Err):
        console.error(doc.error)
        exit_with_code(int(ErrorCode.USER_ERROR))
    return doc.value


def print_validation(console: ConsoleProtocol, result: ValidationResult, *, title: str) -> None:
    if result.valid:
        console.success(f"{title} passed")
    else:
        console.error(f"{title} failed")
        for issue in result.errors:
            console.bullet(issue.pretty(), Style.ERROR)
    if result.warnings:
        console.warning(f"{len(result.warnings)} warning(s)")
        for warning in result.warnings:
            console.bullet(warning.pretty(), Style.WARNING)


def exit_with_code(code: int) -> NoReturn:
    raise typer.Exit(code=code)
