from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import typer

from storepub.api import Publisher, build_publisher
from storepub.core.config import Settings, apply_env_overrides, load_settings
from storepub.core.errors import ErrorCode
from storepub.core.result import Err
from storepub.output.console import ConsoleProtocol, RichConsole
from storepub.output.log import LogLevel, RichLogSink

CONFIG_ENV = "STOREPUB_CONFIG"
DEFAULT_CONFIG_NAME = "storepub.toml"


@dataclass(frozen=True, slots=True)
class CLIContext:
    publisher: Publisher
    settings: Settings
    console: ConsoleProtocol


def config_path() -> Path | None:
    """``$STOREPUB_CONFIG`` if set, else ``./storepub.toml`` when present."""
    explicit = os.environ.get(CONFIG_ENV)
    if explicit:
        return Path(explicit).expanduser()
    local = Path.cwd() / DEFAULT_CONFIG_NAME
    return local if local.is_file() else None


def load_cli_settings() -> Settings:
    path = config_path()
    settings = Settings()
    if path is not None:
        loaded = load_settings(path)
        if isinstance(loaded, Err):
            typer.echo(f"error: {loaded.error.message}", err=True)
            raise typer.Exit(code=int(ErrorCode.ENV_ERROR))
        settings = loaded.value
    try:
        return apply_env_overrides(settings, os.environ)
    except ValueError as e:
        typer.echo(f"error: invalid environment override: {e}", err=True)
        raise typer.Exit(code=int(ErrorCode.ENV_ERROR))


def build_context(*, verbose: bool = False) -> CLIContext:
    settings = load_cli_settings()
    sink = RichLogSink(min_level=LogLevel.DEBUG if verbose else LogLevel.WARN)
    publisher = build_publisher(os.environ, settings=settings, sink=sink, workdir=Path.cwd())
    return CLIContext(publisher=publisher, settings=settings, console=RichConsole())
