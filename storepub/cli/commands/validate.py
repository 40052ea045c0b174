from __future__ import annotations

import json
from pathlib import Path

import typer

from storepub.cli.commands._helpers import exit_with_code, load_document_or_exit, print_validation
from storepub.cli.context import build_context
from storepub.core.errors import ErrorCode
from storepub.metadata.sample import sample_store_metadata
from storepub.output.console import Style


def validate(
    file: Path = typer.Argument(Path("store.json"), help="Store metadata document (JSON)"),
) -> None:
    """Check a store metadata document against the store schema."""
    ctx = build_context()
    doc = load_document_or_exit(file, ctx.console)
    ctx.console.print(f"validating {file}", Style.DIM)

    result = ctx.publisher.validate_metadata_sync(doc)
    print_validation(ctx.console, result, title="Schema validation")
    if not result.valid:
        exit_with_code(int(ErrorCode.USER_ERROR))


def preflight(
    file: Path = typer.Argument(Path("store.json"), help="Store metadata document (JSON)"),
    live: bool = typer.Option(
        False, "--live", help="Check versions against the stores (needs credentials)."
    ),
) -> None:
    """Run every pre-submission check on a store metadata document."""
    ctx = build_context()
    doc = load_document_or_exit(file, ctx.console)
    ctx.console.print(f"preflight {file} ({'live' if live else 'dry run'})", Style.DIM)

    report = ctx.publisher.run_preflight_sync(doc, dry_run=not live)
    for name, result in report.categories().items():
        if result.errors or result.warnings:
            print_validation(ctx.console, result, title=name)

    if report.ios_version.suggested:
        ctx.console.print(f"suggested iOS build: {report.ios_version.suggested}", Style.DIM)
    if report.android_version.suggested:
        ctx.console.print(
            f"suggested Android version code: {report.android_version.suggested}", Style.DIM
        )

    if not report.valid:
        ctx.console.error("Preflight checks failed")
        exit_with_code(int(ErrorCode.USER_ERROR))
    ctx.console.success("Preflight checks passed")


def sample() -> None:
    """Print a sample store.json."""
    typer.echo(json.dumps(sample_store_metadata(), indent=2))


def secrets() -> None:
    """Show which store credentials are configured."""
    ctx = build_context()
    publisher = ctx.publisher
    status = publisher.credential_status()

    ctx.console.header("Credentials")
    for label, ok in (
        ("App Store Connect", status.ios),
        ("Google Play", status.android),
        ("Android signing", status.android_signing),
        ("EAS", status.eas),
        ("fastlane", status.fastlane),
    ):
        style = Style.SUCCESS if ok else Style.DIM
        ctx.console.print(f"{label}: {'configured' if ok else 'missing'}", style)

    ctx.console.header("Mode")
    ctx.console.print(f"dry run: {publisher.dry_run}")
    ctx.console.print(f"store publishing enabled: {publisher.secrets.enabled}")
    ctx.console.print(
        f"delivery: ios={ctx.settings.delivery.ios} android={ctx.settings.delivery.android}",
        Style.DIM,
    )

    report = publisher.validate_secrets()
    for warning in report.warnings:
        ctx.console.warning(warning)
    if not report.valid:
        for missing in report.missing:
            ctx.console.bullet(f"missing: {missing}", Style.ERROR)
        if not publisher.dry_run:
            exit_with_code(int(ErrorCode.ENV_ERROR))
