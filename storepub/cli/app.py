from __future__ import annotations

import typer

from storepub import __version__
from storepub.cli.commands.submit import submit_app
from storepub.cli.commands.validate import preflight, sample, secrets, validate

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# Commands
app.command()(validate)
app.command()(preflight)
app.command()(secrets)
app.command()(sample)

# Sub-apps
app.add_typer(submit_app, name="submit", help="Submit a release to a store.")


@app.callback()
def _main(  # pyright: ignore[reportUnusedFunction]
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
) -> None:
    if version:
        typer.echo(__version__)
        raise typer.Exit(code=0)


def main() -> None:
    app()
