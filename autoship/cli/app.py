from __future__ import annotations

import os
from pathlib import Path

import typer

from autoship import __version__
from autoship.cli.commands.release_cmd import release
from autoship.cli.commands.repos_cmd import add, list_repos

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# Commands
app.command()(release)
app.command()(add)
app.command("list")(list_repos)


def _print_version(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit(code=0)


@app.callback()
def _main(  # pyright: ignore[reportUnusedFunction]
    version: bool = typer.Option(
        False,
        "--version",
        help="Show version and exit.",
        callback=_print_version,
        is_eager=True,
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        help="Config file (default: ~/.autoship/config.json)",
    ),
) -> None:
    del version
    if config is not None:
        os.environ["AUTOSHIP_CONFIG"] = str(config.expanduser())


def main() -> None:
    app()
