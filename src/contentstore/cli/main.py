"""contentstore CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from contentstore.cli.init import init_cmd
from contentstore.cli.resources import (
    create_cmd,
    delete_cmd,
    history_cmd,
    list_cmd,
    show_cmd,
    update_cmd,
)


def _installed_version() -> str:
    try:
        return importlib.metadata.version("contentstore")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"contentstore {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="contentstore",
    help=(
        "contentstore: versioned content resources with tags.\n\n"
        "  Every content update appends an immutable version; the resource\n"
        "  points at its current one. Deletes are soft."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """contentstore: versioned content resources with tags."""


app.command("init")(init_cmd)
app.command("create")(create_cmd)
app.command("show")(show_cmd)
app.command("list")(list_cmd)
app.command("update")(update_cmd)
app.command("delete")(delete_cmd)
app.command("history")(history_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed contentstore version."""
    typer.echo(f"contentstore {_installed_version()}")


if __name__ == "__main__":
    app()
