"""Rich error messages for the contentstore CLI.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from contentstore.cli.errors import err_no_db
    console.print(err_no_db(".contentstore.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from contentstore.errors import ContentResourceError, ErrorCode


def err_no_db(db_path: str = ".contentstore.db") -> str:
    """No database at the configured path."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  contentstore init"
    )


def err_db_open(db_path: str, detail: str) -> str:
    """The database file exists but SQLite cannot open it."""
    return (
        f"[red]Error:[/] Cannot open database '{db_path}': {detail}\n"
        "  Check the path with --db, or move the file aside and run:  contentstore init"
    )


def err_invalid_json(option: str, detail: str) -> str:
    """A JSON option could not be parsed or is not an object."""
    return (
        f"[red]Error:[/] {option} must be a JSON object ({detail}).\n"
        f"  Example:  {option} '{{\"title\": \"Hello\"}}'"
    )


def err_config(detail: str) -> str:
    """contentstore.yaml or an environment override is invalid."""
    return (
        f"[red]Error:[/] Invalid configuration: {detail}\n"
        "  Fix contentstore.yaml or unset CONTENTSTORE_DB / CONTENTSTORE_LOG_LEVEL."
    )


def err_resource(error: ContentResourceError) -> str:
    """Render a service error with a next step for its code."""
    if error.code is ErrorCode.NOT_FOUND:
        return (
            f"[yellow]Not found:[/] {error.message}\n"
            "  Run:  contentstore list --type <type>  to see existing resources."
        )
    if error.code is ErrorCode.INVALID_INPUT:
        return (
            f"[red]Invalid input:[/] {error.message}\n"
            "  Run:  contentstore <command> --help  for the expected options."
        )
    return (
        f"[red]Error:[/] {error.message}\n"
        "  Check the database file and re-run with CONTENTSTORE_LOG_LEVEL=DEBUG for details."
    )


def exit_code_for(error: ContentResourceError) -> int:
    """SYSTEM_ERROR exits 2; caller mistakes exit 1."""
    return 2 if error.code is ErrorCode.SYSTEM_ERROR else 1
