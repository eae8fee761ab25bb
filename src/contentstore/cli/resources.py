"""contentstore resource commands.

Commands:
  contentstore create   --type article --by u1 --content '{"title": "T"}' -t news
  contentstore show     <id>
  contentstore list     --type article
  contentstore update   <id> --by u1 [--content ...] [--fields ...] [-t ...] [--state ...]
  contentstore delete   <id> [--yes]
  contentstore history  <id>
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from contentstore.cli.errors import (
    err_config,
    err_db_open,
    err_invalid_json,
    err_no_db,
    err_resource,
    exit_code_for,
)
from contentstore.config import ConfigError, load_config
from contentstore.db.connection import Database
from contentstore.db.models import Resource, WorkflowState
from contentstore.db.repository import ContentResourceRepository
from contentstore.errors import ContentResourceError, describe
from contentstore.log import configure_logging
from contentstore.service import ContentResourceService

console = Console()

DbOption = Annotated[
    Optional[Path],
    typer.Option("--db", help="Path to the database. Defaults to contentstore.yaml / .contentstore.db."),
]
ByOption = Annotated[str, typer.Option("--by", help="Id of the acting user.")]
TagOption = Annotated[
    Optional[list[str]],
    typer.Option("--tag", "-t", help="Tag label (repeatable)."),
]


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


@contextmanager
def open_store(
    db: Path | None,
    *,
    project_dir: Path | None = None,
    must_exist: bool = True,
) -> Iterator[tuple[ContentResourceService, Path]]:
    """Load config, open the database and yield a service with the path used.

    *db* (the --db flag) wins over database.path from contentstore.yaml and
    CONTENTSTORE_DB. Exits 1 when the config is invalid or (with
    *must_exist*) the database file is missing, and 2 when the file cannot
    be opened. Without *must_exist* the parent directory is created. The
    connection is closed on exit.
    """
    try:
        cfg = load_config(project_dir)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc

    configure_logging(cfg.logging.level)
    db_path = db if db is not None else cfg.db_path

    if must_exist and not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)
    if not must_exist:
        db_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        conn = Database(db_path, busy_timeout=cfg.database.busy_timeout).connect()
    except sqlite3.Error as exc:
        console.print(err_db_open(str(db_path), describe(exc)))
        raise typer.Exit(2) from exc

    try:
        service = ContentResourceService(
            ContentResourceRepository(conn),
            enforce_transitions=cfg.workflow.enforce_transitions,
        )
        yield service, db_path
    except ContentResourceError as exc:
        console.print(err_resource(exc))
        raise typer.Exit(exit_code_for(exc)) from exc
    finally:
        conn.close()


@contextmanager
def open_service(
    db: Path | None,
    *,
    project_dir: Path | None = None,
    must_exist: bool = True,
) -> Iterator[ContentResourceService]:
    """Like open_store(), yielding only the service."""
    with open_store(db, project_dir=project_dir, must_exist=must_exist) as (service, _):
        yield service


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def create_cmd(
    type_: Annotated[str, typer.Option("--type", help="Resource type, e.g. article.")],
    by: ByOption,
    content: Annotated[str, typer.Option("--content", help="Initial content as a JSON object.")],
    fields: Annotated[
        Optional[str], typer.Option("--fields", help="Unversioned metadata as a JSON object.")
    ] = None,
    tag: TagOption = None,
    state: Annotated[
        WorkflowState, typer.Option("--state", help="Initial workflow state.")
    ] = WorkflowState.DRAFT,
    db: DbOption = None,
) -> None:
    """Create a resource with its first version."""
    payload: dict[str, Any] = {
        "type": type_,
        "created_by_id": by,
        "content": _json_option("--content", content),
        "state": state,
    }
    if fields is not None:
        payload["fields"] = _json_option("--fields", fields)
    if tag:
        payload["tags"] = list(tag)

    with open_service(db) as service:
        resource = service.create_resource(payload)

    console.print(f"[green]✓[/] Created {resource.type} [bold]{resource.id}[/]")
    console.print_json(data=resource_to_dict(resource))


def show_cmd(
    resource_id: Annotated[str, typer.Argument(help="Resource id.")],
    db: DbOption = None,
) -> None:
    """Show a resource with its current version and tags."""
    with open_service(db) as service:
        resource = service.get_resource(resource_id)
    console.print_json(data=resource_to_dict(resource))


def list_cmd(
    type_: Annotated[str, typer.Option("--type", help="Resource type to list.")],
    db: DbOption = None,
) -> None:
    """List all non-deleted resources of a type."""
    with open_service(db) as service:
        resources = service.get_resources_by_type(type_)

    if not resources:
        console.print(f"[yellow]No resources of type '{type_}'.[/]")
        raise typer.Exit(0)

    table = Table(title=f"Resources: {type_}", show_header=True, header_style="bold")
    table.add_column("Id", style="bold")
    table.add_column("State")
    table.add_column("Tags")
    table.add_column("Updated")
    for r in resources:
        table.add_row(r.id, r.state.value, ", ".join(r.tag_labels), r.updated_at)
    console.print(table)
    console.print(f"\n  {len(resources)} resource(s)")


def update_cmd(
    resource_id: Annotated[str, typer.Argument(help="Resource id.")],
    by: ByOption,
    content: Annotated[
        Optional[str], typer.Option("--content", help="New content (appends a version).")
    ] = None,
    fields: Annotated[
        Optional[str], typer.Option("--fields", help="Replacement field map as JSON.")
    ] = None,
    tag: TagOption = None,
    clear_tags: Annotated[
        bool, typer.Option("--clear-tags", help="Remove every tag from the resource.")
    ] = False,
    state: Annotated[
        Optional[WorkflowState], typer.Option("--state", help="New workflow state.")
    ] = None,
    db: DbOption = None,
) -> None:
    """Update fields, content, tags or state. Tags given here replace all existing tags."""
    payload: dict[str, Any] = {}
    if content is not None:
        payload["content"] = _json_option("--content", content)
    if fields is not None:
        payload["fields"] = _json_option("--fields", fields)
    if clear_tags:
        payload["tags"] = []
    elif tag:
        payload["tags"] = list(tag)
    if state is not None:
        payload["state"] = state

    with open_service(db) as service:
        resource = service.update_resource(resource_id, payload, by)

    console.print(f"[green]✓[/] Updated [bold]{resource.id}[/]")
    console.print_json(data=resource_to_dict(resource))


def delete_cmd(
    resource_id: Annotated[str, typer.Argument(help="Resource id.")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
    db: DbOption = None,
) -> None:
    """Soft-delete a resource. Its versions and tag links are kept."""
    if not yes and not typer.confirm(f"Delete resource {resource_id}?", default=False):
        console.print("[dim]Cancelled.[/]")
        raise typer.Exit(0)

    with open_service(db) as service:
        service.delete_resource(resource_id)

    console.print(f"[green]✓[/] Deleted: {resource_id}")


def history_cmd(
    resource_id: Annotated[str, typer.Argument(help="Resource id.")],
    db: DbOption = None,
) -> None:
    """Show every version of a resource, oldest first."""
    with open_service(db) as service:
        resource = service.get_resource(resource_id)
        versions = service.get_version_history(resource_id)

    table = Table(title=f"History: {resource_id}", show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Version")
    table.add_column("By")
    table.add_column("Created")
    table.add_column("Content")
    for n, v in enumerate(versions, start=1):
        marker = " [green]●[/]" if v.id == resource.current_version_id else ""
        table.add_row(
            str(n),
            v.id + marker,
            v.created_by_id,
            v.created_at,
            json.dumps(v.content, ensure_ascii=False),
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def resource_to_dict(resource: Resource) -> dict[str, Any]:
    data = asdict(resource)
    data["state"] = resource.state.value
    return data


def _json_option(option: str, raw: str) -> dict[str, Any]:
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        console.print(err_invalid_json(option, exc.msg))
        raise typer.Exit(1) from exc
    if not isinstance(value, dict):
        console.print(err_invalid_json(option, f"got {type(value).__name__}"))
        raise typer.Exit(1)
    return value

