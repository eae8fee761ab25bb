"""contentstore init: create the database and a project config.

Creates (both idempotent):
  .contentstore.db     SQLite database with all migrations applied
  contentstore.yaml    project config with the default sections
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from contentstore.cli.resources import DbOption, open_store
from contentstore.db.migrations import MIGRATIONS

console = Console()

_DEFAULT_PROJECT_DIR = Path(".")

_PROJECT_YAML = """\
# contentstore project configuration.
database:
  path: .contentstore.db
  busy_timeout: 5.0

logging:
  level: WARNING

workflow:
  # Reject state changes outside the draft → in_review → approved → published
  # allow-list. Off: any state may be set.
  enforce_transitions: false
"""


def init_cmd(
    project_dir: Annotated[
        Path,
        typer.Argument(help="Directory to initialize. Defaults to current directory."),
    ] = _DEFAULT_PROJECT_DIR,
    db: DbOption = None,
    no_config: Annotated[
        bool, typer.Option("--no-config", help="Do not write contentstore.yaml.")
    ] = False,
) -> None:
    """Create (or migrate) the content store database."""
    project_dir = project_dir.resolve()
    project_dir.mkdir(parents=True, exist_ok=True)

    if not no_config:
        cfg_path = project_dir / "contentstore.yaml"
        if cfg_path.exists():
            console.print(f"  [dim]·[/] {cfg_path.name} already exists (kept)")
        else:
            cfg_path.write_text(_PROJECT_YAML, encoding="utf-8")
            console.print(f"  [green]✓[/] {cfg_path.name}")

    with open_store(db, project_dir=project_dir, must_exist=False) as (service, db_path):
        service.init()

    console.print(f"  [green]✓[/] {db_path} (schema v{MIGRATIONS[-1][0]})")
    console.print("\nNext steps:")
    console.print("  1. contentstore create --type article --by <user> --content '{...}'")
    console.print("  2. contentstore list --type article")

