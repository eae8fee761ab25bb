"""Database schema initialization."""

from __future__ import annotations

import sqlite3

# Tables managed by the migration runner, in foreign-key order.
TABLES: tuple[str, ...] = (
    "content_resources",
    "content_versions",
    "tags",
    "content_resource_tags",
)


def initialize(conn: sqlite3.Connection) -> None:
    """Initialize the database schema via the migration runner (idempotent)."""
    from contentstore.db.migrations import run_migrations

    run_migrations(conn)
