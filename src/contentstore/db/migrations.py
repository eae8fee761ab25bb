"""Forward-only migration runner for the content store schema."""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS content_resources (
    id                  TEXT PRIMARY KEY NOT NULL,
    type                TEXT NOT NULL,
    created_by_id       TEXT NOT NULL,
    fields              TEXT,
    current_version_id  TEXT,
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL,
    deleted_at          TEXT
);

CREATE TABLE IF NOT EXISTS content_versions (
    id              TEXT PRIMARY KEY NOT NULL,
    resource_id     TEXT NOT NULL REFERENCES content_resources(id),
    content         TEXT NOT NULL,
    created_at      TEXT NOT NULL,
    created_by_id   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS tags (
    id          TEXT PRIMARY KEY NOT NULL,
    label       TEXT NOT NULL,
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS content_resource_tags (
    resource_id TEXT NOT NULL REFERENCES content_resources(id),
    tag_id      TEXT NOT NULL REFERENCES tags(id),
    created_at  TEXT NOT NULL,
    PRIMARY KEY (resource_id, tag_id)
);
"""

# Workflow state column, unique tag labels, lookup indexes.
# Duplicate labels from v1 databases are folded onto the oldest tag row
# before the unique index is created.
_V2_SQL = """
ALTER TABLE content_resources ADD COLUMN state TEXT NOT NULL DEFAULT 'draft'
    CHECK (state IN ('draft', 'in_review', 'approved', 'published', 'archived'));

UPDATE OR IGNORE content_resource_tags
SET tag_id = (
    SELECT keep.id FROM tags AS keep
    JOIN tags AS cur ON cur.label = keep.label
    WHERE cur.id = content_resource_tags.tag_id
    ORDER BY keep.rowid
    LIMIT 1
);

DELETE FROM content_resource_tags
WHERE tag_id NOT IN (
    SELECT id FROM tags WHERE rowid IN (SELECT MIN(rowid) FROM tags GROUP BY label)
);

DELETE FROM tags
WHERE rowid NOT IN (SELECT MIN(rowid) FROM tags GROUP BY label);

CREATE UNIQUE INDEX IF NOT EXISTS idx_tags_label ON tags(label);
CREATE INDEX IF NOT EXISTS idx_content_resources_type ON content_resources(type);
CREATE INDEX IF NOT EXISTS idx_content_versions_resource
    ON content_versions(resource_id, created_at);
CREATE INDEX IF NOT EXISTS idx_content_resource_tags_tag ON content_resource_tags(tag_id);
"""

# Append-only. Each entry: (version: int, sql: str).
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
    (2, _V2_SQL),
]


def current_version(conn: sqlite3.Connection) -> int:
    """Return the highest applied migration version (0 for a fresh database)."""
    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    return row[0] if row[0] is not None else 0


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version. Each migration and
    its schema_version row commit together; a failing migration is rolled back
    and the error propagates.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    if conn.in_transaction:
        conn.commit()

    current = current_version(conn)

    for version, sql in MIGRATIONS:
        if version <= current:
            continue
        script = (
            "BEGIN;\n"
            f"{sql}\n"
            f"INSERT INTO schema_version (version) VALUES ({int(version)});\n"
            "COMMIT;"
        )
        try:
            conn.executescript(script)
        except sqlite3.Error:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            logger.error("Migration %d failed", version)
            raise
        logger.info("Applied migration %d", version)
