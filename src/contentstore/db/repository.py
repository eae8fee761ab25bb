"""Repository for versioned content resources.

Single writer for: content_resources, content_versions, tags,
content_resource_tags. Every multi-step write runs inside one transaction so
the current-version pointer never disagrees with the version table.
Reads return denormalized Resource objects (row + current version + tags).
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import datetime, timezone

from contentstore.db.connection import transaction
from contentstore.db.migrations import run_migrations
from contentstore.db.models import (
    NewResource,
    Resource,
    ResourceChanges,
    Tag,
    Version,
    WorkflowState,
)

logger = logging.getLogger(__name__)

_RESOURCE_COLUMNS = (
    "id, type, created_by_id, fields, current_version_id, state, "
    "created_at, updated_at, deleted_at"
)
_VERSION_COLUMNS = "id, resource_id, content, created_by_id, created_at"

# Bound parameters per IN (...) query; stays under SQLITE_MAX_VARIABLE_NUMBER
# on builds that still default to 999.
_IN_CHUNK = 500


class ResourceNotFoundError(LookupError):
    """Raised by update() when the resource is missing or soft-deleted."""

    def __init__(self, resource_id: str) -> None:
        super().__init__(f"Resource not found: {resource_id}")
        self.resource_id = resource_id


class ContentResourceRepository:
    """Data access layer for resources, versions and tags.

    Wraps an open sqlite3.Connection in autocommit mode (see
    contentstore.db.connection.Database). The connection is owned by the
    caller and must be closed after use.

    Raises:
        ValueError: If *conn* lets the driver open implicit transactions
            (isolation_level is not None).
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        if conn.isolation_level is not None:
            raise ValueError(
                "ContentResourceRepository needs an autocommit connection "
                "(isolation_level=None); open it with Database.connect()"
            )
        self._conn = conn

    def init(self) -> None:
        """Apply pending schema migrations (idempotent)."""
        run_migrations(self._conn)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, new: NewResource) -> Resource:
        """Create a resource with its first version and tags, atomically.

        Steps: insert resource, insert version, point the resource at the
        version, link tags. A failure in any step rolls back all of them.

        Returns:
            The denormalized read of the new resource.
        """
        with transaction(self._conn):
            resource_id = self._insert_resource(new)
            version_id = self._insert_version(
                resource_id, new.content, new.created_by_id
            )
            self._set_current_version(resource_id, version_id)
            if new.tags:
                self._link_tags(resource_id, new.tags)
            resource = self._find_by_id(resource_id)

        logger.debug(
            "Created resource %s (type=%s, version=%s)", resource_id, new.type, version_id
        )
        return resource

    def update(
        self, resource_id: str, changes: ResourceChanges, updated_by_id: str
    ) -> Resource:
        """Apply the present parts of *changes* in one transaction.

        - fields: overwrite the field map.
        - content: append a new version by *updated_by_id* and repoint
          the current version to it.
        - tags: delete every link, then re-link the given labels.
        - state: store the new workflow state.

        Raises:
            ResourceNotFoundError: the resource does not exist or is
                soft-deleted when the transaction starts.
        """
        with transaction(self._conn):
            if self._find_by_id(resource_id) is None:
                raise ResourceNotFoundError(resource_id)

            if changes.fields is not None:
                self._conn.execute(
                    "UPDATE content_resources SET fields = ?, updated_at = ? WHERE id = ?",
                    (_dump_json(changes.fields), _now(), resource_id),
                )

            if changes.content is not None:
                version_id = self._insert_version(
                    resource_id, changes.content, updated_by_id
                )
                self._set_current_version(resource_id, version_id)

            if changes.tags is not None:
                self._conn.execute(
                    "DELETE FROM content_resource_tags WHERE resource_id = ?",
                    (resource_id,),
                )
                self._link_tags(resource_id, changes.tags)

            if changes.state is not None:
                self._conn.execute(
                    "UPDATE content_resources SET state = ?, updated_at = ? WHERE id = ?",
                    (WorkflowState(changes.state).value, _now(), resource_id),
                )

            resource = self._find_by_id(resource_id)

        logger.debug("Updated resource %s by %s", resource_id, updated_by_id)
        return resource

    def soft_delete(self, resource_id: str) -> None:
        """Mark a resource deleted. Idempotent; existence is not checked here."""
        now = _now()
        with transaction(self._conn):
            self._conn.execute(
                "UPDATE content_resources SET deleted_at = ?, updated_at = ? WHERE id = ?",
                (now, now, resource_id),
            )
        logger.debug("Soft-deleted resource %s", resource_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_id(self, resource_id: str) -> Resource | None:
        """Return the denormalized resource, or None if missing or deleted."""
        return self._find_by_id(resource_id)

    def find_by_type(self, resource_type: str) -> list[Resource]:
        """Return all non-deleted resources of *resource_type*."""
        rows = self._conn.execute(
            f"""
            SELECT {_RESOURCE_COLUMNS} FROM content_resources
            WHERE type = ? AND deleted_at IS NULL
            ORDER BY created_at, rowid
            """,
            (resource_type,),
        ).fetchall()
        return self._hydrate(rows)

    def get_version_history(self, resource_id: str) -> list[Version]:
        """Return every version of a resource, oldest first.

        Equal created_at values keep insertion order (rowid).
        """
        rows = self._conn.execute(
            f"""
            SELECT {_VERSION_COLUMNS} FROM content_versions
            WHERE resource_id = ?
            ORDER BY created_at, rowid
            """,
            (resource_id,),
        ).fetchall()
        return [_row_to_version(r) for r in rows]

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _insert_resource(self, new: NewResource) -> str:
        resource_id = str(uuid.uuid4())
        now = _now()
        self._conn.execute(
            """
            INSERT INTO content_resources
                (id, type, created_by_id, fields, state, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                resource_id,
                new.type,
                new.created_by_id,
                _dump_json(new.fields) if new.fields is not None else None,
                WorkflowState(new.state).value,
                now,
                now,
            ),
        )
        return resource_id

    def _insert_version(
        self, resource_id: str, content: dict, created_by_id: str
    ) -> str:
        version_id = str(uuid.uuid4())
        self._conn.execute(
            """
            INSERT INTO content_versions (id, resource_id, content, created_at, created_by_id)
            VALUES (?, ?, ?, ?, ?)
            """,
            (version_id, resource_id, _dump_json(content), _now(), created_by_id),
        )
        return version_id

    def _set_current_version(self, resource_id: str, version_id: str) -> None:
        self._conn.execute(
            "UPDATE content_resources SET current_version_id = ?, updated_at = ? WHERE id = ?",
            (version_id, _now(), resource_id),
        )

    def _link_tags(self, resource_id: str, labels: list[str]) -> None:
        # Repeated labels collapse to one link; first occurrence keeps its position.
        for label in dict.fromkeys(labels):
            tag_id = self._find_or_create_tag(label)
            self._conn.execute(
                """
                INSERT INTO content_resource_tags (resource_id, tag_id, created_at)
                VALUES (?, ?, ?)
                """,
                (resource_id, tag_id, _now()),
            )

    def _find_or_create_tag(self, label: str) -> str:
        """Return the tag id for *label*, inserting the tag on first use.

        The unique index on tags.label turns a concurrent insert of the same
        label into a no-op; the select then returns the surviving row.
        """
        self._conn.execute(
            """
            INSERT INTO tags (id, label, created_at) VALUES (?, ?, ?)
            ON CONFLICT(label) DO NOTHING
            """,
            (str(uuid.uuid4()), label, _now()),
        )
        row = self._conn.execute(
            "SELECT id FROM tags WHERE label = ?", (label,)
        ).fetchone()
        return row["id"]

    # ------------------------------------------------------------------
    # Denormalization
    # ------------------------------------------------------------------

    def _find_by_id(self, resource_id: str) -> Resource | None:
        row = self._conn.execute(
            f"""
            SELECT {_RESOURCE_COLUMNS} FROM content_resources
            WHERE id = ? AND deleted_at IS NULL
            """,
            (resource_id,),
        ).fetchone()
        if row is None:
            return None
        return self._hydrate([row])[0]

    def _hydrate(self, rows: list[sqlite3.Row]) -> list[Resource]:
        """Attach current versions and tags to resource rows (two queries)."""
        if not rows:
            return []

        resources = [_row_to_resource(r) for r in rows]
        by_id = {r.id: r for r in resources}

        version_ids = [r.current_version_id for r in resources if r.current_version_id]
        for chunk in _chunks(version_ids):
            placeholders = ",".join("?" * len(chunk))
            for vrow in self._conn.execute(
                f"SELECT {_VERSION_COLUMNS} FROM content_versions WHERE id IN ({placeholders})",
                chunk,
            ).fetchall():
                version = _row_to_version(vrow)
                owner = by_id.get(version.resource_id)
                if owner is not None and owner.current_version_id == version.id:
                    owner.current_version = version

        # Link order is per resource, so chunk boundaries do not affect it.
        for chunk in _chunks(list(by_id)):
            placeholders = ",".join("?" * len(chunk))
            for trow in self._conn.execute(
                f"""
                SELECT crt.resource_id, t.id, t.label, t.created_at
                FROM content_resource_tags AS crt
                JOIN tags AS t ON t.id = crt.tag_id
                WHERE crt.resource_id IN ({placeholders})
                ORDER BY crt.created_at, crt.rowid
                """,
                chunk,
            ).fetchall():
                by_id[trow["resource_id"]].tags.append(
                    Tag(id=trow["id"], label=trow["label"], created_at=trow["created_at"])
                )

        return resources


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------

def _chunks(ids: list[str]) -> list[list[str]]:
    return [ids[i : i + _IN_CHUNK] for i in range(0, len(ids), _IN_CHUNK)]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _dump_json(value: dict) -> str:
    return json.dumps(value, separators=(",", ":"))


def _row_to_resource(row: sqlite3.Row) -> Resource:
    return Resource(
        id=row["id"],
        type=row["type"],
        created_by_id=row["created_by_id"],
        fields=json.loads(row["fields"]) if row["fields"] is not None else None,
        current_version_id=row["current_version_id"],
        state=WorkflowState(row["state"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        deleted_at=row["deleted_at"],
    )


def _row_to_version(row: sqlite3.Row) -> Version:
    return Version(
        id=row["id"],
        resource_id=row["resource_id"],
        content=json.loads(row["content"]),
        created_by_id=row["created_by_id"],
        created_at=row["created_at"],
    )
