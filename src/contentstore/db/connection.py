"""SQLite connection layer and transaction scope."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path


class Database:
    """Per-project SQLite database holding the content store tables."""

    def __init__(self, db_path: Path | str, busy_timeout: float = 5.0) -> None:
        """Store the database path. Call connect() to open the connection.

        Args:
            db_path: Path to the SQLite database file (created if missing).
            busy_timeout: Seconds a writer waits for a competing lock.
        """
        self.db_path = Path(db_path)
        self.busy_timeout = busy_timeout
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Open a connection in autocommit mode and return it.

        Transactions are opened explicitly with transaction(); the driver's
        implicit BEGIN is disabled so every multi-step write controls its own
        scope.
        """
        conn = sqlite3.connect(
            self.db_path, timeout=self.busy_timeout, isolation_level=None
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    def __enter__(self) -> sqlite3.Connection:
        """Open the database and return the connection (context manager support)."""
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *args: object) -> None:
        """Close the connection when leaving the context manager."""
        if self._conn:
            self._conn.close()
            self._conn = None


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run the enclosed statements as one write transaction.

    Opens with BEGIN IMMEDIATE so the write lock is taken up front. Commits on
    normal exit, rolls back on any exception and re-raises it. Joins an
    already open transaction instead of nesting.
    """
    if conn.in_transaction:
        yield conn
        return

    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
        conn.execute("COMMIT")
    except BaseException:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
