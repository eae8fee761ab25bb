"""Content store database layer."""

from contentstore.db.connection import Database, transaction
from contentstore.db.migrations import MIGRATIONS, run_migrations
from contentstore.db.repository import ContentResourceRepository, ResourceNotFoundError
from contentstore.db.schema import initialize

__all__ = [
    "Database",
    "transaction",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "ContentResourceRepository",
    "ResourceNotFoundError",
]
