"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from contentstore.db.connection import Database
from contentstore.db.repository import ContentResourceRepository
from contentstore.db.schema import initialize
from contentstore.service import ContentResourceService


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".contentstore.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db):
    return ContentResourceRepository(tmp_db)


@pytest.fixture
def service(repo):
    return ContentResourceService(repo)
