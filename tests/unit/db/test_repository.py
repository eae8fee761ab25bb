"""Tests for ContentResourceRepository."""

from __future__ import annotations

import sqlite3

import pytest

from contentstore.db.models import NewResource, Resource, ResourceChanges, WorkflowState
from contentstore.db.repository import ContentResourceRepository, ResourceNotFoundError


def _new(
    type="article",
    by="user-1",
    content=None,
    fields=None,
    tags=None,
    state=WorkflowState.DRAFT,
):
    return NewResource(
        type=type,
        created_by_id=by,
        content=content if content is not None else {"title": "Test Article"},
        fields=fields,
        tags=tags,
        state=state,
    )


def _count(conn, table: str) -> int:
    return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


def _tag_rows(conn, label: str) -> int:
    return conn.execute("SELECT COUNT(*) FROM tags WHERE label = ?", (label,)).fetchone()[0]


# ------------------------------------------------------------------
# create
# ------------------------------------------------------------------

def test_create_with_version_and_tags(repo):
    resource = repo.create(
        _new(
            fields={"slug": "test-article"},
            content={"title": "Test Article", "body": "Test content"},
            tags=["test", "article"],
        )
    )
    assert isinstance(resource, Resource)
    assert resource.id
    assert resource.type == "article"
    assert resource.created_by_id == "user-1"
    assert resource.fields == {"slug": "test-article"}
    assert resource.state is WorkflowState.DRAFT
    assert resource.deleted_at is None
    assert resource.current_version_id is not None
    assert resource.current_version.id == resource.current_version_id
    assert resource.current_version.resource_id == resource.id
    assert resource.current_version.content == {"title": "Test Article", "body": "Test content"}
    assert resource.current_version.created_by_id == "user-1"
    assert resource.tag_labels == ["test", "article"]


def test_create_without_optional_fields(repo):
    resource = repo.create(_new(content={"title": "Minimal"}))
    assert resource.fields is None
    assert resource.tags == []
    assert resource.current_version.content == {"title": "Minimal"}


def test_create_with_initial_state(repo):
    resource = repo.create(_new(state=WorkflowState.IN_REVIEW))
    assert resource.state is WorkflowState.IN_REVIEW


def test_create_with_empty_fields_stores_empty_map(repo):
    resource = repo.create(_new(fields={}))
    assert resource.fields == {}


def test_create_scenario(repo):
    resource = repo.create(_new(by="u1", content={"title": "T"}, tags=["x", "y"]))
    assert resource.id is not None
    assert resource.current_version_id is not None
    assert resource.fields is None
    assert [t.label for t in resource.tags] == ["x", "y"]


def test_create_duplicate_labels_link_once(repo, tmp_db):
    resource = repo.create(_new(tags=["a", "b", "a"]))
    assert resource.tag_labels == ["a", "b"]
    assert _count(tmp_db, "content_resource_tags") == 2


def test_create_rolls_back_when_pointer_update_fails(repo, tmp_db, monkeypatch):
    """Failure after the version insert leaves no resource and no version."""
    def fail(*args, **kwargs):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(repo, "_set_current_version", fail)
    with pytest.raises(sqlite3.OperationalError):
        repo.create(_new(tags=["x"]))

    assert not tmp_db.in_transaction
    assert _count(tmp_db, "content_resources") == 0
    assert _count(tmp_db, "content_versions") == 0
    assert _count(tmp_db, "content_resource_tags") == 0
    assert _count(tmp_db, "tags") == 0


def test_create_rolls_back_when_tag_link_fails(repo, tmp_db):
    """A storage-level failure while linking tags undoes the whole create."""
    tmp_db.execute(
        """
        CREATE TRIGGER reject_link BEFORE INSERT ON content_resource_tags
        BEGIN SELECT RAISE(ABORT, 'link rejected'); END
        """
    )
    with pytest.raises(sqlite3.IntegrityError, match="link rejected"):
        repo.create(_new(tags=["x"]))

    assert _count(tmp_db, "content_resources") == 0
    assert _count(tmp_db, "content_versions") == 0
    assert _count(tmp_db, "tags") == 0


# ------------------------------------------------------------------
# find_by_id / find_by_type
# ------------------------------------------------------------------

def test_find_by_id_returns_denormalized_resource(repo):
    created = repo.create(_new(tags=["news"]))
    found = repo.find_by_id(created.id)
    assert found is not None
    assert found.id == created.id
    assert found.current_version.content == {"title": "Test Article"}
    assert [(t.id, t.label) for t in found.tags] == [(created.tags[0].id, "news")]


def test_find_by_id_not_found(repo):
    assert repo.find_by_id("nonexistent") is None


def test_find_by_id_excludes_soft_deleted(repo):
    resource = repo.create(_new(content={"title": "To Delete"}))
    repo.soft_delete(resource.id)
    assert repo.find_by_id(resource.id) is None


@pytest.fixture
def mixed(repo):
    a1 = repo.create(_new(content={"title": "Article 1"}, tags=["shared"]))
    a2 = repo.create(_new(content={"title": "Article 2"}))
    p1 = repo.create(_new(type="page", content={"title": "Page 1"}))
    return a1, a2, p1


def test_find_by_type(repo, mixed):
    articles = repo.find_by_type("article")
    assert len(articles) == 2
    assert all(a.type == "article" for a in articles)
    titles = {a.current_version.content["title"] for a in articles}
    assert titles == {"Article 1", "Article 2"}


def test_find_by_type_embeds_tags_per_resource(repo, mixed):
    a1, a2, _ = mixed
    by_id = {r.id: r for r in repo.find_by_type("article")}
    assert by_id[a1.id].tag_labels == ["shared"]
    assert by_id[a2.id].tag_labels == []


def test_find_by_type_excludes_soft_deleted(repo, mixed):
    articles = repo.find_by_type("article")
    repo.soft_delete(articles[0].id)
    remaining = repo.find_by_type("article")
    assert len(remaining) == 1
    assert remaining[0].id == articles[1].id


def test_find_by_type_unknown_type(repo, mixed):
    assert repo.find_by_type("video") == []


# ------------------------------------------------------------------
# update
# ------------------------------------------------------------------

@pytest.fixture
def original(repo):
    return repo.create(
        _new(fields={"slug": "original"}, content={"title": "Original"}, tags=["original"])
    )


def test_update_fields_only(repo, original):
    updated = repo.update(original.id, ResourceChanges(fields={"slug": "updated"}), "user-1")
    assert updated.fields == {"slug": "updated"}
    assert updated.current_version_id == original.current_version_id
    assert updated.current_version.content == {"title": "Original"}
    assert updated.tag_labels == ["original"]
    assert updated.updated_at >= original.updated_at
    assert len(repo.get_version_history(original.id)) == 1


def test_update_content_appends_version(repo, original):
    updated = repo.update(original.id, ResourceChanges(content={"title": "Updated"}), "user-2")
    assert updated.current_version.content == {"title": "Updated"}
    assert updated.current_version.created_by_id == "user-2"
    assert updated.current_version_id != original.current_version_id
    assert updated.fields == {"slug": "original"}

    history = repo.get_version_history(original.id)
    assert len(history) == 2
    assert history[0].id == original.current_version_id
    assert history[0].content == {"title": "Original"}


def test_update_replaces_tags(repo, tmp_db):
    resource = repo.create(_new(tags=["a"]))
    updated = repo.update(resource.id, ResourceChanges(tags=["b"]), "user-1")

    assert updated.tag_labels == ["b"]
    links = tmp_db.execute(
        """
        SELECT t.label FROM content_resource_tags crt JOIN tags t ON t.id = crt.tag_id
        WHERE crt.resource_id = ?
        """,
        (resource.id,),
    ).fetchall()
    assert [r["label"] for r in links] == ["b"]
    # the old tag row survives as an orphan
    assert _tag_rows(tmp_db, "a") == 1


def test_update_with_empty_tag_list_removes_all_links(repo, original, tmp_db):
    updated = repo.update(original.id, ResourceChanges(tags=[]), "user-1")
    assert updated.tags == []
    assert _count(tmp_db, "content_resource_tags") == 0
    assert _tag_rows(tmp_db, "original") == 1


def test_update_retagging_same_label_reuses_tag(repo, original):
    updated = repo.update(original.id, ResourceChanges(tags=["original", "new"]), "user-1")
    assert updated.tag_labels == ["original", "new"]
    assert updated.tags[0].id == original.tags[0].id


def test_update_state(repo, original):
    updated = repo.update(
        original.id, ResourceChanges(state=WorkflowState.PUBLISHED), "user-1"
    )
    assert updated.state is WorkflowState.PUBLISHED
    assert updated.current_version_id == original.current_version_id


def test_update_state_accepts_any_value(repo, original):
    """No transition guard at the storage layer: draft → archived → published."""
    repo.update(original.id, ResourceChanges(state=WorkflowState.ARCHIVED), "user-1")
    updated = repo.update(original.id, ResourceChanges(state=WorkflowState.PUBLISHED), "user-1")
    assert updated.state is WorkflowState.PUBLISHED


def test_update_all_parts_at_once(repo, original):
    updated = repo.update(
        original.id,
        ResourceChanges(
            fields={"slug": "all"},
            content={"title": "All"},
            tags=["z"],
            state=WorkflowState.IN_REVIEW,
        ),
        "user-3",
    )
    assert updated.fields == {"slug": "all"}
    assert updated.current_version.content == {"title": "All"}
    assert updated.tag_labels == ["z"]
    assert updated.state is WorkflowState.IN_REVIEW


def test_update_nonexistent_raises(repo):
    with pytest.raises(ResourceNotFoundError, match="nonexistent"):
        repo.update("nonexistent", ResourceChanges(fields={}), "user-1")


def test_update_soft_deleted_raises(repo, original, tmp_db):
    repo.soft_delete(original.id)
    with pytest.raises(ResourceNotFoundError):
        repo.update(original.id, ResourceChanges(content={"title": "ghost"}), "user-1")
    assert _count(tmp_db, "content_versions") == 1


def test_update_rolls_back_when_pointer_update_fails(repo, original, tmp_db, monkeypatch):
    """New version is inserted, repoint fails: nothing from the update persists."""
    def fail(*args, **kwargs):
        raise sqlite3.OperationalError("database disk image is malformed")

    monkeypatch.setattr(repo, "_set_current_version", fail)
    with pytest.raises(sqlite3.OperationalError):
        repo.update(
            original.id,
            ResourceChanges(fields={"slug": "lost"}, content={"title": "lost"}),
            "user-1",
        )

    monkeypatch.undo()
    after = repo.find_by_id(original.id)
    assert after.fields == {"slug": "original"}
    assert after.current_version_id == original.current_version_id
    assert after.updated_at == original.updated_at
    assert _count(tmp_db, "content_versions") == 1


def test_update_rolls_back_tag_delete_when_relink_fails(repo, original, tmp_db):
    tmp_db.execute(
        """
        CREATE TRIGGER reject_link BEFORE INSERT ON content_resource_tags
        BEGIN SELECT RAISE(ABORT, 'link rejected'); END
        """
    )
    with pytest.raises(sqlite3.IntegrityError):
        repo.update(original.id, ResourceChanges(tags=["replacement"]), "user-1")

    assert repo.find_by_id(original.id).tag_labels == ["original"]


# ------------------------------------------------------------------
# soft_delete
# ------------------------------------------------------------------

def test_soft_delete_keeps_row_and_history(repo, original, tmp_db):
    repo.soft_delete(original.id)
    row = tmp_db.execute(
        "SELECT deleted_at, updated_at FROM content_resources WHERE id = ?", (original.id,)
    ).fetchone()
    assert row["deleted_at"] is not None
    assert row["updated_at"] == row["deleted_at"]
    assert len(repo.get_version_history(original.id)) == 1
    assert _count(tmp_db, "content_resource_tags") == 1


def test_soft_delete_idempotent(repo, original):
    repo.soft_delete(original.id)
    repo.soft_delete(original.id)
    assert repo.find_by_id(original.id) is None


def test_soft_delete_unknown_id_is_noop(repo):
    repo.soft_delete("nonexistent")


# ------------------------------------------------------------------
# get_version_history
# ------------------------------------------------------------------

def test_version_history_in_chronological_order(repo):
    resource = repo.create(_new(content={"version": 1}))
    repo.update(resource.id, ResourceChanges(content={"version": 2}), "user-1")
    repo.update(resource.id, ResourceChanges(content={"version": 3}), "user-1")

    history = repo.get_version_history(resource.id)
    assert [v.content["version"] for v in history] == [1, 2, 3]


@pytest.mark.parametrize("updates", [1, 5])
def test_version_history_append_only(repo, updates):
    resource = repo.create(_new(content={"n": 0}))
    last = resource
    for n in range(1, updates + 1):
        last = repo.update(resource.id, ResourceChanges(content={"n": n}), "user-1")

    history = repo.get_version_history(resource.id)
    assert len(history) == updates + 1
    assert history[-1].id == last.current_version_id
    assert [v.created_at for v in history] == sorted(v.created_at for v in history)


def test_version_history_ties_keep_insertion_order(repo, monkeypatch):
    """Identical timestamps fall back to insertion order."""
    import contentstore.db.repository as mod

    monkeypatch.setattr(mod, "_now", lambda: "2026-01-01T00:00:00.000000+00:00")
    resource = repo.create(_new(content={"n": 0}))
    repo.update(resource.id, ResourceChanges(content={"n": 1}), "user-1")
    repo.update(resource.id, ResourceChanges(content={"n": 2}), "user-1")

    assert [v.content["n"] for v in repo.get_version_history(resource.id)] == [0, 1, 2]


def test_version_history_unknown_resource_empty(repo):
    assert repo.get_version_history("nonexistent") == []


# ------------------------------------------------------------------
# tags
# ------------------------------------------------------------------

def test_shared_tag_created_once(repo, tmp_db):
    r1 = repo.create(_new(tags=["shared"]))
    r2 = repo.create(_new(tags=["shared"]))
    assert _tag_rows(tmp_db, "shared") == 1
    assert _count(tmp_db, "content_resource_tags") == 2
    assert r1.tags[0].id == r2.tags[0].id


def test_tag_lookup_is_case_sensitive(repo, tmp_db):
    repo.create(_new(tags=["News", "news"]))
    assert _count(tmp_db, "tags") == 2


# ------------------------------------------------------------------
# init
# ------------------------------------------------------------------

def test_init_on_fresh_connection(tmp_path):
    from contentstore.db.connection import Database

    conn = Database(tmp_path / "fresh.db").connect()
    repo = ContentResourceRepository(conn)
    repo.init()
    repo.init()
    resource = repo.create(_new())
    assert repo.find_by_id(resource.id) is not None
    conn.close()


def test_rejects_connection_with_implicit_transactions(tmp_path):
    conn = sqlite3.connect(tmp_path / "legacy.db")
    try:
        with pytest.raises(ValueError, match="autocommit"):
            ContentResourceRepository(conn)
    finally:
        conn.close()


# ------------------------------------------------------------------
# soft_delete durability
# ------------------------------------------------------------------

def test_soft_delete_commits_and_later_writes_persist(tmp_path):
    from contentstore.db.connection import Database

    path = tmp_path / "durable.db"
    conn = Database(path).connect()
    repo = ContentResourceRepository(conn)
    repo.init()
    first = repo.create(_new())
    repo.soft_delete(first.id)
    assert not conn.in_transaction
    second = repo.create(_new())
    assert not conn.in_transaction
    conn.close()

    reopened = Database(path).connect()
    try:
        rows = {
            r["id"]: r["deleted_at"]
            for r in reopened.execute("SELECT id, deleted_at FROM content_resources")
        }
    finally:
        reopened.close()
    assert rows[first.id] is not None
    assert rows[second.id] is None


def test_soft_delete_joins_caller_transaction(repo, original, tmp_db):
    from contentstore.db.connection import transaction

    with pytest.raises(RuntimeError):
        with transaction(tmp_db):
            repo.soft_delete(original.id)
            raise RuntimeError("abort")
    assert repo.find_by_id(original.id) is not None


# ------------------------------------------------------------------
# hydration across IN (...) chunks
# ------------------------------------------------------------------

def test_find_by_type_hydrates_across_chunks(repo, monkeypatch):
    import contentstore.db.repository as mod

    monkeypatch.setattr(mod, "_IN_CHUNK", 2)
    created = [
        repo.create(_new(content={"n": n}, tags=[f"t{n}", "all"])) for n in range(5)
    ]

    found = repo.find_by_type("article")
    assert [r.id for r in found] == [r.id for r in created]
    assert [r.current_version.content["n"] for r in found] == list(range(5))
    assert [r.tag_labels for r in found] == [[f"t{n}", "all"] for n in range(5)]
