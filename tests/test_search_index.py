"""Tests for search/index.py: FTS5 index kept in step with the todo files."""

import pytest

from todo_mcp.errors import ValidationError
from todo_mcp.search.index import SearchIndex, build_filters, build_match, sanitize_query


# ---------------------------------------------------------------------------
# Query helpers
# ---------------------------------------------------------------------------

class TestQueryBuilding:
    def test_sanitize_strips_operators(self):
        assert sanitize_query("foo/bar?") == "foo bar"
        assert sanitize_query("a AND (b OR c*)") == "a AND b OR c"
        assert sanitize_query("  spaced\tout\n") == "spaced out"

    def test_sanitize_unwraps_slashes(self):
        assert sanitize_query("/regex-ish/") == "regex-ish"

    def test_sanitize_keeps_dash_and_underscore(self):
        assert sanitize_query("snake_case kebab-case") == "snake_case kebab-case"

    def test_match_or_terms(self):
        assert build_match("auth token") == '"auth" OR "token"'

    def test_match_phrase(self):
        assert build_match('"exact words"') == '"exact words"'

    def test_match_nothing_left(self):
        assert build_match("???") is None
        assert build_match('"  "') is None

    def test_filters(self):
        clauses, params = build_filters({"status": "blocked", "date_from": "2026-01-01", "date_to": "2026-01-31"})
        assert clauses == ["status = ?", "started >= ? AND started <= ?"]
        assert params == ["blocked", "2026-01-01T00:00:00", "2026-01-31T23:59:59"]

    def test_unknown_filter(self):
        with pytest.raises(ValidationError):
            build_filters({"owner": "me"})

    def test_bad_date(self):
        with pytest.raises(ValidationError, match="date_from"):
            build_filters({"date_from": "01/02/2026"})


# ---------------------------------------------------------------------------
# Index behaviour
# ---------------------------------------------------------------------------

class TestSearch:
    def test_finds_task_title(self, indexed):
        manager, index = indexed
        manager.create("Implement OAuth login")
        manager.create("Refactor billing")
        results = index.search("oauth")
        assert [r["id"] for r in results] == ["implement-oauth-login"]
        assert results[0]["task"] == "Implement OAuth login"
        assert results[0]["score"] > 0

    def test_section_content_and_snippet(self, indexed):
        manager, index = indexed
        todo = manager.create("Research caching")
        manager.update(todo.id, section="findings", operation="append", content="Redis eviction policies compared")
        results = index.search("eviction")
        assert [r["id"] for r in results] == [todo.id]
        assert "<mark>" in results[0]["snippet"]

    def test_title_ranks_above_body(self, indexed):
        manager, index = indexed
        in_title = manager.create("Database migration")
        in_body = manager.create("Unrelated")
        manager.update(in_body.id, section="scratchpad", operation="append", content="mentions migration once")
        ids = [r["id"] for r in index.search("migration")]
        assert ids == [in_title.id, in_body.id]

    def test_stemming(self, indexed):
        manager, index = indexed
        manager.create("Running the tests")
        assert [r["id"] for r in index.search("run")] == ["running-the-tests"]

    def test_phrase(self, indexed):
        manager, index = indexed
        manager.create("red green refactor")
        manager.create("green red")
        assert [r["id"] for r in index.search('"red green"')] == ["red-green-refactor"]

    def test_special_characters_sanitized(self, indexed):
        manager, index = indexed
        manager.create("foo bar baz")
        assert index.search("foo/bar?") == index.search("foo bar")
        assert index.search("!!!") == []

    def test_empty_query_with_filter(self, indexed):
        manager, index = indexed
        a = manager.create("A")
        manager.create("B")
        manager.update(a.id, metadata={"status": "blocked"})
        assert [r["id"] for r in index.search("", filters={"status": "blocked"})] == [a.id]

    def test_date_range(self, indexed):
        manager, index = indexed
        old = manager.create("Old work")
        manager.create("New work")
        manager.update(old.id, metadata={"started": "2024-06-15 12:00:00"})
        results = index.search("work", filters={"date_from": "2024-06-01", "date_to": "2024-06-30"})
        assert [r["id"] for r in results] == [old.id]

    def test_limit(self, indexed):
        manager, index = indexed
        for n in range(5):
            manager.create(f"Widget {n}")
        assert len(index.search("widget", limit=3)) == 3
        assert index.search("widget", limit=0) == []

    def test_update_replaces_row(self, indexed):
        manager, index = indexed
        todo = manager.create("Alpha")
        manager.update(todo.id, metadata={"priority": "high"})
        assert index.count() == 1
        assert index.search("", filters={"priority": "high"})[0]["id"] == todo.id


class TestLifecycle:
    def test_reindex_picks_up_existing_files(self, manager):
        manager.create("Already here")
        manager.create("Also here")
        index = SearchIndex(manager.paths.index_dir, manager.paths.todos_dir).open()
        try:
            assert index.count() == 2
            assert index.contains("already-here")
        finally:
            index.close()

    def test_reindex_skips_broken_files(self, manager):
        manager.create("Good")
        (manager.paths.todos_dir / "broken.md").write_text("not a todo")
        with SearchIndex(manager.paths.index_dir, manager.paths.todos_dir) as index:
            assert index.count() == 1

    def test_corrupt_database_recreated(self, manager):
        manager.create("Survivor")
        index_dir = manager.paths.index_dir
        index_dir.mkdir(parents=True)
        (index_dir / "index.sqlite3").write_bytes(b"this is not sqlite" * 100)
        with SearchIndex(index_dir, manager.paths.todos_dir) as index:
            assert index.count() == 1
            assert [r["id"] for r in index.search("survivor")] == ["survivor"]

    def test_upsert_and_delete(self, indexed):
        manager, index = indexed
        todo = manager.create("Temporary")
        assert index.contains(todo.id)
        index.delete(todo.id)
        assert not index.contains(todo.id)
        assert index.search("temporary") == []

    def test_missing_todos_dir(self, tmp_path):
        with SearchIndex(tmp_path / "idx", tmp_path / "nothing") as index:
            assert index.count() == 0
