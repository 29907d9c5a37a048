"""
Tests for tools/todo_tools.py.

Uses a real TodoService over a temporary project root.
Exercises the MCP tool functions directly (bypasses transport).
"""

import json

import pytest

from todo_mcp.server import TodoService
from todo_mcp.tools import register_todo_tools


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class _FakeMCP:
    """Minimal fake to capture tool registrations."""

    def __init__(self):
        self._tools = {}

    def tool(self, *args, **kwargs):
        """Decorator that records functions by name."""
        def decorator(fn):
            self._tools[fn.__name__] = fn
            return fn
        return decorator

    def get(self, name: str):
        return self._tools[name]


def _call(mcp, name, **kwargs):
    return json.loads(mcp.get(name)(**kwargs))


@pytest.fixture
def setup(root):
    service = TodoService(root)
    service.start()
    mcp = _FakeMCP()
    register_todo_tools(mcp, service)
    yield mcp, service
    service.close()


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

def test_all_tools_registered(setup):
    mcp, _ = setup
    assert set(mcp._tools) == {
        "todo_create",
        "todo_read",
        "todo_update",
        "todo_list",
        "todo_archive",
        "todo_hierarchy",
        "todo_search",
        "todo_link",
        "todo_migrate",
    }


# ---------------------------------------------------------------------------
# todo_create
# ---------------------------------------------------------------------------

class TestCreate:
    def test_returns_todo(self, setup):
        mcp, service = setup
        result = _call(mcp, "todo_create", task="Implement authentication", priority="high")
        assert result["id"] == "implement-authentication"
        assert result["priority"] == "high"
        assert result["status"] == "in_progress"
        assert result["completed"] == ""
        assert result["sections"][0] == "findings"
        assert result["path"].endswith("implement-authentication.md")
        assert "hint" not in result

    def test_phase_hint(self, setup):
        mcp, _ = setup
        _call(mcp, "todo_create", task="Phase 1: Design")
        result = _call(mcp, "todo_create", task="Phase 2: Build")
        assert result["hint"]["suggested_type"] == "phase"
        assert result["hint"]["similar"] == ["phase-1-design"]

    def test_no_hint_with_parent(self, setup):
        mcp, _ = setup
        parent = _call(mcp, "todo_create", task="Epic")
        result = _call(mcp, "todo_create", task="Phase 1: Design", type="phase", parent_id=parent["id"])
        assert "hint" not in result
        assert result["parent_id"] == "epic"

    def test_template(self, setup):
        mcp, service = setup
        templates = service.manager.paths.templates_dir
        templates.mkdir(parents=True)
        (templates / "bugfix.md").write_text(
            "---\nname: bugfix\n---\n## Reproduction\n\n## Fix\n", encoding="utf-8"
        )
        result = _call(mcp, "todo_create", task="Crash on save", template="bugfix")
        assert result["sections"] == ["reproduction", "fix"]

    def test_missing_template(self, setup):
        mcp, _ = setup
        result = _call(mcp, "todo_create", task="X", template="nope")
        assert result == {"error": "template 'nope' not found", "kind": "not_found"}

    def test_bad_template_name(self, setup):
        mcp, _ = setup
        assert _call(mcp, "todo_create", task="X", template="../escape")["kind"] == "validation"

    def test_bad_priority(self, setup):
        mcp, _ = setup
        assert _call(mcp, "todo_create", task="X", priority="urgent")["kind"] == "validation"


# ---------------------------------------------------------------------------
# todo_read / todo_update / todo_list
# ---------------------------------------------------------------------------

class TestReadUpdate:
    def test_read_sections(self, setup):
        mcp, _ = setup
        created = _call(mcp, "todo_create", task="Readable")
        _call(mcp, "todo_update", todo_id=created["id"], section="checklist", operation="append",
              content="- [ ] one\n- [x] two")
        result = _call(mcp, "todo_read", todo_id=created["id"])
        checklist = next(s for s in result["sections"] if s["key"] == "checklist")
        assert checklist["metrics"]["completed"] == 1
        assert [i["status"] for i in checklist["items"]] == ["pending", "completed"]

    def test_read_missing(self, setup):
        mcp, _ = setup
        assert _call(mcp, "todo_read", todo_id="ghost") == {
            "error": "todo 'ghost' not found",
            "kind": "not_found",
        }

    def test_toggle(self, setup):
        mcp, service = setup
        created = _call(mcp, "todo_create", task="Toggle")
        _call(mcp, "todo_update", todo_id=created["id"], section="checklist", operation="append",
              content="- [ ] write docs")
        _call(mcp, "todo_update", todo_id=created["id"], section="checklist", operation="toggle",
              content="write docs")
        assert service.manager.read(created["id"]).content_of("checklist") == "- [>] write docs"

    def test_metadata(self, setup):
        mcp, _ = setup
        created = _call(mcp, "todo_create", task="Finish me")
        result = _call(mcp, "todo_update", todo_id=created["id"], metadata={"status": "completed"})
        assert result["status"] == "completed"
        assert result["completed"]

    def test_unknown_section(self, setup):
        mcp, _ = setup
        created = _call(mcp, "todo_create", task="Bad section")
        result = _call(mcp, "todo_update", todo_id=created["id"], section="bogus", operation="append",
                       content="x")
        assert result["kind"] == "validation"

    def test_list(self, setup):
        mcp, _ = setup
        _call(mcp, "todo_create", task="One", priority="high")
        _call(mcp, "todo_create", task="Two", priority="low")
        assert _call(mcp, "todo_list")["count"] == 2
        high = _call(mcp, "todo_list", priority="high")
        assert [t["id"] for t in high["todos"]] == ["one"]


# ---------------------------------------------------------------------------
# todo_archive / todo_hierarchy / todo_link
# ---------------------------------------------------------------------------

class TestArchiveHierarchy:
    def test_archive_single(self, setup):
        mcp, _ = setup
        created = _call(mcp, "todo_create", task="Archive me")
        assert _call(mcp, "todo_archive", todo_id=created["id"]) == {"archived": ["archive-me"]}
        assert _call(mcp, "todo_list")["count"] == 0

    def test_archive_blocked_by_children(self, setup):
        mcp, _ = setup
        parent = _call(mcp, "todo_create", task="Parent")
        _call(mcp, "todo_create", task="Child", parent_id=parent["id"])
        result = _call(mcp, "todo_archive", todo_id=parent["id"])
        assert result["kind"] == "validation"
        assert "active" in result["error"]
        assert _call(mcp, "todo_archive", todo_id=parent["id"], cascade=True) == {
            "archived": ["child", "parent"]
        }

    def test_bulk(self, setup):
        mcp, _ = setup
        _call(mcp, "todo_create", task="A")
        result = _call(mcp, "todo_archive", todo_ids=["a", "ghost"])
        assert result["archived"] == 1
        assert result["failed"] == 1

    def test_archive_needs_id(self, setup):
        mcp, _ = setup
        assert _call(mcp, "todo_archive")["kind"] == "validation"

    def test_hierarchy(self, setup):
        mcp, _ = setup
        parent = _call(mcp, "todo_create", task="Epic")
        phase = _call(mcp, "todo_create", task="Phase 1: Plan", type="phase", parent_id=parent["id"])
        _call(mcp, "todo_create", task="Lost phase", type="phase")

        full = _call(mcp, "todo_hierarchy")
        epic = next(r for r in full["roots"] if r["id"] == "epic")
        assert [c["id"] for c in epic["children"]] == [phase["id"]]
        assert "phase 'lost-phase' should have a parent_id" in full["issues"]
        assert full["stats"]["max_depth"] == 2

        sub = _call(mcp, "todo_hierarchy", todo_id=phase["id"])
        assert sub["tree"]["id"] == phase["id"]
        assert sub["path"] == ["epic", phase["id"]]

    def test_hierarchy_missing(self, setup):
        mcp, _ = setup
        assert _call(mcp, "todo_hierarchy", todo_id="ghost")["kind"] == "not_found"

    def test_link_cycle(self, setup):
        mcp, _ = setup
        _call(mcp, "todo_create", task="A")
        _call(mcp, "todo_create", task="B")
        assert _call(mcp, "todo_link", parent_id="a", child_id="b")["parent_id"] == "a"
        result = _call(mcp, "todo_link", parent_id="b", child_id="a")
        assert result["kind"] == "validation"
        assert "cycle" in result["error"]


# ---------------------------------------------------------------------------
# todo_search / todo_migrate
# ---------------------------------------------------------------------------

class TestSearchMigrate:
    def test_search(self, setup):
        mcp, _ = setup
        created = _call(mcp, "todo_create", task="Tune the query planner")
        result = _call(mcp, "todo_search", query="planner")
        assert result["count"] == 1
        assert result["results"][0]["id"] == created["id"]

    def test_search_bad_date(self, setup):
        mcp, _ = setup
        assert _call(mcp, "todo_search", query="x", date_from="yesterday")["kind"] == "validation"

    def test_search_disabled(self, root):
        service = TodoService(root, search_enabled=False)
        service.start()
        mcp = _FakeMCP()
        register_todo_tools(mcp, service)
        assert _call(mcp, "todo_search", query="x") == {
            "error": "search is disabled",
            "kind": "index_unavailable",
        }

    def test_migrate_and_rollback(self, setup):
        mcp, service = setup
        todos_dir = service.manager.paths.todos_dir
        todos_dir.mkdir(parents=True, exist_ok=True)
        (todos_dir / "legacy.md").write_text(
            "---\ntodo_id: legacy\nstarted: '2025-04-01 10:00:00'\n---\n\n# Task: Legacy\n",
            encoding="utf-8",
        )
        result = _call(mcp, "todo_migrate")
        assert result["migrated"] == 1
        assert (todos_dir / "2025" / "04" / "01" / "legacy.md").is_file()
        assert _call(mcp, "todo_search", query="legacy")["results"][0]["id"] == "legacy"

        assert _call(mcp, "todo_migrate", rollback=True) == {"rolled_back": True, "files": 1}
        assert (todos_dir / "legacy.md").is_file()
