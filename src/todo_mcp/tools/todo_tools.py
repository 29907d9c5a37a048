"""
Todo tool handlers.

Core logic lives in handle_* functions (return dicts).
MCP wrappers in register_todo_tools() serialize to JSON strings.
"""

import functools
import json
import logging
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from todo_mcp.core import hierarchy
from todo_mcp.core.patterns import detect_pattern, find_similar
from todo_mcp.errors import IndexUnavailableError, TodoError, ValidationError
from todo_mcp.utils.dates import format_timestamp

log = logging.getLogger(__name__)


def _todo_to_dict(todo) -> dict:
    """Serialize a Todo to a JSON-serializable dict."""
    d = {
        "id": todo.id,
        "task": todo.task,
        "status": todo.status,
        "priority": todo.priority,
        "type": todo.type,
        "started": format_timestamp(todo.started),
        "completed": format_timestamp(todo.completed),
        "parent_id": todo.parent_id,
        "tags": list(todo.tags),
        "sections": [key for key, _ in todo.ordered_sections()],
    }
    return d


def _node_to_dict(node) -> dict:
    d = _todo_to_dict(node.todo)
    d["children"] = [_node_to_dict(c) for c in node.children]
    return d


def _reports_errors(fn):
    """Turn a TodoError raised by a handler into an {"error", "kind"} dict."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except TodoError as e:
            log.info("%s failed: %s", fn.__name__, e)
            return {"error": e.message, "kind": e.kind}

    return wrapper


# ---------------------------------------------------------------------------
# Handler functions (return dicts)
# ---------------------------------------------------------------------------


@_reports_errors
def handle_todo_create(
    service,
    *,
    task: str,
    priority: str = "medium",
    type: str = "feature",
    parent_id: Optional[str] = None,
    template: Optional[str] = None,
    tags: Optional[List[str]] = None,
) -> dict:
    template_content = service.load_template(template) if template else None
    todo = service.manager.create(
        task,
        priority=priority,
        type=type,
        parent_id=parent_id,
        template_content=template_content,
        tags=tags,
    )
    result = _todo_to_dict(todo)
    result["path"] = str(service.manager.paths.resolve(todo.id))

    hint = detect_pattern(task)
    if hint and not parent_id:
        hint_dict = hint.to_dict()
        others = [t for t in service.manager.list() if t.id != todo.id]
        similar = find_similar(task, others)
        if similar:
            hint_dict["similar"] = similar
        result["hint"] = hint_dict
    return result


@_reports_errors
def handle_todo_read(service, *, todo_id: str) -> dict:
    todo = service.manager.read(todo_id)
    result = _todo_to_dict(todo)
    result["sections"] = service.manager.read_sections(todo_id)
    return result


@_reports_errors
def handle_todo_update(
    service,
    *,
    todo_id: str,
    section: Optional[str] = None,
    operation: Optional[str] = None,
    content: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> dict:
    todo = service.manager.update(
        todo_id, section=section, operation=operation, content=content, metadata=metadata
    )
    return _todo_to_dict(todo)


@_reports_errors
def handle_todo_list(
    service,
    *,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    days: Optional[int] = None,
) -> dict:
    todos = service.manager.list(status=status, priority=priority, days=days)
    return {"count": len(todos), "todos": [_todo_to_dict(t) for t in todos]}


@_reports_errors
def handle_todo_archive(
    service,
    *,
    todo_id: Optional[str] = None,
    todo_ids: Optional[List[str]] = None,
    cascade: bool = False,
) -> dict:
    if todo_ids:
        results = service.archiver.bulk_archive(todo_ids, cascade=cascade)
        return {
            "results": results,
            "archived": sum(1 for r in results if r["success"]),
            "failed": sum(1 for r in results if not r["success"]),
        }
    if not todo_id:
        raise ValidationError("provide todo_id or todo_ids")
    archived = service.archiver.archive(todo_id, cascade=cascade)
    return {"archived": archived}


@_reports_errors
def handle_todo_hierarchy(service, *, todo_id: Optional[str] = None) -> dict:
    todos = service.manager.list()
    roots, orphans = hierarchy.build_hierarchy(todos)
    if todo_id:
        node = hierarchy.find_by_id(roots, todo_id)
        if node is None:
            service.manager.read(todo_id)
            return {"tree": None, "path": [], "orphan": True}
        return {
            "tree": _node_to_dict(node),
            "path": [n.id for n in hierarchy.path_from_root(roots, todo_id)],
        }
    return {
        "roots": [_node_to_dict(r) for r in roots],
        "orphans": [_todo_to_dict(t) for t in orphans],
        "issues": hierarchy.validate(todos),
        "stats": hierarchy.hierarchy_stats(todos),
    }


@_reports_errors
def handle_todo_search(
    service,
    *,
    query: str,
    status: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    limit: int = 20,
) -> dict:
    index = service.manager.index
    if index is None:
        raise IndexUnavailableError("search is disabled")
    filters = {
        k: v
        for k, v in (("status", status), ("date_from", date_from), ("date_to", date_to))
        if v
    }
    results = index.search(query, filters=filters, limit=limit)
    return {"count": len(results), "results": results}


@_reports_errors
def handle_todo_link(service, *, parent_id: str, child_id: str) -> dict:
    todo = service.manager.link(parent_id, child_id)
    return _todo_to_dict(todo)


@_reports_errors
def handle_todo_migrate(service, *, rollback: bool = False) -> dict:
    if rollback:
        return {"rolled_back": True, "files": service.migrator.rollback()}
    return service.migrator.migrate().to_dict()


# ---------------------------------------------------------------------------
# MCP tool registration
# ---------------------------------------------------------------------------


def register_todo_tools(mcp: FastMCP, service) -> None:
    """Register all todo MCP tools onto the FastMCP instance."""

    @mcp.tool()
    def todo_create(
        task: str,
        priority: str = "medium",
        type: str = "feature",
        parent_id: Optional[str] = None,
        template: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> str:
        """
        Create a new todo.

        Args:
            task: Task title; the id is derived from it
            priority: high, medium or low
            type: feature, bug, refactor, research, phase, subtask, multi-phase
            parent_id: Optional parent todo id
            template: Optional template name under .claude/templates
            tags: Optional list of tags

        Returns:
            JSON todo object with its file path and, for Phase/Step style
            titles, a hint about linking it to a parent
        """
        return json.dumps(
            handle_todo_create(
                service,
                task=task,
                priority=priority,
                type=type,
                parent_id=parent_id,
                template=template,
                tags=tags,
            )
        )

    @mcp.tool()
    def todo_read(todo_id: str) -> str:
        """
        Read one todo with all of its sections.

        Each section reports its content, schema, metrics and any validation
        error; checklist sections also list their items.
        """
        return json.dumps(handle_todo_read(service, todo_id=todo_id))

    @mcp.tool()
    def todo_update(
        todo_id: str,
        section: Optional[str] = None,
        operation: Optional[str] = None,
        content: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Update a todo section or its metadata.

        Args:
            todo_id: Todo to update
            section: Section key, e.g. findings, test_results, checklist
            operation: append, prepend, replace or toggle (checklist only)
            content: Text to write, or the checklist item text for toggle
            metadata: Frontmatter changes: status, priority, type,
                parent_id, started, completed, tags

        Returns:
            JSON of the updated todo
        """
        return json.dumps(
            handle_todo_update(
                service,
                todo_id=todo_id,
                section=section,
                operation=operation,
                content=content,
                metadata=metadata,
            )
        )

    @mcp.tool()
    def todo_list(
        status: Optional[str] = None,
        priority: Optional[str] = None,
        days: Optional[int] = None,
    ) -> str:
        """
        List live todos, newest first.

        Args:
            status: in_progress, blocked, completed or all
            priority: high, medium, low or all
            days: Only todos started within the last N days
        """
        return json.dumps(handle_todo_list(service, status=status, priority=priority, days=days))

    @mcp.tool()
    def todo_archive(
        todo_id: Optional[str] = None,
        todo_ids: Optional[List[str]] = None,
        cascade: bool = False,
    ) -> str:
        """
        Archive a todo, a subtree (cascade=True), or a list of todos.

        Without cascade a todo with live children is not archived.
        With todo_ids every id is attempted and a per-id result is returned.
        """
        return json.dumps(
            handle_todo_archive(service, todo_id=todo_id, todo_ids=todo_ids, cascade=cascade)
        )

    @mcp.tool()
    def todo_hierarchy(todo_id: Optional[str] = None) -> str:
        """
        Show parent/child trees.

        Args:
            todo_id: Optional; return only the subtree rooted at this todo
                and its path from the top-level root
        """
        return json.dumps(handle_todo_hierarchy(service, todo_id=todo_id))

    @mcp.tool()
    def todo_search(
        query: str,
        status: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        limit: int = 20,
    ) -> str:
        """
        Full-text search over live todos.

        Args:
            query: Search terms, or a "quoted phrase"
            status: Optional status filter
            date_from: YYYY-MM-DD, inclusive, on the started date
            date_to: YYYY-MM-DD, inclusive, on the started date
            limit: Maximum number of results (default 20)

        Returns:
            JSON with ranked results (id, task, score, snippet)
        """
        return json.dumps(
            handle_todo_search(
                service,
                query=query,
                status=status,
                date_from=date_from,
                date_to=date_to,
                limit=limit,
            )
        )

    @mcp.tool()
    def todo_link(parent_id: str, child_id: str) -> str:
        """Set child_id's parent to parent_id; cycles are rejected."""
        return json.dumps(handle_todo_link(service, parent_id=parent_id, child_id=child_id))

    @mcp.tool()
    def todo_migrate(rollback: bool = False) -> str:
        """
        Move flat .claude/todos/<id>.md files into dated directories.

        Args:
            rollback: Return to the flat layout instead
        """
        return json.dumps(handle_todo_migrate(service, rollback=rollback))
