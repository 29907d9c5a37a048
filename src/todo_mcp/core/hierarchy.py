"""
Parent/child tree built from the parent_id field.

The tree is rebuilt from a flat list of todos on every call; nothing here
touches the filesystem.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from todo_mcp.models.todo import Todo

CHILD_TYPES = ("phase", "subtask")

_STATUS_RANK = {"in_progress": 0, "blocked": 1, "completed": 2}
_PRIORITY_RANK = {"high": 0, "medium": 1, "low": 2}


@dataclass
class TodoNode:
    todo: Todo
    children: List["TodoNode"] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.todo.id


def _node_sort_key(node: TodoNode):
    todo = node.todo
    return (
        _STATUS_RANK.get(todo.status, len(_STATUS_RANK)),
        _PRIORITY_RANK.get(todo.priority, len(_PRIORITY_RANK)),
        todo.id,
    )


def has_cycle(child_id: str, parent_id: str, todo_map: Dict[str, Todo]) -> bool:
    """
    True if attaching child_id under parent_id would close a loop.

    Walks the parent chain from parent_id. Reaching child_id means a cycle;
    revisiting any other id means the chain loops without involving the
    child, which does not block the attachment.
    """
    visited = set()
    current: Optional[str] = parent_id
    while current:
        if current == child_id:
            return True
        if current in visited:
            return False
        visited.add(current)
        parent = todo_map.get(current)
        if parent is None:
            return False
        current = parent.parent_id
    return False


def build_hierarchy(todos: Iterable[Todo]) -> Tuple[List[TodoNode], List[Todo]]:
    """
    Arrange todos into trees.

    Returns:
        (roots, orphans). Todos whose parent is missing become orphans if
        they are phases or subtasks and roots otherwise. A todo whose
        attachment would create a cycle is an orphan.
    """
    todos = list(todos)
    todo_map = {t.id: t for t in todos}
    node_map = {t.id: TodoNode(todo=t) for t in todos}

    roots: List[TodoNode] = []
    orphans: List[Todo] = []

    for todo in todos:
        node = node_map[todo.id]
        if not todo.parent_id:
            roots.append(node)
        elif todo.parent_id in node_map:
            if has_cycle(todo.id, todo.parent_id, todo_map):
                orphans.append(todo)
            else:
                node_map[todo.parent_id].children.append(node)
        elif todo.type in CHILD_TYPES:
            orphans.append(todo)
        else:
            roots.append(node)

    roots.sort(key=_node_sort_key)
    for node in node_map.values():
        node.children.sort(key=_node_sort_key)

    return roots, orphans


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def _node_depth(node: TodoNode, current: int) -> int:
    if not node.children:
        return current
    return max(_node_depth(child, current + 1) for child in node.children)


def depth(roots: List[TodoNode]) -> int:
    """Number of levels in the deepest tree; 0 for an empty forest."""
    return max((_node_depth(root, 1) for root in roots), default=0)


def count(roots: List[TodoNode]) -> int:
    return len(flatten(roots))


def find_by_id(roots: List[TodoNode], todo_id: str) -> Optional[TodoNode]:
    for node in flatten_nodes(roots):
        if node.id == todo_id:
            return node
    return None


def _path_to(node: TodoNode, target: str, path: List[TodoNode]) -> Optional[List[TodoNode]]:
    path = path + [node]
    if node.id == target:
        return path
    for child in node.children:
        found = _path_to(child, target, path)
        if found is not None:
            return found
    return None


def path_from_root(roots: List[TodoNode], todo_id: str) -> List[TodoNode]:
    """Nodes from the tree root down to todo_id; empty if it is not in the forest."""
    for root in roots:
        found = _path_to(root, todo_id, [])
        if found is not None:
            return found
    return []


def flatten_nodes(roots: List[TodoNode]) -> List[TodoNode]:
    """Pre-order depth-first listing of every node."""
    result: List[TodoNode] = []
    stack = list(reversed(roots))
    while stack:
        node = stack.pop()
        result.append(node)
        stack.extend(reversed(node.children))
    return result


def flatten(roots: List[TodoNode]) -> List[Todo]:
    return [node.todo for node in flatten_nodes(roots)]


def orphaned_phases(todos: Iterable[Todo]) -> List[Todo]:
    """Phases and subtasks whose parent_id names a todo that does not exist."""
    todos = list(todos)
    ids = {t.id for t in todos}
    return [
        t for t in todos
        if t.type in CHILD_TYPES and t.parent_id and t.parent_id not in ids
    ]


def validate(todos: Iterable[Todo]) -> List[str]:
    """Human-readable hierarchy problems. Nothing is rejected."""
    todos = list(todos)
    todo_map = {t.id: t for t in todos}
    issues = []

    for orphan in orphaned_phases(todos):
        issues.append(
            f"Orphaned {orphan.type} '{orphan.id}' references non-existent parent '{orphan.parent_id}'"
        )

    for todo in todos:
        if todo.parent_id and has_cycle(todo.id, todo.parent_id, todo_map):
            issues.append(f"Circular reference detected: '{todo.id}' -> '{todo.parent_id}'")

    for todo in todos:
        if todo.type in CHILD_TYPES and not todo.parent_id:
            issues.append(f"{todo.type} '{todo.id}' should have a parent_id")

    return issues


def hierarchy_stats(todos: Iterable[Todo]) -> dict:
    todos = list(todos)
    roots, orphans = build_hierarchy(todos)
    by_type: Dict[str, int] = {}
    by_status: Dict[str, int] = {}
    with_parent = 0
    for todo in todos:
        if todo.parent_id:
            with_parent += 1
        by_type[todo.type] = by_type.get(todo.type, 0) + 1
        by_status[todo.status] = by_status.get(todo.status, 0) + 1
    return {
        "total_roots": len(roots),
        "total_orphans": len(orphans),
        "max_depth": depth(roots),
        "total_with_parent": with_parent,
        "by_type": by_type,
        "by_status": by_status,
    }
