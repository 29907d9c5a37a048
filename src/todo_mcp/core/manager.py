"""
Todo manager: the single entry point for reading and mutating todo files.

Design:
    Files on disk       - source of truth (one ``<id>.md`` per todo)
    PathCache           - id -> path shortcut, verified on every hit
    SearchIndex         - optional derived state, updated after each write
    _id_counts          - next suffix to try per base id (hint only)

All operations acquire _lock (threading.RLock), so writes are totally
ordered and readers never see a half-applied read-modify-write.
"""

import logging
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from todo_mcp.cache.path_cache import PathCache
from todo_mcp.core import section_editor
from todo_mcp.core.files import atomic_write, ensure_dir, remove_file
from todo_mcp.core.hierarchy import TodoNode, build_hierarchy
from todo_mcp.core.paths import TodoPaths, check_id
from todo_mcp.errors import (
    CorruptionError,
    IndexUnavailableError,
    NotFoundError,
    StorageError,
    TodoError,
    ValidationError,
)
from todo_mcp.models.sections import SectionDefinition, default_sections
from todo_mcp.models.todo import PRIORITIES, STATUSES, Todo
from todo_mcp.parsers.section_schema import get_validator, infer_sections, parse_checklist
from todo_mcp.parsers.todo_parser import (
    TASK_PREFIX,
    parse_document,
    parse_file,
    parse_tags,
    render_document,
)
from todo_mcp.utils.dates import now, parse_timestamp, sort_key
from todo_mcp.utils.ids import generate_base_id, numbered_id

log = logging.getLogger(__name__)

# Metadata keys accepted by update(), applied in this order
METADATA_FIELDS = ("status", "priority", "type", "parent_id", "started", "completed", "tags")

WILDCARD = "all"


def _matches(value: str, wanted: Optional[str]) -> bool:
    if not wanted or wanted.lower() == WILDCARD:
        return True
    return value.lower() == wanted.lower()


def _check_choice(field_name: str, value, choices) -> str:
    if not isinstance(value, str) or value not in choices:
        raise ValidationError(
            f"invalid value {value!r}, expected one of {', '.join(choices)}", field=field_name
        )
    return value


class TodoManager:
    """
    Reads and writes the todos of one project root.

    Args:
        root: Project root; files live under ``<root>/.claude``
        index: Optional SearchIndex kept in step with every write
        cache: Optional PathCache shared with other components
    """

    def __init__(self, root: Path, index=None, cache: Optional[PathCache] = None) -> None:
        self.paths = TodoPaths(root, cache)
        self.index = index
        self._lock = threading.RLock()
        self._id_counts: Dict[str, int] = {}

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def cache(self) -> PathCache:
        return self.paths.cache

    # ------------------------------------------------------------------
    # Index hooks
    # ------------------------------------------------------------------

    def index_upsert(self, todo: Todo, text: str) -> None:
        if self.index is None:
            return
        try:
            self.index.upsert(todo, text)
        except IndexUnavailableError:
            log.warning("Index update failed for %s; file write kept", todo.id, exc_info=True)

    def index_delete(self, todo_id: str) -> None:
        if self.index is None:
            return
        try:
            self.index.delete(todo_id)
        except IndexUnavailableError:
            log.warning("Index delete failed for %s", todo_id, exc_info=True)

    # ------------------------------------------------------------------
    # Ids
    # ------------------------------------------------------------------

    def _mint_id(self, task: str) -> str:
        """
        Pick a free id for a task title. Caller must hold _lock.

        The in-memory count is only a starting point: every candidate is
        probed against the live and archive trees before it is used.
        """
        base = generate_base_id(task)
        n = self._id_counts.get(base, 1)
        while True:
            candidate = numbered_id(base, n)
            if not self.paths.id_in_use(candidate):
                break
            n += 1
        self._id_counts[base] = n + 1
        return candidate

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _target_path(self, todo: Todo, current: Optional[Path]) -> Path:
        """
        Where a todo belongs.

        Dated files follow their started date; legacy flat files stay put
        until migration moves them.
        """
        if current is not None and (todo.started is None or current.parent == self.paths.todos_dir):
            return current
        return self.paths.date_path(todo.id, todo.started or now())

    def _write(self, todo: Todo, text: str, current: Optional[Path]) -> Path:
        """Write a todo and drop the old file if it moved. Caller must hold _lock."""
        target = self._target_path(todo, current)
        ensure_dir(target.parent)
        atomic_write(target, text)

        if current is not None and current != target:
            try:
                remove_file(current, missing_ok=True)
            except StorageError:
                remove_file(target, missing_ok=True)
                raise
            log.info("Moved %s -> %s", current, target)

        self.cache.set(todo.id, target)
        self.index_upsert(todo, text)
        return target

    def create(
        self,
        task: str,
        priority: str = "medium",
        type: str = "feature",
        parent_id: Optional[str] = None,
        template_content: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> Todo:
        """
        Create a new todo with the default sections (or a rendered template body).

        Raises:
            ValidationError: empty task or invalid priority
            NotFoundError: parent_id names no live todo
        """
        if not task or not task.strip():
            raise ValidationError("task must not be empty", field="task")
        task = task.strip()
        _check_choice("priority", priority, PRIORITIES)
        if not type:
            raise ValidationError("type must not be empty", field="type")

        with self._lock:
            if parent_id:
                check_id(parent_id)
                if self.paths.find(parent_id) is None:
                    raise NotFoundError("parent todo", parent_id)

            todo = Todo(
                id=self._mint_id(task),
                task=task,
                started=now(),
                status="in_progress",
                priority=priority,
                type=type,
                parent_id=parent_id or None,
                tags=list(tags or []),
                sections=default_sections(),
            )
            body = None
            if template_content is not None:
                body = f"\n{TASK_PREFIX} {task}\n\n"
                rendered = template_content.strip("\n")
                if rendered:
                    body += rendered + "\n\n"
                todo.sections = infer_sections(body)

            text = render_document(todo, body)
            path = self._write(todo, text, None)
            log.info("Created todo %s at %s", todo.id, path)
            created, _ = parse_document(text, path)
            return created

    def save(self, todo: Todo, body: Optional[str] = None) -> Todo:
        """
        Write a whole todo from its model, replacing any existing file.

        The file moves when its started date changed. With no body the
        Markdown is rendered from the todo's sections and section content.
        """
        check_id(todo.id)
        with self._lock:
            if todo.started is None:
                todo.started = now()
            current = self.paths.find(todo.id)
            text = render_document(todo, body)
            path = self._write(todo, text, current)
            saved, _ = parse_document(text, path)
            return saved

    def update(
        self,
        todo_id: str,
        section: Optional[str] = None,
        operation: Optional[str] = None,
        content: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Todo:
        """
        Edit a section, frontmatter metadata, or both, as one whole-file write.

        Metadata-only updates keep the body byte for byte.

        Raises:
            NotFoundError: no live todo with this id
            ValidationError: unknown section, operation or metadata field
        """
        if section and not operation:
            raise ValidationError("operation is required when a section is given", field="operation")
        if operation and not section:
            raise ValidationError("section is required when an operation is given", field="section")
        if not section and not metadata:
            raise ValidationError("nothing to update: provide a section operation or metadata")

        with self._lock:
            path = self.paths.resolve(todo_id)
            todo, body = parse_file(path)

            if section:
                stamp = now()
                body = section_editor.apply(body, todo.sections, section, operation, content or "", stamp)
                if section not in todo.sections:
                    title, schema = section_editor.section_info(todo.sections, section)
                    order = max((d.order for d in todo.sections.values()), default=0) + 1
                    todo.sections[section] = SectionDefinition(title=title, order=order, schema=schema)

            if metadata:
                self._apply_metadata(todo, metadata)

            text = render_document(todo, body)
            self._write(todo, text, path)
            updated, _ = parse_document(text, path)
            return updated

    def _apply_metadata(self, todo: Todo, metadata: Dict[str, Any]) -> None:
        unknown = sorted(set(metadata) - set(METADATA_FIELDS))
        if unknown:
            raise ValidationError(f"unknown metadata field(s): {', '.join(unknown)}")

        for key in METADATA_FIELDS:
            if key not in metadata:
                continue
            value = metadata[key]

            if key == "status":
                status = _check_choice("status", value, STATUSES)
                if status == "completed" and not todo.is_completed:
                    todo.completed = now()
                elif status != "completed" and "completed" not in metadata:
                    todo.completed = None
                todo.status = status
            elif key == "priority":
                todo.priority = _check_choice("priority", value, PRIORITIES)
            elif key == "type":
                if not value or not isinstance(value, str):
                    raise ValidationError("type must be a non-empty string", field="type")
                todo.type = value
            elif key == "parent_id":
                if value:
                    self._check_parent(todo.id, str(value))
                    todo.parent_id = str(value)
                else:
                    todo.parent_id = None
            elif key in ("started", "completed"):
                try:
                    parsed = parse_timestamp(value)
                except ValueError as e:
                    raise ValidationError(str(e), field=key) from e
                if key == "started" and parsed is None:
                    raise ValidationError("started cannot be cleared", field="started")
                setattr(todo, key, parsed)
            elif key == "tags":
                todo.tags = parse_tags(value)

    def _check_parent(self, child_id: str, parent_id: str) -> None:
        """
        Reject a parent that is the child itself, missing, or a descendant.

        Caller must hold _lock.
        """
        check_id(parent_id)
        if parent_id == child_id:
            raise ValidationError("a todo cannot be its own parent", field="parent_id")
        if self.paths.find(parent_id) is None:
            raise NotFoundError("parent todo", parent_id)

        visited = set()
        current: Optional[str] = parent_id
        while current and current not in visited:
            if current == child_id:
                raise ValidationError(
                    f"setting parent '{parent_id}' would create a cycle", field="parent_id"
                )
            visited.add(current)
            path = self.paths.find(current)
            if path is None:
                break
            current = parse_file(path)[0].parent_id

    def link(self, parent_id: str, child_id: str) -> Todo:
        """Make child_id a child of parent_id."""
        return self.update(child_id, metadata={"parent_id": parent_id})

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def read(self, todo_id: str) -> Todo:
        return self.read_content(todo_id)[0]

    def read_content(self, todo_id: str) -> Tuple[Todo, str]:
        """(todo, full file text) for a live todo."""
        with self._lock:
            path = self.paths.resolve(todo_id)
            try:
                text = path.read_text(encoding="utf-8")
            except FileNotFoundError:
                self.cache.delete(todo_id)
                raise NotFoundError("todo", todo_id) from None
            except UnicodeDecodeError as e:
                raise CorruptionError(f"todo file is not valid UTF-8 in {path}: {e}") from e
            except OSError as e:
                raise StorageError("read", path, e) from e
        todo, _ = parse_document(text, path)
        if not todo.id:
            todo.id = path.stem
        return todo, text

    def read_sections(self, todo_id: str) -> List[Dict[str, Any]]:
        """
        Every section of a todo with its content, metrics and validation state.

        Checklist sections also carry their parsed items.
        """
        todo = self.read(todo_id)
        result = []
        for key, definition in todo.ordered_sections():
            content = todo.content_of(key)
            error = None
            try:
                validator = get_validator(definition.schema)
            except ValidationError as e:
                validator = get_validator("freeform")
                error = e.message
            try:
                validator.validate(content)
            except ValidationError as e:
                error = e.message
            entry: Dict[str, Any] = {
                "key": key,
                "title": definition.title,
                "order": definition.order,
                "schema": definition.schema,
                "required": definition.required,
                "content": content,
                "metrics": validator.metrics(content),
                "error": error,
            }
            if definition.schema == "checklist":
                entry["items"] = [
                    {"text": item.text, "status": item.status} for item in parse_checklist(content)
                ]
            result.append(entry)
        return result

    def _load_all(self, paths) -> List[Todo]:
        todos = []
        for path in paths:
            try:
                todo, _ = parse_file(path)
            except FileNotFoundError:
                continue
            except TodoError as e:
                log.warning("Skipping unreadable todo %s: %s", path, e)
                continue
            todos.append(todo)
        return todos

    def list(
        self,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        days: Optional[int] = None,
    ) -> List[Todo]:
        """
        Live todos, newest first.

        Args:
            status: Keep only this status ("all" or None for every status)
            priority: Keep only this priority ("all" or None for every priority)
            days: Keep only todos started within the last N days
        """
        with self._lock:
            if days and days > 0:
                cutoff = now() - timedelta(days=days)
                paths = self.paths.scan_range(cutoff.date(), datetime.now().date())
                paths.extend(self.paths.flat_files())
            else:
                cutoff = None
                paths = list(self.paths.live_files())
            todos = self._load_all(paths)

        result = []
        seen = set()
        for todo in todos:
            if todo.id in seen:
                continue
            seen.add(todo.id)
            if not _matches(todo.status, status) or not _matches(todo.priority, priority):
                continue
            if cutoff is not None and sort_key(todo.started) < cutoff.timestamp():
                continue
            result.append(todo)

        result.sort(key=lambda t: t.id)
        result.sort(key=lambda t: sort_key(t.started), reverse=True)
        return result

    def children(self, todo_id: str) -> List[Todo]:
        """Live todos whose parent_id is todo_id."""
        check_id(todo_id)
        return [t for t in self.list() if t.parent_id == todo_id]

    def hierarchy(self) -> Tuple[List[TodoNode], List[Todo]]:
        return build_hierarchy(self.list())

    def find_duplicates(self) -> List[List[str]]:
        """Groups of live ids whose task titles match after case and whitespace folding."""
        groups: Dict[str, List[str]] = {}
        for todo in self.list():
            key = " ".join(todo.task.lower().split())
            if key:
                groups.setdefault(key, []).append(todo.id)
        return sorted(sorted(ids) for ids in groups.values() if len(ids) > 1)
