"""
Project-scoped locations and id -> path resolution.

Live todos may sit in the legacy flat layout (``todos/<id>.md``) or in the
date-partitioned layout (``todos/YYYY/MM/DD/<id>.md``). Archived todos
always use the partitioned layout under ``archive/``.
"""

import logging
import os
from datetime import date, datetime
from pathlib import Path
from typing import Iterator, List, Optional

from todo_mcp.cache.path_cache import PathCache
from todo_mcp.errors import NotFoundError, ValidationError
from todo_mcp.utils.dates import daily_parts, iter_days
from todo_mcp.utils.ids import is_valid_id

log = logging.getLogger(__name__)

CLAUDE_DIR = ".claude"
TODOS_DIR = "todos"
ARCHIVE_DIR = "archive"
INDEX_DIR = os.path.join("index", "todos.bleve")
TEMPLATES_DIR = "templates"
BACKUP_DIR = "todos_migrating"

TODO_SUFFIX = ".md"


def _raise_walk_error(err: OSError) -> None:
    # A directory vanishing mid-walk is not an error
    if isinstance(err, FileNotFoundError):
        return
    raise err


def walk_todo_files(base: Path) -> Iterator[Path]:
    """Yield every ``*.md`` file below base, in a stable order."""
    for dirpath, dirnames, filenames in os.walk(base, onerror=_raise_walk_error):
        dirnames.sort()
        for name in sorted(filenames):
            if name.endswith(TODO_SUFFIX):
                yield Path(dirpath) / name


def find_in_tree(base: Path, filename: str) -> Optional[Path]:
    """First ``filename`` found walking below base, or None."""
    for dirpath, dirnames, filenames in os.walk(base, onerror=_raise_walk_error):
        dirnames.sort()
        if filename in filenames:
            return Path(dirpath) / filename
    return None


def check_id(todo_id: str) -> str:
    if not is_valid_id(todo_id):
        raise ValidationError(f"invalid todo id {todo_id!r}", field="id")
    return todo_id


class TodoPaths:
    """
    Derived locations under a project root plus the id resolver.

    Args:
        root: Project root; everything lives below ``<root>/.claude``
        cache: Optional shared PathCache
    """

    def __init__(self, root: Path, cache: Optional[PathCache] = None) -> None:
        self.root = Path(root)
        self.cache = cache if cache is not None else PathCache()

    @property
    def base_dir(self) -> Path:
        return self.root / CLAUDE_DIR

    @property
    def todos_dir(self) -> Path:
        return self.base_dir / TODOS_DIR

    @property
    def archive_dir(self) -> Path:
        return self.base_dir / ARCHIVE_DIR

    @property
    def index_dir(self) -> Path:
        return self.base_dir / INDEX_DIR

    @property
    def templates_dir(self) -> Path:
        return self.base_dir / TEMPLATES_DIR

    @property
    def backup_dir(self) -> Path:
        return self.base_dir / BACKUP_DIR

    # ------------------------------------------------------------------
    # Placement
    # ------------------------------------------------------------------

    def flat_path(self, todo_id: str) -> Path:
        return self.todos_dir / f"{check_id(todo_id)}{TODO_SUFFIX}"

    def day_dir(self, base: Path, when: datetime) -> Path:
        year, month, day = daily_parts(when)
        return base / year / month / day

    def date_path(self, todo_id: str, started: datetime) -> Path:
        """Placement of a live todo: ``todos/YYYY/MM/DD/<id>.md`` from its started date."""
        return self.day_dir(self.todos_dir, started) / f"{check_id(todo_id)}{TODO_SUFFIX}"

    def archive_path(self, todo_id: str, started: datetime) -> Path:
        return self.day_dir(self.archive_dir, started) / f"{check_id(todo_id)}{TODO_SUFFIX}"

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def find(self, todo_id: str) -> Optional[Path]:
        """
        Locate the live file for an id.

        Order: cache (verified by stat), flat path, then a walk of the
        partitioned tree stopping at the first match.

        Returns:
            Path to the file, or None if no live file exists
        """
        check_id(todo_id)
        cached = self.cache.get(todo_id)
        if cached is not None:
            if cached.is_file():
                return cached
            self.cache.delete(todo_id)

        flat = self.flat_path(todo_id)
        if flat.is_file():
            self.cache.set(todo_id, flat)
            return flat

        found = find_in_tree(self.todos_dir, f"{todo_id}{TODO_SUFFIX}")
        if found is not None:
            self.cache.set(todo_id, found)
        return found

    def resolve(self, todo_id: str) -> Path:
        """Like find() but raises NotFoundError when there is no live file."""
        path = self.find(todo_id)
        if path is None:
            raise NotFoundError("todo", todo_id)
        return path

    def find_archived(self, todo_id: str) -> Optional[Path]:
        return find_in_tree(self.archive_dir, f"{check_id(todo_id)}{TODO_SUFFIX}")

    def id_in_use(self, todo_id: str) -> bool:
        """True if a live or archived file already carries this id."""
        return self.find(todo_id) is not None or self.find_archived(todo_id) is not None

    # ------------------------------------------------------------------
    # Enumeration
    # ------------------------------------------------------------------

    def scan_range(self, start: date, end: date) -> List[Path]:
        """``.md`` files in each day directory from start to end inclusive."""
        paths: List[Path] = []
        for day in iter_days(start, end):
            day_dir = self.day_dir(self.todos_dir, datetime(day.year, day.month, day.day))
            try:
                names = sorted(os.listdir(day_dir))
            except FileNotFoundError:
                continue
            for name in names:
                path = day_dir / name
                if name.endswith(TODO_SUFFIX) and path.is_file():
                    paths.append(path)
        return paths

    def flat_files(self) -> List[Path]:
        """Legacy ``todos/<id>.md`` files directly under the live directory."""
        try:
            entries = sorted(self.todos_dir.iterdir())
        except FileNotFoundError:
            return []
        return [p for p in entries if p.suffix == TODO_SUFFIX and p.is_file()]

    def live_files(self) -> Iterator[Path]:
        """Every live todo file in either layout."""
        if not self.todos_dir.is_dir():
            return iter(())
        return walk_todo_files(self.todos_dir)

    def archived_files(self) -> Iterator[Path]:
        if not self.archive_dir.is_dir():
            return iter(())
        return walk_todo_files(self.archive_dir)
