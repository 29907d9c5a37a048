"""
Archive engine: moves finished todos into ``archive/YYYY/MM/DD/``.

The archive day comes from the todo's started date, not from the day it is
archived. The archived copy is written before the live file is removed, so
a failure never loses the todo.
"""

import logging
from datetime import timedelta
from typing import Dict, List, Optional, Set

from todo_mcp.core.files import atomic_write, ensure_dir, remove_file
from todo_mcp.errors import (
    ArchiveError,
    HasActiveChildrenError,
    NotFoundError,
    StorageError,
    TodoError,
)
from todo_mcp.parsers.todo_parser import parse_file, render_document
from todo_mcp.utils.dates import now, sort_key

log = logging.getLogger(__name__)


class ArchiveEngine:
    """Archive operations on top of a TodoManager; shares its lock."""

    def __init__(self, manager) -> None:
        self.manager = manager

    @property
    def paths(self):
        return self.manager.paths

    def archive(self, todo_id: str, cascade: bool = False) -> List[str]:
        """
        Archive one todo, or a whole subtree with ``cascade``.

        Returns:
            Archived ids in the order they were moved (children first)

        Raises:
            NotFoundError: no live todo with this id (including a second
                archive of the same id)
            HasActiveChildrenError: live children exist and cascade is off
            ArchiveError: a descendant failed during a cascade; descendants
                archived before the failure stay archived
        """
        with self.manager.lock:
            if cascade:
                return self._cascade(todo_id, set())
            self.paths.resolve(todo_id)
            children = [c.id for c in self.manager.children(todo_id)]
            if children:
                raise HasActiveChildrenError(todo_id, children)
            return [self._archive_one(todo_id)]

    def _cascade(self, todo_id: str, visited: Set[str]) -> List[str]:
        if todo_id in visited:
            return []
        visited.add(todo_id)
        self.paths.resolve(todo_id)

        archived: List[str] = []
        for child in self.manager.children(todo_id):
            try:
                archived.extend(self._cascade(child.id, visited))
            except ArchiveError:
                raise
            except TodoError as e:
                log.error("Cascade archive of %s stopped at %s: %s", todo_id, child.id, e)
                raise ArchiveError(child.id, e) from e
        archived.append(self._archive_one(todo_id))
        return archived

    def _archive_one(self, todo_id: str) -> str:
        """Move one todo into the archive. Caller must hold the manager lock."""
        live = self.paths.resolve(todo_id)
        try:
            todo, body = parse_file(live)
        except FileNotFoundError:
            self.manager.cache.delete(todo_id)
            raise NotFoundError("todo", todo_id) from None

        stamp = now()
        archive_path = self.paths.archive_path(todo_id, todo.started or stamp)
        ensure_dir(archive_path.parent)

        todo.status = "completed"
        todo.completed = stamp
        atomic_write(archive_path, render_document(todo, body))

        try:
            remove_file(live)
        except (FileNotFoundError, StorageError) as e:
            remove_file(archive_path, missing_ok=True)
            if isinstance(e, FileNotFoundError):
                raise NotFoundError("todo", todo_id) from None
            raise

        self.manager.cache.delete(todo_id)
        self.manager.index_delete(todo_id)
        log.info("Archived %s -> %s", todo_id, archive_path)
        return todo_id

    def bulk_archive(self, todo_ids: List[str], cascade: bool = False) -> List[Dict[str, object]]:
        """Archive each id independently; one failure never stops the rest."""
        results: List[Dict[str, object]] = []
        for todo_id in todo_ids:
            try:
                self.archive(todo_id, cascade=cascade)
            except TodoError as e:
                results.append({"id": todo_id, "success": False, "error": e.message, "kind": e.kind})
            else:
                results.append({"id": todo_id, "success": True})
        return results

    def archive_old(self, days: Optional[int] = 0) -> int:
        """
        Archive completed todos started within the last ``days`` days (0 = all).

        Todos that cannot be archived, for example because they still have
        live children, are logged and skipped.

        Returns:
            Number of todos archived
        """
        with self.manager.lock:
            completed = self.manager.list(status="completed")
            if days and days > 0:
                cutoff = (now() - timedelta(days=days)).timestamp()
                completed = [t for t in completed if sort_key(t.started) >= cutoff]

            archived = 0
            for todo in completed:
                try:
                    self.archive(todo.id)
                except TodoError as e:
                    log.warning("Not archiving %s: %s", todo.id, e)
                    continue
                archived += 1
            return archived
