"""
One-shot move from the flat ``todos/<id>.md`` layout to ``todos/YYYY/MM/DD/<id>.md``.

The old directory is renamed to ``todos_migrating`` before anything is
written, so a failed run can always be undone by renaming it back.
"""

import logging
import os
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List

from todo_mcp.core.files import atomic_write, ensure_dir
from todo_mcp.core.paths import TODO_SUFFIX
from todo_mcp.errors import ConflictError, CorruptionError, StorageError, TodoError
from todo_mcp.parsers.todo_parser import parse_document, render_document

log = logging.getLogger(__name__)


@dataclass
class MigrationStats:
    total: int = 0
    migrated: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "migrated": self.migrated,
            "failed": self.failed,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }


class Migrator:
    """Layout migration for one TodoManager; runs under the manager lock."""

    def __init__(self, manager) -> None:
        self.manager = manager

    @property
    def paths(self):
        return self.manager.paths

    def needs_migration(self) -> bool:
        """True if any ``.md`` file sits directly in the live todos directory."""
        return bool(self.paths.flat_files())

    def migrate(self) -> MigrationStats:
        """
        Move every flat todo into its dated directory.

        Files without a started date get the file's modification time,
        written into both the backup copy and the migrated copy. Any failure
        restores the original directory from the backup.

        Raises:
            ConflictError: a backup from an earlier interrupted run exists
            StorageError: the backup rename itself failed
        """
        stats = MigrationStats()
        with self.manager.lock:
            if not self.needs_migration():
                log.info("Migration not needed: no flat todos found")
                return stats

            todos_dir = self.paths.todos_dir
            backup_dir = self.paths.backup_dir
            if backup_dir.exists():
                raise ConflictError(
                    "migration backup", str(backup_dir), "an earlier migration was interrupted; run rollback"
                )

            log.info("Starting migration: backing up %s", todos_dir)
            try:
                os.rename(todos_dir, backup_dir)
            except OSError as e:
                raise StorageError("create migration backup", backup_dir, e) from e
            try:
                ensure_dir(todos_dir)
            except StorageError:
                os.rename(backup_dir, todos_dir)
                raise

            try:
                for entry in sorted(backup_dir.iterdir()):
                    stats.total += 1
                    try:
                        if entry.is_dir():
                            shutil.copytree(entry, todos_dir / entry.name)
                            stats.skipped += 1
                        elif entry.suffix != TODO_SUFFIX:
                            shutil.copy2(entry, todos_dir / entry.name)
                            stats.skipped += 1
                        else:
                            self._migrate_file(entry)
                            stats.migrated += 1
                    except (TodoError, OSError) as e:
                        stats.failed += 1
                        stats.errors.append(f"{entry.name}: {e}")
                        log.warning("Failed to migrate %s: %s", entry.name, e)
            except BaseException:
                log.exception("Migration aborted; restoring backup")
                self._restore_backup()
                self.manager.cache.clear()
                raise

            if stats.failed:
                log.error("Migration failed for %d file(s); restoring backup", stats.failed)
                self._restore_backup()
                self.manager.cache.clear()
                return stats

            shutil.rmtree(backup_dir)
            self.manager.cache.clear()
            self._reindex()
            log.info(
                "Migration complete: %d migrated, %d skipped of %d",
                stats.migrated, stats.skipped, stats.total,
            )
            return stats

    def _migrate_file(self, source: Path) -> None:
        raw = source.read_bytes()
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CorruptionError(f"todo file is not valid UTF-8 in {source}: {e}") from e
        todo, body = parse_document(text, source)
        todo_id = source.stem

        if todo.started is None:
            st = source.stat()
            todo.started = datetime.fromtimestamp(st.st_mtime).replace(microsecond=0)
            if not todo.id:
                todo.id = todo_id
            text = render_document(todo, body)
            # Keep the added field in the backup too, with its original mtime
            atomic_write(source, text)
            os.utime(source, (st.st_atime, st.st_mtime))
            raw = text.encode("utf-8")

        dest = self.paths.date_path(todo_id, todo.started)
        ensure_dir(dest.parent)
        # Files that already had a started date are copied byte for byte
        atomic_write(dest, raw)

    def _restore_backup(self) -> None:
        todos_dir = self.paths.todos_dir
        if todos_dir.exists():
            shutil.rmtree(todos_dir)
        os.rename(self.paths.backup_dir, todos_dir)

    def _flatten(self) -> int:
        """Move dated files back to ``todos/<id>.md`` and prune empty day directories."""
        todos_dir = self.paths.todos_dir
        moved = 0
        for path in list(self.paths.live_files()):
            if path.parent == todos_dir:
                continue
            dest = todos_dir / path.name
            if dest.exists():
                raise ConflictError("todo", path.stem, f"{dest} already exists")
            os.rename(path, dest)
            moved += 1

        for dirpath, _, _ in sorted(os.walk(todos_dir), key=lambda item: item[0], reverse=True):
            directory = Path(dirpath)
            if directory != todos_dir and not any(directory.iterdir()):
                directory.rmdir()
        return moved

    def rollback(self) -> int:
        """
        Return to the flat layout.

        Restores the backup of an interrupted migration when one exists;
        otherwise flattens the dated tree in place.

        Returns:
            Number of todo files in the flat layout afterwards
        """
        with self.manager.lock:
            if self.paths.backup_dir.exists():
                log.info("Restoring migration backup %s", self.paths.backup_dir)
                self._restore_backup()
            else:
                log.info("No migration backup; flattening %s", self.paths.todos_dir)
                self._flatten()
            self.manager.cache.clear()
            self._reindex()
            return len(self.paths.flat_files())

    def _reindex(self) -> None:
        index = self.manager.index
        if index is None:
            return
        try:
            index.reindex()
        except TodoError:
            log.exception("Index rebuild after migration failed")
