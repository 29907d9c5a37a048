from .archive import ArchiveEngine
from .manager import TodoManager
from .migration import MigrationStats, Migrator
from .paths import TodoPaths

__all__ = ["ArchiveEngine", "TodoManager", "MigrationStats", "Migrator", "TodoPaths"]
