"""
todo-mcp server entry point.

Startup sequence:
1. Read TODO_ROOT, TODO_SEARCH_ENABLED, TODO_LOG_LEVEL, TODO_AUTO_MIGRATE
2. Build TodoService (manager, archive engine, migrator, search index)
3. Migrate a legacy flat layout if TODO_AUTO_MIGRATE is set
4. Open the search index (full rebuild from the todo files)
5. Register all MCP tools
6. Run MCP server (stdio transport)
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

from mcp.server.fastmcp import FastMCP

from todo_mcp.core.archive import ArchiveEngine
from todo_mcp.core.manager import TodoManager
from todo_mcp.core.migration import Migrator
from todo_mcp.errors import IndexUnavailableError, NotFoundError, StorageError, ValidationError
from todo_mcp.parsers.todo_parser import DELIMITER
from todo_mcp.search.index import SearchIndex
from todo_mcp.tools import register_todo_tools

log = logging.getLogger(__name__)


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("true", "1", "yes")


class TodoService:
    """
    Everything the tool layer needs for one project root.

    Args:
        root: Project root; todos live under ``<root>/.claude``
        search_enabled: Build and maintain the full-text index
    """

    def __init__(self, root: Path, search_enabled: bool = True) -> None:
        self.root = Path(root)
        self.manager = TodoManager(self.root)
        self.archiver = ArchiveEngine(self.manager)
        self.migrator = Migrator(self.manager)
        self._index: Optional[SearchIndex] = None
        if search_enabled:
            paths = self.manager.paths
            self._index = SearchIndex(paths.index_dir, paths.todos_dir)

    def start(self) -> None:
        """Open the search index; search is left disabled if it cannot be opened."""
        if self._index is None:
            return
        try:
            self._index.open()
        except IndexUnavailableError:
            log.exception("Search index unavailable; continuing without search")
            return
        self.manager.index = self._index

    def close(self) -> None:
        self.manager.index = None
        if self._index is not None:
            self._index.close()

    def load_template(self, name: str) -> str:
        """
        Body text of ``.claude/templates/<name>.md``.

        A leading frontmatter block in the template is dropped.
        """
        if not name or "/" in name or "\\" in name or name in (".", ".."):
            raise ValidationError(f"invalid template name {name!r}", field="template")
        path = self.manager.paths.templates_dir / f"{name}.md"
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise NotFoundError("template", name) from None
        except OSError as e:
            raise StorageError("read", path, e) from e
        text = text.replace("\r\n", "\n")
        if text.startswith(DELIMITER):
            parts = text.split(DELIMITER, 2)
            if len(parts) == 3:
                text = parts[2]
        return text


def main() -> None:
    level_name = os.environ.get("TODO_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    root = Path(os.environ.get("TODO_ROOT", "") or os.getcwd())
    if not root.is_dir():
        log.error("TODO_ROOT does not exist or is not a directory: %s", root)
        sys.exit(1)

    search_enabled = _env_flag("TODO_SEARCH_ENABLED", "true")
    log.info("Project root: %s", root)
    log.info("Search enabled: %s", search_enabled)

    service = TodoService(root, search_enabled=search_enabled)

    if _env_flag("TODO_AUTO_MIGRATE", "false") and service.migrator.needs_migration():
        stats = service.migrator.migrate()
        log.info("Auto-migration: %s", stats.to_dict())

    service.start()

    mcp = FastMCP("todo-mcp")
    register_todo_tools(mcp, service)

    log.info("Starting todo-mcp server")
    try:
        mcp.run(transport="stdio")
    finally:
        service.close()


if __name__ == "__main__":
    main()
