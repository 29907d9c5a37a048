"""Shared fixtures: a project root with a manager and an open search index."""

from pathlib import Path

import pytest

from todo_mcp.core.archive import ArchiveEngine
from todo_mcp.core.manager import TodoManager
from todo_mcp.core.migration import Migrator
from todo_mcp.search.index import SearchIndex


@pytest.fixture
def root(tmp_path) -> Path:
    project = tmp_path / "project"
    project.mkdir()
    return project


@pytest.fixture
def manager(root) -> TodoManager:
    return TodoManager(root)


@pytest.fixture
def indexed(root):
    """(manager, index) with the index opened over the live todos directory."""
    mgr = TodoManager(root)
    index = SearchIndex(mgr.paths.index_dir, mgr.paths.todos_dir).open()
    mgr.index = index
    yield mgr, index
    index.close()


@pytest.fixture
def archiver(manager) -> ArchiveEngine:
    return ArchiveEngine(manager)


@pytest.fixture
def migrator(manager) -> Migrator:
    return Migrator(manager)
