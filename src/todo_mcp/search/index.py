"""
Persistent full-text index over live todos.

Design:
    SQLite file       - ``<index_dir>/index.sqlite3``
    FTS5 table        - one row per live todo; keyword and date columns are
                        UNINDEXED and used only for filtering
    Ranking           - bm25() with per-column weights, negated so higher
                        scores are better

All access goes through _lock. The manager calls upsert/delete inside its
own write lock, so the index trails the filesystem by at most one call.
"""

import logging
import shutil
import sqlite3
import threading
import unicodedata
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from todo_mcp.core.paths import walk_todo_files
from todo_mcp.errors import IndexUnavailableError, TodoError, ValidationError
from todo_mcp.models.todo import Todo
from todo_mcp.parsers.todo_parser import parse_document
from todo_mcp.utils.dates import to_utc_iso

log = logging.getLogger(__name__)

DB_NAME = "index.sqlite3"

# Column order matters: bm25() weights are positional
COLUMNS = ("id", "task", "status", "priority", "type", "started", "completed", "findings", "tests", "content")
WEIGHTS = (0.0, 3.0, 0.0, 0.0, 0.0, 0.0, 0.0, 1.5, 1.0, 0.5)

_CREATE_TABLE = """
CREATE VIRTUAL TABLE IF NOT EXISTS todos USING fts5(
    id UNINDEXED,
    task,
    status UNINDEXED,
    priority UNINDEXED,
    type UNINDEXED,
    started UNINDEXED,
    completed UNINDEXED,
    findings,
    tests,
    content,
    tokenize = 'porter unicode61'
);
"""

_INSERT = f"INSERT INTO todos ({', '.join(COLUMNS)}) VALUES ({', '.join('?' * len(COLUMNS))})"

FILTER_KEYS = ("status", "priority", "type", "date_from", "date_to")

DEFAULT_LIMIT = 20
SNIPPET_TOKENS = 16
EPOCH_START = "1970-01-01T00:00:00"


# ---------------------------------------------------------------------------
# Query building
# ---------------------------------------------------------------------------

def sanitize_query(query: str) -> str:
    """
    Reduce free text to plain search terms.

    Enclosing ``/.../`` is unwrapped, control characters and anything outside
    letters, digits, space, ``-`` and ``_`` become spaces, and whitespace runs
    collapse to one space.
    """
    query = query.strip()
    if len(query) >= 2 and query.startswith("/") and query.endswith("/"):
        query = query[1:-1]
    chars = []
    for ch in query:
        if unicodedata.category(ch) == "Cc":
            chars.append(" ")
        elif ch.isascii() and (ch.isalnum() or ch in " -_"):
            chars.append(ch)
        else:
            chars.append(" ")
    return " ".join("".join(chars).split())


def _quote(term: str) -> str:
    return '"' + term.replace('"', '""') + '"'


def build_match(query: str) -> Optional[str]:
    """
    FTS5 MATCH expression for a user query.

    A query wrapped in double quotes is matched as one phrase. Anything else
    is sanitized and its terms are OR'd together.

    Returns:
        The expression, or None when nothing searchable is left
    """
    query = query.strip()
    if len(query) >= 2 and query.startswith('"') and query.endswith('"'):
        phrase = query[1:-1].strip()
        return _quote(phrase) if any(ch.isalnum() for ch in phrase) else None
    terms = [t for t in sanitize_query(query).split(" ") if any(ch.isalnum() for ch in t)]
    if not terms:
        return None
    return " OR ".join(_quote(t) for t in terms)


def _parse_day(value: str, key: str) -> str:
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").strftime("%Y-%m-%d")
    except (AttributeError, ValueError) as e:
        raise ValidationError(f"expected YYYY-MM-DD, got {value!r}", field=key) from e


def build_filters(filters: Optional[Dict[str, Any]]):
    """WHERE fragments and parameters for the filter map."""
    clauses: List[str] = []
    params: List[Any] = []
    if not filters:
        return clauses, params

    unknown = sorted(set(filters) - set(FILTER_KEYS))
    if unknown:
        raise ValidationError(f"unknown search filter(s): {', '.join(unknown)}")

    for key in ("status", "priority", "type"):
        value = filters.get(key)
        if value:
            clauses.append(f"{key} = ?")
            params.append(str(value))

    date_from = filters.get("date_from")
    date_to = filters.get("date_to")
    if date_from or date_to:
        start = f"{_parse_day(date_from, 'date_from')}T00:00:00" if date_from else EPOCH_START
        if date_to:
            end = f"{_parse_day(date_to, 'date_to')}T23:59:59"
        else:
            end = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")
        clauses.append("started >= ? AND started <= ?")
        params.extend([start, end])

    return clauses, params


def _row_for(todo: Todo, raw: str) -> tuple:
    return (
        todo.id,
        todo.task,
        todo.status,
        todo.priority,
        todo.type,
        to_utc_iso(todo.started),
        to_utc_iso(todo.completed),
        todo.content_of("findings"),
        todo.content_of("tests"),
        raw,
    )


# ---------------------------------------------------------------------------
# Index
# ---------------------------------------------------------------------------

class SearchIndex:
    """
    FTS5 index mirroring the live todos directory.

    Args:
        index_dir: Directory holding the database file
        todos_dir: Live todos directory used for full rebuilds
    """

    def __init__(self, index_dir: Path, todos_dir: Path) -> None:
        self.index_dir = Path(index_dir)
        self.todos_dir = Path(todos_dir)
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def db_path(self) -> Path:
        return self.index_dir / DB_NAME

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _connect(self) -> sqlite3.Connection:
        self.index_dir.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        try:
            conn.execute(_CREATE_TABLE)
            conn.execute("SELECT count(*) FROM todos").fetchone()
            conn.commit()
        except sqlite3.DatabaseError:
            conn.close()
            raise
        return conn

    def open(self) -> "SearchIndex":
        """
        Open or create the index, then rebuild it from the todo files.

        A database that cannot be read is deleted and recreated.

        Raises:
            IndexUnavailableError: the database cannot be created at all
        """
        with self._lock:
            try:
                self._conn = self._connect()
            except sqlite3.DatabaseError as e:
                log.warning("Search index at %s is unreadable (%s); recreating", self.index_dir, e)
                shutil.rmtree(self.index_dir, ignore_errors=True)
                try:
                    self._conn = self._connect()
                except sqlite3.Error as e2:
                    raise IndexUnavailableError(f"cannot create search index: {e2}") from e2
            except (sqlite3.Error, OSError) as e:
                raise IndexUnavailableError(f"cannot open search index: {e}") from e
        self.reindex()
        return self

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "SearchIndex":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise IndexUnavailableError("search index is not open")
        return self._conn

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def reindex(self) -> int:
        """
        Replace the index contents with every parseable file under todos_dir.

        Returns:
            Number of documents indexed
        """
        rows = []
        if self.todos_dir.is_dir():
            for path in walk_todo_files(self.todos_dir):
                try:
                    raw = path.read_text(encoding="utf-8")
                    todo, _ = parse_document(raw, path)
                except (TodoError, OSError, UnicodeDecodeError) as e:
                    log.debug("Not indexing %s: %s", path, e)
                    continue
                if not todo.id:
                    todo.id = path.stem
                rows.append(_row_for(todo, raw))

        with self._lock:
            conn = self._require_conn()
            try:
                with conn:
                    conn.execute("DELETE FROM todos")
                    conn.executemany(_INSERT, rows)
            except sqlite3.Error as e:
                raise IndexUnavailableError(f"index rebuild failed: {e}") from e
        log.info("Indexed %d todo(s) from %s", len(rows), self.todos_dir)
        return len(rows)

    def upsert(self, todo: Todo, raw: str) -> None:
        with self._lock:
            conn = self._require_conn()
            try:
                with conn:
                    conn.execute("DELETE FROM todos WHERE id = ?", (todo.id,))
                    conn.execute(_INSERT, _row_for(todo, raw))
            except sqlite3.Error as e:
                raise IndexUnavailableError(f"index update failed for {todo.id}: {e}") from e

    def delete(self, todo_id: str) -> None:
        with self._lock:
            conn = self._require_conn()
            try:
                with conn:
                    conn.execute("DELETE FROM todos WHERE id = ?", (todo_id,))
            except sqlite3.Error as e:
                raise IndexUnavailableError(f"index delete failed for {todo_id}: {e}") from e

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def count(self) -> int:
        with self._lock:
            conn = self._require_conn()
            try:
                return conn.execute("SELECT count(*) FROM todos").fetchone()[0]
            except sqlite3.Error as e:
                raise IndexUnavailableError(f"index count failed: {e}") from e

    def contains(self, todo_id: str) -> bool:
        with self._lock:
            conn = self._require_conn()
            try:
                row = conn.execute("SELECT 1 FROM todos WHERE id = ? LIMIT 1", (todo_id,)).fetchone()
            except sqlite3.Error as e:
                raise IndexUnavailableError(f"index lookup failed: {e}") from e
            return row is not None

    def search(
        self,
        query: str,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = DEFAULT_LIMIT,
    ) -> List[Dict[str, Any]]:
        """
        Ranked search.

        Args:
            query: Free text, or a double-quoted phrase. An empty query
                matches every document (useful with filters).
            filters: status/priority/type equality, date_from/date_to
                (YYYY-MM-DD, UTC, inclusive) on the started date
            limit: Maximum number of results

        Returns:
            [{"id", "task", "score", "snippet"}] best match first
        """
        if limit <= 0:
            return []
        clauses, params = build_filters(filters)

        if query.strip():
            match = build_match(query)
            if match is None:
                return []
            weights = ", ".join(str(w) for w in WEIGHTS)
            sql = (
                f"SELECT id, task, -bm25(todos, {weights}) AS score, "
                f"snippet(todos, -1, '<mark>', '</mark>', '...', {SNIPPET_TOKENS}) "
                "FROM todos WHERE todos MATCH ?"
            )
            params = [match] + params
            if clauses:
                sql += " AND " + " AND ".join(clauses)
            sql += " ORDER BY score DESC, id LIMIT ?"
        else:
            sql = "SELECT id, task, 0.0 AS score, '' FROM todos"
            if clauses:
                sql += " WHERE " + " AND ".join(clauses)
            sql += " ORDER BY started DESC, id LIMIT ?"
        params.append(limit)

        with self._lock:
            conn = self._require_conn()
            try:
                rows = conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise IndexUnavailableError(f"search failed: {e}") from e

        return [
            {"id": row[0], "task": row[1], "score": float(row[2]), "snippet": row[3] or ""}
            for row in rows
        ]
