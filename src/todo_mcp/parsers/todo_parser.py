"""
Parser and serializer for todo files.

Main API:
    parse_document(text)        -> (Todo, body)
    parse_file(path)            -> (Todo, body)
    render_document(todo, body) -> str

File layout:

    ---
    todo_id: implement-authentication
    started: '2026-01-05 09:30:00'
    status: in_progress
    priority: high
    type: feature
    ---

    # Task: Implement authentication

    ## Findings & Research

    ...

When ``render_document`` is given the existing body it only regenerates the
frontmatter, so hand edits in the Markdown survive metadata updates.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from todo_mcp.errors import CorruptionError, StorageError, ValidationError
from todo_mcp.models.sections import SectionDefinition, ordered_sections
from todo_mcp.models.todo import Todo
from todo_mcp.parsers.section_schema import infer_sections
from todo_mcp.utils.dates import format_timestamp, parse_timestamp

DELIMITER = "---\n"
TASK_PREFIX = "# Task:"

# Frontmatter keys in the order they are written
KNOWN_KEYS = (
    "todo_id",
    "started",
    "completed",
    "status",
    "priority",
    "type",
    "parent_id",
    "tags",
    "sections",
)


# ---------------------------------------------------------------------------
# Low-level parsers
# ---------------------------------------------------------------------------

def _describe(source) -> str:
    return f" in {source}" if source else ""


def split_document(text: str, source=None) -> Tuple[str, str]:
    """
    Split file text into (frontmatter_yaml, body).

    Raises:
        CorruptionError: if the text has no complete frontmatter block
    """
    parts = text.replace("\r\n", "\n").split(DELIMITER, 2)
    if len(parts) < 3:
        raise CorruptionError(
            f"invalid todo file format: missing frontmatter delimiters{_describe(source)}"
        )
    return parts[1], parts[2]


def load_frontmatter(yaml_text: str, source=None) -> Dict[str, Any]:
    """YAML-parse a frontmatter block into a dict."""
    try:
        data = yaml.safe_load(yaml_text)
    except yaml.YAMLError as e:
        raise ValidationError(f"failed to parse YAML frontmatter{_describe(source)}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError(f"frontmatter is not a mapping{_describe(source)}")
    return data


def extract_task(body: str) -> str:
    """Title from the first "# Task:" heading, or "" if there is none."""
    for line in body.split("\n"):
        if line.startswith(TASK_PREFIX):
            return line[len(TASK_PREFIX):].strip()
    return ""


def split_sections(body: str) -> List[Tuple[str, str]]:
    """
    Split a body into [(heading_title, content)] for every "## " heading.

    Content is the text up to the next "## " heading with surrounding blank
    lines removed. Text before the first heading is not part of any section.
    """
    sections: List[Tuple[str, str]] = []
    title: Optional[str] = None
    lines: List[str] = []

    def _flush():
        if title is not None:
            sections.append((title, "\n".join(lines).strip("\n")))

    for line in body.split("\n"):
        if line.startswith("## "):
            _flush()
            title = line[3:].strip()
            lines = []
        elif title is not None:
            lines.append(line)
    _flush()
    return sections


def parse_tags(value) -> List[str]:
    if value is None or value == "":
        return []
    if isinstance(value, str):
        return [t.strip() for t in value.split(",") if t.strip()]
    if isinstance(value, (list, tuple)):
        return [str(t) for t in value if str(t).strip()]
    raise ValidationError(f"tags must be a list, got {type(value).__name__}", field="tags")


def _parse_sections(value, source=None) -> Optional[Dict[str, SectionDefinition]]:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValidationError(f"sections must be a mapping{_describe(source)}", field="sections")
    return {str(key): SectionDefinition.from_dict(str(key), data) for key, data in value.items()}


def _parse_time_field(data: Dict[str, Any], key: str, source=None):
    try:
        return parse_timestamp(data.get(key))
    except ValueError as e:
        raise ValidationError(f"{e}{_describe(source)}", field=key) from e


def _optional_str(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# ---------------------------------------------------------------------------
# Main API
# ---------------------------------------------------------------------------

def parse_document(text: str, source=None) -> Tuple[Todo, str]:
    """
    Parse todo file text.

    Args:
        text: Full file content
        source: Path or label used in error messages

    Returns:
        Tuple of (Todo, body) where body is everything after the closing
        frontmatter delimiter, unchanged
    """
    yaml_text, body = split_document(text, source)
    data = load_frontmatter(yaml_text, source)

    sections = _parse_sections(data.get("sections"), source)
    if sections is None:
        sections = infer_sections(body)

    todo = Todo(
        id=str(data.get("todo_id") or ""),
        task=extract_task(body),
        started=_parse_time_field(data, "started", source),
        completed=_parse_time_field(data, "completed", source),
        status=str(data.get("status") or "in_progress"),
        priority=str(data.get("priority") or "medium"),
        type=str(data.get("type") or ""),
        parent_id=_optional_str(data.get("parent_id")),
        tags=parse_tags(data.get("tags")),
        sections=sections,
        extra={k: v for k, v in data.items() if k not in KNOWN_KEYS},
    )

    by_title = {definition.title: key for key, definition in sections.items()}
    for title, content in split_sections(body):
        key = by_title.get(title)
        if key is not None and content and key not in todo.section_content:
            todo.section_content[key] = content

    return todo, body


def parse_file(path: Path) -> Tuple[Todo, str]:
    """Read and parse a todo file; the file stem stands in for a missing todo_id."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise
    except UnicodeDecodeError as e:
        raise CorruptionError(f"todo file is not valid UTF-8{_describe(path)}: {e}") from e
    except OSError as e:
        raise StorageError("read", path, e) from e
    todo, body = parse_document(text, path)
    if not todo.id:
        todo.id = path.stem
    return todo, body


def render_body(todo: Todo) -> str:
    """Render the Markdown body of a todo from its sections and their content."""
    parts = [f"{TASK_PREFIX} {todo.task}\n\n"]
    for key, definition in ordered_sections(todo.sections):
        content = todo.content_of(key).strip("\n")
        parts.append(f"## {definition.title}\n\n")
        if content:
            parts.append(f"{content}\n\n")
    return "".join(parts)


def frontmatter_dict(todo: Todo, body: str) -> Dict[str, Any]:
    """
    Frontmatter mapping in stable key order.

    ``sections`` is omitted when inferring from the body would reproduce it
    exactly, which is always the case for the default section set.
    """
    data: Dict[str, Any] = {
        "todo_id": todo.id,
        "started": format_timestamp(todo.started),
    }
    if todo.completed is not None:
        data["completed"] = format_timestamp(todo.completed)
    data["status"] = todo.status
    data["priority"] = todo.priority
    data["type"] = todo.type
    if todo.parent_id:
        data["parent_id"] = todo.parent_id
    if todo.tags:
        data["tags"] = list(todo.tags)
    if todo.sections and infer_sections(body) != todo.sections:
        data["sections"] = {
            key: definition.to_dict() for key, definition in ordered_sections(todo.sections)
        }
    for key, value in todo.extra.items():
        if key not in data:
            data[key] = value
    return data


def render_document(todo: Todo, body: Optional[str] = None) -> str:
    """
    Serialize a todo to file text.

    Args:
        todo: Todo whose frontmatter is written
        body: Existing body to keep verbatim; rendered from the model if None

    Returns:
        "---\\n" + YAML + "---\\n" + body
    """
    if body is None:
        body = "\n" + render_body(todo)
    yaml_text = yaml.safe_dump(
        frontmatter_dict(todo, body),
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
    return f"{DELIMITER}{yaml_text}{DELIMITER}{body}"
