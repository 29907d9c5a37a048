"""
In-place edits of one "## " section of a todo body.

Only the lines between the target heading and the next "## " heading (or
end of body) are touched; every other byte of the body is kept.
"""

from datetime import datetime
from typing import Dict, List, Optional, Tuple

from todo_mcp.errors import ValidationError
from todo_mcp.models.sections import SectionDefinition, canonical_for_key
from todo_mcp.parsers.section_schema import parse_checklist_line
from todo_mcp.utils.dates import format_timestamp
from todo_mcp.utils.dates import now as current_time

OPERATIONS = ("append", "prepend", "replace", "toggle")

# Checklist marker rotation: pending -> in_progress -> completed -> pending
NEXT_MARKER = {
    " ": ">",
    ">": "x",
    "-": "x",
    "~": "x",
    "x": " ",
    "X": " ",
}


def section_info(sections: Dict[str, SectionDefinition], key: str) -> Tuple[str, str]:
    """
    (title, schema) for a section key.

    Section metadata wins; standard keys fall back to the canonical mapping.

    Raises:
        ValidationError: if the key is unknown
    """
    definition = sections.get(key)
    if definition is not None:
        return definition.title, definition.schema
    canonical = canonical_for_key(key)
    if canonical is not None:
        return canonical
    raise ValidationError(f"unknown section '{key}'", field="section")


def find_section(lines: List[str], title: str) -> Optional[Tuple[int, int]]:
    """
    Locate a section in body lines.

    Returns:
        (heading_index, end_index) where end_index is the index of the next
        "## " heading or len(lines); None if the heading is absent
    """
    heading = f"## {title}"
    start = None
    for i, line in enumerate(lines):
        if start is None:
            if line.rstrip() == heading:
                start = i
        elif line.startswith("## "):
            return start, i
    if start is None:
        return None
    return start, len(lines)


def _strip_blank_edges(lines: List[str]) -> List[str]:
    start, end = 0, len(lines)
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    return lines[start:end]


def _content_lines(content: str) -> List[str]:
    if not content.strip():
        return []
    return content.strip("\n").split("\n")


def timestamp_entry(content: str, when: datetime) -> str:
    """Prefix a results entry with "[YYYY-MM-DD HH:MM:SS] " unless it already starts with "["."""
    if content.lstrip().startswith("["):
        return content
    return f"[{format_timestamp(when)}] {content}"


def toggle_line(line: str) -> str:
    """Rotate the checkbox marker of a checklist line, keeping its indentation."""
    indent = line[: len(line) - len(line.lstrip())]
    stripped = line.strip()
    marker = stripped[3]
    return f"{indent}- [{NEXT_MARKER[marker]}]{stripped[5:]}"


def _toggle(lines: List[str], span: Tuple[int, int], item: str) -> List[str]:
    target = item.strip()
    start, end = span
    for i in range(start + 1, end):
        parsed = parse_checklist_line(lines[i])
        if parsed and parsed[1] == target:
            updated = list(lines)
            updated[i] = toggle_line(lines[i])
            return updated
    raise ValidationError(f"checklist item not found: {target!r}")


def apply(
    body: str,
    sections: Dict[str, SectionDefinition],
    key: str,
    operation: str,
    content: str = "",
    now: Optional[datetime] = None,
) -> str:
    """
    Apply a section operation to a body and return the new body.

    Args:
        body: Markdown after the frontmatter
        sections: Section metadata of the todo
        key: Section key such as "findings"
        operation: append, prepend, replace or toggle
        content: Text to insert, or the checklist item text for toggle
        now: Timestamp used for results entries

    Raises:
        ValidationError: unknown section or operation, toggle on a
            non-checklist section, or a missing checklist item
    """
    if operation not in OPERATIONS:
        raise ValidationError(
            f"invalid operation '{operation}', expected one of {', '.join(OPERATIONS)}",
            field="operation",
        )
    title, schema = section_info(sections, key)
    content = content or ""

    if operation == "toggle" and schema != "checklist":
        raise ValidationError(f"toggle is only valid for checklist sections, '{key}' is {schema}")

    if schema == "results" and operation in ("append", "prepend") and content.strip():
        content = timestamp_entry(content.strip("\n"), now or current_time())

    lines = body.split("\n")
    span = find_section(lines, title)

    if span is None:
        if operation == "toggle":
            raise ValidationError(f"section '{key}' not found")
        new_lines = _content_lines(content)
        section = f"## {title}\n\n"
        if new_lines:
            section += "\n".join(new_lines) + "\n\n"
        return body.rstrip("\n") + "\n\n" + section

    if operation == "toggle":
        return "\n".join(_toggle(lines, span, content))

    start, end = span
    core = _strip_blank_edges(lines[start + 1:end])
    new_lines = _content_lines(content)

    if operation == "replace":
        core = new_lines
    elif operation == "append":
        if new_lines:
            core = core + [""] + new_lines if core else new_lines
    else:
        if new_lines:
            core = new_lines + [""] + core if core else new_lines

    # The last section keeps the trailing blank line the renderer writes
    tail = lines[end:] if end < len(lines) else [""]
    rebuilt = lines[: start + 1] + [""] + core + ([""] if core else []) + tail
    return "\n".join(rebuilt)
