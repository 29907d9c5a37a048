"""
Tests for parsers/todo_parser.py.

Covers frontmatter splitting, section inference for legacy files,
serialization order and round-trips.
"""

from datetime import datetime, timedelta

import pytest
import yaml

from todo_mcp.errors import CorruptionError, ValidationError
from todo_mcp.models import Todo, default_sections
from todo_mcp.models.sections import SectionDefinition
from todo_mcp.parsers.todo_parser import (
    extract_task,
    parse_document,
    parse_file,
    render_body,
    render_document,
    split_sections,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

LEGACY = (
    "---\n"
    "todo_id: legacy-task\n"
    "started: 2025-03-04 10:11:12\n"
    "status: blocked\n"
    "priority: low\n"
    "type: bug\n"
    "owner: alice\n"
    "---\n"
    "\n"
    "# Task: Legacy task\n"
    "\n"
    "## Findings & Research\n"
    "\n"
    "Some notes.\n"
    "\n"
    "## Test Results Log\n"
    "\n"
    "[2025-03-04 10:12:00] ran tests\n"
    "\n"
    "## Deployment Notes\n"
    "\n"
    "Ship it.\n"
)


def _make_todo(**kwargs) -> Todo:
    defaults = dict(
        id="implement-authentication",
        task="Implement authentication",
        started=datetime(2026, 1, 5, 9, 30, 0),
        priority="high",
        type="feature",
        sections=default_sections(),
    )
    defaults.update(kwargs)
    return Todo(**defaults)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

class TestParseDocument:
    def test_missing_delimiters(self):
        with pytest.raises(CorruptionError):
            parse_document("# Task: no frontmatter\n")

    def test_single_delimiter(self):
        with pytest.raises(CorruptionError):
            parse_document("---\ntodo_id: x\n")

    def test_bad_yaml_names_file(self):
        with pytest.raises(ValidationError) as exc:
            parse_document("---\ntodo_id: [unclosed\n---\n\n# Task: x\n", source="broken.md")
        assert "broken.md" in str(exc.value)

    def test_crlf_normalized(self):
        todo, body = parse_document(LEGACY.replace("\n", "\r\n"))
        assert todo.id == "legacy-task"
        assert todo.task == "Legacy task"
        assert "\r" not in body

    def test_legacy_fields(self):
        todo, _ = parse_document(LEGACY)
        assert todo.status == "blocked"
        assert todo.priority == "low"
        assert todo.type == "bug"
        assert todo.started == datetime(2025, 3, 4, 10, 11, 12)
        assert todo.completed is None
        assert todo.extra == {"owner": "alice"}

    def test_sections_inferred_in_body_order(self):
        todo, _ = parse_document(LEGACY)
        keys = [k for k, _ in todo.ordered_sections()]
        assert keys == ["findings", "test_results", "deployment_notes"]
        assert todo.sections["findings"].schema == "research"
        assert todo.sections["test_results"].schema == "results"
        assert todo.sections["deployment_notes"].schema == "freeform"
        assert todo.sections["deployment_notes"].custom

    def test_section_content(self):
        todo, _ = parse_document(LEGACY)
        assert todo.content_of("findings") == "Some notes."
        assert todo.content_of("test_results") == "[2025-03-04 10:12:00] ran tests"
        assert todo.content_of("deployment_notes") == "Ship it."

    def test_missing_task_heading_is_empty(self):
        todo, _ = parse_document("---\ntodo_id: x\n---\n\nno heading here\n")
        assert todo.task == ""

    def test_tags_comma_string(self):
        todo, _ = parse_document("---\ntodo_id: x\ntags: a, b ,c\n---\n\n# Task: x\n")
        assert todo.tags == ["a", "b", "c"]

    def test_rfc3339_started(self):
        todo, _ = parse_document("---\ntodo_id: x\nstarted: '2026-01-05T09:30:00Z'\n---\n\n# Task: x\n")
        assert todo.started.year == 2026
        assert todo.started.utcoffset() is not None

    def test_explicit_sections_metadata(self):
        text = (
            "---\n"
            "todo_id: x\n"
            "sections:\n"
            "  notes:\n"
            "    title: '## Notes'\n"
            "    order: 1\n"
            "    schema: checklist\n"
            "    required: true\n"
            "---\n"
            "\n# Task: x\n\n## Notes\n\n- [ ] one\n"
        )
        todo, _ = parse_document(text)
        notes = todo.sections["notes"]
        assert notes.title == "Notes"
        assert notes.schema == "checklist"
        assert notes.required
        assert todo.content_of("notes") == "- [ ] one"


class TestHelpers:
    def test_extract_task_first_only(self):
        assert extract_task("\n# Task: One\n# Task: Two\n") == "One"

    def test_split_sections_ignores_preamble(self):
        body = "\n# Task: x\n\nintro\n\n## A\n\na\n\n## B\n"
        assert split_sections(body) == [("A", "a"), ("B", "")]


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

class TestRender:
    def test_frontmatter_key_order(self):
        todo = _make_todo(parent_id="parent", tags=["auth"])
        text = render_document(todo)
        yaml_text = text.split("---\n")[1]
        keys = list(yaml.safe_load(yaml_text).keys())
        assert keys == ["todo_id", "started", "status", "priority", "type", "parent_id", "tags"]

    def test_completed_written_when_set(self):
        todo = _make_todo(status="completed", completed=datetime(2026, 1, 6, 8, 0, 0))
        data = yaml.safe_load(render_document(todo).split("---\n")[1])
        assert data["completed"] == "2026-01-06 08:00:00"

    def test_timestamps_are_strings(self):
        data = yaml.safe_load(render_document(_make_todo()).split("---\n")[1])
        assert data["started"] == "2026-01-05 09:30:00"

    def test_default_sections_not_written(self):
        text = render_document(_make_todo())
        assert "sections:" not in text

    def test_custom_sections_written(self):
        sections = {"notes": SectionDefinition(title="Notes", order=1, schema="checklist", required=True)}
        text = render_document(_make_todo(sections=sections))
        assert "sections:" in text
        todo, _ = parse_document(text)
        assert todo.sections == sections

    def test_body_layout(self):
        body = render_body(_make_todo())
        assert body.startswith("# Task: Implement authentication\n\n## Findings & Research\n\n")
        headings = [line for line in body.split("\n") if line.startswith("## ")]
        assert headings == [
            "## Findings & Research",
            "## Web Searches",
            "## Test Strategy",
            "## Test List",
            "## Test Cases",
            "## Maintainability Analysis",
            "## Test Results Log",
            "## Checklist",
            "## Working Scratchpad",
        ]

    def test_document_layout(self):
        text = render_document(_make_todo())
        assert text.startswith("---\ntodo_id: implement-authentication\n")
        assert "---\n\n# Task: Implement authentication\n\n" in text

    def test_existing_body_kept_verbatim(self):
        todo, body = parse_document(LEGACY)
        todo.priority = "high"
        text = render_document(todo, body)
        assert text.endswith(body)
        again, again_body = parse_document(text)
        assert again_body == body
        assert again.priority == "high"
        assert again.extra == {"owner": "alice"}


class TestRoundTrip:
    def test_read_of_write(self):
        todo = _make_todo(tags=["a", "b"], parent_id="p")
        todo.section_content = {"findings": "OAuth via PKCE", "checklist": "- [ ] one\n- [x] two"}
        parsed, _ = parse_document(render_document(todo))
        assert parsed == todo

    def test_keeps_utc_offset(self):
        text = (
            "---\ntodo_id: tz\nstarted: '2026-01-05T09:30:00+05:00'\n---\n\n"
            "# Task: Offset\n\n## Findings & Research\n\nnotes\n"
        )
        todo, _ = parse_document(text)
        rendered = render_document(todo)
        again, _ = parse_document(rendered)
        assert again.started == todo.started
        assert again.started.utcoffset() == timedelta(hours=5)
        frontmatter = yaml.safe_load(rendered.split("---\n")[1])
        assert frontmatter["started"] == "2026-01-05T09:30:00+05:00"

    def test_large_section(self):
        big = "\n".join(f"line {i} " + "x" * 90 for i in range(2100))
        assert len(big) > 200_000
        todo = _make_todo()
        todo.section_content = {"scratchpad": big}
        parsed, _ = parse_document(render_document(todo))
        assert parsed.content_of("scratchpad") == big

    def test_parse_file_uses_stem_for_missing_id(self, tmp_path):
        path = tmp_path / "from-stem.md"
        path.write_text("---\nstatus: in_progress\n---\n\n# Task: T\n", encoding="utf-8")
        todo, _ = parse_file(path)
        assert todo.id == "from-stem"
