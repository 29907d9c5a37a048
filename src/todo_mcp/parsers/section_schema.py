"""
Section schemas: validation, metrics and section inference.

Each schema kind validates the content found under a section heading and
extracts a few metrics from it. Legacy todo files carry no ``sections``
frontmatter, so the section list is inferred from their "## " headings
using the canonical title mapping.
"""

import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from todo_mcp.errors import ValidationError
from todo_mcp.models.sections import (
    SCHEMAS,
    ChecklistItem,
    SectionDefinition,
    canonical_for_title,
)

# Marker char -> checklist status
CHECKBOX_STATUS = {
    " ": "pending",
    "x": "completed",
    "X": "completed",
    ">": "in_progress",
    "-": "in_progress",
    "~": "in_progress",
}

CHECKLIST_LINE = re.compile(r"^- \[([ xX>\-~])\](.*)$")

_FENCED_BLOCK = re.compile(r"^\s*```.*?^\s*```", re.MULTILINE | re.DOTALL)


def parse_checklist_line(line: str) -> Optional[tuple]:
    """
    Parse one checklist line.

    Returns:
        (marker, text) with text stripped, or None if the line is not a
        checklist item
    """
    m = CHECKLIST_LINE.match(line.strip())
    if not m:
        return None
    return m.group(1), m.group(2).strip()


def parse_checklist(content: str) -> List[ChecklistItem]:
    """Extract checklist items with their tri-state status, skipping empty items."""
    items = []
    for line in content.split("\n"):
        parsed = parse_checklist_line(line)
        if not parsed:
            continue
        marker, text = parsed
        if text:
            items.append(ChecklistItem(text=text, status=CHECKBOX_STATUS[marker]))
    return items


# ---------------------------------------------------------------------------
# Validators
# ---------------------------------------------------------------------------

class SectionValidator(ABC):
    """Validation and metric extraction for one schema kind."""

    schema: str = ""

    @abstractmethod
    def validate(self, content: str) -> None:
        """
        Check section content against the schema.

        Raises:
            ValidationError: if the content does not satisfy the schema
        """

    @abstractmethod
    def metrics(self, content: str) -> Dict[str, Any]:
        """Schema-specific counters for the content."""


class ResearchValidator(SectionValidator):
    schema = "research"

    def validate(self, content: str) -> None:
        return None

    def metrics(self, content: str) -> Dict[str, Any]:
        return {"word_count": len(content.split())}


class StrategyValidator(SectionValidator):
    schema = "strategy"

    def validate(self, content: str) -> None:
        return None

    def metrics(self, content: str) -> Dict[str, Any]:
        return {"sections": content.count("###")}


class FreeformValidator(SectionValidator):
    schema = "freeform"

    def validate(self, content: str) -> None:
        return None

    def metrics(self, content: str) -> Dict[str, Any]:
        return {"length": len(content)}


class ChecklistValidator(SectionValidator):
    schema = "checklist"

    def validate(self, content: str) -> None:
        for line in content.split("\n"):
            stripped = line.strip()
            if not stripped:
                continue
            if parse_checklist_line(stripped):
                continue
            if stripped.startswith("- ["):
                raise ValidationError(f"invalid checkbox syntax: {stripped!r}")
            raise ValidationError(f"non-checklist content found: {stripped!r}")

    def metrics(self, content: str) -> Dict[str, Any]:
        counts = {"completed": 0, "in_progress": 0, "pending": 0}
        for line in content.split("\n"):
            parsed = parse_checklist_line(line)
            if parsed:
                counts[CHECKBOX_STATUS[parsed[0]]] += 1
        counts["total"] = sum(counts.values())
        return counts


class TestCasesValidator(SectionValidator):
    schema = "test_cases"

    def validate(self, content: str) -> None:
        if not _FENCED_BLOCK.search(content):
            raise ValidationError("no code blocks found")

    def metrics(self, content: str) -> Dict[str, Any]:
        return {"code_blocks": len(_FENCED_BLOCK.findall(content))}


class ResultsValidator(SectionValidator):
    schema = "results"

    def validate(self, content: str) -> None:
        # Entries without a "[timestamp]" prefix are accepted
        return None

    def metrics(self, content: str) -> Dict[str, Any]:
        entries = sum(1 for line in content.split("\n") if line.strip().startswith("["))
        return {"entries": entries}


_VALIDATORS: Dict[str, SectionValidator] = {
    v.schema: v
    for v in (
        ResearchValidator(),
        StrategyValidator(),
        FreeformValidator(),
        ChecklistValidator(),
        TestCasesValidator(),
        ResultsValidator(),
    )
}


def is_valid_schema(schema: str) -> bool:
    return schema in SCHEMAS


def get_validator(schema: str) -> SectionValidator:
    """Validator for a schema kind; unknown kinds raise ValidationError."""
    if not is_valid_schema(schema):
        raise ValidationError(f"invalid schema type '{schema}'", field="schema")
    return _VALIDATORS[schema]


def validation_error(schema: str, content: str) -> Optional[str]:
    """The validation message for content, or None when it is valid."""
    try:
        get_validator(schema).validate(content)
    except ValidationError as e:
        return e.message
    return None


# ---------------------------------------------------------------------------
# Section inference
# ---------------------------------------------------------------------------

def generate_section_key(title: str) -> str:
    """Derive a snake_case section key from a custom heading title."""
    key = title.lower().replace("&", "and")
    key = re.sub(r"[\s/\\-]+", "_", key)
    key = re.sub(r"[^\w]", "", key)
    key = re.sub(r"_{2,}", "_", key).strip("_")
    return key or "section"


def iter_headings(body: str):
    """Yield the title of every "## " heading in the body, in order."""
    for line in body.split("\n"):
        if line.startswith("## "):
            yield line[3:].strip()


def infer_sections(body: str) -> Dict[str, SectionDefinition]:
    """
    Infer section metadata from the "## " headings of a body.

    Standard titles map to their canonical key and schema; anything else
    becomes a custom freeform section keyed by its title. Body order is
    preserved in the ``order`` field.
    """
    sections: Dict[str, SectionDefinition] = {}
    order = 0
    for title in iter_headings(body):
        canonical = canonical_for_title(title)
        if canonical:
            key, schema = canonical
            custom = False
        else:
            key, schema, custom = generate_section_key(title), "freeform", True
        if key in sections:
            continue
        order += 1
        sections[key] = SectionDefinition(title=title, order=order, schema=schema, custom=custom)
    return sections


def validate_required_sections(sections: Dict[str, SectionDefinition], body: str) -> None:
    """
    Check that every required section has a heading in the body.

    Raises:
        ValidationError: naming the first missing required section
    """
    present = set(iter_headings(body))
    for _, definition in sorted(sections.items(), key=lambda item: (item[1].order, item[0])):
        if definition.required and definition.title not in present:
            raise ValidationError(f"missing required section: {definition.title}")
