"""
Section metadata models.

A todo body is a sequence of "## <Title>" blocks. The frontmatter may carry
a ``sections`` mapping describing which blocks exist, in what order, and
which schema validates each one. Section *content* never lives here; it is
only ever read from or written to the Markdown body.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

SCHEMAS = ("research", "strategy", "checklist", "test_cases", "results", "freeform")


@dataclass
class SectionDefinition:
    """Metadata for one named section of a todo."""

    title: str
    order: int
    schema: str = "freeform"
    required: bool = False
    custom: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "title": self.title,
            "order": self.order,
            "schema": self.schema,
            "required": self.required,
        }
        if self.custom:
            data["custom"] = True
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data

    @classmethod
    def from_dict(cls, key: str, data: Optional[Dict[str, Any]]) -> SectionDefinition:
        """Build a definition from frontmatter, filling gaps the way legacy files need."""
        if not isinstance(data, dict):
            return cls(title=key, order=100)
        title = str(data.get("title") or key)
        if title.startswith("## "):
            title = title[3:]
        try:
            order = int(data.get("order", 100))
        except (TypeError, ValueError):
            order = 100
        metadata = data.get("metadata")
        return cls(
            title=title,
            order=order,
            schema=str(data.get("schema") or "freeform"),
            required=bool(data.get("required", False)),
            custom=bool(data.get("custom", False)),
            metadata=dict(metadata) if isinstance(metadata, dict) else {},
        )


@dataclass
class ChecklistItem:
    """A "- [ ]" style line parsed out of a checklist section."""

    text: str
    status: str  # "pending", "in_progress", "completed"


# (key, title, schema) in default order
DEFAULT_SECTIONS: Tuple[Tuple[str, str, str], ...] = (
    ("findings", "Findings & Research", "research"),
    ("web_searches", "Web Searches", "research"),
    ("test_strategy", "Test Strategy", "strategy"),
    ("test_list", "Test List", "checklist"),
    ("tests", "Test Cases", "test_cases"),
    ("maintainability", "Maintainability Analysis", "freeform"),
    ("test_results", "Test Results Log", "results"),
    ("checklist", "Checklist", "checklist"),
    ("scratchpad", "Working Scratchpad", "freeform"),
)

# Title -> (key, schema); legacy files are read through this mapping
CANONICAL_SECTIONS: Dict[str, Tuple[str, str]] = {
    title: (key, schema) for key, title, schema in DEFAULT_SECTIONS
}

_CANONICAL_BY_KEY: Dict[str, Tuple[str, str]] = {
    key: (title, schema) for key, title, schema in DEFAULT_SECTIONS
}


def default_sections() -> Dict[str, SectionDefinition]:
    """Fresh copy of the nine sections every new todo starts with."""
    return {
        key: SectionDefinition(title=title, order=order, schema=schema)
        for order, (key, title, schema) in enumerate(DEFAULT_SECTIONS, start=1)
    }


def canonical_for_title(title: str) -> Optional[Tuple[str, str]]:
    """(key, schema) for a standard section title, or None."""
    return CANONICAL_SECTIONS.get(title)


def canonical_for_key(key: str) -> Optional[Tuple[str, str]]:
    """(title, schema) for a standard section key, or None."""
    return _CANONICAL_BY_KEY.get(key)


def ordered_sections(sections: Dict[str, SectionDefinition]) -> List[Tuple[str, SectionDefinition]]:
    """Sections sorted by order, key breaking ties."""
    return sorted(sections.items(), key=lambda item: (item[1].order, item[0]))
