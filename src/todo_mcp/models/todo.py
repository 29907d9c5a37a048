"""
Core todo data model.

A Todo is the parsed form of one ``<id>.md`` file: frontmatter attributes,
the task title from the "# Task:" heading, section metadata, and the
content found under each section heading.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .sections import SectionDefinition, ordered_sections

STATUSES = ("in_progress", "blocked", "completed")
PRIORITIES = ("high", "medium", "low")

# Conventional values only; any string is accepted
TODO_TYPES = ("feature", "bug", "refactor", "research", "phase", "subtask", "multi-phase")


@dataclass
class Todo:
    """A single todo document."""

    id: str
    task: str = ""
    started: Optional[datetime] = None
    completed: Optional[datetime] = None
    status: str = "in_progress"
    priority: str = "medium"
    type: str = "feature"
    parent_id: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    sections: Dict[str, SectionDefinition] = field(default_factory=dict)
    section_content: Dict[str, str] = field(default_factory=dict)
    # Unknown frontmatter keys, written back after the known ones
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    def ordered_sections(self):
        """[(key, SectionDefinition)] in display order."""
        return ordered_sections(self.sections)

    def content_of(self, key: str) -> str:
        return self.section_content.get(key, "")
