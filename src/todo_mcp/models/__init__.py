from .sections import (
    CANONICAL_SECTIONS,
    DEFAULT_SECTIONS,
    SCHEMAS,
    ChecklistItem,
    SectionDefinition,
    canonical_for_key,
    canonical_for_title,
    default_sections,
    ordered_sections,
)
from .todo import PRIORITIES, STATUSES, TODO_TYPES, Todo

__all__ = [
    "CANONICAL_SECTIONS",
    "DEFAULT_SECTIONS",
    "SCHEMAS",
    "ChecklistItem",
    "SectionDefinition",
    "canonical_for_key",
    "canonical_for_title",
    "default_sections",
    "ordered_sections",
    "PRIORITIES",
    "STATUSES",
    "TODO_TYPES",
    "Todo",
]
