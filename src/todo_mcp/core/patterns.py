"""
Title pattern recognition for multi-part work.

Titles such as "Phase 2: Rollout" or "3. Wire up the API" usually belong
under a parent todo. ``detect_pattern`` turns that into a type hint and
``find_similar`` finds todos sharing the same title prefix.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

from todo_mcp.models.todo import Todo

PHASE_PATTERN = re.compile(r"^phase\s+(\d+(?:\.\d+)?)\b", re.IGNORECASE)
PART_PATTERN = re.compile(r"^part\s+(\d+)(?:\s+of\s+\d+)?\b", re.IGNORECASE)
STEP_PATTERN = re.compile(r"^step\s+(\d+)\b", re.IGNORECASE)
BRACKET_PATTERN = re.compile(r"^\[(\d+)\]\s+")
NUMBER_DOT_PATTERN = re.compile(r"^(\d+)\.\s+")
NUMBER_PAREN_PATTERN = re.compile(r"^(\d+)\)\s+")

PREFIX_SEPARATORS = (":", " - ", " \u2014 ")
MAX_PREFIX_LENGTH = 30

# (pattern, name, suggested type, prefix used for similarity)
_RECOGNISERS = (
    (PHASE_PATTERN, "phase", "phase", "Phase"),
    (PART_PATTERN, "part", "phase", "Part"),
    (STEP_PATTERN, "step", "subtask", "Step"),
    (BRACKET_PATTERN, "numbered", "subtask", "Numbered"),
    (NUMBER_DOT_PATTERN, "numbered", "subtask", "Numbered"),
    (NUMBER_PAREN_PATTERN, "numbered", "subtask", "Numbered"),
)

_MESSAGES = {
    "phase": "This looks like a phase. Consider using type 'phase' with a parent_id.",
    "part": "This looks like a multi-part task. Consider using type 'phase' with a parent_id.",
    "step": "This looks like a step. Consider using type 'subtask' with a parent_id.",
    "numbered": "This looks like a numbered task. Consider using type 'subtask' with a parent_id.",
}


@dataclass
class PatternHint:
    pattern: str
    suggested_type: str
    message: str
    number: str = ""

    def to_dict(self) -> dict:
        d = {
            "pattern": self.pattern,
            "suggested_type": self.suggested_type,
            "message": self.message,
        }
        if self.number:
            d["number"] = self.number
        return d


def detect_pattern(title: str) -> Optional[PatternHint]:
    """Type hint for a Phase/Part/Step/numbered title, or None."""
    title = title.strip()
    for pattern, name, suggested, _ in _RECOGNISERS:
        m = pattern.match(title)
        if m:
            return PatternHint(
                pattern=name,
                suggested_type=suggested,
                message=_MESSAGES[name],
                number=m.group(1),
            )
    return None


def extract_prefix(title: str) -> str:
    """
    Similarity prefix of a title.

    Recognised patterns map to their kind ("Phase", "Step", "Numbered", ...);
    otherwise the text before the first ":" or " - " if it is short.
    """
    for pattern, _, _, prefix in _RECOGNISERS:
        if pattern.match(title):
            return prefix
    for sep in PREFIX_SEPARATORS:
        idx = title.find(sep)
        if idx > 0:
            prefix = title[:idx].strip()
            if len(prefix) < MAX_PREFIX_LENGTH:
                return prefix
    return ""


def find_similar(title: str, todos: Iterable[Todo]) -> List[str]:
    """Ids of todos whose task titles share the prefix of ``title``."""
    prefix = extract_prefix(title).strip().lower()
    if not prefix:
        return []
    similar = []
    for todo in todos:
        if not todo.id:
            continue
        other = extract_prefix(todo.task).strip().lower()
        if other and other == prefix:
            similar.append(todo.id)
    return similar
