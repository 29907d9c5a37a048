"""
Todo ID generation utilities.

IDs are kebab-case slugs derived from the task title. Uniqueness against the
files on disk is the manager's job; these helpers are pure.
"""

import re
import unicodedata

MAX_ID_LENGTH = 50

# Word cuts shorter than this are not worth preserving when truncating
_MIN_WORD_CUT = 30

_SEPARATORS = frozenset("_/\\")


def generate_base_id(task: str) -> str:
    """
    Build a kebab-case base ID from a task title.

    Whitespace, underscores and slashes become hyphens; punctuation, symbols,
    brackets, quotes, control bytes and combining marks are dropped. Runs of
    hyphens collapse to one and the result is capped at 50 characters,
    cutting at the last hyphen where that does not lose most of the text.

    Args:
        task: Human task title

    Returns:
        Slug such as "implement-authentication", or "todo" if nothing survives
    """
    chars = []
    for ch in task.lower():
        if ch.isspace() or ch in _SEPARATORS:
            chars.append("-")
            continue
        if ch == "-":
            chars.append(ch)
            continue
        category = unicodedata.category(ch)
        # C* = control/format/unassigned, M* = combining marks,
        # P* = punctuation (incl. brackets and quotes), S* = symbols
        if category[0] in "CMPS":
            continue
        chars.append(ch)

    slug = re.sub(r"-{2,}", "-", "".join(chars)).strip("-")

    if len(slug) > MAX_ID_LENGTH:
        slug = slug[:MAX_ID_LENGTH]
        last_hyphen = slug.rfind("-")
        if last_hyphen > _MIN_WORD_CUT:
            slug = slug[:last_hyphen]
        slug = slug.strip("-")

    return slug or "todo"


def numbered_id(base: str, n: int) -> str:
    """Return the n-th candidate for a base ID: base, base-2, base-3, ..."""
    return base if n <= 1 else f"{base}-{n}"


def is_valid_id(todo_id: str) -> bool:
    """True if the ID can be used as a file name inside the todos tree."""
    if not todo_id or todo_id in (".", ".."):
        return False
    return not any(ch in todo_id for ch in "/\\\x00")
