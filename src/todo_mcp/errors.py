"""
Error types raised by the todo core.

Every error carries a ``kind`` string so the tool layer can report a stable
category alongside the human-readable message:

    not_found          missing todo, parent, template or backup
    validation         unknown section, malformed YAML, bad metadata value
    conflict           id collision at write time
    io                 filesystem failures
    corruption         file lacks a frontmatter block
    index_unavailable  search backend failures
"""

from typing import List, Optional


class TodoError(Exception):
    """Base class for all todo core errors."""

    kind = "internal"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(TodoError):
    kind = "not_found"

    def __init__(self, resource: str, resource_id: str) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} '{resource_id}' not found")


class ValidationError(TodoError):
    kind = "validation"

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        self.field = field
        if field:
            message = f"validation error for field '{field}': {message}"
        super().__init__(message)


class HasActiveChildrenError(ValidationError):
    """Raised when archiving a parent that still has live children."""

    def __init__(self, todo_id: str, children: List[str]) -> None:
        self.todo_id = todo_id
        self.children = list(children)
        super().__init__(
            f"cannot archive todo '{todo_id}': has {len(children)} active "
            f"children ({', '.join(children)})"
        )


class ConflictError(TodoError):
    kind = "conflict"

    def __init__(self, resource: str, resource_id: str, message: str = "") -> None:
        self.resource = resource
        self.resource_id = resource_id
        text = f"conflict for {resource} '{resource_id}'"
        if message:
            text = f"{text}: {message}"
        super().__init__(text)


class StorageError(TodoError):
    kind = "io"

    def __init__(self, operation: str, path, cause: Optional[BaseException] = None) -> None:
        self.operation = operation
        self.path = path
        text = f"failed to {operation} {path}"
        if cause is not None:
            text = f"{text}: {cause}"
        super().__init__(text)


class CorruptionError(TodoError):
    kind = "corruption"


class IndexUnavailableError(TodoError):
    kind = "index_unavailable"


class ArchiveError(TodoError):
    """A cascade archive stopped at ``todo_id``; ``__cause__`` holds the reason."""

    def __init__(self, todo_id: str, cause: TodoError) -> None:
        self.todo_id = todo_id
        self.kind = cause.kind
        super().__init__(f"failed to archive child '{todo_id}': {cause}")
