from .section_schema import (
    get_validator,
    infer_sections,
    parse_checklist,
    validate_required_sections,
    validation_error,
)
from .todo_parser import parse_document, parse_file, render_body, render_document

__all__ = [
    "get_validator",
    "infer_sections",
    "parse_checklist",
    "validate_required_sections",
    "validation_error",
    "parse_document",
    "parse_file",
    "render_body",
    "render_document",
]
