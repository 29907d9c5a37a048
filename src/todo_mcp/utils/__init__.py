from .dates import format_timestamp, parse_timestamp
from .ids import generate_base_id, is_valid_id

__all__ = [
    "format_timestamp",
    "parse_timestamp",
    "generate_base_id",
    "is_valid_id",
]
