from .index import SearchIndex, build_match, sanitize_query

__all__ = ["SearchIndex", "build_match", "sanitize_query"]
