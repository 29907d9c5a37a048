from .path_cache import PathCache

__all__ = ["PathCache"]
