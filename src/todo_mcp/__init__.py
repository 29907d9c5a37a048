"""Markdown todo store with full-text search, served over MCP."""

__version__ = "0.1.0"
