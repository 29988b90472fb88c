"""Persistence for the course hierarchy, node versions and slide components."""

from .sqlite import ContentStore, SQLiteContentConfig

__all__ = ["ContentStore", "SQLiteContentConfig"]
