"""
Storage module for FilePerm.

This module provides SQLite-based persistence for resource levels.

Tables:
    - resources: Stable ids for (namespace, key) pairs
    - resource_levels: One explicit level per resource

LevelStore adds a read-through cache scoped to one request. Never share a
LevelStore between requests.
"""

from fileperm.store.db import FilePermDB
from fileperm.store.level_store import LevelStore

__all__ = [
    "FilePermDB",
    "LevelStore",
]
