"""
Store interface and backends for entityquery.

This module provides:
- BaseStore: the interface the executor runs plans against
- MemoryStore: in-process store for development and testing

Example:
    >>> from entityquery.storage import MemoryStore
    >>>
    >>> store = MemoryStore()
    >>> store.insert("users", {"id": "u1", "name": "Ada"})
"""

from .base import BaseStore, Record, StoreStats
from .memory import MemoryStore

__all__ = [
    "BaseStore",
    "Record",
    "StoreStats",
    "MemoryStore",
]
