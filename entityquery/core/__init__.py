"""
Core types and exceptions for entityquery.
"""

from .exceptions import (
    EntityQueryError,
    InvalidConditionError,
    InvalidQueryError,
    UnsupportedOperationError,
    StoreError,
    CacheError,
)
from .types import CachePolicy, SortDirection, SortOrder, MapReduce

__all__ = [
    "EntityQueryError",
    "InvalidConditionError",
    "InvalidQueryError",
    "UnsupportedOperationError",
    "StoreError",
    "CacheError",
    "CachePolicy",
    "SortDirection",
    "SortOrder",
    "MapReduce",
]
