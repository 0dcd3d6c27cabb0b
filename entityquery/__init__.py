"""
entityquery - declarative queries over schemaless entity collections.

Describe a filter with a fluent builder (equality, range, membership,
pattern and existence conditions grouped with AND/OR), add ordering,
pagination and an optional map-reduce stage, then run it inline or in the
background against an entity store, optionally through a result cache.

Example:
    >>> from entityquery import EntityDatabase, CachePolicy
    >>>
    >>> db = EntityDatabase()
    >>> db.store.insert_many("scores", [
    ...     {"id": 1, "score": 5},
    ...     {"id": 2, "score": 9},
    ... ])
    >>>
    >>> query = db.query("scores")
    >>> query.where_key_greater_than_or_equal_to("score", 5)
    >>> query.order_descending_by_key("score")
    >>> query.cache_policy = CachePolicy.CACHE_ELSE_NETWORK
    >>> top = query.find_all()
"""

from .core.exceptions import (
    EntityQueryError,
    InvalidConditionError,
    InvalidQueryError,
    UnsupportedOperationError,
    StoreError,
    CacheError,
)
from .core.types import CachePolicy, SortDirection, SortOrder, MapReduce
from .query import (
    Condition,
    ConditionGroup,
    GroupMode,
    Operator,
    RegexOption,
    QueryBuilder,
    GroupHandle,
    QueryPlan,
    compile_query,
    ResultCache,
    QueryExecutor,
)
from .storage import BaseStore, MemoryStore
from .core.database import EntityDatabase

__version__ = "0.1.0"

__all__ = [
    # Entry point
    "EntityDatabase",
    # Exceptions
    "EntityQueryError",
    "InvalidConditionError",
    "InvalidQueryError",
    "UnsupportedOperationError",
    "StoreError",
    "CacheError",
    # Types
    "CachePolicy",
    "SortDirection",
    "SortOrder",
    "MapReduce",
    # Query
    "Condition",
    "ConditionGroup",
    "GroupMode",
    "Operator",
    "RegexOption",
    "QueryBuilder",
    "GroupHandle",
    "QueryPlan",
    "compile_query",
    "ResultCache",
    "QueryExecutor",
    # Storage
    "BaseStore",
    "MemoryStore",
]
