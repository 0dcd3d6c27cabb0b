"""
Query processing module for entityquery.

This module provides:
- Conditions and condition groups
- The query builder and its group handles
- Query compilation and fingerprinting
- The result cache
- Query execution

Example:
    >>> from entityquery.query import QueryExecutor, ResultCache
    >>> from entityquery.storage import MemoryStore
    >>>
    >>> executor = QueryExecutor(MemoryStore(), cache=ResultCache())
    >>> query = executor.query("products")
    >>> query.where_key_equal_to("category", "electronics")
    >>> query.where_key_less_than("price", 100)
    >>> query.order_ascending_by_key("price")
    >>> products = query.find_all()
"""

from .conditions import (
    Condition,
    ConditionGroup,
    GroupMode,
    Operator,
    RegexOption,
    Predicate,
    predicate_from_dict,
    evaluate_predicate,
)

from .builder import (
    QueryBuilder,
    GroupHandle,
)

from .planner import (
    QueryPlan,
    compile_query,
    canonical_encode,
)

from .cache import (
    ResultCache,
    CacheEntry,
    CacheStats,
)

from .executor import (
    QueryExecutor,
    ExecutionStats,
)

__all__ = [
    # Conditions
    "Condition",
    "ConditionGroup",
    "GroupMode",
    "Operator",
    "RegexOption",
    "Predicate",
    "predicate_from_dict",
    "evaluate_predicate",
    # Builder
    "QueryBuilder",
    "GroupHandle",
    # Planner
    "QueryPlan",
    "compile_query",
    "canonical_encode",
    # Cache
    "ResultCache",
    "CacheEntry",
    "CacheStats",
    # Executor
    "QueryExecutor",
    "ExecutionStats",
]
