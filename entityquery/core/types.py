"""
Shared value types for queries: cache policy, sort order and map-reduce.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional
import copy

from .exceptions import InvalidQueryError


class CachePolicy(str, Enum):
    """
    Rule governing when cached results may be served.

    NO_CACHE: never read or write the cache.
    CACHE_ELSE_NETWORK: serve any cached entry, else fetch and populate.
    NETWORK_ELSE_CACHE: fetch first, fall back to the cache on store failure.
    CACHE_THEN_NETWORK: background only; deliver the cached entry, then the
        live result. Blocking calls treat it like NETWORK_ELSE_CACHE.
    """

    NO_CACHE = "no_cache"
    CACHE_ELSE_NETWORK = "cache_else_network"
    NETWORK_ELSE_CACHE = "network_else_cache"
    CACHE_THEN_NETWORK = "cache_then_network"


class SortDirection(str, Enum):
    """Sort directions."""

    ASCENDING = "asc"
    DESCENDING = "desc"


@dataclass(frozen=True)
class SortOrder:
    """Single-key ordering."""

    key: str
    direction: SortDirection = SortDirection.ASCENDING

    def __post_init__(self):
        if not isinstance(self.key, str) or not self.key:
            raise InvalidQueryError("Sort key must be a non-empty string")
        object.__setattr__(self, "direction", SortDirection(self.direction))

    @property
    def descending(self) -> bool:
        return self.direction == SortDirection.DESCENDING

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "direction": self.direction.value}


@dataclass(frozen=True)
class MapReduce:
    """
    Opaque aggregation stage.

    The function sources are handed to the store untouched; the engine only
    knows that the stage replaces per-record output with the store's raw
    aggregation output. ``result_processor`` runs client-side on that output
    and does not take part in the plan fingerprint.

    Example:
        >>> mr = MapReduce(
        ...     map_function="function () { emit(this.group, 1); }",
        ...     reduce_function="function (key, values) { return values.length; }",
        ... )
    """

    map_function: str
    reduce_function: str
    finalize_function: Optional[str] = None
    context: Mapping[str, Any] = field(default_factory=dict)
    result_processor: Optional[Callable[[Any], Any]] = field(
        default=None, compare=False
    )

    def __post_init__(self):
        for name in ("map_function", "reduce_function"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise InvalidQueryError(f"MapReduce {name} must be a non-empty string")
        if self.finalize_function is not None and not isinstance(self.finalize_function, str):
            raise InvalidQueryError("MapReduce finalize_function must be a string")
        if not isinstance(self.context, Mapping):
            raise InvalidQueryError("MapReduce context must be a mapping")
        object.__setattr__(self, "context", copy.deepcopy(dict(self.context)))

    def __hash__(self) -> int:
        return hash((self.map_function, self.reduce_function, self.finalize_function))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "map": self.map_function,
            "reduce": self.reduce_function,
            "finalize": self.finalize_function,
            "context": dict(self.context),
        }
