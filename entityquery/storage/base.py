"""
Abstract base class for entity stores.

A store evaluates compiled predicates against a named collection of
schemaless records. The transport, authentication and wire format of a
real store are its own business; the executor only sees this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import threading

from ..core.types import MapReduce, SortOrder
from ..query.conditions import ConditionGroup


Record = Dict[str, Any]


@dataclass
class StoreStats:
    """Statistics about store usage."""

    entity_count: int = 0
    record_count: int = 0

    # Operation counters
    evaluations: int = 0
    aggregations: int = 0
    counts: int = 0
    writes: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_count": self.entity_count,
            "record_count": self.record_count,
            "evaluations": self.evaluations,
            "aggregations": self.aggregations,
            "counts": self.counts,
            "writes": self.writes,
        }


class BaseStore(ABC):
    """
    Abstract base class for entity stores.

    Implementations raise ``StoreError`` for any failure; the executor
    propagates it to the caller and never retries.

    Class attributes:
        supports_sorting: The store applies ``order`` itself
        supports_pagination: The store applies ``skip`` and ``limit`` itself

    When a capability is missing the executor sorts or slices the returned
    records client-side.
    """

    supports_sorting: bool = True
    supports_pagination: bool = True

    def __init__(self, **kwargs):
        self._lock = threading.RLock()

    @abstractmethod
    def evaluate(
        self,
        entity_name: str,
        predicate: ConditionGroup,
        order: Optional[SortOrder] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[Record]:
        """
        Fetch matching records.

        Args:
            entity_name: Collection to query
            predicate: Compiled predicate
            order: Optional single-key order
            skip: Number of leading matches to drop
            limit: Maximum records to return (0 = unbounded)

        Returns:
            Matching raw records
        """
        pass

    @abstractmethod
    def evaluate_aggregation(
        self,
        entity_name: str,
        predicate: ConditionGroup,
        map_reduce: MapReduce,
    ) -> Any:
        """
        Run a map-reduce over the matching records.

        Returns:
            The raw aggregation output
        """
        pass

    @abstractmethod
    def count(self, entity_name: str, predicate: ConditionGroup) -> int:
        """Count matching records without fetching them."""
        pass

    def stats(self) -> StoreStats:
        return StoreStats()

    def close(self) -> None:
        """Release resources held by the store."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
