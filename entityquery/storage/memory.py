"""
In-memory entity store.

Evaluates predicates in process against records held in dictionaries.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional
import copy
import uuid

from ..core.exceptions import StoreError
from ..core.types import MapReduce, SortOrder
from ..query.conditions import ConditionGroup, get_field_value
from ..query.ordering import paginate, sort_records
from .base import BaseStore, Record, StoreStats


class MemoryStore(BaseStore):
    """
    In-memory entity store.

    Volatile, and unable to run map-reduce jobs. Use for:
    - Development and testing
    - Small datasets that fit in memory

    Records without an ID get a generated one on insert. Records are
    copied on the way in and out, so callers cannot mutate stored state.

    Example:
        >>> store = MemoryStore()
        >>> store.insert("users", {"id": "u1", "name": "Ada", "age": 36})
        >>> store.count("users", ConditionGroup(GroupMode.AND))
        1
    """

    def __init__(self, id_key: str = "id", **kwargs):
        """
        Initialize memory store.

        Args:
            id_key: Record field holding the unique ID
        """
        super().__init__(**kwargs)

        self._id_key = id_key
        self._collections: Dict[str, List[Record]] = {}

        # Statistics
        self._evaluations = 0
        self._aggregations = 0
        self._counts = 0
        self._writes = 0

    @property
    def id_key(self) -> str:
        return self._id_key

    # =========================================================================
    # WRITES
    # =========================================================================

    def insert(self, entity_name: str, record: Record) -> Record:
        """
        Insert a record, replacing any record with the same ID.

        Returns:
            A copy of the stored record (with its ID)
        """
        if not isinstance(record, dict):
            raise StoreError(f"Records must be dictionaries, got {type(record).__name__}")

        stored = copy.deepcopy(record)
        stored.setdefault(self._id_key, uuid.uuid4().hex)

        with self._lock:
            records = self._collections.setdefault(entity_name, [])
            for i, existing in enumerate(records):
                if existing.get(self._id_key) == stored[self._id_key]:
                    records[i] = stored
                    break
            else:
                records.append(stored)
            self._writes += 1

        return copy.deepcopy(stored)

    def insert_many(self, entity_name: str, records: Iterable[Record]) -> int:
        """Insert several records. Returns the number inserted."""
        count = 0
        for record in records:
            self.insert(entity_name, record)
            count += 1
        return count

    def delete(self, entity_name: str, entity_id: Any) -> bool:
        """Delete a record by ID. Returns True if it existed."""
        with self._lock:
            records = self._collections.get(entity_name, [])
            for i, existing in enumerate(records):
                if existing.get(self._id_key) == entity_id:
                    del records[i]
                    self._writes += 1
                    return True
        return False

    def clear(self, entity_name: Optional[str] = None) -> None:
        """Remove one collection, or all of them."""
        with self._lock:
            if entity_name is None:
                self._collections.clear()
            else:
                self._collections.pop(entity_name, None)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def _matching(self, entity_name: str, predicate: ConditionGroup) -> List[Record]:
        with self._lock:
            records = list(self._collections.get(entity_name, []))
        return [r for r in records if predicate.evaluate(r)]

    def evaluate(
        self,
        entity_name: str,
        predicate: ConditionGroup,
        order: Optional[SortOrder] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[Record]:
        """Fetch matching records, sorted and paginated."""
        matches = self._matching(entity_name, predicate)
        matches = paginate(sort_records(matches, order), skip, limit)

        with self._lock:
            self._evaluations += 1

        return copy.deepcopy(matches)

    def evaluate_aggregation(
        self,
        entity_name: str,
        predicate: ConditionGroup,
        map_reduce: MapReduce,
    ) -> Any:
        with self._lock:
            self._aggregations += 1
        raise StoreError("MemoryStore cannot execute map-reduce jobs")

    def count(self, entity_name: str, predicate: ConditionGroup) -> int:
        count = len(self._matching(entity_name, predicate))
        with self._lock:
            self._counts += 1
        return count

    def get(self, entity_name: str, entity_id: Any) -> Optional[Record]:
        """Direct lookup by ID, bypassing predicate evaluation."""
        with self._lock:
            for record in self._collections.get(entity_name, []):
                if get_field_value(record, self._id_key) == entity_id:
                    return copy.deepcopy(record)
        return None

    # =========================================================================
    # INFO
    # =========================================================================

    def entity_names(self) -> List[str]:
        with self._lock:
            return sorted(self._collections)

    def size(self, entity_name: str) -> int:
        with self._lock:
            return len(self._collections.get(entity_name, []))

    def stats(self) -> StoreStats:
        with self._lock:
            return StoreStats(
                entity_count=len(self._collections),
                record_count=sum(len(r) for r in self._collections.values()),
                evaluations=self._evaluations,
                aggregations=self._aggregations,
                counts=self._counts,
                writes=self._writes,
            )

    def __contains__(self, entity_name: str) -> bool:
        with self._lock:
            return entity_name in self._collections

    def __repr__(self) -> str:
        return f"MemoryStore(entities={len(self.entity_names())})"
