"""
Pytest fixtures for entityquery tests.
"""

import copy
import threading
from typing import Any, Dict, List, Optional

import pytest

from entityquery.core.exceptions import StoreError
from entityquery.core.types import MapReduce
from entityquery.query.cache import ResultCache
from entityquery.query.executor import QueryExecutor
from entityquery.query.ordering import paginate, sort_records
from entityquery.storage.base import BaseStore
from entityquery.storage.memory import MemoryStore


class StubStore(BaseStore):
    """
    Store double that counts calls and can be told to fail.

    Sorting and pagination support can be switched off per instance to
    exercise the executor's client-side fallbacks.
    """

    def __init__(
        self,
        records: Optional[List[Dict[str, Any]]] = None,
        supports_sorting: bool = True,
        supports_pagination: bool = True,
        aggregation_output: Any = None,
    ):
        super().__init__()
        self.records = list(records or [])
        self.supports_sorting = supports_sorting
        self.supports_pagination = supports_pagination
        self.aggregation_output = aggregation_output

        self.fail = False
        self.gate: Optional[threading.Event] = None
        self.calls = {"evaluate": 0, "aggregate": 0, "count": 0}
        self.last_evaluate_args = None

    def _enter(self, name: str) -> None:
        if self.gate is not None:
            self.gate.wait(timeout=5)
        with self._lock:
            self.calls[name] += 1
        if self.fail:
            raise StoreError("store unavailable")

    def evaluate(self, entity_name, predicate, order=None, skip=0, limit=0):
        self._enter("evaluate")
        self.last_evaluate_args = (entity_name, order, skip, limit)
        matches = [r for r in self.records if predicate.evaluate(r)]
        if self.supports_sorting:
            matches = sort_records(matches, order)
        if self.supports_pagination:
            matches = paginate(matches, skip, limit)
        return copy.deepcopy(matches)

    def evaluate_aggregation(self, entity_name, predicate, map_reduce):
        self._enter("aggregate")
        return copy.deepcopy(self.aggregation_output)

    def count(self, entity_name, predicate):
        self._enter("count")
        return sum(1 for r in self.records if predicate.evaluate(r))


@pytest.fixture
def score_records() -> List[Dict[str, Any]]:
    """Three records, two of them tied on score."""
    return [
        {"id": 1, "score": 5},
        {"id": 2, "score": 9},
        {"id": 3, "score": 9},
    ]


@pytest.fixture
def user_records() -> List[Dict[str, Any]]:
    """A small, varied user collection."""
    return [
        {"id": "u1", "name": "Ada", "age": 36, "country": "UK",
         "tags": ["admin", "math"], "address": {"city": "London"}},
        {"id": "u2", "name": "Alan", "age": 41, "country": "UK",
         "tags": ["math"], "address": {"city": "Wilmslow"}},
        {"id": "u3", "name": "Grace", "age": 85, "country": "US",
         "tags": ["navy", "admin"], "address": {"city": "Arlington"}},
        {"id": "u4", "name": "Linus", "age": 28, "country": "FI",
         "tags": [], "nickname": None},
        {"id": "u5", "name": "Margaret", "age": 33, "country": "US",
         "tags": ["nasa"]},
    ]


@pytest.fixture
def stub_store(score_records) -> StubStore:
    return StubStore(score_records)


@pytest.fixture
def make_stub_store():
    """Factory for stub stores with custom capabilities."""
    return StubStore


@pytest.fixture
def cache() -> ResultCache:
    return ResultCache(max_entries=64)


@pytest.fixture
def executor(stub_store, cache):
    executor = QueryExecutor(stub_store, cache=cache, max_workers=4)
    yield executor
    executor.close()


@pytest.fixture
def memory_store(user_records) -> MemoryStore:
    store = MemoryStore()
    store.insert_many("users", user_records)
    return store


@pytest.fixture
def map_reduce() -> MapReduce:
    return MapReduce(
        map_function="function () { emit(this.country, 1); }",
        reduce_function="function (key, values) { return Array.sum(values); }",
    )


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: end-to-end tests through EntityDatabase")
