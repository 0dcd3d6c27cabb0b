"""
Query execution for entityquery.

Runs compiled query plans against an entity store, optionally through a
result cache.

Features:
- Blocking and background forms of every operation
- Cache policies resolved per plan
- Client-side ordering/pagination when the store cannot push them down
- Execution statistics

Background execution:
    Work is scheduled on a shared thread pool, one task per call. The
    callback receives ``(result, error)`` on the worker thread, exactly
    once, after the call's data is fully resolved. The one exception is
    CACHE_THEN_NETWORK with a cache hit, which delivers twice: the cached
    result first, then the live one. Errors detected before scheduling
    (invalid or unsupported plans) are delivered immediately on the
    calling thread. Every background method also returns a Future that
    resolves with the final outcome.

Example:
    >>> executor = QueryExecutor(store, cache=ResultCache())
    >>>
    >>> query = executor.query("users")
    >>> query.where_key_equal_to("active", True)
    >>> users = query.find_all()
    >>>
    >>> # Or run a compiled plan directly
    >>> future = executor.count_all_in_background(
    ...     query.compile(),
    ...     callback=lambda count, error: print(count, error),
    ... )
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional
import threading
import time

from ..core.exceptions import (
    CacheError,
    EntityQueryError,
    InvalidConditionError,
    InvalidQueryError,
    StoreError,
    UnsupportedOperationError,
)
from ..core.types import CachePolicy
from ..utils.logging import get_logger
from .builder import QueryBuilder, ResultCallback
from .cache import CacheEntry, ResultCache
from .conditions import Condition, ConditionGroup, GroupMode, Operator
from .ordering import paginate, sort_records
from .planner import QueryPlan

if TYPE_CHECKING:
    from ..storage.base import BaseStore, Record


logger = get_logger(__name__)


DEFAULT_ID_KEY = "id"


@dataclass
class ExecutionStats:
    """
    Statistics from query execution.
    """

    queries: int = 0
    store_calls: int = 0
    store_errors: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    cache_fallbacks: int = 0
    background_tasks: int = 0

    # Timing
    total_time_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "queries": self.queries,
            "store_calls": self.store_calls,
            "store_errors": self.store_errors,
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "cache_fallbacks": self.cache_fallbacks,
            "background_tasks": self.background_tasks,
            "total_time_ms": self.total_time_ms,
        }


@dataclass
class _Operation:
    """One resolved unit of work: how to fetch raw data and shape it."""

    name: str
    plan: QueryPlan
    cache_key: str
    fetch: Callable[[], Any]
    shape: Callable[[Any], Any]


def _invoke_callback(
    callback: ResultCallback,
    result: Any,
    error: Optional[BaseException],
) -> None:
    try:
        callback(result, error)
    except Exception:
        logger.exception("Query callback raised")


def deliver_failure(
    error: BaseException,
    callback: Optional[ResultCallback] = None,
) -> Future:
    """
    Report an error detected before scheduling.

    The callback, if any, is invoked once on the calling thread and the
    returned Future is already failed.
    """
    future: Future = Future()
    future.set_exception(error)
    if callback is not None:
        _invoke_callback(callback, None, error)
    return future


class QueryExecutor:
    """
    Executes query plans against an entity store.

    Args:
        store: Store the plans are evaluated against
        cache: Result cache; without one every policy behaves like NO_CACHE
        max_workers: Size of the shared background worker pool
        id_key: Record field used by ``find_by_id``
        decoder: Optional ``(entity_name, record) -> entity`` hook applied to
            fetched records
        default_cache_policy: Policy given to builders created by ``query()``
    """

    def __init__(
        self,
        store: "BaseStore",
        cache: Optional[ResultCache] = None,
        max_workers: int = 4,
        id_key: str = DEFAULT_ID_KEY,
        decoder: Optional[Callable[[str, "Record"], Any]] = None,
        default_cache_policy: CachePolicy = CachePolicy.NO_CACHE,
    ):
        if max_workers <= 0:
            raise ValueError(f"max_workers must be positive, got {max_workers}")

        self._store = store
        self._cache = cache
        self._id_key = id_key
        self._decoder = decoder
        self._default_cache_policy = CachePolicy(default_cache_policy)

        self._pool = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="entityquery",
        )
        self._closed = False

        self._stats = ExecutionStats()
        self._stats_lock = threading.Lock()

        logger.debug(
            f"QueryExecutor initialized with {type(store).__name__}, "
            f"cache={'on' if cache is not None else 'off'}, workers={max_workers}"
        )

    @property
    def store(self) -> "BaseStore":
        return self._store

    @property
    def cache(self) -> Optional[ResultCache]:
        return self._cache

    @property
    def id_key(self) -> str:
        return self._id_key

    def query(self, entity_name: str) -> QueryBuilder:
        """Create a builder bound to this executor."""
        return QueryBuilder(
            entity_name,
            executor=self,
            cache_policy=self._default_cache_policy,
        )

    # =========================================================================
    # BLOCKING OPERATIONS
    # =========================================================================

    def find_all(self, plan: QueryPlan) -> Any:
        """
        Find all matching records.

        With a map-reduce stage set, returns the raw aggregation output
        (through the stage's ``result_processor`` if it has one); ordering
        and pagination are not reapplied to it.

        Raises:
            StoreError: If the store fails
        """
        return self._run(self._find_all_operation(plan, "find_all"))

    def find_one(self, plan: QueryPlan) -> Optional[Any]:
        """
        Find the first matching record.

        Returns:
            The record, or None if nothing matches

        Raises:
            UnsupportedOperationError: If the plan has a map-reduce stage
            StoreError: If the store fails
        """
        return self._run(self._find_one_operation(plan, "find_one"))

    def find_by_id(
        self,
        entity_id: Any,
        entity_name: str,
        cache_policy: Optional[CachePolicy] = None,
    ) -> Optional[Any]:
        """
        Find a record by its unique ID.

        Returns:
            The record, or None if no record has this ID
        """
        plan = self._id_plan(entity_id, entity_name, cache_policy)
        return self._run(self._find_one_operation(plan, "find_by_id"))

    def count_all(self, plan: QueryPlan) -> int:
        """
        Count matching records using the store's count operation.

        Order, limit and skip are ignored.

        Raises:
            UnsupportedOperationError: If the plan has a map-reduce stage
            StoreError: If the store fails
        """
        return self._run(self._count_operation(plan, "count_all"))

    # =========================================================================
    # BACKGROUND OPERATIONS
    # =========================================================================

    def find_all_in_background(
        self,
        plan: QueryPlan,
        callback: Optional[ResultCallback] = None,
    ) -> Future:
        return self._submit(lambda: self._find_all_operation(plan, "find_all"), callback)

    def find_one_in_background(
        self,
        plan: QueryPlan,
        callback: Optional[ResultCallback] = None,
    ) -> Future:
        return self._submit(lambda: self._find_one_operation(plan, "find_one"), callback)

    def find_by_id_in_background(
        self,
        entity_id: Any,
        entity_name: str,
        callback: Optional[ResultCallback] = None,
        cache_policy: Optional[CachePolicy] = None,
    ) -> Future:
        def operation() -> _Operation:
            plan = self._id_plan(entity_id, entity_name, cache_policy)
            return self._find_one_operation(plan, "find_by_id")

        return self._submit(operation, callback)

    def count_all_in_background(
        self,
        plan: QueryPlan,
        callback: Optional[ResultCallback] = None,
    ) -> Future:
        return self._submit(lambda: self._count_operation(plan, "count_all"), callback)

    # =========================================================================
    # OPERATION CONSTRUCTION
    # =========================================================================

    def _id_plan(
        self,
        entity_id: Any,
        entity_name: str,
        cache_policy: Optional[CachePolicy],
    ) -> QueryPlan:
        # Condition errors surface here, before anything is scheduled
        condition = Condition(self._id_key, Operator.EQ, entity_id)
        return QueryPlan(
            entity_name=entity_name,
            predicate=ConditionGroup(GroupMode.AND, (condition,)),
            limit=1,
            cache_policy=cache_policy if cache_policy is not None else self._default_cache_policy,
        )

    def _find_all_operation(self, plan: QueryPlan, name: str) -> _Operation:
        if plan.map_reduce is not None:
            processor = plan.map_reduce.result_processor
            return _Operation(
                name=name,
                plan=plan,
                cache_key=f"aggregate:{plan.fingerprint}",
                fetch=lambda: self._store.evaluate_aggregation(
                    plan.entity_name, plan.predicate, plan.map_reduce
                ),
                shape=processor if processor is not None else (lambda raw: raw),
            )

        return _Operation(
            name=name,
            plan=plan,
            cache_key=f"records:{plan.fingerprint}",
            fetch=lambda: self._fetch_records(plan),
            shape=lambda records: self._decode_all(plan.entity_name, records),
        )

    def _find_one_operation(self, plan: QueryPlan, name: str) -> _Operation:
        if plan.map_reduce is not None:
            raise UnsupportedOperationError(
                f"{name} is not defined for a query with map-reduce"
            )

        operation = self._find_all_operation(plan.with_limit(1), name)
        return replace(operation, shape=lambda records: self._decode_first(plan.entity_name, records))

    def _count_operation(self, plan: QueryPlan, name: str) -> _Operation:
        if plan.map_reduce is not None:
            raise UnsupportedOperationError(
                f"{name} is not defined for a query with map-reduce"
            )

        count_plan = plan.for_count()
        return _Operation(
            name=name,
            plan=count_plan,
            cache_key=f"count:{count_plan.fingerprint}",
            fetch=lambda: self._store.count(count_plan.entity_name, count_plan.predicate),
            shape=lambda count: count,
        )

    def _fetch_records(self, plan: QueryPlan) -> List["Record"]:
        """
        Fetch records, pushing order and pagination down where the store
        supports it.
        """
        store = self._store

        if store.supports_sorting and store.supports_pagination:
            return store.evaluate(
                plan.entity_name, plan.predicate, plan.order, plan.skip, plan.limit
            )

        if store.supports_sorting:
            records = store.evaluate(plan.entity_name, plan.predicate, plan.order, 0, 0)
        else:
            # Pagination cannot be pushed down without the store's ordering
            records = store.evaluate(plan.entity_name, plan.predicate, None, 0, 0)
            records = sort_records(records, plan.order)

        return paginate(records, plan.skip, plan.limit)

    def _decode_all(self, entity_name: str, records: List["Record"]) -> List[Any]:
        if self._decoder is None:
            return list(records)
        return [self._decoder(entity_name, r) for r in records]

    def _decode_first(self, entity_name: str, records: List["Record"]) -> Optional[Any]:
        if not records:
            return None
        if self._decoder is None:
            return records[0]
        return self._decoder(entity_name, records[0])

    # =========================================================================
    # RESOLUTION
    # =========================================================================

    def _run(self, operation: _Operation) -> Any:
        start = time.time()
        try:
            return operation.shape(self._resolve(operation))
        finally:
            with self._stats_lock:
                self._stats.queries += 1
                self._stats.total_time_ms += (time.time() - start) * 1000

    def _resolve(self, operation: _Operation) -> Any:
        """Resolve raw data for an operation according to its cache policy."""
        policy = operation.plan.cache_policy
        if self._cache is None:
            policy = CachePolicy.NO_CACHE

        if policy == CachePolicy.NO_CACHE:
            return self._fetch(operation)

        if policy == CachePolicy.CACHE_ELSE_NETWORK:
            entry = self._cache_get(operation)
            if entry is not None:
                return entry.result
            raw = self._fetch(operation)
            self._cache_put(operation, raw)
            return raw

        # NETWORK_ELSE_CACHE, and CACHE_THEN_NETWORK outside the background path
        try:
            raw = self._fetch(operation)
        except StoreError:
            entry = self._cache_get(operation)
            if entry is None:
                raise
            with self._stats_lock:
                self._stats.cache_fallbacks += 1
            logger.warning(
                f"{operation.name} on '{operation.plan.entity_name}' failed, "
                "serving cached result"
            )
            return entry.result

        self._cache_put(operation, raw)
        return raw

    def _fetch(self, operation: _Operation) -> Any:
        """Call the store, tagging failures with the operation name."""
        with self._stats_lock:
            self._stats.store_calls += 1

        try:
            return operation.fetch()
        except StoreError as e:
            if e.operation is None:
                e.operation = operation.name
            with self._stats_lock:
                self._stats.store_errors += 1
            logger.warning(f"Store failed during {operation.name}: {e}")
            raise

    def _cache_get(self, operation: _Operation) -> Optional[CacheEntry]:
        try:
            entry = self._cache.get(operation.cache_key)
        except CacheError as e:
            logger.warning(f"Cache lookup failed, treating as miss: {e}")
            entry = None

        with self._stats_lock:
            if entry is None:
                self._stats.cache_misses += 1
            else:
                self._stats.cache_hits += 1

        logger.debug(
            f"Cache {'hit' if entry is not None else 'miss'} for {operation.name} "
            f"({operation.plan.fingerprint[:12]})"
        )
        return entry

    def _cache_put(self, operation: _Operation, raw: Any) -> None:
        try:
            self._cache.put(operation.cache_key, raw)
        except CacheError as e:
            logger.warning(f"Cache store failed: {e}")

    # =========================================================================
    # SCHEDULING
    # =========================================================================

    def _submit(
        self,
        build_operation: Callable[[], _Operation],
        callback: Optional[ResultCallback],
    ) -> Future:
        try:
            operation = build_operation()
        except (InvalidConditionError, InvalidQueryError, UnsupportedOperationError) as e:
            return deliver_failure(e, callback)

        if self._closed:
            return deliver_failure(EntityQueryError("QueryExecutor is closed"), callback)

        try:
            future = self._pool.submit(self._run_in_background, operation, callback)
        except RuntimeError as e:
            return deliver_failure(EntityQueryError(f"Could not schedule query: {e}"), callback)

        with self._stats_lock:
            self._stats.background_tasks += 1
        logger.debug(f"Scheduled {operation.name} on '{operation.plan.entity_name}'")

        return future

    def _run_in_background(
        self,
        operation: _Operation,
        callback: Optional[ResultCallback],
    ) -> Any:
        try:
            if (
                operation.plan.cache_policy == CachePolicy.CACHE_THEN_NETWORK
                and self._cache is not None
            ):
                result = self._cache_then_network(operation, callback)
            else:
                result = self._run(operation)
        except Exception as e:
            if callback is not None:
                _invoke_callback(callback, None, e)
            raise

        if callback is not None:
            _invoke_callback(callback, result, None)
        return result

    def _cache_then_network(
        self,
        operation: _Operation,
        callback: Optional[ResultCallback],
    ) -> Any:
        """Deliver a cached hit first, then fetch live and return that."""
        entry = self._cache_get(operation)
        if entry is not None and callback is not None:
            _invoke_callback(callback, operation.shape(entry.result), None)

        start = time.time()
        try:
            raw = self._fetch(operation)
            self._cache_put(operation, raw)
            return operation.shape(raw)
        finally:
            with self._stats_lock:
                self._stats.queries += 1
                self._stats.total_time_ms += (time.time() - start) * 1000

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def stats(self) -> ExecutionStats:
        with self._stats_lock:
            return replace(self._stats)

    def close(self, wait: bool = True) -> None:
        """Stop accepting background work and shut the worker pool down."""
        if self._closed:
            return
        self._closed = True
        self._pool.shutdown(wait=wait)
        logger.debug("QueryExecutor closed")

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __repr__(self) -> str:
        return (
            f"QueryExecutor(store={type(self._store).__name__}, "
            f"cache={self._cache!r})"
        )
