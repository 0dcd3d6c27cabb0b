"""
Query builder for entityquery.

A QueryBuilder accumulates the declared state of a query against one named
entity collection: top-level conditions, OR/AND branches, ordering,
pagination, an optional map-reduce stage and the cache policy. It is
compiled into an immutable QueryPlan when executed.

OR and AND branches are opened with ``or_()`` / ``and_()``, which return a
GroupHandle. Conditions added through a handle are ANDed inside that branch;
branches opened with ``or_()`` are ORed with each other. Handles can open
their own branches for deeper nesting.

Example:
    >>> query = QueryBuilder("users")
    >>> query.where_key_greater_than_or_equal_to("age", 18)
    >>>
    >>> # (country == "DE") OR (country == "AT" AND verified)
    >>> query.or_().where_key_equal_to("country", "DE")
    >>> branch = query.or_()
    >>> branch.where_key_equal_to("country", "AT")
    >>> branch.where_key_equal_to("verified", True)
    >>>
    >>> query.order_descending_by_key("age")
    >>> query.limit = 10
    >>> plan = query.compile()

QueryBuilder instances are not thread-safe.
"""

from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from ..core.exceptions import InvalidQueryError
from ..core.types import CachePolicy, MapReduce, SortDirection, SortOrder
from ..utils.validation import validate_count
from .conditions import Condition, ConditionGroup, GroupMode, Operator, RegexOption

from .planner import QueryPlan, compile_query

if TYPE_CHECKING:
    from .executor import QueryExecutor


ResultCallback = Callable[[Any, Optional[BaseException]], None]

TOP_LEVEL = 0


@dataclass
class _GroupSlot:
    """Mutable state of one group in the builder's arena."""

    conditions: List[Condition] = field(default_factory=list)
    or_branches: List[int] = field(default_factory=list)
    and_branches: List[int] = field(default_factory=list)


class ConditionMethods:
    """The ``where_key`` family shared by builders and group handles."""

    def _append(self, condition: Condition) -> None:
        raise NotImplementedError

    def where_key(
        self,
        key: str,
        operator: Operator,
        operand: Any = None,
        options: RegexOption = RegexOption.NONE,
    ) -> None:
        """
        Add a condition.

        Conditions on the same key are all kept and ANDed, even when they
        contradict each other; such a query is unsatisfiable, not invalid.

        Raises:
            InvalidConditionError: If operator and operand do not match
        """
        self._append(Condition(key, operator, operand, options))

    def where_key_equal_to(self, key: str, value: Any) -> None:
        self.where_key(key, Operator.EQ, value)

    def where_key_less_than(self, key: str, value: Any) -> None:
        self.where_key(key, Operator.LT, value)

    def where_key_less_than_or_equal_to(self, key: str, value: Any) -> None:
        self.where_key(key, Operator.LTE, value)

    def where_key_greater_than(self, key: str, value: Any) -> None:
        self.where_key(key, Operator.GT, value)

    def where_key_greater_than_or_equal_to(self, key: str, value: Any) -> None:
        self.where_key(key, Operator.GTE, value)

    def where_key_not_equal_to(self, key: str, value: Any) -> None:
        self.where_key(key, Operator.NE, value)

    def where_key_contained_in(self, key: str, values: List[Any]) -> None:
        """The key value must be one of ``values``."""
        self.where_key(key, Operator.IN, values)

    def where_key_not_contained_in(self, key: str, values: List[Any]) -> None:
        """The key value must not be one of ``values``."""
        self.where_key(key, Operator.NOT_IN, values)

    def where_key_contains_all_in(self, key: str, values: List[Any]) -> None:
        """The key value must be a list containing every item of ``values``."""
        self.where_key(key, Operator.CONTAINS_ALL, values)

    def where_key_matches_regex(
        self,
        key: str,
        pattern: str,
        options: RegexOption = RegexOption.NONE,
    ) -> None:
        self.where_key(key, Operator.REGEX, pattern, options)

    def where_key_contains_string(self, key: str, string: str) -> None:
        self.where_key(key, Operator.CONTAINS, string)

    def where_key_has_prefix(self, key: str, prefix: str) -> None:
        self.where_key(key, Operator.HAS_PREFIX, prefix)

    def where_key_has_suffix(self, key: str, suffix: str) -> None:
        self.where_key(key, Operator.HAS_SUFFIX, suffix)

    def where_key_exists(self, key: str) -> None:
        self.where_key(key, Operator.EXISTS)

    def where_key_does_not_exist(self, key: str) -> None:
        self.where_key(key, Operator.NOT_EXISTS)


class GroupHandle(ConditionMethods):
    """
    Reference to a branch inside a QueryBuilder.

    A handle is only an index into its builder's group arena; conditions
    added through it mutate the builder. A handle opened before
    ``reset()`` is stale and raises InvalidQueryError on use.
    """

    def __init__(
        self,
        builder: "QueryBuilder",
        index: int,
        mode: GroupMode,
        generation: int,
    ):
        self._builder = builder
        self._index = index
        self._mode = mode
        self._generation = generation

    @property
    def mode(self) -> GroupMode:
        """Whether this branch was opened with ``or_()`` or ``and_()``."""
        return self._mode

    @property
    def index(self) -> int:
        return self._index

    @property
    def conditions(self) -> List[Condition]:
        return list(self._builder._slot(self._index, self._generation).conditions)

    def _append(self, condition: Condition) -> None:
        self._builder._slot(self._index, self._generation).conditions.append(condition)

    def or_(self) -> "GroupHandle":
        """Open an OR-branch nested inside this branch."""
        return self._builder._open_branch(self._index, GroupMode.OR, self._generation)

    def and_(self) -> "GroupHandle":
        """Open an AND-branch nested inside this branch."""
        return self._builder._open_branch(self._index, GroupMode.AND, self._generation)

    begin_or = or_
    begin_and = and_

    def __repr__(self) -> str:
        return f"GroupHandle({self._mode.value}, index={self._index})"


class QueryBuilder(ConditionMethods):
    """
    Mutable description of a query on one entity collection.

    Args:
        entity_name: Name of the entity collection to query
        executor: Executor used by the ``find_*`` / ``count_all`` methods
        cache_policy: Default cache policy, restored by ``reset()``
    """

    def __init__(
        self,
        entity_name: str,
        executor: Optional["QueryExecutor"] = None,
        cache_policy: CachePolicy = CachePolicy.NO_CACHE,
    ):
        self._entity_name = entity_name
        self._executor = executor
        self._default_cache_policy = CachePolicy(cache_policy)
        self._generation = -1
        self.reset()

    # =========================================================================
    # OPTIONS
    # =========================================================================

    @property
    def entity_name(self) -> str:
        return self._entity_name

    @property
    def executor(self) -> Optional["QueryExecutor"]:
        return self._executor

    @property
    def limit(self) -> int:
        """Maximum number of results (0 = unbounded)."""
        return self._limit

    @limit.setter
    def limit(self, value: int) -> None:
        self._limit = validate_count(value, "limit")

    @property
    def skip(self) -> int:
        """Number of results to skip. Ignored if a map-reduce is set."""
        return self._skip

    @skip.setter
    def skip(self, value: int) -> None:
        self._skip = validate_count(value, "skip")

    @property
    def map_reduce(self) -> Optional[MapReduce]:
        return self._map_reduce

    @map_reduce.setter
    def map_reduce(self, value: Optional[MapReduce]) -> None:
        if value is not None and not isinstance(value, MapReduce):
            raise InvalidQueryError(
                f"map_reduce must be a MapReduce, got {type(value).__name__}"
            )
        self._map_reduce = value

    @property
    def cache_policy(self) -> CachePolicy:
        return self._cache_policy

    @cache_policy.setter
    def cache_policy(self, value: CachePolicy) -> None:
        try:
            self._cache_policy = CachePolicy(value)
        except ValueError:
            raise InvalidQueryError(f"Unknown cache policy: {value!r}") from None

    @property
    def order(self) -> Optional[SortOrder]:
        return self._order

    # =========================================================================
    # CONDITIONS
    # =========================================================================

    def _slot(self, index: int, generation: Optional[int] = None) -> _GroupSlot:
        if generation is not None and generation != self._generation:
            raise InvalidQueryError(
                f"Group handle {index} was opened before reset() and is no longer valid"
            )
        return self._slots[index]

    def _append(self, condition: Condition) -> None:
        self._slots[TOP_LEVEL].conditions.append(condition)

    def _open_branch(
        self,
        parent: int,
        mode: GroupMode,
        generation: Optional[int] = None,
    ) -> GroupHandle:
        parent_slot = self._slot(parent, generation)
        index = len(self._slots)
        self._slots.append(_GroupSlot())
        if mode == GroupMode.OR:
            parent_slot.or_branches.append(index)
        else:
            parent_slot.and_branches.append(index)
        return GroupHandle(self, index, mode, self._generation)

    def or_(self) -> GroupHandle:
        """
        Open a new OR-branch.

        Each call starts a fresh branch. Conditions added to one branch are
        ANDed together; the branches are ORed with each other and the result
        is ANDed with the top-level conditions.
        """
        return self._open_branch(TOP_LEVEL, GroupMode.OR)

    def and_(self) -> GroupHandle:
        """Open a new AND-branch, ANDed with the rest of the query."""
        return self._open_branch(TOP_LEVEL, GroupMode.AND)

    begin_or = or_
    begin_and = and_

    @property
    def conditions(self) -> List[Condition]:
        """Top-level conditions in insertion order."""
        return list(self._slots[TOP_LEVEL].conditions)

    @property
    def or_branches(self) -> List[GroupHandle]:
        return [
            GroupHandle(self, i, GroupMode.OR, self._generation)
            for i in self._slots[TOP_LEVEL].or_branches
        ]

    @property
    def and_branches(self) -> List[GroupHandle]:
        return [
            GroupHandle(self, i, GroupMode.AND, self._generation)
            for i in self._slots[TOP_LEVEL].and_branches
        ]

    def build_predicate(self) -> ConditionGroup:
        """
        Compose the declared conditions into a frozen predicate tree.

        The result is ``AND(top-level..., OR(or-branches...), AND(and-branches...))``
        where a family without branches contributes nothing. Each branch is
        composed the same way.
        """
        return self._compose(TOP_LEVEL)

    def _compose(self, index: int) -> ConditionGroup:
        slot = self._slots[index]
        members: List[Any] = list(slot.conditions)
        if slot.or_branches:
            members.append(ConditionGroup(
                GroupMode.OR, [self._compose(i) for i in slot.or_branches]
            ))
        if slot.and_branches:
            members.append(ConditionGroup(
                GroupMode.AND, [self._compose(i) for i in slot.and_branches]
            ))
        return ConditionGroup(GroupMode.AND, members)

    # =========================================================================
    # ORDERING
    # =========================================================================

    def order_ascending_by_key(self, key: str) -> None:
        """Sort ascending by key, replacing any previous order."""
        self._order = SortOrder(key, SortDirection.ASCENDING)

    def order_descending_by_key(self, key: str) -> None:
        """Sort descending by key, replacing any previous order."""
        self._order = SortOrder(key, SortDirection.DESCENDING)

    # =========================================================================
    # RESETTING
    # =========================================================================

    def reset(self) -> None:
        """Restore the post-construction state, keeping the entity name."""
        self._generation += 1
        self._slots: List[_GroupSlot] = [_GroupSlot()]
        self._order: Optional[SortOrder] = None
        self._limit = 0
        self._skip = 0
        self._map_reduce: Optional[MapReduce] = None
        self._cache_policy = self._default_cache_policy

    # =========================================================================
    # EXECUTION
    # =========================================================================

    def compile(self) -> QueryPlan:
        """Compile the current state into an immutable QueryPlan."""
        return compile_query(self)

    def _require_executor(self) -> "QueryExecutor":
        if self._executor is None:
            raise InvalidQueryError(
                f"Query on '{self._entity_name}' is not bound to an executor"
            )
        return self._executor

    def find_all(self) -> Any:
        """Find all matching entities (or the map-reduce output)."""
        return self._require_executor().find_all(self.compile())

    def find_one(self) -> Optional[Any]:
        """
        Find the first matching entity, or None.

        Raises:
            UnsupportedOperationError: If a map-reduce is set
        """
        return self._require_executor().find_one(self.compile())

    def find_by_id(self, entity_id: Any) -> Optional[Any]:
        """Find an entity of this collection by its unique ID."""
        return self._require_executor().find_by_id(
            entity_id, self._entity_name, cache_policy=self._cache_policy
        )

    def count_all(self) -> int:
        """
        Count the matching entities.

        Raises:
            UnsupportedOperationError: If a map-reduce is set
        """
        return self._require_executor().count_all(self.compile())

    def find_all_in_background(self, callback: Optional[ResultCallback] = None) -> Future:
        return self._in_background("find_all_in_background", callback)

    def find_one_in_background(self, callback: Optional[ResultCallback] = None) -> Future:
        return self._in_background("find_one_in_background", callback)

    def count_all_in_background(self, callback: Optional[ResultCallback] = None) -> Future:
        return self._in_background("count_all_in_background", callback)

    def find_by_id_in_background(
        self,
        entity_id: Any,
        callback: Optional[ResultCallback] = None,
    ) -> Future:
        from .executor import deliver_failure
        try:
            executor = self._require_executor()
        except InvalidQueryError as e:
            return deliver_failure(e, callback)
        return executor.find_by_id_in_background(
            entity_id,
            self._entity_name,
            callback=callback,
            cache_policy=self._cache_policy,
        )

    def _in_background(self, method: str, callback: Optional[ResultCallback]) -> Future:
        from .executor import deliver_failure
        try:
            executor = self._require_executor()
            plan = self.compile()
        except InvalidQueryError as e:
            return deliver_failure(e, callback)
        return getattr(executor, method)(plan, callback=callback)

    def to_dict(self) -> Dict[str, Any]:
        """Describe the declared state (without compiling it)."""
        return {
            "entity_name": self._entity_name,
            "predicate": self.build_predicate().to_dict(),
            "order": self._order.to_dict() if self._order else None,
            "limit": self._limit,
            "skip": self._skip,
            "map_reduce": self._map_reduce.to_dict() if self._map_reduce else None,
            "cache_policy": self._cache_policy.value,
        }

    def __repr__(self) -> str:
        return (
            f"QueryBuilder(entity_name={self._entity_name!r}, "
            f"conditions={len(self._slots[TOP_LEVEL].conditions)}, "
            f"branches={len(self._slots) - 1})"
        )
