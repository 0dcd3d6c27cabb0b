"""
Query compilation for entityquery.

Turns a QueryBuilder into an immutable, fingerprintable QueryPlan.

Features:
- Structural validation before any store interaction
- Snapshot of the builder state (later mutation cannot reach a plan)
- Canonical fingerprint used as the result cache key

Fingerprinting:
    Conditions inside each group are sorted by key, operator and a
    canonical encoding of the operand, so top-level insertion order does
    not change the fingerprint. Nested groups keep their declared order.
    The canonical form is encoded with msgpack and hashed with SHA-256.

    Equal fingerprints imply equal result sets; equal result sets do not
    imply equal fingerprints (OR-branch order, for instance, is hashed
    as declared).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from functools import cached_property
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID
import hashlib

import msgpack

from ..core.exceptions import InvalidQueryError
from ..core.types import CachePolicy, MapReduce, SortOrder
from ..utils.logging import get_logger
from ..utils.validation import validate_count, validate_entity_name
from .conditions import Condition, ConditionGroup, GroupMode, Operator

if TYPE_CHECKING:
    from .builder import QueryBuilder


logger = get_logger(__name__)


# msgpack extension codes for values without a native msgpack type
_EXT_DATETIME = 1
_EXT_DATE = 2
_EXT_TIME = 3
_EXT_DECIMAL = 4
_EXT_UUID = 5
_EXT_BIGINT = 6
_EXT_OTHER = 7
_EXT_MAP = 8

_INT_MIN = -(2 ** 63)
_INT_MAX = 2 ** 64 - 1


def _canonical(value: Any) -> Any:
    """Map a value onto msgpack-native types without losing distinctions."""
    if isinstance(value, Enum):
        return _canonical(value.value)
    if value is None or isinstance(value, (bool, float, str, bytes)):
        return value
    if isinstance(value, int):
        if _INT_MIN <= value <= _INT_MAX:
            return value
        return msgpack.ExtType(_EXT_BIGINT, str(value).encode())
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    if isinstance(value, dict):
        # keys keep their type; the extension keeps maps apart from pair lists
        pairs = [
            [_canonical(k), _canonical(v)]
            for k, v in sorted(value.items(), key=lambda kv: canonical_encode(kv[0]))
        ]
        return msgpack.ExtType(_EXT_MAP, msgpack.packb(pairs, use_bin_type=True))
    # datetime is a subclass of date
    if isinstance(value, datetime):
        return msgpack.ExtType(_EXT_DATETIME, value.isoformat().encode())
    if isinstance(value, date):
        return msgpack.ExtType(_EXT_DATE, value.isoformat().encode())
    if isinstance(value, time):
        return msgpack.ExtType(_EXT_TIME, value.isoformat().encode())
    if isinstance(value, Decimal):
        return msgpack.ExtType(_EXT_DECIMAL, str(value).encode())
    if isinstance(value, UUID):
        return msgpack.ExtType(_EXT_UUID, value.bytes)
    return msgpack.ExtType(_EXT_OTHER, repr(value).encode())


def canonical_encode(value: Any) -> bytes:
    """Deterministic byte encoding of an operand or plan fragment."""
    return msgpack.packb(_canonical(value), use_bin_type=True)


def condition_sort_key(condition: Condition) -> tuple:
    return (
        condition.key,
        condition.operator.value,
        canonical_encode(condition.operand),
        int(condition.options),
    )


def canonical_condition(condition: Condition) -> List[Any]:
    return [
        condition.key,
        condition.operator.value,
        _canonical(condition.operand),
        int(condition.options),
    ]


def canonical_group(group: ConditionGroup) -> List[Any]:
    """
    Canonical form of a group: sorted conditions, then nested groups in
    declared order.
    """
    conditions = sorted(group.conditions, key=condition_sort_key)
    return [
        group.mode.value,
        [canonical_condition(c) for c in conditions],
        [canonical_group(g) for g in group.groups],
    ]


@dataclass(frozen=True)
class QueryPlan:
    """
    Immutable compiled query.

    ``skip`` is forced to 0 when a map-reduce stage is set, since the
    aggregation defines its own result shape.
    """

    entity_name: str
    predicate: ConditionGroup
    order: Optional[SortOrder] = None
    limit: int = 0
    skip: int = 0
    map_reduce: Optional[MapReduce] = None
    cache_policy: CachePolicy = CachePolicy.NO_CACHE

    def __post_init__(self):
        validate_entity_name(self.entity_name)
        if not isinstance(self.predicate, ConditionGroup):
            raise InvalidQueryError(
                f"Plan predicate must be a ConditionGroup, "
                f"got {type(self.predicate).__name__}"
            )
        if self.order is not None and not isinstance(self.order, SortOrder):
            raise InvalidQueryError("Plan order must be a SortOrder")
        if self.map_reduce is not None and not isinstance(self.map_reduce, MapReduce):
            raise InvalidQueryError("Plan map_reduce must be a MapReduce")
        validate_count(self.limit, "limit")
        validate_count(self.skip, "skip")
        object.__setattr__(self, "cache_policy", CachePolicy(self.cache_policy))
        if self.map_reduce is not None and self.skip:
            object.__setattr__(self, "skip", 0)

    @property
    def has_aggregation(self) -> bool:
        return self.map_reduce is not None

    def canonical(self) -> List[Any]:
        """
        Canonical form hashed by ``fingerprint``.

        The cache policy is not part of it: the policy governs how the
        cache is used, not which records a plan selects.
        """
        map_reduce = None
        if self.map_reduce is not None:
            map_reduce = [
                self.map_reduce.map_function,
                self.map_reduce.reduce_function,
                self.map_reduce.finalize_function,
                _canonical(dict(self.map_reduce.context)),
            ]
        return [
            self.entity_name,
            canonical_group(self.predicate),
            [self.order.key, self.order.direction.value] if self.order else None,
            self.limit,
            self.skip,
            map_reduce,
        ]

    @cached_property
    def fingerprint(self) -> str:
        """Hex SHA-256 of the canonical plan."""
        data = msgpack.packb(self.canonical(), use_bin_type=True)
        return hashlib.sha256(data).hexdigest()

    def with_limit(self, limit: int) -> "QueryPlan":
        return replace(self, limit=limit)

    def for_count(self) -> "QueryPlan":
        """The same predicate with ordering and pagination dropped."""
        return replace(self, order=None, limit=0, skip=0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_name": self.entity_name,
            "predicate": self.predicate.to_dict(),
            "order": self.order.to_dict() if self.order else None,
            "limit": self.limit,
            "skip": self.skip,
            "map_reduce": self.map_reduce.to_dict() if self.map_reduce else None,
            "cache_policy": self.cache_policy.value,
            "fingerprint": self.fingerprint,
        }

    def explain(self) -> str:
        """Generate explain output."""
        lines = [
            "Query Plan",
            "=" * 40,
            f"Entity: {self.entity_name}",
            f"Order: {self.order.key + ' ' + self.order.direction.value if self.order else 'none'}",
            f"Limit: {self.limit or 'unbounded'}",
            f"Skip: {self.skip}",
            f"Map-Reduce: {'yes' if self.map_reduce else 'no'}",
            f"Cache Policy: {self.cache_policy.value}",
            f"Fingerprint: {self.fingerprint}",
            "",
            "Predicate:",
            "-" * 40,
            _explain_group(self.predicate),
        ]
        return "\n".join(lines)


def _explain_group(group: ConditionGroup, indent: int = 0) -> str:
    prefix = "  " * indent
    if group.is_empty():
        matches = "all" if group.mode == GroupMode.AND else "none"
        return f"{prefix}{group.mode.value} (empty, matches {matches})"

    lines = [f"{prefix}{group.mode.value}"]
    for member in group.members:
        if isinstance(member, ConditionGroup):
            lines.append(_explain_group(member, indent + 1))
        elif member.operator in (Operator.EXISTS, Operator.NOT_EXISTS):
            lines.append(f"{prefix}  {member.key} {member.operator.value}")
        else:
            lines.append(f"{prefix}  {member.key} {member.operator.value} {member.operand!r}")
    return "\n".join(lines)


def compile_query(builder: "QueryBuilder") -> QueryPlan:
    """
    Compile a builder into a QueryPlan.

    Args:
        builder: The builder to snapshot

    Returns:
        The compiled plan

    Raises:
        InvalidQueryError: If the entity name is missing or malformed
    """
    validate_entity_name(builder.entity_name)

    plan = QueryPlan(
        entity_name=builder.entity_name,
        predicate=builder.build_predicate(),
        order=builder.order,
        limit=builder.limit,
        skip=0 if builder.map_reduce is not None else builder.skip,
        map_reduce=builder.map_reduce,
        cache_policy=builder.cache_policy,
    )

    logger.debug(f"Compiled query on '{plan.entity_name}' ({plan.fingerprint[:12]})")

    return plan
