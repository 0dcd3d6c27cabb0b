"""
Condition model for entityquery.

Supports:
- Comparison operators (eq, ne, gt, gte, lt, lte)
- Membership operators (in, nin, all)
- String operators (regex, contains, prefix, suffix)
- Existence operators (exists, not_exists)
- Logical grouping (and, or)
- Nested field access (field.subfield)

Conditions validate their operand when constructed, so a malformed
predicate never reaches a store.

Example:
    >>> cond = Condition("category", Operator.EQ, "electronics")
    >>>
    >>> # Grouping
    >>> group = ConditionGroup(GroupMode.OR, [
    ...     Condition("category", Operator.EQ, "electronics"),
    ...     Condition("price", Operator.LT, 50),
    ... ])
    >>>
    >>> # Operators compose as well
    >>> group = cond & Condition("price", Operator.GTE, 10)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum, IntFlag
from typing import Any, Dict, List, Optional, Pattern, Sequence, Tuple, Union
from uuid import UUID
import re

from ..core.exceptions import InvalidConditionError
from ..utils.validation import validate_key


class Operator(str, Enum):
    """Condition operators."""

    # Equality
    EQ = "eq"
    NE = "ne"

    # Range
    LT = "lt"
    LTE = "lte"
    GT = "gt"
    GTE = "gte"

    # Membership
    IN = "in"
    NOT_IN = "nin"
    CONTAINS_ALL = "all"

    # String operations
    REGEX = "regex"
    CONTAINS = "contains"
    HAS_PREFIX = "prefix"
    HAS_SUFFIX = "suffix"

    # Existence
    EXISTS = "exists"
    NOT_EXISTS = "not_exists"


class RegexOption(IntFlag):
    """Option mask for regex conditions."""

    NONE = 0
    CASE_INSENSITIVE = 1
    MULTILINE = 2
    DOTALL = 4
    EXTENDED = 8

    def to_re_flags(self) -> int:
        flags = 0
        if self & RegexOption.CASE_INSENSITIVE:
            flags |= re.IGNORECASE
        if self & RegexOption.MULTILINE:
            flags |= re.MULTILINE
        if self & RegexOption.DOTALL:
            flags |= re.DOTALL
        if self & RegexOption.EXTENDED:
            flags |= re.VERBOSE
        return flags


class GroupMode(str, Enum):
    """Logical combination modes."""

    AND = "and"
    OR = "or"


SCALAR_TYPES = (type(None), bool, int, float, str, bytes, date, time, Decimal, UUID)

RANGE_OPERATORS = frozenset({Operator.LT, Operator.LTE, Operator.GT, Operator.GTE})
SEQUENCE_OPERATORS = frozenset({Operator.IN, Operator.NOT_IN, Operator.CONTAINS_ALL})
STRING_OPERATORS = frozenset({Operator.CONTAINS, Operator.HAS_PREFIX, Operator.HAS_SUFFIX})
EXISTENCE_OPERATORS = frozenset({Operator.EXISTS, Operator.NOT_EXISTS})


class _Missing:
    """Marker for a key that is absent from a record."""

    def __repr__(self) -> str:
        return "<missing>"


MISSING = _Missing()


def get_field_value(record: Dict[str, Any], key: str) -> Any:
    """Get a field value by dotted key, returning MISSING when absent."""
    current: Any = record

    for part in key.split("."):
        if isinstance(current, dict):
            if part not in current:
                return MISSING
            current = current[part]
        elif isinstance(current, (list, tuple)):
            try:
                current = current[int(part)]
            except (ValueError, IndexError):
                return MISSING
        else:
            return MISSING

    return current


def _values_equal(field_value: Any, operand: Any) -> bool:
    if isinstance(operand, tuple) and isinstance(field_value, (list, tuple)):
        return tuple(field_value) == operand
    return field_value == operand


class Predicate(ABC):
    """Abstract base class for conditions and condition groups."""

    @abstractmethod
    def evaluate(self, record: Dict[str, Any]) -> bool:
        """
        Evaluate the predicate against a raw record.

        Args:
            record: The record dictionary to check

        Returns:
            True if the record matches
        """
        pass

    @abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        """Convert predicate to dictionary representation."""
        pass

    def __and__(self, other: "Predicate") -> "ConditionGroup":
        return ConditionGroup(GroupMode.AND, (self, other))

    def __or__(self, other: "Predicate") -> "ConditionGroup":
        return ConditionGroup(GroupMode.OR, (self, other))


@dataclass(frozen=True)
class Condition(Predicate):
    """
    A single key/operator/operand predicate.

    Operand rules:
        EQ, NE: scalar, or a list/tuple of scalars
        LT, LTE, GT, GTE: non-null, non-boolean scalar
        IN, NOT_IN, CONTAINS_ALL: non-empty list/tuple of scalars
        REGEX: pattern string (``options`` allowed)
        CONTAINS, HAS_PREFIX, HAS_SUFFIX: string
        EXISTS, NOT_EXISTS: no operand

    Sequence operands are stored as tuples.

    Raises:
        InvalidConditionError: On any operator/operand mismatch
    """

    key: str
    operator: Operator
    operand: Any = None
    options: RegexOption = RegexOption.NONE
    _regex: Optional[Pattern] = field(
        default=None, init=False, repr=False, compare=False
    )

    def __post_init__(self):
        validate_key(self.key)

        try:
            op = Operator(self.operator)
        except ValueError:
            raise InvalidConditionError(f"Unknown operator: {self.operator!r}") from None

        try:
            options = RegexOption(self.options)
        except (TypeError, ValueError):
            raise InvalidConditionError(f"Invalid regex options: {self.options!r}") from None

        if options and op != Operator.REGEX:
            raise InvalidConditionError(
                f"Options are only valid for regex conditions, not {op.value}"
            )

        object.__setattr__(self, "operator", op)
        object.__setattr__(self, "options", options)
        object.__setattr__(self, "operand", self._check_operand(op, self.operand))

        if op == Operator.REGEX:
            try:
                regex = re.compile(self.operand, options.to_re_flags())
            except re.error as e:
                raise InvalidConditionError(
                    f"Malformed regex for '{self.key}': {e}"
                ) from e
            object.__setattr__(self, "_regex", regex)

    def _check_operand(self, op: Operator, operand: Any) -> Any:
        """Validate the operand for the operator and return its stored form."""
        if op in EXISTENCE_OPERATORS:
            if operand is not None:
                raise InvalidConditionError(f"{op.value} takes no operand")
            return None

        if op in SEQUENCE_OPERATORS:
            if not isinstance(operand, (list, tuple)):
                raise InvalidConditionError(
                    f"{op.value} requires a list operand, got {type(operand).__name__}"
                )
            if not operand:
                raise InvalidConditionError(f"{op.value} requires a non-empty list")
            return self._check_sequence(op, operand)

        if op == Operator.REGEX or op in STRING_OPERATORS:
            if not isinstance(operand, str):
                raise InvalidConditionError(
                    f"{op.value} requires a string operand, got {type(operand).__name__}"
                )
            return operand

        if op in RANGE_OPERATORS:
            if operand is None or isinstance(operand, bool):
                raise InvalidConditionError(
                    f"{op.value} requires a comparable value, got {operand!r}"
                )
            if not isinstance(operand, SCALAR_TYPES):
                raise InvalidConditionError(
                    f"{op.value} requires a scalar operand, got {type(operand).__name__}"
                )
            return operand

        # EQ / NE
        if isinstance(operand, (list, tuple)):
            return self._check_sequence(op, operand)
        if not isinstance(operand, SCALAR_TYPES):
            raise InvalidConditionError(
                f"{op.value} requires a scalar or list operand, "
                f"got {type(operand).__name__}"
            )
        return operand

    @staticmethod
    def _check_sequence(op: Operator, operand: Sequence[Any]) -> Tuple[Any, ...]:
        for item in operand:
            if not isinstance(item, SCALAR_TYPES):
                raise InvalidConditionError(
                    f"{op.value} list items must be scalars, got {type(item).__name__}"
                )
        return tuple(operand)

    def evaluate(self, record: Dict[str, Any]) -> bool:
        """Evaluate the condition against a record."""
        value = get_field_value(record, self.key)

        try:
            return self._compare(value)
        except (TypeError, ValueError):
            return False

    def _compare(self, value: Any) -> bool:
        op = self.operator

        # Existence
        if op == Operator.EXISTS:
            return value is not MISSING
        if op == Operator.NOT_EXISTS:
            return value is MISSING

        # A missing key compares like null for equality and membership
        present = None if value is MISSING else value

        if op == Operator.EQ:
            return _values_equal(present, self.operand)
        if op == Operator.NE:
            return not _values_equal(present, self.operand)

        if op == Operator.IN:
            return any(_values_equal(present, item) for item in self.operand)
        if op == Operator.NOT_IN:
            return not any(_values_equal(present, item) for item in self.operand)

        if op == Operator.CONTAINS_ALL:
            if not isinstance(present, (list, tuple, set, frozenset)):
                return False
            return all(item in present for item in self.operand)

        if op in RANGE_OPERATORS:
            if present is None:
                return False
            if op == Operator.LT:
                return present < self.operand
            if op == Operator.LTE:
                return present <= self.operand
            if op == Operator.GT:
                return present > self.operand
            return present >= self.operand

        # String operations
        if not isinstance(present, str):
            return False
        if op == Operator.REGEX:
            return self._regex.search(present) is not None
        if op == Operator.CONTAINS:
            return self.operand in present
        if op == Operator.HAS_PREFIX:
            return present.startswith(self.operand)
        if op == Operator.HAS_SUFFIX:
            return present.endswith(self.operand)

        return False

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "key": self.key,
            "operator": self.operator.value,
        }
        if self.operator not in EXISTENCE_OPERATORS:
            data["operand"] = (
                list(self.operand) if isinstance(self.operand, tuple) else self.operand
            )
        if self.options:
            data["options"] = int(self.options)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Condition":
        return cls(
            key=data["key"],
            operator=Operator(data["operator"]),
            operand=data.get("operand"),
            options=RegexOption(data.get("options", 0)),
        )

    def __repr__(self) -> str:
        if self.operator in EXISTENCE_OPERATORS:
            return f"Condition({self.key} {self.operator.value})"
        return f"Condition({self.key} {self.operator.value} {self.operand!r})"


Member = Union[Condition, "ConditionGroup"]


@dataclass(frozen=True)
class ConditionGroup(Predicate):
    """
    Logical AND or OR of conditions and nested groups.

    An empty AND group matches everything; an empty OR group matches
    nothing.
    """

    mode: GroupMode
    members: Tuple[Member, ...] = ()

    def __post_init__(self):
        try:
            mode = GroupMode(self.mode)
        except ValueError:
            raise InvalidConditionError(f"Unknown group mode: {self.mode!r}") from None

        members = tuple(self.members)
        for member in members:
            if not isinstance(member, (Condition, ConditionGroup)):
                raise InvalidConditionError(
                    f"Group members must be conditions or groups, "
                    f"got {type(member).__name__}"
                )

        object.__setattr__(self, "mode", mode)
        object.__setattr__(self, "members", members)

    @property
    def conditions(self) -> List[Condition]:
        return [m for m in self.members if isinstance(m, Condition)]

    @property
    def groups(self) -> List["ConditionGroup"]:
        return [m for m in self.members if isinstance(m, ConditionGroup)]

    def is_empty(self) -> bool:
        return not self.members

    def evaluate(self, record: Dict[str, Any]) -> bool:
        if self.mode == GroupMode.AND:
            return all(m.evaluate(record) for m in self.members)
        return any(m.evaluate(record) for m in self.members)

    def to_dict(self) -> Dict[str, Any]:
        return {
            f"${self.mode.value}": [m.to_dict() for m in self.members],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConditionGroup":
        if len(data) != 1:
            raise InvalidConditionError(f"Invalid group document: {data!r}")
        (tag, members), = data.items()
        return cls(
            mode=GroupMode(tag.lstrip("$")),
            members=tuple(predicate_from_dict(m) for m in members),
        )

    def __iter__(self):
        return iter(self.members)

    def __len__(self) -> int:
        return len(self.members)

    def __repr__(self) -> str:
        return f"ConditionGroup({self.mode.value}, {list(self.members)})"


def predicate_from_dict(data: Dict[str, Any]) -> Predicate:
    """Create a condition or group from its dictionary representation."""
    if "key" in data:
        return Condition.from_dict(data)
    if "$and" in data or "$or" in data:
        return ConditionGroup.from_dict(data)
    raise InvalidConditionError(f"Unknown predicate document: {data!r}")


def evaluate_predicate(
    predicate: Optional[Predicate],
    record: Dict[str, Any],
) -> bool:
    """
    Evaluate a predicate against a record.

    Args:
        predicate: The predicate to evaluate (None = always True)
        record: The raw record

    Returns:
        True if the record matches
    """
    if predicate is None:
        return True
    return predicate.evaluate(record)
