"""
Unit tests for QueryBuilder and group handles.
"""

import pytest

from entityquery.core.exceptions import InvalidConditionError, InvalidQueryError
from entityquery.core.types import CachePolicy, MapReduce, SortDirection
from entityquery.query.builder import GroupHandle, QueryBuilder
from entityquery.query.conditions import Condition, ConditionGroup, GroupMode, Operator


class TestConditions:
    """Test top-level condition accumulation."""

    def test_where_key_appends(self):
        """Test where_key appends to the top-level conditions."""
        query = QueryBuilder("users")
        query.where_key("age", Operator.GTE, 18)
        query.where_key_equal_to("country", "UK")

        assert query.conditions == [
            Condition("age", Operator.GTE, 18),
            Condition("country", Operator.EQ, "UK"),
        ]

    def test_named_family(self):
        """Test every named method adds the matching operator."""
        query = QueryBuilder("users")
        query.where_key_equal_to("a", 1)
        query.where_key_less_than("a", 1)
        query.where_key_less_than_or_equal_to("a", 1)
        query.where_key_greater_than("a", 1)
        query.where_key_greater_than_or_equal_to("a", 1)
        query.where_key_not_equal_to("a", 1)
        query.where_key_contained_in("a", [1])
        query.where_key_not_contained_in("a", [1])
        query.where_key_contains_all_in("a", [1])
        query.where_key_matches_regex("a", "x")
        query.where_key_contains_string("a", "x")
        query.where_key_has_prefix("a", "x")
        query.where_key_has_suffix("a", "x")
        query.where_key_exists("a")
        query.where_key_does_not_exist("a")

        assert [c.operator for c in query.conditions] == [
            Operator.EQ, Operator.LT, Operator.LTE, Operator.GT, Operator.GTE,
            Operator.NE, Operator.IN, Operator.NOT_IN, Operator.CONTAINS_ALL,
            Operator.REGEX, Operator.CONTAINS, Operator.HAS_PREFIX,
            Operator.HAS_SUFFIX, Operator.EXISTS, Operator.NOT_EXISTS,
        ]

    def test_mutators_return_none(self):
        """Test mutators do not return the builder."""
        query = QueryBuilder("users")

        assert query.where_key_equal_to("a", 1) is None
        assert query.order_ascending_by_key("a") is None
        assert query.reset() is None

    def test_invalid_condition_raised_immediately(self):
        """Test malformed conditions fail at the call, not at execution."""
        query = QueryBuilder("users")

        with pytest.raises(InvalidConditionError):
            query.where_key_contained_in("a", 5)
        assert query.conditions == []

    def test_contradictory_conditions_kept(self):
        """Test contradictory conditions are retained, not rejected."""
        query = QueryBuilder("users")
        query.where_key_equal_to("x", 1)
        query.where_key_equal_to("x", 2)
        query.where_key_not_equal_to("x", 1)

        assert len(query.conditions) == 3
        assert query.compile() is not None


class TestBranches:
    """Test OR/AND branch handles."""

    def test_or_returns_handle(self):
        """Test or_ returns an OR group handle."""
        query = QueryBuilder("users")
        branch = query.or_()

        assert isinstance(branch, GroupHandle)
        assert branch.mode == GroupMode.OR

    def test_each_or_call_is_fresh_branch(self):
        """Test every or_ call opens a separate branch."""
        query = QueryBuilder("users")
        first = query.or_()
        second = query.or_()
        first.where_key_equal_to("a", 1)
        second.where_key_equal_to("b", 2)

        assert first.index != second.index
        assert first.conditions == [Condition("a", Operator.EQ, 1)]
        assert second.conditions == [Condition("b", Operator.EQ, 2)]
        assert len(query.or_branches) == 2
        assert query.conditions == []

    def test_branch_registered_at_call_time(self):
        """Test an opened branch is part of the predicate even before use."""
        query = QueryBuilder("users")
        query.or_()

        predicate = query.build_predicate()

        assert len(predicate.groups) == 1
        assert predicate.groups[0].mode == GroupMode.OR

    def test_composed_predicate_shape(self):
        """Test AND(top-level, OR(branches), AND(branches))."""
        query = QueryBuilder("users")
        query.where_key_greater_than("age", 18)
        query.or_().where_key_equal_to("country", "UK")
        query.or_().where_key_equal_to("country", "US")
        query.and_().where_key_exists("email")

        predicate = query.build_predicate()

        assert predicate.mode == GroupMode.AND
        assert predicate.members[0] == Condition("age", Operator.GT, 18)
        or_family, and_family = predicate.members[1], predicate.members[2]
        assert or_family.mode == GroupMode.OR
        assert len(or_family) == 2
        assert and_family.mode == GroupMode.AND
        assert and_family.members[0].members == (Condition("email", Operator.EXISTS),)

    def test_empty_families_contribute_nothing(self):
        """Test a query without branches is a flat AND."""
        query = QueryBuilder("users")
        query.where_key_equal_to("a", 1)

        predicate = query.build_predicate()

        assert predicate == ConditionGroup(GroupMode.AND, [Condition("a", Operator.EQ, 1)])

    def test_or_semantics(self):
        """Test conditions ANDed within a branch, branches ORed."""
        query = QueryBuilder("users")
        query.where_key_greater_than("age", 18)
        query.or_().where_key_equal_to("country", "DE")
        branch = query.or_()
        branch.where_key_equal_to("country", "AT")
        branch.where_key_equal_to("verified", True)

        predicate = query.build_predicate()

        assert predicate.evaluate({"age": 30, "country": "DE"})
        assert predicate.evaluate({"age": 30, "country": "AT", "verified": True})
        assert not predicate.evaluate({"age": 30, "country": "AT", "verified": False})
        assert not predicate.evaluate({"age": 10, "country": "DE"})

    def test_nested_branches(self):
        """Test OR-of-ANDs built through a handle."""
        query = QueryBuilder("users")
        group = query.and_()
        group.or_().where_key_equal_to("a", 1)
        group.or_().where_key_equal_to("b", 2)
        group.where_key_exists("c")

        predicate = query.build_predicate()

        assert predicate.evaluate({"a": 1, "c": 0})
        assert predicate.evaluate({"b": 2, "c": 0})
        assert not predicate.evaluate({"a": 1})
        assert not predicate.evaluate({"a": 3, "b": 3, "c": 0})

    def test_handle_aliases(self):
        """Test begin_or/begin_and open the same branches as or_/and_."""
        query = QueryBuilder("users")

        assert query.begin_or().mode == GroupMode.OR
        assert query.begin_and().mode == GroupMode.AND
        assert query.begin_and().begin_or().mode == GroupMode.OR


class TestOptions:
    """Test ordering, pagination and option setters."""

    def test_order_replaces(self):
        """Test a later order call replaces the earlier one."""
        query = QueryBuilder("users")
        query.order_ascending_by_key("age")
        query.order_descending_by_key("name")

        assert query.order.key == "name"
        assert query.order.direction == SortDirection.DESCENDING

    def test_limit_and_skip(self):
        """Test limit and skip setters."""
        query = QueryBuilder("users")
        query.limit = 10
        query.skip = 5

        assert query.limit == 10
        assert query.skip == 5

    @pytest.mark.parametrize("value", [-1, 1.5, "10", True, None])
    def test_invalid_limit(self, value):
        """Test non-integer and negative limits are rejected."""
        query = QueryBuilder("users")

        with pytest.raises(InvalidQueryError):
            query.limit = value

    def test_invalid_skip(self):
        """Test negative skip is rejected."""
        with pytest.raises(InvalidQueryError):
            QueryBuilder("users").skip = -3

    def test_cache_policy(self):
        """Test cache policy accepts values and rejects unknown ones."""
        query = QueryBuilder("users")
        query.cache_policy = "cache_else_network"

        assert query.cache_policy is CachePolicy.CACHE_ELSE_NETWORK

        with pytest.raises(InvalidQueryError):
            query.cache_policy = "sometimes"

    def test_map_reduce_type_checked(self, map_reduce):
        """Test map_reduce only accepts MapReduce."""
        query = QueryBuilder("users")
        query.map_reduce = map_reduce

        assert query.map_reduce is map_reduce

        with pytest.raises(InvalidQueryError):
            query.map_reduce = "function () {}"

    def test_entity_name_read_only(self):
        """Test the entity name cannot be reassigned."""
        query = QueryBuilder("users")

        with pytest.raises(AttributeError):
            query.entity_name = "other"


class TestReset:
    """Test resetting the builder."""

    def test_reset_clears_state(self, map_reduce):
        """Test reset restores the post-construction state."""
        query = QueryBuilder("users")
        query.where_key_equal_to("a", 1)
        query.or_().where_key_equal_to("b", 2)
        query.order_ascending_by_key("a")
        query.limit = 3
        query.skip = 1
        query.map_reduce = map_reduce
        query.cache_policy = CachePolicy.CACHE_ELSE_NETWORK

        query.reset()

        assert query.entity_name == "users"
        assert query.conditions == []
        assert query.or_branches == []
        assert query.and_branches == []
        assert query.order is None
        assert query.limit == 0
        assert query.skip == 0
        assert query.map_reduce is None
        assert query.cache_policy is CachePolicy.NO_CACHE

    def test_reset_restores_default_policy(self):
        """Test reset restores the constructor cache policy."""
        query = QueryBuilder("users", cache_policy=CachePolicy.NETWORK_ELSE_CACHE)
        query.cache_policy = CachePolicy.NO_CACHE

        query.reset()

        assert query.cache_policy is CachePolicy.NETWORK_ELSE_CACHE

    def test_handle_from_before_reset_is_stale(self):
        """Test a handle opened before reset cannot reach new branches."""
        query = QueryBuilder("users")
        stale = query.or_()
        query.reset()
        fresh = query.and_()

        with pytest.raises(InvalidQueryError, match="before reset"):
            stale.where_key_equal_to("x", 1)
        with pytest.raises(InvalidQueryError):
            stale.or_()
        with pytest.raises(InvalidQueryError):
            stale.conditions

        assert fresh.conditions == []
        assert len(query.and_branches) == 1
        assert query.and_branches[0].conditions == []
        assert query.or_branches == []

    def test_handle_after_reset_is_usable(self):
        """Test handles opened after reset work normally."""
        query = QueryBuilder("users")
        query.or_()
        query.reset()

        branch = query.or_()
        branch.where_key_equal_to("x", 1)

        assert branch.conditions == [Condition("x", Operator.EQ, 1)]


class TestUnboundExecution:
    """Test execution without an executor."""

    def test_blocking_raises(self):
        """Test blocking execution without an executor."""
        query = QueryBuilder("users")

        with pytest.raises(InvalidQueryError, match="not bound"):
            query.find_all()

    def test_background_delivers_error(self):
        """Test background execution without an executor."""
        query = QueryBuilder("users")
        deliveries = []

        future = query.find_all_in_background(lambda r, e: deliveries.append((r, e)))

        assert len(deliveries) == 1
        assert isinstance(deliveries[0][1], InvalidQueryError)
        assert isinstance(future.exception(), InvalidQueryError)

    def test_to_dict(self):
        """Test dictionary description of the builder."""
        query = QueryBuilder("users")
        query.where_key_equal_to("a", 1)
        query.limit = 2

        data = query.to_dict()

        assert data["entity_name"] == "users"
        assert data["limit"] == 2
        assert data["predicate"] == {"$and": [{"key": "a", "operator": "eq", "operand": 1}]}
