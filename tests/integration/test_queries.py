"""
Integration tests for end-to-end queries through EntityDatabase.

Tests grouped conditions, pattern matching, nested keys, caching and
background execution against an in-memory store.
"""

import threading

import pytest

from config.settings import CacheConfig, ExecutorConfig, Settings
from entityquery import CachePolicy, EntityDatabase, RegexOption

from . import integration


pytestmark = integration


@pytest.fixture
def db(user_records):
    database = EntityDatabase()
    database.store.insert_many("users", user_records)
    yield database
    database.close()


def ids(records):
    return [r["id"] for r in records]


class TestQueries:
    """Test query shapes end to end."""

    def test_range_and_order(self, db):
        """Test a bounded range ordered by age."""
        query = db.query("users")
        query.where_key_greater_than_or_equal_to("age", 33)
        query.where_key_less_than("age", 85)
        query.order_ascending_by_key("age")

        assert ids(query.find_all()) == ["u5", "u1", "u2"]

    def test_or_branches(self, db):
        """Test (country == US) OR (country == UK AND age > 40)."""
        query = db.query("users")
        query.or_().where_key_equal_to("country", "US")
        branch = query.or_()
        branch.where_key_equal_to("country", "UK")
        branch.where_key_greater_than("age", 40)
        query.order_ascending_by_key("id")

        assert ids(query.find_all()) == ["u2", "u3", "u5"]

    def test_and_branch_with_nested_or(self, db):
        """Test an AND branch holding OR branches."""
        query = db.query("users")
        group = query.and_()
        group.where_key_contains_all_in("tags", ["admin"])
        group.or_().where_key_has_prefix("name", "G")
        group.or_().where_key_has_suffix("name", "da")
        query.order_ascending_by_key("id")

        assert ids(query.find_all()) == ["u1", "u3"]

    def test_membership(self, db):
        """Test in and not-in together."""
        query = db.query("users")
        query.where_key_contained_in("country", ["FI", "US"])
        query.where_key_not_contained_in("name", ["Grace"])
        query.order_ascending_by_key("id")

        assert ids(query.find_all()) == ["u4", "u5"]

    def test_regex_options(self, db):
        """Test case-insensitive regex."""
        query = db.query("users")
        query.where_key_matches_regex("name", "^a", RegexOption.CASE_INSENSITIVE)
        query.order_ascending_by_key("name")

        assert ids(query.find_all()) == ["u1", "u2"]

    def test_contains_string(self, db):
        """Test substring matching."""
        query = db.query("users")
        query.where_key_contains_string("name", "ar")

        assert ids(query.find_all()) == ["u5"]

    def test_nested_keys_and_existence(self, db):
        """Test nested keys with existence checks."""
        query = db.query("users")
        query.where_key_exists("address.city")
        query.where_key_not_equal_to("address.city", "London")
        query.order_ascending_by_key("id")

        assert ids(query.find_all()) == ["u2", "u3"]

        missing = db.query("users")
        missing.where_key_does_not_exist("address")
        missing.order_ascending_by_key("id")

        assert ids(missing.find_all()) == ["u4", "u5"]

    def test_null_value_exists(self, db):
        """Test a null value still exists."""
        query = db.query("users")
        query.where_key_exists("nickname")

        assert ids(query.find_all()) == ["u4"]

    def test_pagination(self, db):
        """Test skip and limit with count."""
        query = db.query("users")
        query.order_descending_by_key("age")
        query.skip = 1
        query.limit = 2

        assert ids(query.find_all()) == ["u2", "u1"]
        assert query.count_all() == 5

    def test_find_one_and_by_id(self, db):
        """Test single-record lookups."""
        query = db.query("users")
        query.where_key_equal_to("country", "UK")
        query.order_descending_by_key("age")

        assert query.find_one()["id"] == "u2"
        assert db.find_by_id("u3", "users")["name"] == "Grace"
        assert db.find_by_id("u9", "users") is None

    def test_map_reduce_reported_by_store(self, db, map_reduce):
        """Test map-reduce against a store that cannot run it."""
        from entityquery import StoreError

        query = db.query("users")
        query.map_reduce = map_reduce

        with pytest.raises(StoreError, match="find_all"):
            query.find_all()

    def test_reuse_after_reset(self, db):
        """Test a builder reused after reset."""
        query = db.query("users")
        query.where_key_equal_to("country", "UK")
        assert query.count_all() == 2

        query.reset()
        query.where_key_equal_to("country", "US")

        assert query.count_all() == 2
        assert query.entity_name == "users"


class TestCaching:
    """Test caching through the database."""

    def test_cached_results_until_invalidated(self, db):
        """Test cached results persist until the cache is cleared."""
        query = db.query("users")
        query.where_key_equal_to("country", "FI")
        query.cache_policy = CachePolicy.CACHE_ELSE_NETWORK

        assert ids(query.find_all()) == ["u4"]

        db.store.insert("users", {"id": "u6", "name": "Tove", "country": "FI"})

        assert ids(query.find_all()) == ["u4"]

        db.invalidate_cache()

        assert sorted(ids(query.find_all())) == ["u4", "u6"]

    def test_cache_disabled(self, user_records):
        """Test a database without a cache."""
        settings = Settings(cache_config=CacheConfig(enabled=False))

        with EntityDatabase(settings=settings) as db:
            db.store.insert_many("users", user_records)
            query = db.query("users")
            query.cache_policy = CachePolicy.CACHE_ELSE_NETWORK
            query.find_all()
            db.store.insert("users", {"id": "u6"})

            assert len(query.find_all()) == 6
            assert db.cache is None

    def test_info(self, db):
        """Test database information."""
        db.query("users").find_all()

        info = db.info()

        assert info["store"] == "MemoryStore"
        assert info["store_stats"]["record_count"] == 5
        assert info["executor"]["queries"] == 1


class TestBackground:
    """Test background execution through the database."""

    def test_background_queries(self, db):
        """Test several background queries at once."""
        results = {}
        done = threading.Event()
        lock = threading.Lock()

        def collect(name):
            def callback(result, error):
                with lock:
                    results[name] = (result, error)
                    if len(results) == 3:
                        done.set()
            return callback

        query = db.query("users")
        query.where_key_equal_to("country", "US")
        query.order_ascending_by_key("id")

        query.find_all_in_background(collect("all"))
        query.count_all_in_background(collect("count"))
        query.find_by_id_in_background("u3", collect("by_id"))

        assert done.wait(timeout=5)
        assert ids(results["all"][0]) == ["u3", "u5"]
        assert results["count"] == (2, None)
        assert results["by_id"][0]["name"] == "Grace"


class TestFromConfig:
    """Test building a database from a config file."""

    def test_from_config(self, tmp_path, user_records):
        """Test a database built from YAML."""
        path = tmp_path / "eq.yaml"
        path.write_text(
            "cache_config:\n"
            "  max_entries: 8\n"
            "executor_config:\n"
            "  max_workers: 2\n"
            "  default_cache_policy: cache_else_network\n"
            "log_level: WARNING\n"
        )

        with EntityDatabase.from_config(str(path)) as db:
            db.store.insert_many("users", user_records)
            query = db.query("users")

            assert query.cache_policy is CachePolicy.CACHE_ELSE_NETWORK
            assert db.cache.max_entries == 8

            query.find_all()
            query.find_all()

            assert db.executor.stats().cache_hits == 1

    def test_custom_id_key(self):
        """Test a configured ID field."""
        settings = Settings(executor_config=ExecutorConfig(id_key="_id"))

        with EntityDatabase(settings=settings) as db:
            db.store.insert("things", {"_id": "t1", "v": 1})

            assert db.find_by_id("t1", "things") == {"_id": "t1", "v": 1}
