"""
EntityDatabase - main entry point wiring a store, a cache and an executor.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from config.settings import Settings, load_config

from ..query.builder import QueryBuilder
from ..query.cache import ResultCache
from ..query.executor import QueryExecutor
from ..storage.base import BaseStore, Record
from ..storage.memory import MemoryStore
from ..utils.logging import configure_logging, get_logger
from .types import CachePolicy


logger = get_logger(__name__)


class EntityDatabase:
    """
    Main entry point for entityquery.

    Owns the store, the result cache and the query executor built from a
    Settings object, and hands out query builders bound to them.

    Example:
        >>> db = EntityDatabase()
        >>> db.store.insert("users", {"id": "u1", "name": "Ada", "age": 36})
        >>>
        >>> query = db.query("users")
        >>> query.where_key_greater_than("age", 30)
        >>> users = query.find_all()
        >>>
        >>> user = db.find_by_id("u1", "users")
        >>> db.close()
    """

    VERSION = "0.1.0"

    def __init__(
        self,
        store: Optional[BaseStore] = None,
        settings: Optional[Settings] = None,
        decoder: Optional[Callable[[str, Record], Any]] = None,
    ):
        """
        Initialize the database.

        Args:
            store: Backing store (defaults to a MemoryStore)
            settings: Configuration (defaults to Settings())
            decoder: Optional hook turning raw records into entity objects
        """
        self._settings = settings or Settings()
        executor_config = self._settings.executor_config
        cache_config = self._settings.cache_config

        self._store = store if store is not None else MemoryStore(id_key=executor_config.id_key)

        self._cache: Optional[ResultCache] = None
        if cache_config.enabled:
            self._cache = ResultCache(
                max_entries=cache_config.max_entries,
                ttl_seconds=cache_config.ttl_seconds,
            )

        self._executor = QueryExecutor(
            self._store,
            cache=self._cache,
            max_workers=executor_config.max_workers,
            id_key=executor_config.id_key,
            decoder=decoder,
            default_cache_policy=CachePolicy(executor_config.default_cache_policy),
        )

        logger.info(
            f"EntityDatabase initialized with {type(self._store).__name__} "
            f"(cache {'enabled' if self._cache is not None else 'disabled'})"
        )

    @classmethod
    def from_config(
        cls,
        config_path: Optional[str] = None,
        store: Optional[BaseStore] = None,
        decoder: Optional[Callable[[str, Record], Any]] = None,
    ) -> "EntityDatabase":
        """Create a database from a YAML config file and set up logging."""
        settings = load_config(config_path)
        configure_logging(settings.log_level, settings.log_file)
        return cls(store=store, settings=settings, decoder=decoder)

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def store(self) -> BaseStore:
        return self._store

    @property
    def cache(self) -> Optional[ResultCache]:
        return self._cache

    @property
    def executor(self) -> QueryExecutor:
        return self._executor

    def query(self, entity_name: str) -> QueryBuilder:
        """Create a query builder on an entity collection."""
        return self._executor.query(entity_name)

    def find_by_id(
        self,
        entity_id: Any,
        entity_name: str,
        cache_policy: Optional[CachePolicy] = None,
    ) -> Optional[Any]:
        """Find an entity by its unique ID, or None."""
        return self._executor.find_by_id(entity_id, entity_name, cache_policy=cache_policy)

    def invalidate_cache(self) -> None:
        """Drop every cached result, e.g. after writing to the store."""
        if self._cache is not None:
            self._cache.clear()
            logger.debug("Result cache cleared")

    def info(self) -> Dict[str, Any]:
        """Get database information."""
        return {
            "version": self.VERSION,
            "store": type(self._store).__name__,
            "store_stats": self._store.stats().to_dict(),
            "cache": self._cache.stats().to_dict() if self._cache is not None else None,
            "executor": self._executor.stats().to_dict(),
        }

    def close(self) -> None:
        """Shut down the executor and release the store."""
        self._executor.close()
        self._store.close()
        logger.info("EntityDatabase closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __repr__(self) -> str:
        return f"EntityDatabase(store={type(self._store).__name__})"
