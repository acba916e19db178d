"""
Search package.

Contains:
- SearchStrategy: capability interface, one implementation per backend
  (SQLiteSearchStrategy, PostgresSearchStrategy)
- SearchManager: mode dispatch, batch union, database -> client fallback
- PaginatedSearch: backend OFFSET/LIMIT paging with an in-memory fallback

Use ``create_search_strategy`` to pick the strategy for a storage provider.
"""

from kgraph.config import SearchConfig, StorageType
from kgraph.errors import ConfigurationError
from kgraph.search.base import SearchStrategy
from kgraph.search.manager import SearchManager
from kgraph.search.pagination import PaginatedSearch
from kgraph.search.postgres import PostgresSearchStrategy
from kgraph.search.sqlite import SQLiteSearchStrategy
from kgraph.storage.base import StorageProvider

STRATEGIES: dict[StorageType, type[SearchStrategy]] = {
    StorageType.SQLITE: SQLiteSearchStrategy,
    StorageType.POSTGRESQL: PostgresSearchStrategy,
}


def create_search_strategy(config: SearchConfig, storage: StorageProvider) -> SearchStrategy:
    """
    Build the search strategy matching the storage provider's engine.

    Raises:
        ConfigurationError: If no strategy exists for the engine
    """
    try:
        strategy_cls = STRATEGIES[storage.storage_type]
    except KeyError:
        raise ConfigurationError(f"No search strategy for storage type {storage.storage_type}") from None
    return strategy_cls(config, storage)


__all__ = [
    "SearchStrategy",
    "SQLiteSearchStrategy",
    "PostgresSearchStrategy",
    "SearchManager",
    "PaginatedSearch",
    "create_search_strategy",
]
