"""
Storage package.

Contains the storage providers:
- StorageProvider: abstract interface shared by every engine
- SQLiteStorage: embedded engine (standard library sqlite3)
- PostgresStorage: server engine (psycopg2, pg_trgm)

Use ``create_storage`` to build the provider named in the settings.
"""

import logging

from kgraph.config import Settings, StorageType
from kgraph.errors import ConfigurationError
from kgraph.storage.base import StorageProvider, row_to_entity, rows_to_entities
from kgraph.storage.sqlite import SQLiteStorage

logger = logging.getLogger(__name__)


def create_storage(settings: Settings) -> StorageProvider:
    """
    Build (but do not initialize) the configured storage provider.

    The PostgreSQL provider is imported lazily so SQLite deployments never
    load the driver.

    Args:
        settings: Application settings

    Returns:
        Uninitialized StorageProvider

    Raises:
        ConfigurationError: If the connection string does not fit the engine
    """
    connection_string = settings.connection_string

    if settings.storage_type == StorageType.SQLITE:
        if connection_string.startswith(("postgres://", "postgresql://")):
            raise ConfigurationError(
                "connection_string points at PostgreSQL but storage_type is sqlite"
            )
        return SQLiteStorage(connection_string)

    if settings.storage_type == StorageType.POSTGRESQL:
        if connection_string.startswith("sqlite:"):
            raise ConfigurationError(
                "storage_type is postgresql but connection_string is a sqlite:// URL; "
                "set KG_CONNECTION_STRING to a PostgreSQL connection string"
            )
        from kgraph.storage.postgres import PostgresStorage
        return PostgresStorage(connection_string, max_connections=settings.pool_max_connections)

    raise ConfigurationError(f"Unsupported storage type: {settings.storage_type}")


__all__ = [
    "StorageProvider",
    "SQLiteStorage",
    "create_storage",
    "row_to_entity",
    "rows_to_entities",
]
