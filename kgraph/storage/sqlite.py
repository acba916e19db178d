"""
SQLite Storage

Embedded storage engine built on the standard library ``sqlite3`` module.
Observations and tags are stored as JSON text; timestamps as fixed-width
ISO-8601 UTC strings, so text ordering equals time ordering.

SQLite's built-in ``lower()`` only folds ASCII. A ``kg_lower()`` function
backed by Python's ``str.lower`` is registered on every connection, so
substring matching in SQL agrees with matching done in Python.

Connection strings:
    sqlite:///absolute/path/to/graph.db
    sqlite://relative/or/~/path.db
    sqlite://:memory:
"""

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Sequence

from kgraph.config import StorageType
from kgraph.errors import StorageError
from kgraph.models.graph import KnowledgeGraph, utcnow
from kgraph.storage.base import StorageProvider

logger = logging.getLogger(__name__)

MEMORY = ":memory:"

SCHEMA = """
CREATE TABLE IF NOT EXISTS entities (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    project TEXT NOT NULL,
    name TEXT NOT NULL,
    entity_type TEXT NOT NULL,
    observations TEXT NOT NULL DEFAULT '[]',
    tags TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE(project, name)
);

CREATE TABLE IF NOT EXISTS relations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    project TEXT NOT NULL,
    from_entity TEXT NOT NULL,
    to_entity TEXT NOT NULL,
    relation_type TEXT NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE(project, from_entity, to_entity, relation_type)
);

CREATE INDEX IF NOT EXISTS idx_entities_project ON entities(project);
CREATE INDEX IF NOT EXISTS idx_entities_project_updated ON entities(project, updated_at DESC, name);
CREATE INDEX IF NOT EXISTS idx_entities_type ON entities(project, entity_type);
CREATE INDEX IF NOT EXISTS idx_relations_project ON relations(project);
CREATE INDEX IF NOT EXISTS idx_relations_from ON relations(project, from_entity);
CREATE INDEX IF NOT EXISTS idx_relations_to ON relations(project, to_entity);
"""


def parse_sqlite_path(connection_string: str) -> str:
    """
    Extract the database path from a ``sqlite://`` connection string.

    A bare path (no scheme) is accepted as-is.

    Example:
        >>> parse_sqlite_path("sqlite://:memory:")
        ':memory:'
        >>> parse_sqlite_path("sqlite:///var/lib/kg.db")
        '/var/lib/kg.db'
    """
    path = connection_string
    if path.startswith("sqlite://"):
        path = path[len("sqlite://"):]
    if not path:
        raise StorageError("SQLite connection string has no database path")
    if path == MEMORY:
        return MEMORY
    return str(Path(path).expanduser())


def format_timestamp(value: Optional[datetime]) -> str:
    """Fixed-width ISO-8601 UTC text for a timestamp (now when None)."""
    value = value or utcnow()
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _lower(value: Optional[str]) -> Optional[str]:
    return value.lower() if isinstance(value, str) else value


class SQLiteStorage(StorageProvider):
    """
    SQLite-backed storage provider.

    A single connection is kept open for the lifetime of the provider. File
    databases use WAL journaling; parent directories are created on demand.

    Attributes:
        path: Database file path, or ":memory:"

    Example:
        >>> storage = SQLiteStorage("sqlite://:memory:")
        >>> storage.initialize()
        >>> storage.load_graph("demo").entities
        []
    """

    storage_type = StorageType.SQLITE
    placeholder = "?"
    supports_similarity = False

    def __init__(self, connection_string: str = "sqlite://:memory:"):
        self.path = parse_sqlite_path(connection_string)
        self._conn: Optional[sqlite3.Connection] = None

    def __repr__(self) -> str:
        return f"SQLiteStorage(path={self.path!r})"

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def initialize(self) -> None:
        """Open the connection, register SQL functions and create the schema."""
        if self._conn is not None:
            return

        if self.path != MEMORY:
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(self.path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.create_function("kg_lower", 1, _lower, deterministic=True)
        if self.path != MEMORY:
            conn.execute("PRAGMA journal_mode=WAL")
        conn.executescript(SCHEMA)
        conn.commit()

        self._conn = conn
        logger.info(f"SQLite storage initialized at {self.path}")

    def close(self) -> None:
        """Close the SQLite connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("SQLite connection closed")

    def health_check(self) -> bool:
        if self._conn is None:
            return False
        try:
            self._conn.execute("SELECT 1").fetchone()
            return True
        except sqlite3.Error as e:
            logger.warning(f"SQLite health check failed: {e}")
            return False

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError("SQLite storage is not initialized; call initialize() first")
        return self._conn

    # =========================================================================
    # Primitives
    # =========================================================================

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        cursor = self.connection.execute(sql, tuple(params))
        return [dict(row) for row in cursor.fetchall()]

    def save_graph(self, graph: KnowledgeGraph, project: str) -> None:
        conn = self.connection
        now = format_timestamp(None)

        entity_rows = [
            (
                project,
                entity.name,
                entity.entity_type,
                json.dumps(entity.observations),
                json.dumps(entity.tags),
                format_timestamp(entity.created_at) if entity.created_at else now,
                format_timestamp(entity.updated_at) if entity.updated_at else now,
            )
            for entity in graph.entities
        ]
        relation_rows = [
            (project, r.from_entity, r.to_entity, r.relation_type, now)
            for r in graph.relations
        ]

        with conn:
            conn.execute("DELETE FROM relations WHERE project = ?", (project,))
            conn.execute("DELETE FROM entities WHERE project = ?", (project,))
            conn.executemany(
                """
                INSERT INTO entities
                    (project, name, entity_type, observations, tags, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                entity_rows,
            )
            conn.executemany(
                """
                INSERT OR IGNORE INTO relations
                    (project, from_entity, to_entity, relation_type, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                relation_rows,
            )

        logger.debug(
            f"Saved {len(entity_rows)} entities and {len(relation_rows)} relations "
            f"for project {project}"
        )
