"""
Storage Provider Interface

Every storage engine implements the same surface:

    initialize()                  create schema, open connections
    query(sql, params)  -> rows   parameterized read, rows as dicts
    save_graph(graph, project)    replace one project's data atomically
    close() / health_check()      lifecycle

Whole-project reads (entities, relations, graph) are built on ``query`` here,
so each engine only supplies its dialect: the positional placeholder and how
JSON columns come back. Search logic lives in kgraph.search, not here.

Rows are turned into Entity models by ``row_to_entity``, the single place
where missing or malformed observations/tags are normalized to empty lists.
``rows_to_entities`` skips rows that still fail validation, with a warning.
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from pydantic import ValidationError

from kgraph.config import StorageType
from kgraph.models.graph import Entity, KnowledgeGraph, Relation

logger = logging.getLogger(__name__)

ENTITY_COLUMNS = "name, entity_type, observations, tags, created_at, updated_at"
ENTITY_ORDER = "updated_at DESC, name ASC"


def parse_json_list(value: Any, column: str, entity_name: str) -> list[str]:
    """
    Normalize a stored observations/tags value to a list of strings.

    Accepts an already-decoded list (PostgreSQL JSONB) or a JSON string
    (SQLite TEXT). Anything else, including NULL, invalid JSON and non-list
    JSON, becomes an empty list. Non-string elements are dropped.
    """
    if value is None:
        return []

    if isinstance(value, (str, bytes)):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            logger.warning(f"Malformed {column} JSON for entity '{entity_name}'; using []")
            return []

    if not isinstance(value, list):
        logger.warning(
            f"Expected a JSON array in {column} for entity '{entity_name}', "
            f"got {type(value).__name__}; using []"
        )
        return []

    items = [item for item in value if isinstance(item, str)]
    if len(items) != len(value):
        logger.warning(f"Dropped non-string items from {column} of entity '{entity_name}'")
    return items


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Read a stored timestamp as an aware UTC datetime."""
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            logger.warning(f"Unparseable timestamp {value!r}; ignoring")
            return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def row_to_entity(row: dict[str, Any]) -> Entity:
    """
    Convert a database row to an Entity model.

    Args:
        row: Mapping with the ENTITY_COLUMNS keys

    Returns:
        Entity with observations and tags guaranteed to be lists
    """
    name = row["name"]
    return Entity(
        name=name,
        entity_type=row["entity_type"],
        observations=parse_json_list(row.get("observations"), "observations", name),
        tags=parse_json_list(row.get("tags"), "tags", name),
        created_at=parse_timestamp(row.get("created_at")),
        updated_at=parse_timestamp(row.get("updated_at")),
    )


def rows_to_entities(rows: Sequence[dict[str, Any]]) -> list[Entity]:
    """
    Convert rows to entities, skipping rows that cannot form a valid Entity
    (for example an empty name or entity type) with a warning.
    """
    entities = []
    for row in rows:
        try:
            entities.append(row_to_entity(row))
        except ValidationError as e:
            logger.warning(f"Skipping invalid entity row '{row.get('name')}': {e.error_count()} validation error(s)")
    return entities


def row_to_relation(row: dict[str, Any]) -> Relation:
    """Convert a database row to a Relation model."""
    return Relation(
        from_entity=row["from_entity"],
        to_entity=row["to_entity"],
        relation_type=row["relation_type"],
    )


class StorageProvider(ABC):
    """
    Abstract storage engine.

    Subclasses set ``storage_type`` and ``placeholder`` and implement the
    abstract methods. ``supports_similarity`` tells the search layer whether
    native fuzzy search is available.

    Attributes:
        storage_type: Which engine this is
        placeholder: Positional parameter marker of the engine's DB-API driver
        supports_similarity: Whether the engine can run similarity queries
    """

    storage_type: StorageType
    placeholder: str = "?"
    supports_similarity: bool = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @abstractmethod
    def initialize(self) -> None:
        """Open connections and create the schema if needed."""

    @abstractmethod
    def close(self) -> None:
        """Release every connection held by the provider."""

    @abstractmethod
    def health_check(self) -> bool:
        """Return True if the database is reachable. Must not raise."""

    def __enter__(self):
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    # =========================================================================
    # Primitives
    # =========================================================================

    @abstractmethod
    def query(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """
        Execute a parameterized read and return rows as dicts.

        ``sql`` uses ``self.placeholder`` for positional parameters.
        """

    @abstractmethod
    def save_graph(self, graph: KnowledgeGraph, project: str) -> None:
        """
        Replace every entity and relation of ``project`` with ``graph``.

        Runs in one transaction. Entities without ``updated_at`` are stamped
        with the current time; existing timestamps are preserved.
        """

    # =========================================================================
    # Whole-project reads
    # =========================================================================

    def load_entities(self, project: str) -> list[Entity]:
        """All entities of a project, most recently updated first."""
        p = self.placeholder
        rows = self.query(
            f"SELECT {ENTITY_COLUMNS} FROM entities WHERE project = {p} ORDER BY {ENTITY_ORDER}",
            [project],
        )
        return rows_to_entities(rows)

    def load_relations(self, project: str, entity_names: Optional[Sequence[str]] = None) -> list[Relation]:
        """
        Relations of a project.

        Args:
            project: Project to read
            entity_names: When given, only relations whose both endpoints are
                in this collection are returned
        """
        p = self.placeholder
        sql = f"SELECT from_entity, to_entity, relation_type FROM relations WHERE project = {p}"
        params: list[Any] = [project]

        if entity_names is not None:
            names = list(dict.fromkeys(entity_names))
            if not names:
                return []
            marks = ", ".join([p] * len(names))
            sql += f" AND from_entity IN ({marks}) AND to_entity IN ({marks})"
            params.extend(names)
            params.extend(names)

        sql += " ORDER BY id"
        return [row_to_relation(row) for row in self.query(sql, params)]

    def load_graph(self, project: str) -> KnowledgeGraph:
        """Every entity and relation of a project."""
        return KnowledgeGraph(
            entities=self.load_entities(project),
            relations=self.load_relations(project),
        )

    def count_entities(self, project: str) -> int:
        rows = self.query(
            f"SELECT COUNT(*) AS total FROM entities WHERE project = {self.placeholder}",
            [project],
        )
        return int(rows[0]["total"]) if rows else 0

    def count_relations(self, project: str) -> int:
        rows = self.query(
            f"SELECT COUNT(*) AS total FROM relations WHERE project = {self.placeholder}",
            [project],
        )
        return int(rows[0]["total"]) if rows else 0
