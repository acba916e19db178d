"""
Shared pytest fixtures for kgraph tests.

Provides an in-memory SQLite storage, a recording stand-in for the
PostgreSQL query primitive (no server needed), and builders for entities.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Sequence

import pytest

from kgraph.config import SearchConfig, SearchLimits, StorageType
from kgraph.models.graph import Entity, KnowledgeGraph, Relation
from kgraph.search import SQLiteSearchStrategy, SearchManager
from kgraph.storage import SQLiteStorage

PROJECT = "test_project"

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_entity(
    name: str,
    entity_type: str = "thing",
    observations: Optional[list[str]] = None,
    tags: Optional[list[str]] = None,
    age: int = 0,
) -> Entity:
    """
    Build an Entity. ``age`` is in minutes before a fixed base time, so a
    larger age means less recently updated.
    """
    stamp = BASE_TIME - timedelta(minutes=age)
    return Entity(
        name=name,
        entity_type=entity_type,
        observations=observations or [],
        tags=tags or [],
        created_at=stamp,
        updated_at=stamp,
    )


def numbered_entities(count: int, prefix: str = "item", **kwargs) -> list[Entity]:
    """``count`` entities named prefix-000.., newest first."""
    return [make_entity(f"{prefix}-{i:03d}", age=i, **kwargs) for i in range(count)]


class RecordingStorage:
    """
    Stand-in for a PostgreSQL provider that records every query.

    ``responder(sql, params)`` returns the rows for a query; by default every
    query returns no rows. Set ``error`` to make every query raise it.
    """

    storage_type = StorageType.POSTGRESQL
    placeholder = "%s"

    def __init__(self, responder: Optional[Callable[[str, Sequence[Any]], list[dict]]] = None):
        self.responder = responder or (lambda sql, params: [])
        self.supports_similarity = True
        self.calls: list[tuple[str, list[Any]]] = []
        self.error: Optional[Exception] = None

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[dict]:
        self.calls.append((sql, list(params)))
        if self.error is not None:
            raise self.error
        return self.responder(sql, params)


def entity_row(entity: Entity, score: Optional[float] = None) -> dict:
    """The row a PostgreSQL query would return for ``entity``."""
    row = {
        "name": entity.name,
        "entity_type": entity.entity_type,
        "observations": list(entity.observations),
        "tags": list(entity.tags),
        "created_at": entity.created_at,
        "updated_at": entity.updated_at,
    }
    if score is not None:
        row["relevance_score"] = score
    return row


@pytest.fixture
def storage():
    """Initialized in-memory SQLite storage."""
    store = SQLiteStorage("sqlite://:memory:")
    store.initialize()
    yield store
    store.close()


@pytest.fixture
def search_config():
    """Search configuration with the smallest chunk size, to exercise chunking."""
    return SearchConfig(
        use_database_search=False,
        fuzzy_threshold=0.3,
        client_side_fallback=True,
        limits=SearchLimits(
            max_results=100,
            batch_size=10,
            max_client_entities=10000,
            client_chunk_size=100,
        ),
    )


@pytest.fixture
def sqlite_strategy(search_config, storage):
    return SQLiteSearchStrategy(search_config, storage)


@pytest.fixture
def sqlite_manager(search_config, sqlite_strategy):
    return SearchManager(search_config, sqlite_strategy)


@pytest.fixture
def languages():
    """A small catalogue of programming languages and tools."""
    return [
        make_entity("JavaScript", "language", ["Runs in the browser"], ["web"], age=1),
        make_entity("TypeScript", "language", ["Typed superset of JavaScript"], ["web", "typed"], age=2),
        make_entity("Python", "language", ["Popular for data science"], ["backend", "scripting"], age=3),
        make_entity("Rust", "language", ["Memory safety without GC"], ["systems", "typed"], age=4),
        make_entity("Kubernetes", "tool", ["Container orchestration"], ["ops"], age=5),
        make_entity("Untagged", "misc", ["Has no tags at all"], [], age=6),
    ]


@pytest.fixture
def seeded_storage(storage, languages):
    """SQLite storage holding the languages catalogue in PROJECT."""
    storage.save_graph(
        KnowledgeGraph(
            entities=languages,
            relations=[
                Relation(from_entity="TypeScript", to_entity="JavaScript", relation_type="compiles_to"),
                Relation(from_entity="Python", to_entity="Kubernetes", relation_type="scripts"),
            ],
        ),
        PROJECT,
    )
    return storage
