"""
Knowledge Graph Manager

This module provides the service used by the API and the scripts:
- Entity, relation, observation and tag mutations
- Graph reads (whole project, or selected entities)
- Searches, plain and paginated, returning entities plus the relations
  among them

Every call is scoped to a project; a missing project resolves to the
configured default. Mutations load the whole project, change it and save it
back in one transaction. There is no locking between concurrent writers of
the same project: the last save wins.
"""

import logging
from typing import Iterable, Optional

from kgraph.config import SearchConfig, Settings, build_search_config
from kgraph.errors import EntityNotFoundError, InvalidInputError
from kgraph.models.graph import (
    Entity,
    EntityCreate,
    KnowledgeGraph,
    ObservationUpdate,
    Relation,
    TagUpdate,
    UpdateResult,
    resolve_project,
    utcnow,
)
from kgraph.models.search import PaginatedSearchResponse, PaginationRequest, SearchOptions
from kgraph.search import PaginatedSearch, SearchManager, create_search_strategy
from kgraph.search.filters import Query, relations_among
from kgraph.storage import StorageProvider, create_storage

logger = logging.getLogger(__name__)

DEFAULT_PROJECT = "knowledgegraph_default_project"


def _require_list(values, what: str) -> None:
    if not isinstance(values, (list, tuple)) or len(values) == 0:
        raise InvalidInputError(f"{what} must be a non-empty list")


def _require_text(value, what: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(f"{what} must be a non-empty string")


class KnowledgeGraphManager:
    """
    Project-scoped knowledge graph service.

    Attributes:
        storage: Initialized storage provider
        search_manager: Mode dispatch and fallback for searches
        paginator: Paginated search front end
        default_project: Project used when a call names none

    Example:
        >>> manager = create_graph_manager(load_settings(storage_type="sqlite",
        ...                                              connection_string="sqlite://:memory:"))
        >>> manager.create_entities([EntityCreate(name="api", entity_type="service")], "demo")
        >>> manager.search_nodes("api", None, "demo").entities[0].name
        'api'
    """

    def __init__(
        self,
        storage: StorageProvider,
        search_config: Optional[SearchConfig] = None,
        default_project: str = DEFAULT_PROJECT,
        max_page_size: int = 1000,
    ):
        self.storage = storage
        self.search_config = search_config or SearchConfig()
        self.default_project = default_project
        strategy = create_search_strategy(self.search_config, storage)
        self.search_manager = SearchManager(self.search_config, strategy)
        self.paginator = PaginatedSearch(self.search_manager, max_page_size=max_page_size)

    def __repr__(self) -> str:
        return f"KnowledgeGraphManager(storage={self.storage!r}, strategy={self.search_manager.strategy!r})"

    def close(self) -> None:
        self.storage.close()

    def health_check(self) -> bool:
        return self.storage.health_check()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _project(self, project: Optional[str]) -> str:
        return resolve_project(project, self.default_project)

    # =========================================================================
    # Entity Operations
    # =========================================================================

    def create_entities(self, entities: list[EntityCreate], project: Optional[str] = None) -> list[Entity]:
        """
        Add entities whose names are not taken yet.

        Args:
            entities: Entities to create
            project: Target project

        Returns:
            The entities actually created (existing names are skipped)

        Raises:
            InvalidInputError: If the list is empty or an entity lacks a
                name or type
        """
        _require_list(entities, "entities")
        for index, entity in enumerate(entities):
            _require_text(entity.name, f"Entity #{index} name")
            _require_text(entity.entity_type, f"Entity '{entity.name}' entityType")

        project = self._project(project)
        graph = self.storage.load_graph(project)
        existing = graph.entity_names()
        now = utcnow()

        created = []
        for entity in entities:
            if entity.name in existing:
                continue
            existing.add(entity.name)
            created.append(Entity(
                name=entity.name,
                entity_type=entity.entity_type,
                observations=list(entity.observations),
                tags=list(entity.tags),
                created_at=now,
                updated_at=now,
            ))

        if created:
            graph.entities.extend(created)
            self.storage.save_graph(graph, project)
        logger.info(f"Created {len(created)} of {len(entities)} entities in project {project}")
        return created

    def delete_entities(self, names: list[str], project: Optional[str] = None) -> None:
        """Delete entities and every relation touching them."""
        _require_list(names, "entity names")
        project = self._project(project)
        doomed = set(names)

        graph = self.storage.load_graph(project)
        graph.entities = [e for e in graph.entities if e.name not in doomed]
        graph.relations = [
            r for r in graph.relations
            if r.from_entity not in doomed and r.to_entity not in doomed
        ]
        self.storage.save_graph(graph, project)
        logger.info(f"Deleted entities {sorted(doomed)} from project {project}")

    # =========================================================================
    # Relation Operations
    # =========================================================================

    def create_relations(self, relations: list[Relation], project: Optional[str] = None) -> list[Relation]:
        """Add relations that do not exist yet; returns the ones created."""
        _require_list(relations, "relations")
        project = self._project(project)

        graph = self.storage.load_graph(project)
        existing = {r.key for r in graph.relations}
        created = []
        for relation in relations:
            if relation.key in existing:
                continue
            existing.add(relation.key)
            created.append(relation)

        if created:
            graph.relations.extend(created)
            self.storage.save_graph(graph, project)
        logger.info(f"Created {len(created)} of {len(relations)} relations in project {project}")
        return created

    def delete_relations(self, relations: list[Relation], project: Optional[str] = None) -> None:
        _require_list(relations, "relations")
        project = self._project(project)
        doomed = {r.key for r in relations}

        graph = self.storage.load_graph(project)
        graph.relations = [r for r in graph.relations if r.key not in doomed]
        self.storage.save_graph(graph, project)

    # =========================================================================
    # Observation and Tag Operations
    # =========================================================================

    def _index_entities(self, graph: KnowledgeGraph, names: Iterable[str], project: str) -> dict[str, int]:
        """Index of entity name -> position, failing on unknown names."""
        index = {entity.name: i for i, entity in enumerate(graph.entities)}
        for name in names:
            if name not in index:
                raise EntityNotFoundError(name, project)
        return index

    def add_observations(self, updates: list[ObservationUpdate], project: Optional[str] = None) -> list[UpdateResult]:
        """
        Append observations to existing entities, skipping ones already present.

        Raises:
            EntityNotFoundError: If an update names an unknown entity (nothing is saved)
        """
        _require_list(updates, "observation updates")
        for update in updates:
            _require_text(update.entity_name, "Observation update entityName")
            if not update.observations:
                raise InvalidInputError(
                    f"Observation update for entity '{update.entity_name}' must contain at least one observation"
                )
            for i, observation in enumerate(update.observations):
                _require_text(observation, f"Observation at index {i} for entity '{update.entity_name}'")

        project = self._project(project)
        graph = self.storage.load_graph(project)
        index = self._index_entities(graph, (u.entity_name for u in updates), project)

        results = []
        for update in updates:
            entity = graph.entities[index[update.entity_name]]
            added = [o for o in dict.fromkeys(update.observations) if o not in entity.observations]
            if added:
                entity = entity.model_copy(update={"observations": entity.observations + added}).touch()
                graph.entities[index[update.entity_name]] = entity
            results.append(UpdateResult(entity_name=update.entity_name, added=added))

        self.storage.save_graph(graph, project)
        return results

    def delete_observations(self, deletions: list[ObservationUpdate], project: Optional[str] = None) -> None:
        """Remove observations; unknown entities are ignored."""
        _require_list(deletions, "observation deletions")
        project = self._project(project)
        graph = self.storage.load_graph(project)

        by_name = {d.entity_name: set(d.observations) for d in deletions}
        for i, entity in enumerate(graph.entities):
            doomed = by_name.get(entity.name)
            if not doomed:
                continue
            kept = [o for o in entity.observations if o not in doomed]
            if len(kept) != len(entity.observations):
                graph.entities[i] = entity.model_copy(update={"observations": kept}).touch()

        self.storage.save_graph(graph, project)

    def add_tags(self, updates: list[TagUpdate], project: Optional[str] = None) -> list[UpdateResult]:
        """
        Add tags to existing entities.

        Raises:
            EntityNotFoundError: If an update names an unknown entity
        """
        _require_list(updates, "tag updates")
        for update in updates:
            _require_text(update.entity_name, "Tag update entityName")
            for i, tag in enumerate(update.tags):
                _require_text(tag, f"Tag at index {i} for entity '{update.entity_name}'")

        project = self._project(project)
        graph = self.storage.load_graph(project)
        index = self._index_entities(graph, (u.entity_name for u in updates), project)

        results = []
        for update in updates:
            entity = graph.entities[index[update.entity_name]]
            added = [t for t in dict.fromkeys(update.tags) if t not in entity.tags]
            if added:
                entity = entity.model_copy(update={"tags": entity.tags + added}).touch()
                graph.entities[index[update.entity_name]] = entity
            results.append(UpdateResult(entity_name=update.entity_name, added=added))

        self.storage.save_graph(graph, project)
        return results

    def remove_tags(self, updates: list[TagUpdate], project: Optional[str] = None) -> list[UpdateResult]:
        """
        Remove tags from existing entities.

        Raises:
            EntityNotFoundError: If an update names an unknown entity
        """
        _require_list(updates, "tag updates")
        project = self._project(project)
        graph = self.storage.load_graph(project)
        index = self._index_entities(graph, (u.entity_name for u in updates), project)

        results = []
        for update in updates:
            entity = graph.entities[index[update.entity_name]]
            doomed = set(update.tags)
            removed = [t for t in entity.tags if t in doomed]
            if removed:
                kept = [t for t in entity.tags if t not in doomed]
                graph.entities[index[update.entity_name]] = entity.model_copy(update={"tags": kept}).touch()
            results.append(UpdateResult(entity_name=update.entity_name, removed=removed))

        self.storage.save_graph(graph, project)
        return results

    # =========================================================================
    # Reads and Search
    # =========================================================================

    def read_graph(self, project: Optional[str] = None) -> KnowledgeGraph:
        return self.storage.load_graph(self._project(project))

    def open_nodes(self, names: list[str], project: Optional[str] = None) -> KnowledgeGraph:
        """The named entities and the relations among them."""
        project = self._project(project)
        wanted = set(names)
        graph = self.storage.load_graph(project)
        entities = [e for e in graph.entities if e.name in wanted]
        return KnowledgeGraph(
            entities=entities,
            relations=relations_among(graph.relations, {e.name for e in entities}),
        )

    def search_nodes(
        self,
        query: Query,
        options: Optional[SearchOptions] = None,
        project: Optional[str] = None,
    ) -> KnowledgeGraph:
        """
        Search a project and return the matches with the relations among them.

        Args:
            query: Query string or batch of query strings (results unioned)
            options: Match mode, fuzzy threshold and tag filters
            project: Project to search

        Returns:
            KnowledgeGraph of matching entities and relations whose both
            endpoints matched
        """
        project = self._project(project)
        graph = self.storage.load_graph(project)
        entities = self.search_manager.search(query, graph.entities, options, project)
        return KnowledgeGraph(
            entities=entities,
            relations=relations_among(graph.relations, {e.name for e in entities}),
        )

    def search_nodes_paginated(
        self,
        query: Query,
        pagination: Optional[PaginationRequest] = None,
        options: Optional[SearchOptions] = None,
        project: Optional[str] = None,
    ) -> PaginatedSearchResponse:
        """
        One page of search results with the relations among the page's entities.

        Raises:
            InvalidPaginationError: For a negative page or non-positive page size
        """
        project = self._project(project)
        pagination = pagination or PaginationRequest()
        page = self.paginator.search_paginated(query, pagination, options, project)

        names = [entity.name for entity in page.data]
        relations = self.storage.load_relations(project, names) if names else []
        return PaginatedSearchResponse(
            entities=page.data,
            relations=relations_among(relations, set(names)),
            pagination=page.info(),
        )


def create_graph_manager(settings: Settings) -> KnowledgeGraphManager:
    """
    Build and initialize the storage and the knowledge graph manager.

    Args:
        settings: Application settings

    Returns:
        Ready-to-use KnowledgeGraphManager
    """
    storage = create_storage(settings)
    storage.initialize()
    manager = KnowledgeGraphManager(
        storage,
        search_config=build_search_config(settings),
        default_project=settings.default_project,
        max_page_size=settings.max_page_size,
    )
    logger.info(f"Knowledge graph manager ready: {manager}")
    return manager
