"""
Data models package.

Contains Pydantic models for:
- Graph data (entities, relations, mutation requests)
- Search options, pagination envelopes and search responses
"""

from kgraph.models.graph import (
    Entity,
    EntityCreate,
    EntityNames,
    KnowledgeGraph,
    ObservationUpdate,
    Relation,
    TagUpdate,
    UpdateResult,
    resolve_project,
    validate_project_name,
)
from kgraph.models.search import (
    PaginatedSearchRequest,
    PaginatedSearchResponse,
    PaginationInfo,
    PaginationRequest,
    PaginationResult,
    SearchMode,
    SearchOptions,
    SearchRequest,
    TagMatchMode,
)

__all__ = [
    "Entity",
    "EntityCreate",
    "EntityNames",
    "KnowledgeGraph",
    "ObservationUpdate",
    "Relation",
    "TagUpdate",
    "UpdateResult",
    "resolve_project",
    "validate_project_name",
    "PaginatedSearchRequest",
    "PaginatedSearchResponse",
    "PaginationInfo",
    "PaginationRequest",
    "PaginationResult",
    "SearchMode",
    "SearchOptions",
    "SearchRequest",
    "TagMatchMode",
]
