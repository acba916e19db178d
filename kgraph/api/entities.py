"""
Entity API Routes

This module provides REST API endpoints for entities and their contents:
- POST /projects/{project}/entities - Create entities
- POST /projects/{project}/entities/open - Read selected entities
- POST /projects/{project}/entities/delete - Delete entities (and their relations)
- GET /projects/{project}/graph - Read the whole project graph
- POST /projects/{project}/observations - Add observations
- POST /projects/{project}/observations/delete - Delete observations
- POST /projects/{project}/tags - Add tags
- POST /projects/{project}/tags/remove - Remove tags
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from kgraph.api.deps import get_graph_manager, http_error
from kgraph.models.graph import (
    Entity,
    EntityCreate,
    EntityNames,
    KnowledgeGraph,
    ObservationUpdate,
    TagUpdate,
    UpdateResult,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects/{project}", tags=["Entities"])


@router.post(
    "/entities",
    response_model=list[Entity],
    status_code=201,
    summary="Create entities",
    description="""
    Create entities in a project. Entities whose name already exists in the
    project are skipped; the response lists only the entities created.
    """
)
async def create_entities(
    project: str,
    entities: list[EntityCreate],
    manager=Depends(get_graph_manager)
) -> list[Entity]:
    try:
        return manager.create_entities(entities, project)
    except HTTPException:
        raise
    except Exception as e:
        raise http_error(e, "create entities")


@router.post(
    "/entities/open",
    response_model=KnowledgeGraph,
    summary="Open entities by name",
    description="Return the named entities and the relations among them."
)
async def open_nodes(
    project: str,
    request: EntityNames,
    manager=Depends(get_graph_manager)
) -> KnowledgeGraph:
    try:
        return manager.open_nodes(request.names, project)
    except Exception as e:
        raise http_error(e, "open entities")


@router.post(
    "/entities/delete",
    status_code=204,
    summary="Delete entities",
    description="Delete entities and every relation that starts or ends at them."
)
async def delete_entities(
    project: str,
    request: EntityNames,
    manager=Depends(get_graph_manager)
) -> None:
    try:
        manager.delete_entities(request.names, project)
    except Exception as e:
        raise http_error(e, "delete entities")


@router.get(
    "/graph",
    response_model=KnowledgeGraph,
    summary="Read the project graph"
)
async def read_graph(
    project: str,
    manager=Depends(get_graph_manager)
) -> KnowledgeGraph:
    try:
        return manager.read_graph(project)
    except Exception as e:
        raise http_error(e, "read graph")


# =============================================================================
# Observations
# =============================================================================

@router.post(
    "/observations",
    response_model=list[UpdateResult],
    summary="Add observations",
    description="Append observations to existing entities. Observations already present are skipped."
)
async def add_observations(
    project: str,
    updates: list[ObservationUpdate],
    manager=Depends(get_graph_manager)
) -> list[UpdateResult]:
    try:
        return manager.add_observations(updates, project)
    except Exception as e:
        raise http_error(e, "add observations")


@router.post(
    "/observations/delete",
    status_code=204,
    summary="Delete observations"
)
async def delete_observations(
    project: str,
    deletions: list[ObservationUpdate],
    manager=Depends(get_graph_manager)
) -> None:
    try:
        manager.delete_observations(deletions, project)
    except Exception as e:
        raise http_error(e, "delete observations")


# =============================================================================
# Tags
# =============================================================================

@router.post(
    "/tags",
    response_model=list[UpdateResult],
    summary="Add tags",
    description="Add exact-match tags to existing entities. Tags are case-sensitive."
)
async def add_tags(
    project: str,
    updates: list[TagUpdate],
    manager=Depends(get_graph_manager)
) -> list[UpdateResult]:
    try:
        return manager.add_tags(updates, project)
    except Exception as e:
        raise http_error(e, "add tags")


@router.post(
    "/tags/remove",
    response_model=list[UpdateResult],
    summary="Remove tags"
)
async def remove_tags(
    project: str,
    updates: list[TagUpdate],
    manager=Depends(get_graph_manager)
) -> list[UpdateResult]:
    try:
        return manager.remove_tags(updates, project)
    except Exception as e:
        raise http_error(e, "remove tags")
