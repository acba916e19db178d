"""
Relation API Routes

This module provides REST API endpoints for relations:
- POST /projects/{project}/relations - Create relations
- POST /projects/{project}/relations/delete - Delete relations

Relations are identified by their (from, to, relationType) triple.
"""

import logging

from fastapi import APIRouter, Depends

from kgraph.api.deps import get_graph_manager, http_error
from kgraph.models.graph import Relation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects/{project}", tags=["Relations"])


@router.post(
    "/relations",
    response_model=list[Relation],
    status_code=201,
    summary="Create relations",
    description="""
    Create directed relations between entities. Relations that already exist
    are skipped; the response lists only the relations created.
    """
)
async def create_relations(
    project: str,
    relations: list[Relation],
    manager=Depends(get_graph_manager)
) -> list[Relation]:
    try:
        created = manager.create_relations(relations, project)
        logger.info(f"Created {len(created)} relations in project {project}")
        return created
    except Exception as e:
        raise http_error(e, "create relations")


@router.post(
    "/relations/delete",
    status_code=204,
    summary="Delete relations"
)
async def delete_relations(
    project: str,
    relations: list[Relation],
    manager=Depends(get_graph_manager)
) -> None:
    try:
        manager.delete_relations(relations, project)
    except Exception as e:
        raise http_error(e, "delete relations")
