"""
Search API Routes

This module provides REST API endpoints for search operations:
- POST /projects/{project}/search - Exact, fuzzy or tag search
- POST /projects/{project}/search/paginated - The same, one page at a time

Both return the matching entities together with the relations whose both
endpoints matched. ``query`` may be a list of strings; the results of a
batch are unioned.
"""

import logging
import time

from fastapi import APIRouter, Depends

from kgraph.api.deps import get_graph_manager, http_error
from kgraph.models.graph import KnowledgeGraph
from kgraph.models.search import (
    PaginatedSearchRequest,
    PaginatedSearchResponse,
    PaginationRequest,
    SearchRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects/{project}/search", tags=["Search"])


@router.post(
    "",
    response_model=KnowledgeGraph,
    summary="Search entities",
    description="""
    Search a project's entities.

    - **exact** (default): case-insensitive substring match on name, type,
      observations and tags. An empty query returns every entity.
    - **fuzzy**: similarity match with ``fuzzyThreshold`` in [0, 1]. Uses
      PostgreSQL pg_trgm when available, client-side matching otherwise.
    - **exactTags**: when given, only the tag filter applies and the query
      is ignored. ``tagMatchMode`` chooses any/all.
    """
)
async def search(
    project: str,
    request: SearchRequest,
    manager=Depends(get_graph_manager)
) -> KnowledgeGraph:
    try:
        start_time = time.time()
        result = manager.search_nodes(request.query, request.options(), project)
        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(
            f"{request.search_mode.value} search in {project}: "
            f"{len(result.entities)} entities in {elapsed_ms:.1f}ms"
        )
        return result
    except Exception as e:
        raise http_error(e, "search")


@router.post(
    "/paginated",
    response_model=PaginatedSearchResponse,
    summary="Search entities, one page at a time",
    description="""
    Same matching rules as ``/search``, returning page ``page`` (zero-based)
    of ``pageSize`` entities. ``pageSize`` above the server maximum is
    clamped; a negative page or non-positive page size is rejected with 400.
    """
)
async def search_paginated(
    project: str,
    request: PaginatedSearchRequest,
    manager=Depends(get_graph_manager)
) -> PaginatedSearchResponse:
    from kgraph.main import settings

    page_size = request.page_size if request.page_size is not None else settings.default_page_size
    try:
        return manager.search_nodes_paginated(
            request.query,
            PaginationRequest(page=request.page, page_size=page_size),
            request.options(),
            project,
        )
    except Exception as e:
        raise http_error(e, "search")
