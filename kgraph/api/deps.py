"""
Shared API dependencies and error mapping.
"""

import logging

from fastapi import HTTPException

from kgraph.errors import EntityNotFoundError, InvalidInputError, KnowledgeGraphError

logger = logging.getLogger(__name__)


def get_graph_manager():
    """Dependency to get the KnowledgeGraphManager instance."""
    from kgraph.main import graph_manager
    if graph_manager is None:
        raise HTTPException(status_code=503, detail="Knowledge graph storage is not available")
    return graph_manager


def http_error(e: Exception, action: str) -> HTTPException:
    """
    Translate a service error into an HTTPException.

    InvalidInputError (including InvalidPaginationError) -> 400,
    EntityNotFoundError -> 404, anything else -> 500.
    """
    if isinstance(e, InvalidInputError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, EntityNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, KnowledgeGraphError):
        logger.error(f"Failed to {action}: {e}")
        return HTTPException(status_code=500, detail=f"Failed to {action}: {e}")
    logger.exception(f"Unexpected error while trying to {action}")
    return HTTPException(status_code=500, detail=f"Failed to {action}: {str(e)}")
