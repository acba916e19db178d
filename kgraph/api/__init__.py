"""
API routes package.

Contains FastAPI routers for:
- /projects/{project}/entities, /observations, /tags - Entity operations
- /projects/{project}/relations - Relation operations
- /projects/{project}/search - Exact, fuzzy and tag search, plain and paginated
"""

from kgraph.api.entities import router as entities_router
from kgraph.api.relations import router as relations_router
from kgraph.api.search import router as search_router

__all__ = [
    "entities_router",
    "relations_router",
    "search_router",
]
