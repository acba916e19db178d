"""
kgraph - Knowledge Graph Search API

Main FastAPI application entry point.

This module:
- Reads settings and configures logging
- Initializes the storage backend and the knowledge graph manager
- Wires up API routers
- Handles startup/shutdown events

To run the server:
    uvicorn kgraph.main:app --reload --host 0.0.0.0 --port 8000

API Documentation:
    - Swagger UI: http://localhost:8000/docs
    - ReDoc: http://localhost:8000/redoc
    - OpenAPI JSON: http://localhost:8000/openapi.json
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kgraph import __version__
from kgraph.api import entities_router, relations_router, search_router
from kgraph.config import Settings, get_settings
from kgraph.errors import StorageError
from kgraph.services.graph_manager import KnowledgeGraphManager, create_graph_manager

settings: Settings = get_settings()

# =============================================================================
# Logging Configuration
# =============================================================================
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# =============================================================================
# Global Service Instances
# =============================================================================
# Initialized during startup and used by API route dependencies

graph_manager: Optional[KnowledgeGraphManager] = None


# =============================================================================
# Application Lifecycle
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    - Startup: re-read settings, connect to storage, build the search stack
    - Shutdown: close storage connections
    """
    global settings, graph_manager

    logger.info("=" * 60)
    logger.info("kgraph starting up...")
    logger.info("=" * 60)

    settings = get_settings()
    logger.info(f"Storage: {settings.storage_type.value}, default project: {settings.default_project}")

    try:
        graph_manager = create_graph_manager(settings)
    except StorageError as e:
        logger.error(f"Failed to initialize storage: {e}")
        logger.warning("Running in degraded mode - graph operations will fail")
        graph_manager = None

    logger.info("kgraph startup complete!")

    yield

    logger.info("kgraph shutting down...")
    if graph_manager is not None:
        graph_manager.close()
        graph_manager = None
    logger.info("kgraph shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title=settings.api_title,
    description=settings.api_description,
    version=settings.api_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

# =============================================================================
# CORS Middleware
# =============================================================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# =============================================================================
# API Routers
# =============================================================================
app.include_router(entities_router)
app.include_router(relations_router)
app.include_router(search_router)


# =============================================================================
# Root Endpoints
# =============================================================================

@app.get("/", tags=["Health"])
async def root():
    """
    Root endpoint - basic API information.
    """
    return {
        "name": "kgraph",
        "description": "Project-scoped knowledge graph with exact, fuzzy and tag search",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Reports the storage backend and which fuzzy search path is active.
    """
    healthy = graph_manager is not None and graph_manager.health_check()
    health_status = {
        "status": "healthy" if healthy else "degraded",
        "components": {
            "storage": {
                "type": settings.storage_type.value,
                "status": "healthy" if healthy else "unavailable",
            },
            "search": {
                "database_fuzzy_search": (
                    graph_manager.search_manager.strategy.can_use_database()
                    if graph_manager is not None else False
                ),
                "client_side_fallback": settings.client_side_fallback,
            },
        }
    }
    if not healthy:
        health_status["message"] = "Storage not connected - graph operations unavailable"
    return health_status


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "kgraph.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower()
    )
