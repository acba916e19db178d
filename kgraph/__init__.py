"""
kgraph - Project-Scoped Knowledge Graph with Search and Pagination

This package implements a FastAPI-based backend service that stores a small
knowledge graph (entities, relations, observations, tags) partitioned by
project, on top of one of two storage engines:
- SQLite for embedded, file or in-memory databases
- PostgreSQL with pg_trgm for native similarity search

The system supports:
- Entity, relation, observation and tag CRUD operations
- Exact (substring) search across names, types, observations and tags
- Fuzzy search, pushed to the database when it can, client-side otherwise
- Exact tag filtering with any/all semantics
- Paginated search with backend OFFSET/LIMIT or in-memory slicing
"""

__version__ = "1.0.0"
__author__ = "kgraph Team"
