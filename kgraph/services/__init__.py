"""
Services package.

Contains core business logic:
- KnowledgeGraphManager: project-scoped mutations, reads and searches
"""

from kgraph.services.graph_manager import KnowledgeGraphManager, create_graph_manager

__all__ = [
    "KnowledgeGraphManager",
    "create_graph_manager",
]
