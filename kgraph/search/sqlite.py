"""
SQLite Search Strategy

SQLite has no similarity operator, so fuzzy search always runs client-side.
Exact and tag matching are pushed down using the JSON1 functions:
``json_each`` expands the observations and tags arrays, and the
``kg_lower()`` function registered by SQLiteStorage gives Unicode-aware
case folding.

Rows whose JSON columns are malformed are treated as having no
observations or tags instead of failing the whole query.
"""

import logging
from typing import Optional, Sequence

from kgraph.errors import BackendUnavailableError
from kgraph.models.graph import Entity
from kgraph.models.search import TagMatchMode
from kgraph.search.base import Predicate, SearchStrategy
from kgraph.search.filters import Query

logger = logging.getLogger(__name__)


def json_array(column: str) -> str:
    """SQL expression yielding ``column`` if it holds a JSON array, else '[]'."""
    qualified = f"entities.{column}"
    return (
        f"COALESCE(CASE WHEN json_valid({qualified}) THEN "
        f"CASE WHEN json_type({qualified}) = 'array' THEN {qualified} END END, '[]')"
    )


def _any_text_element(column: str, condition: str) -> str:
    return (
        f"EXISTS (SELECT 1 FROM json_each({json_array(column)}) AS el "
        f"WHERE el.type = 'text' AND {condition})"
    )


class SQLiteSearchStrategy(SearchStrategy):
    """
    Search strategy for the embedded SQLite backend.

    Example:
        >>> strategy = SQLiteSearchStrategy(SearchConfig(), storage)
        >>> strategy.can_use_database()
        False
        >>> strategy.search_client_side(entities, "pyton")
        [Entity(name='Python', ...)]
    """

    def can_use_database(self) -> bool:
        return False

    def search_database(
        self,
        query: Query,
        threshold: Optional[float],
        project: str,
    ) -> list[Entity]:
        raise BackendUnavailableError(
            "SQLite has no native fuzzy search; check can_use_database() "
            "and use search_client_side instead"
        )

    def exact_predicate(self, terms: Sequence[str]) -> Predicate:
        clauses = []
        params = []
        for term in terms:
            clauses.append(
                "(instr(kg_lower(entities.name), ?) > 0"
                " OR instr(kg_lower(entities.entity_type), ?) > 0"
                f" OR {_any_text_element('observations', 'instr(kg_lower(el.value), ?) > 0')}"
                f" OR {_any_text_element('tags', 'instr(kg_lower(el.value), ?) > 0')})"
            )
            params.extend([term] * 4)
        return " OR ".join(clauses), params

    def tag_predicate(self, tags: Sequence[str], mode: TagMatchMode) -> Predicate:
        if mode == TagMatchMode.ALL:
            clauses = [_any_text_element("tags", "el.value = ?") for _ in tags]
            return " AND ".join(clauses), list(tags)

        marks = ", ".join("?" for _ in tags)
        return _any_text_element("tags", f"el.value IN ({marks})"), list(tags)
