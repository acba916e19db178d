"""
PostgreSQL Search Strategy

Native fuzzy search with the pg_trgm ``similarity()`` function. An entity's
relevance for one query string is its best similarity across name, entity
type, observations and tags (the JSON columns are compared as text). For a
batch, relevance is the best over every query string in the statement.

Batches are composed into a single statement with one OR'ed similarity
condition per query string. Batches larger than the configured batch size
are split into successive statements whose results are unioned.
"""

import json
import logging
from typing import Any, Optional, Sequence

import psycopg2

from kgraph.errors import BackendUnavailableError, DatabaseSearchError
from kgraph.models.graph import Entity
from kgraph.models.search import TagMatchMode
from kgraph.search.base import Predicate, SearchStrategy
from kgraph.search.filters import Query, chunked, merge_unique, normalize_terms
from kgraph.storage.base import ENTITY_COLUMNS, rows_to_entities

logger = logging.getLogger(__name__)

TERM_SCORE_SQL = (
    "GREATEST(similarity(name, %s), similarity(entity_type, %s), "
    "similarity(observations::text, %s), similarity(tags::text, %s))"
)

FUZZY_ORDER = "relevance_score DESC, name ASC"


def _json_array(column: str) -> str:
    return f"CASE WHEN jsonb_typeof({column}) = 'array' THEN {column} ELSE '[]'::jsonb END"


def _any_string_element(column: str, condition: str) -> str:
    return (
        f"EXISTS (SELECT 1 FROM jsonb_array_elements({_json_array(column)}) AS el(value) "
        f"WHERE jsonb_typeof(el.value) = 'string' AND {condition})"
    )


ELEMENT_CONTAINS = "POSITION(%s IN LOWER(el.value #>> '{}')) > 0"

EXACT_TERM_SQL = (
    "(POSITION(%s IN LOWER(name)) > 0"
    " OR POSITION(%s IN LOWER(entity_type)) > 0"
    " OR " + _any_string_element("observations", ELEMENT_CONTAINS) +
    " OR " + _any_string_element("tags", ELEMENT_CONTAINS) + ")"
)


class PostgresSearchStrategy(SearchStrategy):
    """
    Search strategy for the PostgreSQL backend.

    Fuzzy search goes to the database when database search is enabled in
    configuration and the storage has pg_trgm; otherwise it runs
    client-side like every other backend.
    """

    def can_use_database(self) -> bool:
        return self.config.use_database_search and self.storage.supports_similarity

    # =========================================================================
    # Native Fuzzy Search
    # =========================================================================

    def _similarity_clause(self, terms: Sequence[str], threshold: float) -> tuple[str, list[Any], str, list[Any]]:
        """
        Build the relevance expression and the matching condition for ``terms``.

        Returns:
            (score_sql, score_params, condition_sql, condition_params)
        """
        scores = []
        score_params: list[Any] = []
        conditions = []
        condition_params: list[Any] = []
        for term in terms:
            scores.append(TERM_SCORE_SQL)
            score_params.extend([term] * 4)
            conditions.append(f"{TERM_SCORE_SQL} > %s")
            condition_params.extend([term] * 4 + [threshold])

        score_sql = scores[0] if len(scores) == 1 else f"GREATEST({', '.join(scores)})"
        return score_sql, score_params, " OR ".join(conditions), condition_params

    def _run(self, sql: str, params: list[Any]) -> list[dict[str, Any]]:
        try:
            return self.storage.query(sql, params)
        except psycopg2.Error as e:
            raise DatabaseSearchError(f"PostgreSQL fuzzy search failed: {e}") from e

    def _fuzzy_terms(self, query: Query) -> list[str]:
        return [term for term in normalize_terms(query) if term.strip()]

    def search_database(
        self,
        query: Query,
        threshold: Optional[float],
        project: str,
    ) -> list[Entity]:
        """
        Similarity search over name, type, observations and tags.

        Args:
            query: Query string or batch of query strings
            threshold: Similarity floor in [0, 1]; defaults to the configured one
            project: Project to search

        Returns:
            Entities above the threshold, most relevant first, at most
            ``max_results`` of them

        Raises:
            BackendUnavailableError: If database search is not available
            DatabaseSearchError: If the query fails
        """
        if not self.can_use_database():
            raise BackendUnavailableError(
                "Database fuzzy search is disabled or pg_trgm is not installed; "
                "use search_client_side instead"
            )
        threshold = self.resolve_threshold(threshold)
        terms = self._fuzzy_terms(query)
        if not terms:
            return []

        max_results = self.limits.max_results
        groups = []
        for group in chunked(terms, self.limits.batch_size):
            score_sql, score_params, condition_sql, condition_params = self._similarity_clause(group, threshold)
            rows = self._run(
                f"SELECT {ENTITY_COLUMNS}, {score_sql} AS relevance_score "
                f"FROM entities WHERE project = %s AND ({condition_sql}) "
                f"ORDER BY {FUZZY_ORDER} LIMIT %s",
                [*score_params, project, *condition_params, max_results],
            )
            groups.append(rows_to_entities(rows))

        results = merge_unique(groups, limit=max_results)
        logger.debug(f"Database fuzzy search for {len(terms)} term(s) returned {len(results)} entities")
        return results

    def search_database_paginated(
        self,
        query: str,
        threshold: Optional[float],
        project: str,
        page: int,
        page_size: int,
    ) -> tuple[list[Entity], int]:
        """
        One page of a similarity search plus its total.

        The total is capped at ``max_results`` so that paging here agrees
        with paging the output of ``search_database``.
        """
        if not self.can_use_database():
            raise BackendUnavailableError("Database fuzzy search is not available")
        threshold = self.resolve_threshold(threshold)
        terms = self._fuzzy_terms(query)
        if not terms:
            return [], 0

        score_sql, score_params, condition_sql, condition_params = self._similarity_clause(terms, threshold)
        count_rows = self._run(
            f"SELECT COUNT(*) AS total FROM entities WHERE project = %s AND ({condition_sql})",
            [project, *condition_params],
        )
        total = min(int(count_rows[0]["total"]) if count_rows else 0, self.limits.max_results)

        offset = page * page_size
        if offset >= total:
            return [], total

        rows = self._run(
            f"SELECT {ENTITY_COLUMNS}, {score_sql} AS relevance_score "
            f"FROM entities WHERE project = %s AND ({condition_sql}) "
            f"ORDER BY {FUZZY_ORDER} LIMIT %s OFFSET %s",
            [*score_params, project, *condition_params, min(page_size, total - offset), offset],
        )
        return rows_to_entities(rows), total

    # =========================================================================
    # Dialect
    # =========================================================================

    def exact_predicate(self, terms: Sequence[str]) -> Predicate:
        clauses = []
        params = []
        for term in terms:
            clauses.append(EXACT_TERM_SQL)
            params.extend([term] * 4)
        return " OR ".join(clauses), params

    def tag_predicate(self, tags: Sequence[str], mode: TagMatchMode) -> Predicate:
        if mode == TagMatchMode.ALL:
            return "jsonb_typeof(tags) = 'array' AND tags @> %s::jsonb", [json.dumps(list(tags))]
        return "jsonb_typeof(tags) = 'array' AND tags ?| %s::text[]", [list(tags)]
