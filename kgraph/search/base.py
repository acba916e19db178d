"""
Search Strategy Base

A search strategy hides what a storage backend can and cannot do:
- native fuzzy search (``can_use_database`` / ``search_database``)
- backend-pushed exact and tag matching
- bulk loading with a safety cap
- client-side fuzzy search, the universal fallback

Subclasses supply only dialect: the SQL predicates for exact and tag
matching, and native similarity search where the backend has it. Paging,
batching and client-side scoring are shared here.

Client-side fuzzy scoring uses rapidfuzz's ``ratio`` between the normalized
query and an entity's candidate strings: each searchable field (name, type,
observations, tags) whole, plus each run of as many consecutive words as the
query has. Two unrelated strings already share about half their characters,
so a raw ratio of 50 maps to relevance 0 and 100 to relevance 1; an entity's
score is its best candidate's relevance. Entities scoring at or above the
threshold are returned, best first. Large entity lists are scored in
chunks; the merged result is re-sorted by score with a stable sort, so it is
identical to scoring the whole list at once.
"""

import logging
import math
from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

from rapidfuzz import fuzz, process

from kgraph.config import SearchConfig
from kgraph.errors import BackendUnavailableError, InvalidInputError
from kgraph.models.graph import Entity
from kgraph.models.search import SearchMode, SearchOptions, TagMatchMode
from kgraph.search.filters import (
    Query,
    chunked,
    fuzzy_candidates,
    merge_unique,
    normalize_terms,
    normalize_text,
)
from kgraph.storage.base import ENTITY_COLUMNS, ENTITY_ORDER, StorageProvider, rows_to_entities

logger = logging.getLogger(__name__)

# (sql, params) for a WHERE fragment; sql is None when every row matches
Predicate = tuple[Optional[str], list[Any]]

# fuzz.ratio of two unrelated strings of similar length
CHANCE_RATIO = 50.0


class SearchStrategy(ABC):
    """
    Backend-specific implementation of the search capability interface.

    Attributes:
        config: Frozen search configuration (threshold, fallback, limits)
        storage: Storage provider the queries run against
    """

    def __init__(self, config: SearchConfig, storage: StorageProvider):
        self.config = config
        self.storage = storage

    def __repr__(self) -> str:
        return f"{type(self).__name__}(database_search={self.can_use_database()})"

    @property
    def limits(self):
        return self.config.limits

    @property
    def placeholder(self) -> str:
        return self.storage.placeholder

    # =========================================================================
    # Capabilities
    # =========================================================================

    @abstractmethod
    def can_use_database(self) -> bool:
        """Whether fuzzy search may be pushed down to the database."""

    @abstractmethod
    def search_database(
        self,
        query: Query,
        threshold: Optional[float],
        project: str,
    ) -> list[Entity]:
        """
        Native fuzzy search.

        Raises:
            BackendUnavailableError: When ``can_use_database()`` is False
        """

    def supports_backend_pagination(self, options: SearchOptions, terms: Sequence[str]) -> bool:
        """
        Whether a request can be paged with OFFSET/LIMIT at the backend.

        Tag filters always can. Text searches can when they are a single
        query string; fuzzy ones additionally need native similarity search.
        Batches are paged in memory so their first-match order is preserved.
        """
        if options.has_tag_filter:
            return True
        if len(terms) != 1:
            return False
        if options.search_mode == SearchMode.FUZZY:
            return self.can_use_database()
        return True

    # =========================================================================
    # Dialect
    # =========================================================================

    @abstractmethod
    def exact_predicate(self, terms: Sequence[str]) -> Predicate:
        """
        WHERE fragment matching entities that contain any of ``terms``
        (already lower-cased) in name, type, an observation or a tag.
        """

    @abstractmethod
    def tag_predicate(self, tags: Sequence[str], mode: TagMatchMode) -> Predicate:
        """WHERE fragment for exact, case-sensitive tag matching."""

    # =========================================================================
    # Threshold
    # =========================================================================

    def resolve_threshold(self, threshold: Optional[float]) -> float:
        """
        The explicit threshold if given, else the configured default.

        Raises:
            InvalidInputError: If the threshold is not a number in [0, 1]
        """
        if threshold is None:
            return self.config.fuzzy_threshold
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
            raise InvalidInputError(
                f"fuzzy_threshold must be a number between 0.0 and 1.0, got {threshold!r}"
            )
        if math.isnan(threshold) or not 0.0 <= threshold <= 1.0:
            raise InvalidInputError(
                f"fuzzy_threshold must be between 0.0 and 1.0, got {threshold}"
            )
        return float(threshold)

    # =========================================================================
    # Bulk Load
    # =========================================================================

    def get_all_entities(self, project: str) -> list[Entity]:
        """
        Load a project's entities, most recently updated first.

        At most ``max_client_entities`` are returned; a warning is logged
        when the project holds more.
        """
        cap = self.limits.max_client_entities
        p = self.placeholder
        rows = self.storage.query(
            f"SELECT {ENTITY_COLUMNS} FROM entities WHERE project = {p} "
            f"ORDER BY {ENTITY_ORDER} LIMIT {p}",
            [project, cap + 1],
        )
        if len(rows) > cap:
            logger.warning(
                f"Project {project} has more than {cap} entities; "
                f"client-side search only sees the {cap} most recently updated"
            )
            rows = rows[:cap]
        return rows_to_entities(rows)

    # =========================================================================
    # Backend-pushed Exact and Tag Search
    # =========================================================================

    def _where(self, predicate: Predicate) -> tuple[str, list[Any]]:
        sql, params = predicate
        where = f"project = {self.placeholder}"
        if sql:
            where += f" AND ({sql})"
        return where, params

    def _select(self, predicate: Predicate, project: str, limit: Optional[int] = None) -> list[Entity]:
        where, params = self._where(predicate)
        sql = f"SELECT {ENTITY_COLUMNS} FROM entities WHERE {where} ORDER BY {ENTITY_ORDER}"
        args = [project, *params]
        if limit is not None:
            sql += f" LIMIT {self.placeholder}"
            args.append(limit)
        return rows_to_entities(self.storage.query(sql, args))

    def _select_page(
        self,
        predicate: Predicate,
        project: str,
        page: int,
        page_size: int,
    ) -> tuple[list[Entity], int]:
        """
        One page of entities matching ``predicate`` plus the total match count.

        The count and data queries share the same WHERE clause.
        """
        where, params = self._where(predicate)
        p = self.placeholder
        count_rows = self.storage.query(
            f"SELECT COUNT(*) AS total FROM entities WHERE {where}",
            [project, *params],
        )
        total = int(count_rows[0]["total"]) if count_rows else 0

        offset = page * page_size
        if offset >= total:
            return [], total

        rows = self.storage.query(
            f"SELECT {ENTITY_COLUMNS} FROM entities WHERE {where} "
            f"ORDER BY {ENTITY_ORDER} LIMIT {p} OFFSET {p}",
            [project, *params, page_size, offset],
        )
        return rows_to_entities(rows), total

    def _exact_terms(self, query: Query) -> list[str]:
        return [term.lower() for term in normalize_terms(query)]

    def search_exact(self, query: Query, project: str) -> list[Entity]:
        """
        Backend-pushed case-insensitive substring search.

        A batch is split into groups of ``batch_size`` query strings, each
        run as one OR-predicate statement; results are unioned by name.
        Capped at ``max_results``.
        """
        terms = self._exact_terms(query)
        if not terms:
            return []

        max_results = self.limits.max_results
        if any(term == "" for term in terms):
            return self._select((None, []), project, limit=max_results)

        groups = [
            self._select(self.exact_predicate(group), project, limit=max_results)
            for group in chunked(terms, self.limits.batch_size)
        ]
        return merge_unique(groups, limit=max_results)

    def search_exact_paginated(
        self,
        query: Query,
        project: str,
        page: int,
        page_size: int,
    ) -> tuple[list[Entity], int]:
        """One page of an exact search, and the total number of matches."""
        terms = self._exact_terms(query)
        if not terms:
            return [], 0
        if any(term == "" for term in terms):
            return self._select_page((None, []), project, page, page_size)
        return self._select_page(self.exact_predicate(terms), project, page, page_size)

    def search_exact_all(self, term: str, project: str) -> list[Entity]:
        """
        Every entity matching one exact query string, most recently updated
        first. Unlike ``search_exact`` this is not capped, so batch pages
        can be cut from complete per-term results.
        """
        term = term.lower()
        if term == "":
            return self._select((None, []), project)
        return self._select(self.exact_predicate([term]), project)

    def search_tags(self, tags: Sequence[str], mode: TagMatchMode, project: str) -> list[Entity]:
        """Backend-pushed exact tag filter, most recently updated first."""
        tags = list(dict.fromkeys(tags))
        if not tags:
            return []
        return self._select(self.tag_predicate(tags, mode), project)

    def search_tags_paginated(
        self,
        tags: Sequence[str],
        mode: TagMatchMode,
        project: str,
        page: int,
        page_size: int,
    ) -> tuple[list[Entity], int]:
        """One page of a tag search, and the total number of matches."""
        tags = list(dict.fromkeys(tags))
        if not tags:
            return [], 0
        return self._select_page(self.tag_predicate(tags, mode), project, page, page_size)

    def search_database_paginated(
        self,
        query: str,
        threshold: Optional[float],
        project: str,
        page: int,
        page_size: int,
    ) -> tuple[list[Entity], int]:
        """One page of a native fuzzy search. Only backends with similarity search override this."""
        raise BackendUnavailableError(
            f"{type(self).__name__} has no native fuzzy search; use search_client_side"
        )

    # =========================================================================
    # Client-side Fuzzy Search
    # =========================================================================

    def search_client_side(
        self,
        entities: Sequence[Entity],
        query: Query,
        threshold: Optional[float] = None,
    ) -> list[Entity]:
        """
        In-process fuzzy search over ``entities``.

        Args:
            entities: Entities to search (at most ``max_client_entities`` are scanned)
            query: Query string, or a batch whose results are unioned
            threshold: Similarity floor in [0, 1]; defaults to the configured one

        Returns:
            Matching entities, best score first; for a batch, the union in
            first-match order
        """
        threshold = self.resolve_threshold(threshold)
        terms = normalize_terms(query)

        cap = self.limits.max_client_entities
        if len(entities) > cap:
            logger.warning(
                f"Client-side search limited to the first {cap} of {len(entities)} entities"
            )
            entities = entities[:cap]

        return merge_unique(self._fuzzy_search(entities, term, threshold) for term in terms)

    def _fuzzy_search(self, entities: Sequence[Entity], query: str, threshold: float) -> list[Entity]:
        query = normalize_text(query)
        if not query:
            return []

        chunk_size = self.limits.client_chunk_size
        if len(entities) > chunk_size:
            logger.debug(f"Scoring {len(entities)} entities in chunks of {chunk_size}")

        seen: set[str] = set()
        scored: list[tuple[Entity, float]] = []
        for chunk in chunked(entities, chunk_size):
            for entity, score in self._score_chunk(chunk, query, threshold):
                if entity.name in seen:
                    continue
                seen.add(entity.name)
                scored.append((entity, score))

        scored.sort(key=lambda pair: pair[1], reverse=True)
        return [entity for entity, _ in scored]

    @staticmethod
    def _score_chunk(
        entities: Sequence[Entity],
        query: str,
        threshold: float,
    ) -> list[tuple[Entity, float]]:
        width = len(query.split())
        cutoff = CHANCE_RATIO + (100.0 - CHANCE_RATIO) * threshold
        matches = []
        for entity in entities:
            best = process.extractOne(
                query,
                fuzzy_candidates(entity, width),
                scorer=fuzz.ratio,
                processor=None,
                score_cutoff=cutoff,
            )
            if best is not None:
                matches.append((entity, (best[1] - CHANCE_RATIO) / (100.0 - CHANCE_RATIO)))
        return matches
