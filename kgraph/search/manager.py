"""
Search Manager

Single entry point for searching a project's entities. For each request it:
1. Applies tag filters first; when tags are given the text query is ignored
2. Otherwise matches by mode:
   - exact: case-insensitive substring over name, type, observations, tags
   - fuzzy: database similarity search when the strategy can, falling back
     to client-side fuzzy search if the database path fails
3. Runs each query string of a batch independently and unions the results,
   keeping the first occurrence of each entity name

Entities can be supplied by the caller (already-loaded graph) or left out,
in which case the manager asks the strategy for them.
"""

import logging
from typing import Optional, Sequence

from kgraph.config import SearchConfig
from kgraph.errors import BackendUnavailableError
from kgraph.models.graph import Entity
from kgraph.models.search import SearchMode, SearchOptions
from kgraph.search.base import SearchStrategy
from kgraph.search.filters import Query, filter_by_tags, filter_exact, merge_unique, normalize_terms

logger = logging.getLogger(__name__)


class SearchManager:
    """
    Dispatches searches to the configured strategy.

    Attributes:
        config: Frozen search configuration
        strategy: Backend-specific search strategy

    Example:
        >>> manager = SearchManager(config, SQLiteSearchStrategy(config, storage))
        >>> manager.search(["python", "rust"], entities, SearchOptions(search_mode="fuzzy"), "demo")
        [Entity(name='Python', ...), Entity(name='Rust', ...)]
    """

    def __init__(self, config: SearchConfig, strategy: SearchStrategy):
        self.config = config
        self.strategy = strategy

    def __repr__(self) -> str:
        return f"SearchManager(strategy={self.strategy!r})"

    def search(
        self,
        query: Query,
        entities: Optional[Sequence[Entity]],
        options: Optional[SearchOptions],
        project: str,
    ) -> list[Entity]:
        """
        Search a project's entities.

        Args:
            query: Query string, or a batch of query strings to union
            entities: Entities to search; loaded through the strategy if None
            options: Match mode, threshold and tag filters
            project: Project being searched

        Returns:
            Matching entities without duplicate names

        Raises:
            InvalidInputError: If the fuzzy threshold is out of range
            DatabaseSearchError: If database search fails and client-side
                fallback is disabled
        """
        options = options or SearchOptions()

        if options.has_tag_filter:
            if entities is None:
                return self.strategy.search_tags(options.exact_tags, options.tag_match_mode, project)
            return filter_by_tags(entities, options.exact_tags, options.tag_match_mode)

        terms = normalize_terms(query)

        if options.search_mode == SearchMode.FUZZY:
            threshold = self.strategy.resolve_threshold(options.fuzzy_threshold)
            pool = _EntityPool(self.strategy, entities, project)
            results = [self._search_fuzzy(term, pool, threshold, project) for term in terms]
        else:
            results = [self._search_exact(term, entities, project) for term in terms]

        return merge_unique(results)

    def _search_exact(self, term: str, entities: Optional[Sequence[Entity]], project: str) -> list[Entity]:
        if entities is None:
            return self.strategy.search_exact(term, project)
        return filter_exact(entities, term)

    def _search_fuzzy(
        self,
        term: str,
        pool: "_EntityPool",
        threshold: float,
        project: str,
    ) -> list[Entity]:
        if self.strategy.can_use_database():
            try:
                return self.strategy.search_database(term, threshold, project)
            except BackendUnavailableError:
                raise
            except Exception as e:
                if not self.config.client_side_fallback:
                    raise
                logger.warning(f"Database search failed, falling back to client-side search: {e}")

        return self.strategy.search_client_side(pool.get(), term, threshold)


class _EntityPool:
    """Entities for client-side search, loaded at most once per request."""

    def __init__(self, strategy: SearchStrategy, entities: Optional[Sequence[Entity]], project: str):
        self._strategy = strategy
        self._entities = entities
        self._project = project

    def get(self) -> Sequence[Entity]:
        if self._entities is None:
            self._entities = self._strategy.get_all_entities(self._project)
        return self._entities
