"""
Paginated Search

Wraps the SearchManager to return one page of results at a time.

Two paths produce the same envelope:
- primary: when the strategy can page the request at the backend, one data
  query (OFFSET = page * page_size, LIMIT = page_size) and one count query
  built from the same predicate
- fallback: the full search sliced in memory; exact batches are unioned
  from uncapped per-term backend searches, everything else goes through
  the manager over the bulk-loaded entities

Both paths order entities the same way for exact and tag searches (most
recently updated first, then by name), so callers cannot tell which one ran.
"""

import logging
from typing import Optional

from kgraph.errors import BackendUnavailableError, InvalidPaginationError
from kgraph.models.graph import Entity
from kgraph.models.search import PaginationRequest, PaginationResult, SearchMode, SearchOptions
from kgraph.search.filters import Query, merge_unique, normalize_terms
from kgraph.search.manager import SearchManager

logger = logging.getLogger(__name__)


def validate_pagination(pagination: PaginationRequest, max_page_size: int) -> tuple[int, int]:
    """
    Check a pagination request and clamp its page size.

    Args:
        pagination: Requested page and page size
        max_page_size: Largest page size served

    Returns:
        (page, page_size) with page_size at most max_page_size

    Raises:
        InvalidPaginationError: If page is negative or page_size is not positive
    """
    page = pagination.page
    page_size = pagination.page_size

    if isinstance(page, bool) or not isinstance(page, int) or page < 0:
        raise InvalidPaginationError(f"page must be a non-negative integer, got {page!r}")
    if isinstance(page_size, bool) or not isinstance(page_size, int) or page_size <= 0:
        raise InvalidPaginationError(f"pageSize must be a positive integer, got {page_size!r}")

    if page_size > max_page_size:
        logger.debug(f"pageSize {page_size} clamped to {max_page_size}")
        page_size = max_page_size
    return page, page_size


def slice_page(items: list, page: int, page_size: int) -> PaginationResult:
    """In-memory page of a fully materialized result list."""
    start = page * page_size
    return PaginationResult.build(items[start:start + page_size], page, page_size, len(items))


class PaginatedSearch:
    """
    Paginated front end to a SearchManager.

    Attributes:
        manager: Search manager used for the fallback path
        max_page_size: Page sizes above this are clamped

    Example:
        >>> paginator = PaginatedSearch(manager, max_page_size=1000)
        >>> result = paginator.search_paginated("api", PaginationRequest(page=0, page_size=10), None, "demo")
        >>> result.total_count, len(result.data)
        (25, 10)
    """

    def __init__(self, manager: SearchManager, max_page_size: int = 1000):
        self.manager = manager
        self.max_page_size = max_page_size

    @property
    def strategy(self):
        return self.manager.strategy

    def search_paginated(
        self,
        query: Query,
        pagination: PaginationRequest,
        options: Optional[SearchOptions],
        project: str,
    ) -> PaginationResult[Entity]:
        """
        Return one page of search results.

        Args:
            query: Query string or batch of query strings
            pagination: Zero-based page and page size
            options: Match mode, threshold and tag filters
            project: Project being searched

        Returns:
            PaginationResult with the page's entities and page metadata

        Raises:
            InvalidPaginationError: Before any backend call, for a negative
                page or non-positive page size
        """
        page, page_size = validate_pagination(pagination, self.max_page_size)
        options = options or SearchOptions()
        terms = normalize_terms(query)

        if self.strategy.supports_backend_pagination(options, terms):
            logger.debug(f"Paging at the backend: page={page} pageSize={page_size}")
            return self._backend_page(terms, options, project, page, page_size)

        logger.debug(f"Paging in memory: page={page} pageSize={page_size}")
        return self._memory_page(query, options, project, page, page_size)

    def _memory_page(
        self,
        query: Query,
        options: SearchOptions,
        project: str,
        page: int,
        page_size: int,
    ) -> PaginationResult[Entity]:
        if options.search_mode == SearchMode.EXACT and not options.has_tag_filter:
            # exact batches page over uncapped per-term results
            results = merge_unique(
                self.strategy.search_exact_all(term, project) for term in normalize_terms(query)
            )
            return slice_page(results, page, page_size)

        entities = self.strategy.get_all_entities(project)
        results = self.manager.search(query, entities, options, project)
        return slice_page(results, page, page_size)

    def _backend_page(
        self,
        terms: list[str],
        options: SearchOptions,
        project: str,
        page: int,
        page_size: int,
    ) -> PaginationResult[Entity]:
        strategy = self.strategy

        if options.has_tag_filter:
            data, total = strategy.search_tags_paginated(
                options.exact_tags, options.tag_match_mode, project, page, page_size
            )
        elif options.search_mode == SearchMode.FUZZY:
            threshold = strategy.resolve_threshold(options.fuzzy_threshold)
            try:
                data, total = strategy.search_database_paginated(
                    terms[0], threshold, project, page, page_size
                )
            except BackendUnavailableError:
                raise
            except Exception as e:
                if not self.manager.config.client_side_fallback:
                    raise
                logger.warning(f"Database paging failed, falling back to client-side search: {e}")
                entities = strategy.get_all_entities(project)
                return slice_page(strategy.search_client_side(entities, terms[0], threshold), page, page_size)
        else:
            data, total = strategy.search_exact_paginated(terms[0], project, page, page_size)

        return PaginationResult.build(data, page, page_size, total)
