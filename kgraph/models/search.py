"""
Search Request/Response Models

This module defines Pydantic models for search operations:
- SearchOptions: match mode, fuzzy threshold and tag filters
- PaginationRequest / PaginationInfo / PaginationResult: page envelopes
- SearchRequest / PaginatedSearchRequest: API request bodies
- PaginatedSearchResponse: entities, relations and page metadata

Pagination is zero-based: page 0 is the first page.
"""

import math
from enum import Enum
from typing import Generic, Optional, TypeVar, Union

from pydantic import BaseModel, Field

from kgraph.models.graph import Entity, Relation

T = TypeVar("T")


class SearchMode(str, Enum):
    """How free-text queries are matched."""
    EXACT = "exact"
    FUZZY = "fuzzy"


class TagMatchMode(str, Enum):
    """Whether an entity needs any or all of the requested tags."""
    ANY = "any"
    ALL = "all"


class SearchOptions(BaseModel):
    """
    Options controlling a search.

    When ``exact_tags`` is non-empty the tag filter decides the result and
    the text query is ignored.

    Example:
        {
            "searchMode": "fuzzy",
            "fuzzyThreshold": 0.4,
            "exactTags": [],
            "tagMatchMode": "any"
        }
    """
    search_mode: SearchMode = Field(
        default=SearchMode.EXACT,
        alias="searchMode",
        description="exact (substring) or fuzzy (similarity) matching"
    )
    fuzzy_threshold: Optional[float] = Field(
        default=None,
        alias="fuzzyThreshold",
        ge=0.0,
        le=1.0,
        description="Similarity floor for fuzzy mode; defaults to the configured value"
    )
    exact_tags: list[str] = Field(
        default_factory=list,
        alias="exactTags",
        description="Tags to filter by (exact, case-sensitive)"
    )
    tag_match_mode: TagMatchMode = Field(
        default=TagMatchMode.ANY,
        alias="tagMatchMode",
        description="any: at least one tag matches; all: every tag matches"
    )

    class Config:
        populate_by_name = True

    @property
    def has_tag_filter(self) -> bool:
        return len(self.exact_tags) > 0


# =============================================================================
# Pagination Models
# =============================================================================

class PaginationRequest(BaseModel):
    """
    Which page of results to return.

    Values are validated by the pagination layer rather than here, so that
    Python callers get InvalidPaginationError instead of a pydantic error.
    """
    page: int = Field(default=0, description="Zero-based page number")
    page_size: int = Field(default=100, alias="pageSize", description="Items per page")

    class Config:
        populate_by_name = True


class PaginationInfo(BaseModel):
    """
    Page metadata shared by every paginated response.

    Attributes:
        current_page: Zero-based page number that was requested
        page_size: Effective page size (after clamping)
        total_count: Number of matching items across all pages
        total_pages: ceil(total_count / page_size)
        has_next_page: Whether a later page has items
        has_previous_page: Whether this is not the first page
    """
    current_page: int = Field(..., alias="currentPage")
    page_size: int = Field(..., alias="pageSize")
    total_count: int = Field(..., alias="totalCount")
    total_pages: int = Field(..., alias="totalPages")
    has_next_page: bool = Field(..., alias="hasNextPage")
    has_previous_page: bool = Field(..., alias="hasPreviousPage")

    class Config:
        populate_by_name = True

    @classmethod
    def compute(cls, page: int, page_size: int, total_count: int) -> "PaginationInfo":
        """Derive the page metadata from the page, its size and the total."""
        total_pages = math.ceil(total_count / page_size) if page_size > 0 else 0
        return cls(
            current_page=page,
            page_size=page_size,
            total_count=total_count,
            total_pages=total_pages,
            has_next_page=page < total_pages - 1,
            has_previous_page=page > 0,
        )


class PaginationResult(PaginationInfo, Generic[T]):
    """One page of items plus its metadata."""
    data: list[T] = Field(default_factory=list)

    @classmethod
    def build(cls, data: list, page: int, page_size: int, total_count: int) -> "PaginationResult":
        info = PaginationInfo.compute(page, page_size, total_count)
        return cls(data=data, **info.model_dump())

    def info(self) -> PaginationInfo:
        return PaginationInfo(**self.model_dump(exclude={"data"}))


# =============================================================================
# API Request/Response Models
# =============================================================================

class SearchRequest(SearchOptions):
    """
    Request body for ``POST /projects/{project}/search``.

    ``query`` may be a single string or a list of strings; a list is a batch
    whose results are unioned.
    """
    query: Union[str, list[str]] = Field(default="", description="Query string or batch of strings")

    def options(self) -> SearchOptions:
        return SearchOptions(**self.model_dump(include=set(SearchOptions.model_fields)))


class PaginatedSearchRequest(SearchRequest):
    """Request body for ``POST /projects/{project}/search/paginated``."""
    page: int = Field(default=0, description="Zero-based page number")
    page_size: Optional[int] = Field(
        default=None,
        alias="pageSize",
        description="Items per page; defaults to the configured page size"
    )


class PaginatedSearchResponse(BaseModel):
    """Entities on the requested page, the relations among them, and page metadata."""
    entities: list[Entity] = Field(default_factory=list)
    relations: list[Relation] = Field(default_factory=list)
    pagination: PaginationInfo
