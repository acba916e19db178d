"""
In-memory match predicates.

Pure functions shared by the search manager and the strategies:
- exact (case-insensitive substring) matching over name, type,
  observations and tags
- exact tag filtering with any/all semantics
- normalized text and word windows for fuzzy scoring
- batch helpers: query normalization, union with de-duplication
"""

from typing import Iterable, Optional, Sequence, TypeVar, Union

from rapidfuzz import utils

from kgraph.models.graph import Entity, Relation
from kgraph.models.search import TagMatchMode

T = TypeVar("T")

Query = Union[str, Sequence[str], None]


def normalize_terms(query: Query) -> list[str]:
    """
    Turn a query argument into a list of query strings.

    None and a bare string become one-element lists; a sequence is copied.
    An empty sequence stays empty (a batch of nothing matches nothing).
    """
    if query is None:
        return [""]
    if isinstance(query, str):
        return [query]
    return [term if isinstance(term, str) else str(term) for term in query]


def chunked(items: Sequence[T], size: int) -> Iterable[Sequence[T]]:
    """Yield successive slices of at most ``size`` items."""
    for start in range(0, len(items), size):
        yield items[start:start + size]


def searchable_text(entity: Entity) -> list[str]:
    """Every string an entity can be matched on, name first."""
    return [entity.name, entity.entity_type, *entity.observations, *entity.tags]


def normalize_text(text: str) -> str:
    """Lowercase, turn punctuation into spaces, and collapse whitespace."""
    return " ".join(utils.default_process(text).split())


def fuzzy_candidates(entity: Entity, width: int) -> list[str]:
    """
    Normalized strings a fuzzy query of ``width`` words is compared with:
    each searchable field whole, plus every run of ``width`` consecutive
    words in fields that are longer than that.
    """
    candidates = []
    for text in searchable_text(entity):
        words = normalize_text(text).split()
        if not words:
            continue
        candidates.append(" ".join(words))
        if len(words) > width:
            candidates.extend(" ".join(words[i:i + width]) for i in range(len(words) - width + 1))
    return candidates


def matches_exact(entity: Entity, term: str) -> bool:
    """
    Case-insensitive substring match against name, type, observations, tags.

    An empty term matches every entity.
    """
    needle = term.lower()
    if not needle:
        return True
    return any(needle in text.lower() for text in searchable_text(entity))


def filter_exact(entities: Iterable[Entity], term: str) -> list[Entity]:
    """Entities matching ``term`` exactly, in input order."""
    return [entity for entity in entities if matches_exact(entity, term)]


def matches_tags(entity: Entity, tags: Sequence[str], mode: TagMatchMode = TagMatchMode.ANY) -> bool:
    """
    Exact, case-sensitive tag predicate.

    ``all`` requires every requested tag, ``any`` at least one. Entities
    without tags never match a non-empty request.
    """
    if not entity.tags:
        return False
    entity_tags = set(entity.tags)
    if mode == TagMatchMode.ALL:
        return all(tag in entity_tags for tag in tags)
    return any(tag in entity_tags for tag in tags)


def filter_by_tags(
    entities: Iterable[Entity],
    tags: Sequence[str],
    mode: TagMatchMode = TagMatchMode.ANY,
) -> list[Entity]:
    """Entities passing the tag predicate, in input order."""
    return [entity for entity in entities if matches_tags(entity, tags, mode)]


def merge_unique(result_lists: Iterable[Iterable[Entity]], limit: Optional[int] = None) -> list[Entity]:
    """
    Union several result lists, keeping the first occurrence of each name.

    Args:
        result_lists: Result lists in priority order
        limit: Optional cap on the merged size
    """
    seen: set[str] = set()
    merged: list[Entity] = []
    for results in result_lists:
        for entity in results:
            if entity.name in seen:
                continue
            seen.add(entity.name)
            merged.append(entity)
            if limit is not None and len(merged) >= limit:
                return merged
    return merged


def relations_among(relations: Iterable[Relation], names: set[str]) -> list[Relation]:
    """
    Relations whose both endpoints are in ``names``, de-duplicated by
    (from, to, relationType) in first-occurrence order.
    """
    seen: set[tuple[str, str, str]] = set()
    kept: list[Relation] = []
    for relation in relations:
        if relation.from_entity not in names or relation.to_entity not in names:
            continue
        if relation.key in seen:
            continue
        seen.add(relation.key)
        kept.append(relation)
    return kept
