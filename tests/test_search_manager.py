"""
Tests for SearchManager: mode dispatch, tag precedence, batch union and
database-to-client fallback.
"""

import psycopg2
import pytest

from conftest import PROJECT, RecordingStorage, entity_row, make_entity
from kgraph.config import SearchConfig, SearchLimits
from kgraph.errors import BackendUnavailableError, DatabaseSearchError, InvalidInputError
from kgraph.models.search import SearchMode, SearchOptions, TagMatchMode
from kgraph.search import PostgresSearchStrategy, SearchManager
from kgraph.search.filters import filter_exact

EXACT = SearchOptions()
FUZZY = SearchOptions(search_mode=SearchMode.FUZZY)


def names(entities):
    return [e.name for e in entities]


def failing_similarity(entities):
    """Responder whose similarity queries fail and whose other queries return ``entities``."""
    def respond(sql, params):
        if "similarity(" in sql:
            raise psycopg2.OperationalError("could not connect to server")
        return [entity_row(e) for e in entities]
    return respond


def pg_manager(storage, fallback=True):
    config = SearchConfig(
        use_database_search=True,
        fuzzy_threshold=0.3,
        client_side_fallback=fallback,
        limits=SearchLimits(client_chunk_size=100),
    )
    return SearchManager(config, PostgresSearchStrategy(config, storage))


class TestExactMode:
    """Exact, case-insensitive substring matching."""

    def test_scenario_substring_in_names(self, sqlite_manager):
        entities = [
            make_entity("JavaScript", tags=["web"]),
            make_entity("TypeScript", tags=["web", "typed"]),
        ]
        result = sqlite_manager.search("script", entities, EXACT, PROJECT)
        assert set(names(result)) == {"JavaScript", "TypeScript"}

    def test_scenario_batch_is_union_of_single_searches(self, sqlite_manager, languages):
        batch = sqlite_manager.search(["JavaScript", "Python"], languages, EXACT, PROJECT)
        singles = (
            sqlite_manager.search("JavaScript", languages, EXACT, PROJECT)
            + sqlite_manager.search("Python", languages, EXACT, PROJECT)
        )
        assert set(names(batch)) == set(names(singles))
        assert len(names(batch)) == len(set(names(batch)))

    def test_batch_keeps_first_match_order(self, sqlite_manager, languages):
        result = sqlite_manager.search(["rust", "typed"], languages, EXACT, PROJECT)
        assert names(result) == ["Rust", "TypeScript"]

    def test_matches_observations_case_insensitively(self, sqlite_manager, languages):
        assert names(sqlite_manager.search("BROWSER", languages, EXACT, PROJECT)) == ["JavaScript"]

    def test_empty_query_returns_everything(self, sqlite_manager, languages):
        assert len(sqlite_manager.search("", languages, EXACT, PROJECT)) == len(languages)
        assert len(sqlite_manager.search(None, languages, EXACT, PROJECT)) == len(languages)

    def test_empty_batch_returns_nothing(self, sqlite_manager, languages):
        assert sqlite_manager.search([], languages, EXACT, PROJECT) == []

    def test_default_options_are_exact(self, sqlite_manager, languages):
        assert sqlite_manager.search("pyton", languages, None, PROJECT) == []

    def test_loads_through_backend_when_no_entities(self, seeded_storage, sqlite_manager, languages):
        result = sqlite_manager.search("script", None, EXACT, PROJECT)
        assert set(names(result)) == set(names(filter_exact(languages, "script")))

    def test_idempotent(self, sqlite_manager, languages):
        first = sqlite_manager.search(["a", "script"], languages, EXACT, PROJECT)
        assert sqlite_manager.search(["a", "script"], languages, EXACT, PROJECT) == first


class TestTagFilters:
    """Tag filters take precedence over the text query."""

    def test_tags_override_query(self, sqlite_manager, languages):
        options = SearchOptions(exact_tags=["ops"])
        assert names(sqlite_manager.search("Python", languages, options, PROJECT)) == ["Kubernetes"]

    def test_any_mode(self, sqlite_manager, languages):
        options = SearchOptions(exact_tags=["typed", "ops"], tag_match_mode=TagMatchMode.ANY)
        assert names(sqlite_manager.search("", languages, options, PROJECT)) == ["TypeScript", "Rust", "Kubernetes"]

    def test_all_mode(self, sqlite_manager, languages):
        options = SearchOptions(exact_tags=["web", "typed"], tag_match_mode=TagMatchMode.ALL)
        assert names(sqlite_manager.search("", languages, options, PROJECT)) == ["TypeScript"]

    def test_scenario_all_mode_without_full_match_is_empty(self, sqlite_manager, languages):
        options = SearchOptions(exact_tags=["frontend", "backend"], tag_match_mode=TagMatchMode.ALL)
        assert sqlite_manager.search("", languages, options, PROJECT) == []

    def test_tags_are_case_sensitive(self, sqlite_manager, languages):
        options = SearchOptions(exact_tags=["WEB"])
        assert sqlite_manager.search("", languages, options, PROJECT) == []

    def test_untagged_entities_never_match(self, sqlite_manager, languages):
        options = SearchOptions(exact_tags=["misc"])
        assert sqlite_manager.search("Untagged", languages, options, PROJECT) == []

    def test_backend_tag_search(self, seeded_storage, sqlite_manager):
        options = SearchOptions(exact_tags=["web"])
        assert names(sqlite_manager.search("", None, options, PROJECT)) == ["JavaScript", "TypeScript"]

    @pytest.mark.parametrize("tags", [
        ["web"],
        ["web", "typed"],
        ["typed", "ops"],
        ["backend", "scripting"],
        ["missing", "web"],
    ])
    @pytest.mark.parametrize("from_backend", [False, True])
    def test_all_is_subset_of_any(self, seeded_storage, sqlite_manager, languages, tags, from_backend):
        entities = None if from_backend else languages
        any_mode = SearchOptions(exact_tags=tags, tag_match_mode=TagMatchMode.ANY)
        all_mode = SearchOptions(exact_tags=tags, tag_match_mode=TagMatchMode.ALL)
        matched_any = set(names(sqlite_manager.search("", entities, any_mode, PROJECT)))
        matched_all = set(names(sqlite_manager.search("", entities, all_mode, PROJECT)))
        assert matched_all <= matched_any

    @pytest.mark.parametrize("from_backend", [False, True])
    def test_query_ignored_when_tags_given(self, seeded_storage, sqlite_manager, languages, from_backend):
        entities = None if from_backend else languages
        options = SearchOptions(exact_tags=["typed", "ops"])
        results = [
            names(sqlite_manager.search(query, entities, options, PROJECT))
            for query in ["", None, "Python", ["x", "y"]]
        ]
        assert results[0] == ["TypeScript", "Rust", "Kubernetes"]
        assert all(result == results[0] for result in results)


class TestFuzzyMode:
    """Fuzzy search on a backend without native similarity."""

    def test_typo_tolerated(self, sqlite_manager, languages):
        options = SearchOptions(search_mode=SearchMode.FUZZY, fuzzy_threshold=0.7)
        assert "Python" in names(sqlite_manager.search("pyton", languages, options, PROJECT))

    def test_loads_entities_when_not_given(self, seeded_storage, sqlite_manager):
        options = SearchOptions(search_mode=SearchMode.FUZZY, fuzzy_threshold=0.7)
        assert "Python" in names(sqlite_manager.search("pyton", None, options, PROJECT))

    def test_batch_union(self, sqlite_manager, languages):
        options = SearchOptions(search_mode=SearchMode.FUZZY, fuzzy_threshold=0.9)
        result = sqlite_manager.search(["rust", "python", "Rust"], languages, options, PROJECT)
        assert names(result) == ["Rust", "Python"]

    @pytest.mark.parametrize("threshold", [-0.5, 1.01])
    def test_threshold_out_of_range(self, sqlite_manager, languages, threshold):
        options = SearchOptions.model_construct(search_mode=SearchMode.FUZZY, fuzzy_threshold=threshold)
        with pytest.raises(InvalidInputError):
            sqlite_manager.search("python", languages, options, PROJECT)

    def test_sqlite_never_calls_database(self, seeded_storage, search_config, sqlite_strategy):
        calls = []
        sqlite_strategy.search_database = lambda *args: calls.append(args)
        SearchManager(search_config, sqlite_strategy).search("pyton", None, FUZZY, PROJECT)
        assert calls == []


class TestDatabaseFallback:
    """Database fuzzy search degrades to client-side search on failure."""

    def test_database_used_when_available(self):
        rows = [entity_row(make_entity("Python"), 0.8)]
        storage = RecordingStorage(lambda sql, params: rows)
        result = pg_manager(storage).search("pyton", None, FUZZY, PROJECT)

        assert names(result) == ["Python"]
        assert "similarity(" in storage.calls[0][0]

    def test_fallback_matches_client_side_result(self, languages):
        storage = RecordingStorage(failing_similarity(languages))
        manager = pg_manager(storage)

        result = manager.search("pyton", None, FUZZY, PROJECT)
        expected = manager.strategy.search_client_side(languages, "pyton", 0.3)
        assert names(result) == names(expected)
        assert "Python" in names(result)

    def test_fallback_logs_warning(self, languages, caplog):
        storage = RecordingStorage(failing_similarity(languages))
        pg_manager(storage).search("pyton", languages, FUZZY, PROJECT)
        assert "falling back to client-side" in caplog.text

    def test_entities_loaded_once_per_request(self, languages):
        storage = RecordingStorage(failing_similarity(languages))
        pg_manager(storage).search(["pyton", "rust", "kube"], None, FUZZY, PROJECT)

        loads = [sql for sql, _ in storage.calls if "similarity(" not in sql]
        assert len(loads) == 1

    def test_fallback_disabled_propagates(self, languages):
        storage = RecordingStorage(failing_similarity(languages))
        with pytest.raises(DatabaseSearchError):
            pg_manager(storage, fallback=False).search(["pyton", "rust"], languages, FUZZY, PROJECT)

    def test_backend_unavailable_is_not_masked(self, languages):
        storage = RecordingStorage()
        manager = pg_manager(storage)

        def unavailable(*args):
            raise BackendUnavailableError("no pg_trgm")

        manager.strategy.search_database = unavailable
        with pytest.raises(BackendUnavailableError):
            manager.search("pyton", languages, FUZZY, PROJECT)
