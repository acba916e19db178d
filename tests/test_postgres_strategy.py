"""
Tests for the PostgreSQL search strategy.

No server is needed: queries go to a RecordingStorage that captures the
SQL and parameters and answers with canned rows.
"""

import json

import psycopg2
import pytest

from conftest import PROJECT, RecordingStorage, entity_row, make_entity
from kgraph.config import SearchConfig, SearchLimits
from kgraph.errors import BackendUnavailableError, DatabaseSearchError
from kgraph.models.search import SearchMode, SearchOptions, TagMatchMode
from kgraph.search import PostgresSearchStrategy, create_search_strategy


def pg_config(**limits):
    limits.setdefault("client_chunk_size", 100)
    return SearchConfig(use_database_search=True, fuzzy_threshold=0.3, limits=SearchLimits(**limits))


def count_then_rows(total, rows):
    """Responder answering COUNT queries with ``total`` and the rest with ``rows``."""
    def respond(sql, params):
        if "COUNT(*)" in sql:
            return [{"total": total}]
        return rows
    return respond


def where_clause(sql):
    """The WHERE clause of a statement, without ORDER BY and LIMIT."""
    return sql.split(" WHERE ", 1)[1].split(" ORDER BY ", 1)[0]


class TestCapabilities:
    """Database search needs both configuration and pg_trgm."""

    def test_enabled(self):
        strategy = PostgresSearchStrategy(pg_config(), RecordingStorage())
        assert strategy.can_use_database() is True

    def test_disabled_by_configuration(self):
        config = SearchConfig(use_database_search=False)
        assert PostgresSearchStrategy(config, RecordingStorage()).can_use_database() is False

    def test_disabled_without_trigram_extension(self):
        storage = RecordingStorage()
        storage.supports_similarity = False
        assert PostgresSearchStrategy(pg_config(), storage).can_use_database() is False

    def test_unavailable_search_fails_fast(self):
        strategy = PostgresSearchStrategy(SearchConfig(), RecordingStorage())
        with pytest.raises(BackendUnavailableError):
            strategy.search_database("python", 0.3, PROJECT)
        with pytest.raises(BackendUnavailableError):
            strategy.search_database_paginated("python", 0.3, PROJECT, 0, 10)

    def test_fuzzy_paging_pushed_down(self):
        strategy = PostgresSearchStrategy(pg_config(), RecordingStorage())
        fuzzy = SearchOptions(search_mode=SearchMode.FUZZY)
        assert strategy.supports_backend_pagination(fuzzy, ["python"]) is True
        assert strategy.supports_backend_pagination(fuzzy, ["python", "rust"]) is False

    def test_factory_picks_postgres(self):
        assert isinstance(create_search_strategy(pg_config(), RecordingStorage()), PostgresSearchStrategy)


class TestSearchDatabase:
    """Test the similarity statements sent to PostgreSQL."""

    def test_single_term_statement(self):
        storage = RecordingStorage()
        PostgresSearchStrategy(pg_config(), storage).search_database("pyton", 0.4, PROJECT)

        assert len(storage.calls) == 1
        sql, params = storage.calls[0]
        assert "similarity(name, %s)" in sql
        assert "similarity(tags::text, %s)" in sql
        assert "ORDER BY relevance_score DESC, name ASC LIMIT %s" in sql
        assert params == ["pyton"] * 4 + [PROJECT] + ["pyton"] * 4 + [0.4] + [100]

    def test_batch_is_one_or_statement(self):
        storage = RecordingStorage()
        PostgresSearchStrategy(pg_config(), storage).search_database(["a", "b"], 0.3, PROJECT)

        assert len(storage.calls) == 1
        sql, params = storage.calls[0]
        assert where_clause(sql).count(" > %s") == 2
        assert " OR " in where_clause(sql)
        assert params.count(0.3) == 2

    def test_batch_split_by_batch_size(self):
        storage = RecordingStorage()
        strategy = PostgresSearchStrategy(pg_config(batch_size=2), storage)
        strategy.search_database(["a", "b", "c", "d", "e"], 0.3, PROJECT)

        assert len(storage.calls) == 3
        conditions = [where_clause(sql).count(" > %s") for sql, _ in storage.calls]
        assert conditions == [2, 2, 1]

    def test_results_unioned_without_duplicates(self):
        python = make_entity("Python")
        rust = make_entity("Rust")
        answers = iter([
            [entity_row(python, 0.9), entity_row(rust, 0.5)],
            [entity_row(rust, 0.8)],
        ])
        storage = RecordingStorage(lambda sql, params: next(answers))
        strategy = PostgresSearchStrategy(pg_config(batch_size=1), storage)

        result = strategy.search_database(["python", "rust"], 0.3, PROJECT)
        assert [e.name for e in result] == ["Python", "Rust"]

    def test_result_cap_across_groups(self):
        rows = [entity_row(make_entity(f"n{i}")) for i in range(3)]
        more = [entity_row(make_entity(f"m{i}")) for i in range(3)]
        answers = iter([rows, more])
        storage = RecordingStorage(lambda sql, params: next(answers))
        strategy = PostgresSearchStrategy(pg_config(batch_size=1, max_results=4), storage)

        assert len(strategy.search_database(["n", "m"], 0.3, PROJECT)) == 4

    def test_blank_terms_skip_the_database(self):
        storage = RecordingStorage()
        strategy = PostgresSearchStrategy(pg_config(), storage)
        assert strategy.search_database(["", "  "], 0.3, PROJECT) == []
        assert storage.calls == []

    def test_default_threshold(self):
        storage = RecordingStorage()
        PostgresSearchStrategy(pg_config(), storage).search_database("x", None, PROJECT)
        assert 0.3 in storage.calls[0][1]

    def test_driver_error_wrapped(self):
        storage = RecordingStorage()
        storage.error = psycopg2.OperationalError("server closed the connection")
        strategy = PostgresSearchStrategy(pg_config(), storage)

        with pytest.raises(DatabaseSearchError) as exc_info:
            strategy.search_database("python", 0.3, PROJECT)
        assert isinstance(exc_info.value.__cause__, psycopg2.OperationalError)


class TestSearchDatabasePaginated:
    """Test count and page statements for database fuzzy search."""

    def test_count_and_data_share_condition(self):
        storage = RecordingStorage(count_then_rows(30, []))
        strategy = PostgresSearchStrategy(pg_config(), storage)
        strategy.search_database_paginated("api", 0.3, PROJECT, 1, 10)

        (count_sql, count_params), (data_sql, data_params) = storage.calls
        assert where_clause(count_sql) == where_clause(data_sql)
        assert data_params[4:-2] == count_params
        assert data_params[-2:] == [10, 10]

    def test_total_capped_at_max_results(self):
        storage = RecordingStorage(count_then_rows(250, []))
        strategy = PostgresSearchStrategy(pg_config(max_results=100), storage)

        _, total = strategy.search_database_paginated("api", 0.3, PROJECT, 9, 15)
        assert total == 100
        # offset 135 is past the capped total
        assert len(storage.calls) == 1

    def test_last_page_limit_stops_at_cap(self):
        storage = RecordingStorage(count_then_rows(250, []))
        strategy = PostgresSearchStrategy(pg_config(max_results=100), storage)

        strategy.search_database_paginated("api", 0.3, PROJECT, 6, 15)
        _, data_params = storage.calls[1]
        assert data_params[-2:] == [10, 90]

    def test_rows_converted(self):
        rows = [entity_row(make_entity("Python", tags=["backend"]), 0.7)]
        storage = RecordingStorage(count_then_rows(1, rows))
        strategy = PostgresSearchStrategy(pg_config(), storage)

        data, total = strategy.search_database_paginated("pyth", 0.3, PROJECT, 0, 10)
        assert total == 1
        assert data[0].name == "Python"
        assert data[0].tags == ["backend"]

    def test_driver_error_wrapped(self):
        storage = RecordingStorage()
        storage.error = psycopg2.OperationalError("timeout")
        strategy = PostgresSearchStrategy(pg_config(), storage)
        with pytest.raises(DatabaseSearchError):
            strategy.search_database_paginated("api", 0.3, PROJECT, 0, 10)


class TestExactAndTags:
    """Test the exact and tag predicates in the PostgreSQL dialect."""

    def test_exact_terms_lowercased(self):
        storage = RecordingStorage()
        PostgresSearchStrategy(pg_config(), storage).search_exact("PyThOn", PROJECT)

        sql, params = storage.calls[0]
        assert "POSITION(%s IN LOWER(name))" in sql
        assert "jsonb_array_elements" in sql
        assert params == [PROJECT] + ["python"] * 4 + [100]

    def test_exact_paging_uses_offset(self):
        storage = RecordingStorage(count_then_rows(25, []))
        PostgresSearchStrategy(pg_config(), storage).search_exact_paginated("api", PROJECT, 2, 10)

        count_sql, _ = storage.calls[0]
        data_sql, data_params = storage.calls[1]
        assert "COUNT(*)" in count_sql
        assert data_sql.endswith("LIMIT %s OFFSET %s")
        assert data_params[-2:] == [10, 20]

    def test_exact_page_past_end_skips_data_query(self):
        storage = RecordingStorage(count_then_rows(25, []))
        data, total = PostgresSearchStrategy(pg_config(), storage).search_exact_paginated(
            "api", PROJECT, 3, 10
        )
        assert (data, total) == ([], 25)
        assert len(storage.calls) == 1

    def test_tags_any(self):
        storage = RecordingStorage()
        PostgresSearchStrategy(pg_config(), storage).search_tags(["web", "ops"], TagMatchMode.ANY, PROJECT)

        sql, params = storage.calls[0]
        assert "tags ?| %s::text[]" in sql
        assert params == [PROJECT, ["web", "ops"]]

    def test_tags_all(self):
        storage = RecordingStorage()
        PostgresSearchStrategy(pg_config(), storage).search_tags(["web", "web", "typed"], TagMatchMode.ALL, PROJECT)

        sql, params = storage.calls[0]
        assert "tags @> %s::jsonb" in sql
        assert json.loads(params[1]) == ["web", "typed"]

    def test_bulk_load_requests_one_extra_row(self):
        storage = RecordingStorage()
        PostgresSearchStrategy(pg_config(max_client_entities=500), storage).get_all_entities(PROJECT)

        sql, params = storage.calls[0]
        assert "ORDER BY updated_at DESC, name ASC LIMIT %s" in sql
        assert params == [PROJECT, 501]
