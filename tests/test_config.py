"""
Tests for settings loading, search limit clamping and search config resolution.
"""

import logging

import pytest

from kgraph.config import (
    SearchLimits,
    StorageType,
    build_search_config,
    build_search_limits,
    load_settings,
)
from kgraph.errors import ConfigurationError


class TestSearchLimits:
    """Test clamping of search limits read from settings."""

    def test_defaults(self):
        """Default settings produce the documented limits."""
        limits = build_search_limits(load_settings())
        assert limits == SearchLimits(
            max_results=100, batch_size=10, max_client_entities=10000, client_chunk_size=1000
        )

    def test_values_above_range_are_clamped(self, caplog):
        """Values over the maximum are lowered to it, with a warning."""
        settings = load_settings(
            search_max_results=5000,
            search_batch_size=500,
            search_max_client_entities=10_000_000,
            search_client_chunk_size=50_000,
        )
        with caplog.at_level(logging.WARNING):
            limits = build_search_limits(settings)
        assert limits.max_results == 1000
        assert limits.batch_size == 50
        assert limits.max_client_entities == 100000
        assert limits.client_chunk_size == 10000
        assert "max_results" in caplog.text

    def test_values_below_range_are_clamped(self):
        """Values under the minimum are raised to it."""
        settings = load_settings(
            search_max_results=0,
            search_batch_size=-3,
            search_max_client_entities=5,
            search_client_chunk_size=1,
        )
        limits = build_search_limits(settings)
        assert limits.max_results == 1
        assert limits.batch_size == 1
        assert limits.max_client_entities == 100
        assert limits.client_chunk_size == 100

    def test_chunk_size_larger_than_entity_cap_is_corrected(self, caplog):
        """A chunk size above max_client_entities is lowered to the cap."""
        settings = load_settings(search_max_client_entities=500, search_client_chunk_size=2000)
        with caplog.at_level(logging.WARNING):
            limits = build_search_limits(settings)
        assert limits.client_chunk_size == 500
        assert "client_chunk_size" in caplog.text

    def test_limits_are_frozen(self):
        """SearchLimits cannot be mutated after construction."""
        limits = SearchLimits()
        with pytest.raises(Exception):
            limits.max_results = 5


class TestEnvironment:
    """Test reading settings from KG_ environment variables."""

    def test_env_overrides(self, monkeypatch):
        """KG_SEARCH_MAX_RESULTS and friends are read from the environment."""
        monkeypatch.setenv("KG_SEARCH_MAX_RESULTS", "250")
        monkeypatch.setenv("KG_SEARCH_BATCH_SIZE", "20")
        monkeypatch.setenv("KG_STORAGE_TYPE", "postgresql")
        settings = load_settings()
        assert settings.search_max_results == 250
        assert settings.search_batch_size == 20
        assert settings.storage_type == StorageType.POSTGRESQL

    def test_unparseable_value_raises(self, monkeypatch):
        """A non-numeric limit is a configuration error."""
        monkeypatch.setenv("KG_SEARCH_MAX_RESULTS", "lots")
        with pytest.raises(ConfigurationError):
            load_settings()

    def test_unknown_storage_type_raises(self, monkeypatch):
        """Only sqlite and postgresql are accepted."""
        monkeypatch.setenv("KG_STORAGE_TYPE", "mongodb")
        with pytest.raises(ConfigurationError):
            load_settings()

    def test_threshold_out_of_range_raises(self):
        """The fuzzy threshold must be within [0, 1]."""
        with pytest.raises(ConfigurationError):
            load_settings(fuzzy_threshold=1.5)


class TestSearchConfig:
    """Test resolution of the database-search switch per backend."""

    def test_postgres_uses_database_by_default(self):
        config = build_search_config(load_settings(storage_type="postgresql"))
        assert config.use_database_search is True

    def test_sqlite_never_uses_database(self, caplog):
        """Asking for database search on SQLite is ignored with a warning."""
        with caplog.at_level(logging.WARNING):
            config = build_search_config(load_settings(storage_type="sqlite", use_database_search=True))
        assert config.use_database_search is False
        assert "client-side" in caplog.text

    def test_postgres_database_search_can_be_disabled(self):
        config = build_search_config(load_settings(storage_type="postgresql", use_database_search=False))
        assert config.use_database_search is False

    def test_threshold_and_fallback_carried_over(self):
        config = build_search_config(load_settings(fuzzy_threshold=0.55, client_side_fallback=False))
        assert config.fuzzy_threshold == 0.55
        assert config.client_side_fallback is False
