"""Tests for cadence.core.settings and cadence.core.timestamps."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from cadence.core.settings import CadenceSettings, clear_settings_cache, get_settings
from cadence.core.timestamps import from_iso8601, generate_id, to_iso8601


class TestSettings:
    def test_defaults(self):
        s = CadenceSettings(_env_file=None)
        assert s.database_url == "memory"
        assert s.due_batch_size == 50
        assert s.max_concurrent_syncs == 5
        assert s.max_concurrent_syncs_per_tenant == 2
        assert s.dedup_window_seconds == 86400
        assert s.api_prefix == "/api/v1"

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("CADENCE_DUE_BATCH_SIZE", "25")
        monkeypatch.setenv("CADENCE_DATABASE_URL", "sqlite:///cadence.db")
        s = CadenceSettings(_env_file=None)
        assert s.due_batch_size == 25
        assert s.database_url == "sqlite:///cadence.db"

    def test_tenant_cap_cannot_exceed_pool(self):
        with pytest.raises(ValidationError):
            CadenceSettings(_env_file=None, max_concurrent_syncs=2, max_concurrent_syncs_per_tenant=3)

    def test_batch_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            CadenceSettings(_env_file=None, due_batch_size=0)

    def test_get_settings_is_cached(self, monkeypatch):
        clear_settings_cache()
        try:
            first = get_settings()
            monkeypatch.setenv("CADENCE_DUE_BATCH_SIZE", "7")
            assert get_settings() is first
            assert get_settings(_force_reload=True).due_batch_size == 7
        finally:
            clear_settings_cache()


class TestTimestamps:
    def test_ids_are_unique_and_sortable_length(self):
        ids = {generate_id() for _ in range(200)}
        assert len(ids) == 200
        assert all(len(i) == 26 for i in ids)

    def test_iso_round_trip_keeps_utc(self):
        dt = datetime(2025, 1, 2, 3, 4, 5, tzinfo=UTC)
        assert from_iso8601(to_iso8601(dt)) == dt

    def test_naive_strings_are_read_as_utc(self):
        assert from_iso8601("2025-01-02T03:04:05").tzinfo is UTC

    def test_none_passes_through(self):
        assert to_iso8601(None) is None
        assert from_iso8601(None) is None
