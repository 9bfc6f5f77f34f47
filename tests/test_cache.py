from __future__ import annotations

from datetime import UTC, datetime

from labquote_api.core.cache import CatalogSummaryCache
from labquote_api.schemas.catalog import CatalogSummary


def _summary() -> CatalogSummary:
    return CatalogSummary(
        laboratory_count=2,
        active_laboratory_count=2,
        lab_test_count=3,
        test_mapping_count=2,
        unmapped_mapping_count=0,
        active_deal_count=1,
        currency="MAD",
        generated_at=datetime(2026, 1, 1, tzinfo=UTC),
    )


class TestCatalogSummaryCache:
    def test_get_returns_none_when_empty(self):
        cache = CatalogSummaryCache(ttl_seconds=300)
        assert cache.get() is None

    def test_set_and_get_returns_value(self):
        cache = CatalogSummaryCache(ttl_seconds=300)
        summary = _summary()
        cache.set(summary)
        assert cache.get() == summary

    def test_get_returns_none_after_ttl_expires(self):
        cache = CatalogSummaryCache(ttl_seconds=0)
        cache.set(_summary())
        assert cache.get() is None

    def test_clear_removes_cached_value(self):
        cache = CatalogSummaryCache(ttl_seconds=300)
        cache.set(_summary())
        cache.clear()
        assert cache.get() is None

    def test_stats_track_hits_and_misses(self):
        cache = CatalogSummaryCache(ttl_seconds=300)
        cache.get()
        cache.set(_summary())
        cache.get()
        assert cache.stats == {"hits": 1, "misses": 1}
