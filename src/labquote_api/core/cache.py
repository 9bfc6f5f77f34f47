"""In-memory TTL cache for the catalog summary.

Only the dashboard-style summary is cached. Comparison inputs (mappings,
price lists, bundle deals) are always read from the database so a comparison
reflects the latest committed state.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cachetools import TTLCache
from pydantic import ValidationError as SettingsValidationError

if TYPE_CHECKING:
    from labquote_api.schemas.catalog import CatalogSummary

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_SUMMARY_TTL = 300


class CatalogSummaryCache:
    """Cache for catalog counters (laboratories, mappings, active deals).

    Every catalog or registry mutation calls ``clear()``, the TTL only bounds
    how long a summary survives writes made by another process.
    """

    def __init__(self, ttl_seconds: int = DEFAULT_CATALOG_SUMMARY_TTL) -> None:
        self._cache: TTLCache[str, CatalogSummary] = TTLCache(maxsize=1, ttl=ttl_seconds)
        self._key = "summary"
        self._hits = 0
        self._misses = 0

    def get(self) -> CatalogSummary | None:
        result = self._cache.get(self._key)
        if result is not None:
            self._hits += 1
            logger.debug("catalog_summary cache hit (hits=%d, misses=%d)", self._hits, self._misses)
        else:
            self._misses += 1
            logger.debug(
                "catalog_summary cache miss (hits=%d, misses=%d)", self._hits, self._misses
            )
        return result

    def set(self, value: CatalogSummary) -> None:
        self._cache[self._key] = value

    def clear(self) -> None:
        self._cache.clear()

    @property
    def stats(self) -> dict[str, int]:
        return {"hits": self._hits, "misses": self._misses}


def _summary_ttl() -> int:
    from labquote_api.core.settings import get_settings

    try:
        return get_settings().cache_catalog_summary_ttl
    except SettingsValidationError as exc:
        logger.warning("Failed to load cache settings, using defaults: %s", exc)
        return DEFAULT_CATALOG_SUMMARY_TTL


catalog_summary_cache = CatalogSummaryCache(ttl_seconds=_summary_ttl())


def clear_all_caches() -> None:
    catalog_summary_cache.clear()


__all__ = ["CatalogSummaryCache", "catalog_summary_cache", "clear_all_caches"]
