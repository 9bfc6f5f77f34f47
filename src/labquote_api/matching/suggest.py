from __future__ import annotations

import difflib
import logging
from collections.abc import Collection, Sequence
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from labquote_api.core import metrics
from labquote_api.core.errors import NotFoundError, ValidationError
from labquote_api.core.settings import get_settings
from labquote_api.db import models
from labquote_api.services.test_mappings import TestMappingRegistry
from labquote_api.utils.normalization import normalize_canonical_name, normalize_token

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.3
DEFAULT_LIMIT = 20


@dataclass(frozen=True, slots=True)
class TestCandidate:
    """A lab test from an active price list, scored against a query name."""

    __test__ = False

    lab_test_id: str
    name: str
    code: str | None
    category: str | None
    price_centimes: int
    laboratory_id: str
    laboratory_name: str
    laboratory_code: str
    score: float
    match_type: str


@dataclass(frozen=True, slots=True)
class _ActiveTest:
    lab_test_id: str
    name: str
    code: str | None
    category: str | None
    price_centimes: int
    laboratory_id: str
    laboratory_name: str
    laboratory_code: str


async def search_lab_tests(
    session: AsyncSession,
    query: str,
    *,
    laboratory_id: str | None = None,
    category: str | None = None,
    threshold: float = DEFAULT_THRESHOLD,
    limit: int = DEFAULT_LIMIT,
) -> list[TestCandidate]:
    """Rank the tests of active price lists by similarity to ``query``."""
    if not normalize_canonical_name(query):
        raise ValidationError("Search query is required", ["q"])
    _validate_threshold(threshold)
    max_limit = get_settings().page_size_max
    if limit < 1 or limit > max_limit:
        raise ValidationError(f"limit must be between 1 and {max_limit}", ["limit"])
    if laboratory_id is not None:
        if await session.get(models.Laboratory, laboratory_id) is None:
            raise NotFoundError("Laboratory not found", [laboratory_id])

    rows = await _load_active_tests(session, laboratory_id=laboratory_id, category=category)
    ranked = _rank_candidates(query, rows, threshold=threshold)[:limit]
    metrics.increment("matching.search")
    logger.debug("Lab test search '%s' returned %d of %d tests", query, len(ranked), len(rows))
    return ranked


async def suggest_entries(
    session: AsyncSession,
    mapping_id: str,
    *,
    threshold: float = DEFAULT_THRESHOLD,
) -> list[TestCandidate]:
    """Return the best matching lab test for every active laboratory not yet mapped."""
    _validate_threshold(threshold)
    mapping = await TestMappingRegistry(session).get_mapping(mapping_id)
    mapped = {entry.laboratory_id for entry in mapping.entries}
    rows = await _load_active_tests(session, exclude_laboratory_ids=mapped)

    best: dict[str, TestCandidate] = {}
    for candidate in _rank_candidates(mapping.canonical_name, rows, threshold=threshold):
        best.setdefault(candidate.laboratory_id, candidate)
    metrics.increment("matching.suggested")
    return list(best.values())


async def accept_suggestion(
    session: AsyncSession, mapping_id: str, lab_test_id: str
) -> models.TestMappingEntry:
    """Map ``lab_test_id`` into the mapping, recording whether it matched exactly."""
    registry = TestMappingRegistry(session)
    mapping = await registry.get_mapping(mapping_id)
    lab_test = await session.get(models.LabTest, lab_test_id)
    if lab_test is None:
        raise NotFoundError(f"Unknown lab test ids: {lab_test_id}", [lab_test_id])

    _, match_type = _score(mapping.canonical_name, lab_test.name, lab_test.code)
    entry = await registry.add_entry(mapping_id, lab_test_id, match_type=match_type)
    metrics.increment("matching.accepted", match_type=match_type)
    return entry


async def _load_active_tests(
    session: AsyncSession,
    *,
    laboratory_id: str | None = None,
    category: str | None = None,
    exclude_laboratory_ids: Collection[str] = (),
) -> list[_ActiveTest]:
    stmt = (
        select(
            models.LabTest.id,
            models.LabTest.name,
            models.LabTest.code,
            models.LabTest.category,
            models.LabTest.price_centimes,
            models.Laboratory.id,
            models.Laboratory.name,
            models.Laboratory.code,
        )
        .join(models.PriceList, models.LabTest.price_list_id == models.PriceList.id)
        .join(models.Laboratory, models.PriceList.laboratory_id == models.Laboratory.id)
        .where(models.PriceList.is_active.is_(True), models.Laboratory.is_active.is_(True))
    )
    if laboratory_id is not None:
        stmt = stmt.where(models.Laboratory.id == laboratory_id)
    if category and category.strip():
        stmt = stmt.where(func.lower(models.LabTest.category) == category.strip().lower())
    if exclude_laboratory_ids:
        stmt = stmt.where(models.Laboratory.id.not_in(set(exclude_laboratory_ids)))
    return [_ActiveTest(*row) for row in (await session.execute(stmt)).all()]


def _score(query: str, name: str, code: str | None) -> tuple[float, str]:
    base = normalize_canonical_name(query)
    candidate = normalize_canonical_name(name)
    if candidate == base or (code and normalize_token(code) == normalize_token(query)):
        return 1.0, "EXACT"
    return difflib.SequenceMatcher(None, base, candidate).ratio(), "FUZZY"


def _rank_candidates(
    query: str,
    candidates: Sequence[_ActiveTest],
    *,
    threshold: float,
) -> list[TestCandidate]:
    scored: list[TestCandidate] = []
    for test in candidates:
        ratio, match_type = _score(query, test.name, test.code)
        if ratio >= threshold and ratio > 0:
            scored.append(
                TestCandidate(
                    lab_test_id=test.lab_test_id,
                    name=test.name,
                    code=test.code,
                    category=test.category,
                    price_centimes=test.price_centimes,
                    laboratory_id=test.laboratory_id,
                    laboratory_name=test.laboratory_name,
                    laboratory_code=test.laboratory_code,
                    score=round(ratio, 4),
                    match_type=match_type,
                )
            )
    scored.sort(
        key=lambda item: (-item.score, normalize_canonical_name(item.name), item.lab_test_id)
    )
    return scored


def _validate_threshold(threshold: float) -> None:
    if not 0 <= threshold <= 1:
        raise ValidationError("threshold must be between 0 and 1", ["threshold"])


__all__ = [
    "DEFAULT_LIMIT",
    "DEFAULT_THRESHOLD",
    "TestCandidate",
    "accept_suggestion",
    "search_lab_tests",
    "suggest_entries",
]
