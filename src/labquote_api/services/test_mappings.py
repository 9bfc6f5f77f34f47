from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Collection, Iterable, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from labquote_api.core import metrics
from labquote_api.core.cache import catalog_summary_cache
from labquote_api.core.errors import ConflictError, NotFoundError, ValidationError
from labquote_api.core.settings import get_settings
from labquote_api.db.models import (
    MATCH_TYPES,
    BundleDealItem,
    LabTest,
    PriceList,
    TestMapping,
    TestMappingEntry,
)
from labquote_api.services.pagination import Page, validate_page_params
from labquote_api.utils.normalization import clean_display_name, normalize_canonical_name

logger = logging.getLogger(__name__)


class TestMappingRegistry:
    """Own the canonical identity of test concepts and their per-laboratory entries."""

    __test__ = False

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def create_mapping(
        self,
        canonical_name: str,
        lab_test_ids: Sequence[str] = (),
        *,
        created_by_id: str | None = None,
        category: str | None = None,
        description: str | None = None,
    ) -> TestMapping:
        display_name = clean_display_name(canonical_name or "")
        normalized = normalize_canonical_name(display_name)
        if not normalized:
            raise ValidationError("Canonical name is required")

        existing_id = await self._db.scalar(
            select(TestMapping.id).where(TestMapping.normalized_name == normalized)
        )
        if existing_id is not None:
            raise ValidationError(
                f"A test mapping named like '{display_name}' already exists", [existing_id]
            )

        lab_tests = await self._load_lab_tests(lab_test_ids)
        per_lab = Counter(test.price_list.laboratory_id for test in lab_tests)
        duplicated_labs = sorted(lab_id for lab_id, count in per_lab.items() if count > 1)
        if duplicated_labs:
            raise ValidationError(
                "A laboratory can only be mapped once per test concept", duplicated_labs
            )
        for lab_test in lab_tests:
            self._ensure_active(lab_test)

        mapping = TestMapping(
            canonical_name=display_name,
            normalized_name=normalized,
            category=(category or "").strip() or None,
            description=description,
            created_by_id=created_by_id,
        )
        for position, lab_test in enumerate(lab_tests):
            mapping.entries.append(self._entry_for(lab_test, position))
        self._db.add(mapping)

        try:
            await self._db.flush()
        except IntegrityError as exc:
            raise ValidationError(
                f"A test mapping named like '{display_name}' already exists"
            ) from exc

        catalog_summary_cache.clear()
        metrics.increment("mapping.created")
        logger.info(
            "Created test mapping %s (%s) with %d entries by %s",
            mapping.id,
            mapping.canonical_name,
            len(lab_tests),
            created_by_id or "anonymous",
        )
        return mapping

    async def add_entry(
        self, mapping_id: str, lab_test_id: str, *, match_type: str = "MANUAL"
    ) -> TestMappingEntry:
        if match_type not in MATCH_TYPES:
            raise ValidationError(f"Unknown match type: {match_type}", [match_type])
        mapping = await self.get_mapping(mapping_id)
        (lab_test,) = await self._load_lab_tests([lab_test_id])
        laboratory_id = lab_test.price_list.laboratory_id

        existing = next(
            (entry for entry in mapping.entries if entry.laboratory_id == laboratory_id), None
        )
        if existing is not None:
            raise ConflictError(
                "This laboratory already has an entry for the test mapping",
                [mapping_id, laboratory_id],
            )
        self._ensure_active(lab_test)

        position = max((entry.position for entry in mapping.entries), default=-1) + 1
        entry = self._entry_for(lab_test, position, match_type)
        mapping.entries.append(entry)
        await self._db.flush()
        catalog_summary_cache.clear()

        metrics.increment("mapping.entry_added", match_type=match_type)
        logger.info(
            "Mapped lab test %s of laboratory %s to %s (%s)",
            lab_test.id,
            laboratory_id,
            mapping_id,
            match_type,
        )
        return entry

    async def remove_entry(self, mapping_id: str, entry_id: str) -> None:
        mapping = await self.get_mapping(mapping_id)
        entry = next((item for item in mapping.entries if item.id == entry_id), None)
        if entry is None:
            raise NotFoundError("Test mapping entry not found", [entry_id])
        mapping.entries.remove(entry)
        await self._db.flush()
        catalog_summary_cache.clear()
        logger.info("Removed entry %s from test mapping %s", entry_id, mapping_id)

    async def update_mapping(
        self,
        mapping_id: str,
        *,
        canonical_name: str,
        category: str | None = None,
        description: str | None = None,
    ) -> TestMapping:
        mapping = await self.get_mapping(mapping_id)
        display_name = clean_display_name(canonical_name or "")
        normalized = normalize_canonical_name(display_name)
        if not normalized:
            raise ValidationError("Canonical name is required")

        existing_id = await self._db.scalar(
            select(TestMapping.id).where(
                TestMapping.normalized_name == normalized, TestMapping.id != mapping_id
            )
        )
        if existing_id is not None:
            raise ValidationError(
                f"A test mapping named like '{display_name}' already exists", [existing_id]
            )

        mapping.canonical_name = display_name
        mapping.normalized_name = normalized
        mapping.category = (category or "").strip() or None
        mapping.description = description
        try:
            await self._db.flush()
        except IntegrityError as exc:
            raise ValidationError(
                f"A test mapping named like '{display_name}' already exists"
            ) from exc

        catalog_summary_cache.clear()
        metrics.increment("mapping.updated")
        logger.info("Updated test mapping %s (%s)", mapping.id, mapping.canonical_name)
        return mapping

    async def list_mappings(
        self,
        page: int = 1,
        page_size: int | None = None,
        *,
        search: str | None = None,
        category: str | None = None,
    ) -> Page[TestMapping]:
        settings = get_settings()
        page, page_size = validate_page_params(
            page,
            settings.page_size_default if page_size is None else page_size,
            max_page_size=settings.page_size_max,
        )
        filters = []
        needle = normalize_canonical_name(search or "")
        if needle:
            filters.append(TestMapping.normalized_name.contains(needle, autoescape=True))
        if category and category.strip():
            filters.append(func.lower(TestMapping.category) == category.strip().lower())

        total = (
            await self._db.scalar(select(func.count()).select_from(TestMapping).where(*filters))
        ) or 0
        result: Page[TestMapping] = Page(items=[], total=total, page=page, page_size=page_size)
        if result.offset >= total:
            return result

        stmt = (
            self._base_query()
            .where(*filters)
            .order_by(
                TestMapping.normalized_name.asc(),
                TestMapping.canonical_name.asc(),
                TestMapping.id.asc(),
            )
            .offset(result.offset)
            .limit(page_size)
        )
        result.items = list((await self._db.execute(stmt)).scalars())
        return result

    async def get_mapping(self, mapping_id: str) -> TestMapping:
        resolved = await self.resolve([mapping_id])
        return resolved[mapping_id]

    async def resolve(self, mapping_ids: Iterable[str]) -> dict[str, TestMapping]:
        """Load every requested mapping with its entries, or fail naming all unknown ids."""
        wanted = set(mapping_ids)
        if not wanted:
            return {}
        stmt = self._base_query().where(TestMapping.id.in_(wanted)).execution_options(
            populate_existing=True
        )
        found = {mapping.id: mapping for mapping in (await self._db.execute(stmt)).scalars()}
        missing = sorted(wanted - found.keys())
        if missing:
            raise NotFoundError(f"Unknown test mapping ids: {', '.join(missing)}", missing)
        return found

    async def delete_mapping(self, mapping_id: str) -> None:
        mapping = await self.get_mapping(mapping_id)
        deal_ids = sorted(
            (
                await self._db.scalars(
                    select(BundleDealItem.bundle_deal_id).where(
                        BundleDealItem.test_mapping_id == mapping_id
                    )
                )
            ).all()
        )
        if deal_ids:
            raise ConflictError(
                "Test mapping is referenced by bundle deals; remove it from them first",
                deal_ids,
            )
        await self._db.delete(mapping)
        await self._db.flush()
        catalog_summary_cache.clear()
        logger.info("Deleted test mapping %s (%s)", mapping_id, mapping.canonical_name)

    @staticmethod
    def _base_query():
        return select(TestMapping).options(
            selectinload(TestMapping.entries).selectinload(TestMappingEntry.laboratory)
        )

    async def _load_lab_tests(self, lab_test_ids: Collection[str]) -> list[LabTest]:
        if not lab_test_ids:
            return []
        stmt = (
            select(LabTest)
            .options(selectinload(LabTest.price_list).selectinload(PriceList.laboratory))
            .where(LabTest.id.in_(set(lab_test_ids)))
        )
        by_id = {test.id: test for test in (await self._db.execute(stmt)).scalars()}
        missing = sorted(set(lab_test_ids) - by_id.keys())
        if missing:
            raise NotFoundError(f"Unknown lab test ids: {', '.join(missing)}", missing)
        return [by_id[test_id] for test_id in dict.fromkeys(lab_test_ids)]

    @staticmethod
    def _ensure_active(lab_test: LabTest) -> None:
        if not lab_test.price_list.is_active:
            raise ConflictError(
                "Lab test does not belong to its laboratory's active price list",
                [lab_test.id, lab_test.price_list_id],
            )

    @staticmethod
    def _entry_for(
        lab_test: LabTest, position: int, match_type: str = "MANUAL"
    ) -> TestMappingEntry:
        return TestMappingEntry(
            laboratory_id=lab_test.price_list.laboratory_id,
            laboratory=lab_test.price_list.laboratory,
            lab_test_id=lab_test.id,
            local_test_name=lab_test.name,
            price_centimes=lab_test.price_centimes,
            match_type=match_type,
            position=position,
        )


__all__ = ["TestMappingRegistry"]
