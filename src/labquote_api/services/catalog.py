from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from labquote_api.core import metrics
from labquote_api.core.cache import catalog_summary_cache
from labquote_api.core.errors import ConflictError, NotFoundError, ValidationError
from labquote_api.core.settings import get_settings
from labquote_api.db.models import (
    Laboratory,
    LabTest,
    PriceList,
    TestMapping,
    TestMappingEntry,
)
from labquote_api.schemas.catalog import CatalogSummary
from labquote_api.services.bundle_deals import BundleDealRegistry
from labquote_api.services.pagination import Page, validate_page_params
from labquote_api.utils.normalization import (
    clean_display_name,
    normalize_canonical_name,
    normalize_lab_code,
    normalize_token,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class LabTestData:
    name: str
    price_centimes: int
    code: str | None = None
    category: str | None = None


@dataclass(slots=True)
class RepointedEntry:
    entry_id: str
    test_mapping_id: str
    lab_test_id: str
    price_centimes: int


@dataclass(slots=True)
class RemovedEntry:
    entry_id: str
    test_mapping_id: str
    local_test_name: str


@dataclass(slots=True)
class ActivationResult:
    price_list: PriceList
    previous_price_list_id: str | None = None
    repointed: list[RepointedEntry] = field(default_factory=list)
    removed: list[RemovedEntry] = field(default_factory=list)


class CatalogService:
    """Laboratories, their price lists and the tests inside them."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def create_laboratory(
        self,
        name: str,
        code: str,
        *,
        email: str | None = None,
        phone: str | None = None,
        address: str | None = None,
        city: str | None = None,
        is_active: bool = True,
    ) -> Laboratory:
        display_name = clean_display_name(name or "")
        if not display_name:
            raise ValidationError("Laboratory name is required", ["name"])
        try:
            normalized_code = normalize_lab_code(code or "")
        except ValueError as exc:
            raise ValidationError(str(exc), ["code"]) from exc

        existing_id = await self._db.scalar(
            select(Laboratory.id).where(Laboratory.code == normalized_code)
        )
        if existing_id is not None:
            raise ConflictError(
                f"Laboratory code '{normalized_code}' is already used", [existing_id]
            )

        laboratory = Laboratory(
            name=display_name,
            code=normalized_code,
            email=email,
            phone=phone,
            address=address,
            city=city,
            is_active=is_active,
            price_lists=[],
        )
        self._db.add(laboratory)
        await self._db.flush()

        catalog_summary_cache.clear()
        logger.info("Created laboratory %s (%s)", laboratory.id, laboratory.code)
        return laboratory

    async def list_laboratories(
        self, page: int = 1, page_size: int | None = None
    ) -> Page[Laboratory]:
        settings = get_settings()
        page, page_size = validate_page_params(
            page,
            settings.page_size_default if page_size is None else page_size,
            max_page_size=settings.page_size_max,
        )
        total = (await self._db.scalar(select(func.count()).select_from(Laboratory))) or 0
        result: Page[Laboratory] = Page(items=[], total=total, page=page, page_size=page_size)
        if result.offset >= total:
            return result

        stmt = (
            select(Laboratory)
            .order_by(Laboratory.name.asc(), Laboratory.id.asc())
            .offset(result.offset)
            .limit(page_size)
        )
        result.items = list((await self._db.execute(stmt)).scalars())
        return result

    async def get_laboratory(self, laboratory_id: str) -> Laboratory:
        stmt = (
            select(Laboratory)
            .options(selectinload(Laboratory.price_lists).selectinload(PriceList.tests))
            .where(Laboratory.id == laboratory_id)
        )
        laboratory = (await self._db.execute(stmt)).scalar_one_or_none()
        if laboratory is None:
            raise NotFoundError("Laboratory not found", [laboratory_id])
        return laboratory

    async def create_price_list(
        self,
        laboratory_id: str,
        name: str,
        tests: Sequence[LabTestData] = (),
        *,
        valid_from: date | None = None,
        valid_until: date | None = None,
        activate: bool = False,
    ) -> ActivationResult:
        """Create an inactive price list, optionally activating it in the same transaction."""
        laboratory = await self.get_laboratory(laboratory_id)
        display_name = clean_display_name(name or "")
        if not display_name:
            raise ValidationError("Price list name is required", ["name"])
        if valid_from and valid_until and valid_until < valid_from:
            raise ValidationError(
                "Price list validity must end after it starts", ["valid_from", "valid_until"]
            )

        codes = [normalize_token(test.code) for test in tests if normalize_token(test.code)]
        duplicated = sorted({code for code in codes if codes.count(code) > 1})
        if duplicated:
            raise ValidationError("Lab test codes must be unique within a price list", duplicated)
        negative = [test.name for test in tests if test.price_centimes < 0]
        if negative:
            raise ValidationError("Lab test prices cannot be negative", negative)

        price_list = PriceList(
            laboratory=laboratory,
            name=display_name,
            valid_from=valid_from,
            valid_until=valid_until,
            is_active=False,
            tests=[
                LabTest(
                    name=clean_display_name(test.name),
                    code=(test.code or "").strip() or None,
                    category=(test.category or "").strip() or None,
                    price_centimes=test.price_centimes,
                )
                for test in tests
            ],
        )
        self._db.add(price_list)
        await self._db.flush()
        logger.info(
            "Created price list %s for laboratory %s with %d tests",
            price_list.id,
            laboratory.code,
            len(price_list.tests),
        )

        if activate:
            return await self.activate_price_list(laboratory.id, price_list.id)
        catalog_summary_cache.clear()
        return ActivationResult(price_list=price_list)

    async def activate_price_list(self, laboratory_id: str, price_list_id: str) -> ActivationResult:
        """Make ``price_list_id`` the laboratory's single active list.

        The laboratory row is locked for the duration of the swap. Mapping
        entries follow the switch: each one moves to the test of the new list
        with the same code, else the same normalized name, and picks up its
        price. Entries without a counterpart are deleted and reported.
        """
        locked = await self._db.scalar(
            select(Laboratory.id).where(Laboratory.id == laboratory_id).with_for_update()
        )
        if locked is None:
            raise NotFoundError("Laboratory not found", [laboratory_id])

        target = (
            await self._db.execute(
                select(PriceList)
                .options(selectinload(PriceList.tests))
                .where(PriceList.id == price_list_id)
            )
        ).scalar_one_or_none()
        if target is None or target.laboratory_id != laboratory_id:
            raise NotFoundError("Price list not found for this laboratory", [price_list_id])

        previous_id = await self._db.scalar(
            select(PriceList.id).where(
                PriceList.laboratory_id == laboratory_id, PriceList.is_active.is_(True)
            )
        )
        result = ActivationResult(price_list=target, previous_price_list_id=previous_id)
        if previous_id == target.id:
            return result

        await self._db.execute(
            update(PriceList)
            .where(PriceList.laboratory_id == laboratory_id, PriceList.id != target.id)
            .values(is_active=False)
        )
        target.is_active = True
        await self._db.flush()

        by_code = {normalize_token(test.code): test for test in target.tests if test.code}
        by_name = {normalize_canonical_name(test.name): test for test in target.tests}
        entries = (
            await self._db.execute(
                select(TestMappingEntry)
                .options(selectinload(TestMappingEntry.lab_test))
                .where(TestMappingEntry.laboratory_id == laboratory_id)
                .order_by(TestMappingEntry.id.asc())
            )
        ).scalars()
        for entry in entries:
            current = entry.lab_test
            replacement = by_code.get(normalize_token(current.code)) if current.code else None
            if replacement is None:
                replacement = by_name.get(normalize_canonical_name(current.name))
            if replacement is None:
                result.removed.append(
                    RemovedEntry(
                        entry_id=entry.id,
                        test_mapping_id=entry.test_mapping_id,
                        local_test_name=entry.local_test_name,
                    )
                )
                await self._db.delete(entry)
                continue
            entry.lab_test = replacement
            entry.lab_test_id = replacement.id
            entry.local_test_name = replacement.name
            entry.price_centimes = replacement.price_centimes
            result.repointed.append(
                RepointedEntry(
                    entry_id=entry.id,
                    test_mapping_id=entry.test_mapping_id,
                    lab_test_id=replacement.id,
                    price_centimes=replacement.price_centimes,
                )
            )
        await self._db.flush()

        catalog_summary_cache.clear()
        metrics.increment("price_list.activated")
        logger.info(
            "Activated price list %s for laboratory %s (previous=%s, repointed=%d, removed=%d)",
            target.id,
            laboratory_id,
            previous_id,
            len(result.repointed),
            len(result.removed),
        )
        if result.removed:
            logger.warning(
                "Removed %d mapping entries of laboratory %s with no counterpart in %s",
                len(result.removed),
                laboratory_id,
                target.id,
            )
        return result

    async def delete_lab_test(self, lab_test_id: str) -> None:
        lab_test = await self._db.get(LabTest, lab_test_id)
        if lab_test is None:
            raise NotFoundError("Lab test not found", [lab_test_id])
        entry_ids = await self._entries_referencing(TestMappingEntry.lab_test_id == lab_test_id)
        if entry_ids:
            raise ConflictError(
                "Lab test is mapped to test concepts; remove those entries first", entry_ids
            )
        await self._db.delete(lab_test)
        await self._db.flush()
        catalog_summary_cache.clear()
        logger.info("Deleted lab test %s (%s)", lab_test_id, lab_test.name)

    async def delete_price_list(self, laboratory_id: str, price_list_id: str) -> None:
        price_list = (
            await self._db.execute(
                select(PriceList)
                .options(selectinload(PriceList.tests))
                .where(PriceList.id == price_list_id)
            )
        ).scalar_one_or_none()
        if price_list is None or price_list.laboratory_id != laboratory_id:
            raise NotFoundError("Price list not found for this laboratory", [price_list_id])
        if price_list.is_active:
            raise ConflictError(
                "The active price list cannot be deleted; activate another one first",
                [price_list_id],
            )
        await self._db.delete(price_list)
        await self._db.flush()
        catalog_summary_cache.clear()
        logger.info("Deleted price list %s of laboratory %s", price_list_id, laboratory_id)

    async def delete_laboratory(self, laboratory_id: str) -> None:
        laboratory = await self.get_laboratory(laboratory_id)
        entry_ids = await self._entries_referencing(
            TestMappingEntry.laboratory_id == laboratory_id
        )
        if entry_ids:
            raise ConflictError(
                "Laboratory is referenced by test mappings; remove those entries first",
                entry_ids,
            )
        await self._db.delete(laboratory)
        await self._db.flush()
        catalog_summary_cache.clear()
        logger.info("Deleted laboratory %s (%s)", laboratory_id, laboratory.code)

    async def _entries_referencing(self, condition) -> list[str]:
        return sorted(
            (await self._db.scalars(select(TestMappingEntry.id).where(condition))).all()
        )


async def get_catalog_summary(session: AsyncSession, now: datetime | None = None) -> CatalogSummary:
    moment = now or datetime.now(UTC)
    laboratory_count = (
        await session.scalar(select(func.count()).select_from(Laboratory))
    ) or 0
    active_laboratory_count = (
        await session.scalar(
            select(func.count()).select_from(Laboratory).where(Laboratory.is_active.is_(True))
        )
    ) or 0
    lab_test_count = (
        await session.scalar(
            select(func.count(LabTest.id))
            .join(PriceList, PriceList.id == LabTest.price_list_id)
            .where(PriceList.is_active.is_(True))
        )
    ) or 0
    test_mapping_count = (
        await session.scalar(select(func.count()).select_from(TestMapping))
    ) or 0
    unmapped_mapping_count = (
        await session.scalar(
            select(func.count())
            .select_from(TestMapping)
            .where(~TestMapping.entries.any())
        )
    ) or 0
    active_deals = await BundleDealRegistry(session).get_active_deals(moment)

    return CatalogSummary(
        laboratory_count=laboratory_count,
        active_laboratory_count=active_laboratory_count,
        lab_test_count=lab_test_count,
        test_mapping_count=test_mapping_count,
        unmapped_mapping_count=unmapped_mapping_count,
        active_deal_count=len(active_deals),
        currency=get_settings().currency,
        generated_at=moment,
    )


async def get_catalog_summary_cached(session: AsyncSession) -> CatalogSummary:
    """Catalog counters, served from the TTL cache when warm."""
    cached = catalog_summary_cache.get()
    if cached is not None:
        return cached

    summary = await get_catalog_summary(session)
    catalog_summary_cache.set(summary)
    return summary


__all__ = [
    "ActivationResult",
    "CatalogService",
    "LabTestData",
    "RemovedEntry",
    "RepointedEntry",
    "get_catalog_summary",
    "get_catalog_summary_cached",
]
