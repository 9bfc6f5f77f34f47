from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from labquote_api.core.errors import NotFoundError
from labquote_api.db.models import BundleDeal, Laboratory, LabTest, PriceList, TestMapping
from labquote_api.seed.config import SeedConfig, SeedDeal, SeedLaboratory, SeedMapping
from labquote_api.services.bundle_deals import BundleDealData, BundleDealRegistry
from labquote_api.services.catalog import CatalogService, LabTestData
from labquote_api.services.test_mappings import TestMappingRegistry
from labquote_api.utils.normalization import normalize_canonical_name, normalize_token

logger = logging.getLogger(__name__)

SEED_ACTOR = "seed"


@dataclass(slots=True)
class SeedReport:
    laboratories: int = 0
    price_lists: int = 0
    mappings: int = 0
    deals: int = 0


class SeedLoader:
    """Apply a seed document through the services; existing records are left untouched."""

    def __init__(self, session: AsyncSession, config: SeedConfig) -> None:
        self._session = session
        self._config = config
        self._catalog = CatalogService(session)
        self._registry = TestMappingRegistry(session)
        self._deals = BundleDealRegistry(session)

    async def apply(self) -> SeedReport:
        report = SeedReport()
        for laboratory in self._config.laboratories:
            await self._apply_laboratory(laboratory, report)

        mapping_ids: dict[str, str] = {}
        for mapping in self._config.mappings:
            mapping_ids[normalize_canonical_name(mapping.canonical_name)] = (
                await self._apply_mapping(mapping, report)
            )
        for deal in self._config.deals:
            await self._apply_deal(deal, mapping_ids, report)

        logger.info(
            "Seed applied: %d laboratories, %d price lists, %d mappings, %d deals",
            report.laboratories,
            report.price_lists,
            report.mappings,
            report.deals,
        )
        return report

    async def _apply_laboratory(self, config: SeedLaboratory, report: SeedReport) -> None:
        existing = await self._session.scalar(
            select(Laboratory.id).where(Laboratory.code == config.code)
        )
        if existing is not None:
            logger.debug("Laboratory %s already present, skipping", config.code)
            return

        laboratory = await self._catalog.create_laboratory(
            config.name,
            config.code,
            email=config.email,
            phone=config.phone,
            address=config.address,
            city=config.city,
            is_active=config.is_active,
        )
        report.laboratories += 1
        for price_list in config.price_lists:
            await self._catalog.create_price_list(
                laboratory.id,
                price_list.name,
                [
                    LabTestData(
                        name=test.name,
                        price_centimes=test.price_centimes,
                        code=test.code,
                        category=test.category,
                    )
                    for test in price_list.tests
                ],
                valid_from=price_list.valid_from,
                valid_until=price_list.valid_until,
                activate=price_list.active,
            )
            report.price_lists += 1

    async def _apply_mapping(self, config: SeedMapping, report: SeedReport) -> str:
        normalized = normalize_canonical_name(config.canonical_name)
        existing = await self._session.scalar(
            select(TestMapping.id).where(TestMapping.normalized_name == normalized)
        )
        if existing is not None:
            return existing

        lab_test_ids = [
            await self._find_active_test(lab_code, test_ref)
            for lab_code, test_ref in config.entries.items()
        ]
        mapping = await self._registry.create_mapping(
            config.canonical_name,
            lab_test_ids,
            created_by_id=SEED_ACTOR,
            category=config.category,
            description=config.description,
        )
        report.mappings += 1
        return mapping.id

    async def _apply_deal(
        self, config: SeedDeal, mapping_ids: dict[str, str], report: SeedReport
    ) -> None:
        existing = await self._session.scalar(
            select(BundleDeal.id).where(BundleDeal.name == config.name.strip())
        )
        if existing is not None:
            return
        await self._deals.create_deal(
            BundleDealData(
                name=config.name,
                test_mapping_ids=[
                    mapping_ids[normalize_canonical_name(name)] for name in config.mappings
                ],
                discount_kind=config.discount_kind,
                discount_percent=config.discount_percent,
                discount_amount_centimes=config.discount_amount_centimes,
                starts_at=config.starts_at,
                ends_at=config.ends_at,
                description=config.description,
                category=config.category,
                is_active=config.is_active,
                sort_order=config.sort_order,
            )
        )
        report.deals += 1

    async def _find_active_test(self, lab_code: str, test_ref: str) -> str:
        stmt = (
            select(PriceList)
            .options(selectinload(PriceList.tests))
            .join(Laboratory, Laboratory.id == PriceList.laboratory_id)
            .where(Laboratory.code == lab_code.strip().upper(), PriceList.is_active.is_(True))
        )
        price_list = (await self._session.execute(stmt)).scalar_one_or_none()
        if price_list is None:
            raise NotFoundError(f"No active price list for laboratory '{lab_code}'", [lab_code])

        token = normalize_token(test_ref)
        name_key = normalize_canonical_name(test_ref)
        match: LabTest | None = next(
            (test for test in price_list.tests if test.code and normalize_token(test.code) == token),
            None,
        ) or next(
            (test for test in price_list.tests if normalize_canonical_name(test.name) == name_key),
            None,
        )
        if match is None:
            raise NotFoundError(
                f"Laboratory '{lab_code}' has no active test '{test_ref}'", [lab_code, test_ref]
            )
        return match.id


__all__ = ["SeedLoader", "SeedReport"]
