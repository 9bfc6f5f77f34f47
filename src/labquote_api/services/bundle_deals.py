from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from labquote_api.core import metrics
from labquote_api.core.cache import catalog_summary_cache
from labquote_api.core.errors import NotFoundError, ValidationError
from labquote_api.core.settings import get_settings
from labquote_api.db.models import BundleDeal, BundleDealItem, TestMapping
from labquote_api.services.pagination import Page, validate_page_params

logger = logging.getLogger(__name__)

MIN_DEAL_SIZE = 2
MAX_PERCENT = Decimal("100")


@dataclass(slots=True)
class BundleDealData:
    name: str
    test_mapping_ids: Sequence[str]
    discount_kind: str
    discount_percent: Decimal | None = None
    discount_amount_centimes: int | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    description: str | None = None
    category: str | None = None
    is_active: bool = True
    sort_order: int = 0


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class BundleDealRegistry:
    """Store discount rules and answer which of them are active at a given instant."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def get_active_deals(self, now: datetime) -> list[BundleDeal]:
        """Deals flagged active whose window contains ``now``.

        The window is inclusive at ``starts_at`` and exclusive at ``ends_at``;
        a missing bound is open. Ordered by id.
        """
        moment = _as_utc(now)
        stmt = (
            select(BundleDeal)
            .options(selectinload(BundleDeal.items))
            .where(BundleDeal.is_active.is_(True))
            .where(or_(BundleDeal.starts_at.is_(None), BundleDeal.starts_at <= moment))
            .where(or_(BundleDeal.ends_at.is_(None), BundleDeal.ends_at > moment))
            .order_by(BundleDeal.id.asc())
            .execution_options(populate_existing=True)
        )
        return list((await self._db.execute(stmt)).scalars())

    async def canonical_names(self, deals: Sequence[BundleDeal]) -> dict[str, list[str]]:
        """Map each deal id to the canonical names of its tests, ordered by mapping id."""
        mapping_ids = {mapping_id for deal in deals for mapping_id in deal.test_mapping_ids}
        if not mapping_ids:
            return {deal.id: [] for deal in deals}
        rows = await self._db.execute(
            select(TestMapping.id, TestMapping.canonical_name).where(
                TestMapping.id.in_(mapping_ids)
            )
        )
        names = dict(rows.tuples().all())
        return {
            deal.id: [names[mapping_id] for mapping_id in sorted(deal.test_mapping_ids)]
            for deal in deals
        }

    async def list_deals(self, page: int = 1, page_size: int | None = None) -> Page[BundleDeal]:
        settings = get_settings()
        page, page_size = validate_page_params(
            page,
            settings.page_size_default if page_size is None else page_size,
            max_page_size=settings.page_size_max,
        )
        total = (await self._db.scalar(select(func.count()).select_from(BundleDeal))) or 0
        result: Page[BundleDeal] = Page(items=[], total=total, page=page, page_size=page_size)
        if result.offset >= total:
            return result

        stmt = (
            select(BundleDeal)
            .options(selectinload(BundleDeal.items))
            .order_by(BundleDeal.sort_order.asc(), BundleDeal.name.asc(), BundleDeal.id.asc())
            .offset(result.offset)
            .limit(page_size)
        )
        result.items = list((await self._db.execute(stmt)).scalars())
        return result

    async def get_deal(self, deal_id: str) -> BundleDeal:
        stmt = (
            select(BundleDeal)
            .options(selectinload(BundleDeal.items))
            .where(BundleDeal.id == deal_id)
        )
        deal = (await self._db.execute(stmt)).scalar_one_or_none()
        if deal is None:
            raise NotFoundError("Bundle deal not found", [deal_id])
        return deal

    async def create_deal(self, data: BundleDealData) -> BundleDeal:
        name = data.name.strip()
        if not name:
            raise ValidationError("Bundle deal name is required", ["name"])

        mapping_ids = sorted(set(data.test_mapping_ids))
        if len(mapping_ids) < MIN_DEAL_SIZE:
            raise ValidationError(
                f"A bundle deal must cover at least {MIN_DEAL_SIZE} distinct test mappings",
                mapping_ids,
            )
        percent, amount = self._validate_discount(data)
        starts_at, ends_at = _as_utc(data.starts_at), _as_utc(data.ends_at)
        if starts_at is not None and ends_at is not None and ends_at <= starts_at:
            raise ValidationError("Bundle deal must end after it starts", ["starts_at", "ends_at"])
        await self._ensure_mappings_exist(mapping_ids)

        deal = BundleDeal(
            name=name,
            description=data.description,
            category=(data.category or "").strip() or None,
            discount_kind=data.discount_kind,
            discount_percent=percent,
            discount_amount_centimes=amount,
            starts_at=starts_at,
            ends_at=ends_at,
            is_active=data.is_active,
            sort_order=data.sort_order,
            items=[BundleDealItem(test_mapping_id=mapping_id) for mapping_id in mapping_ids],
        )
        self._db.add(deal)
        await self._db.flush()

        catalog_summary_cache.clear()
        metrics.increment("bundle_deal.created", kind=data.discount_kind)
        logger.info(
            "Created bundle deal %s (%s) covering %d mappings", deal.id, deal.name, len(mapping_ids)
        )
        return deal

    async def set_active(self, deal_id: str, is_active: bool) -> BundleDeal:
        deal = await self.get_deal(deal_id)
        deal.is_active = is_active
        await self._db.flush()
        catalog_summary_cache.clear()
        logger.info("Bundle deal %s is_active=%s", deal_id, is_active)
        return deal

    async def delete_deal(self, deal_id: str) -> None:
        deal = await self.get_deal(deal_id)
        await self._db.delete(deal)
        await self._db.flush()
        catalog_summary_cache.clear()
        logger.info("Deleted bundle deal %s (%s)", deal_id, deal.name)

    @staticmethod
    def _validate_discount(data: BundleDealData) -> tuple[Decimal | None, int | None]:
        if data.discount_kind == "percentage":
            percent = data.discount_percent
            if percent is None or not Decimal("0") < Decimal(percent) <= MAX_PERCENT:
                raise ValidationError(
                    "Percentage discount must be greater than 0 and at most 100",
                    ["discount_percent"],
                )
            return Decimal(percent), None
        if data.discount_kind == "fixed":
            amount = data.discount_amount_centimes
            if amount is None or amount <= 0:
                raise ValidationError(
                    "Fixed discount must be a positive amount", ["discount_amount_centimes"]
                )
            return None, amount
        raise ValidationError(
            f"Unknown discount kind '{data.discount_kind}'", ["discount_kind"]
        )

    async def _ensure_mappings_exist(self, mapping_ids: Sequence[str]) -> None:
        found = set(
            (
                await self._db.scalars(
                    select(TestMapping.id).where(TestMapping.id.in_(mapping_ids))
                )
            ).all()
        )
        missing = sorted(set(mapping_ids) - found)
        if missing:
            raise NotFoundError(f"Unknown test mapping ids: {', '.join(missing)}", missing)


__all__ = ["BundleDealData", "BundleDealRegistry"]
