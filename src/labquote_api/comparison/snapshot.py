from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from labquote_api.comparison.context import (
    CatalogSnapshot,
    DealSnapshot,
    EntrySnapshot,
    LaboratoryRef,
    MappingSnapshot,
)
from labquote_api.db.models import BundleDeal, TestMapping
from labquote_api.db.session import begin_snapshot
from labquote_api.services.bundle_deals import BundleDealRegistry
from labquote_api.services.test_mappings import TestMappingRegistry

logger = logging.getLogger(__name__)


class SnapshotLoader:
    """Read everything one comparison needs inside a single transaction."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def load(self, mapping_ids: Iterable[str], now: datetime) -> CatalogSnapshot:
        moment = now if now.tzinfo is not None else now.replace(tzinfo=UTC)
        await begin_snapshot(self._session)

        resolved = await TestMappingRegistry(self._session).resolve(mapping_ids)
        deals = await BundleDealRegistry(self._session).get_active_deals(moment)

        laboratories: dict[str, LaboratoryRef] = {}
        mappings: dict[str, MappingSnapshot] = {}
        skipped = 0
        for mapping in resolved.values():
            entries: list[EntrySnapshot] = []
            for entry in mapping.entries:
                laboratory = entry.laboratory
                if not laboratory.is_active:
                    skipped += 1
                    continue
                laboratories.setdefault(
                    laboratory.id,
                    LaboratoryRef(id=laboratory.id, name=laboratory.name, code=laboratory.code),
                )
                entries.append(
                    EntrySnapshot(
                        entry_id=entry.id,
                        laboratory_id=entry.laboratory_id,
                        lab_test_id=entry.lab_test_id,
                        local_test_name=entry.local_test_name,
                        price_centimes=entry.price_centimes,
                    )
                )
            mappings[mapping.id] = _mapping_snapshot(mapping, entries)

        if skipped:
            logger.debug("Skipped %d entries of inactive laboratories", skipped)
        return CatalogSnapshot(
            mappings=mappings,
            laboratories=laboratories,
            deals=tuple(_deal_snapshot(deal) for deal in deals),
            taken_at=moment,
        )


def _mapping_snapshot(mapping: TestMapping, entries: list[EntrySnapshot]) -> MappingSnapshot:
    return MappingSnapshot(
        id=mapping.id,
        canonical_name=mapping.canonical_name,
        normalized_name=mapping.normalized_name,
        entries=tuple(entries),
    )


def _deal_snapshot(deal: BundleDeal) -> DealSnapshot:
    return DealSnapshot(
        id=deal.id,
        name=deal.name,
        mapping_ids=deal.test_mapping_ids,
        discount_kind=deal.discount_kind,
        discount_percent=deal.discount_percent,
        discount_amount_centimes=deal.discount_amount_centimes,
    )


__all__ = ["SnapshotLoader"]
