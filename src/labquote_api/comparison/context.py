"""Immutable inputs and outputs of the comparison engine.

The snapshot types are plain frozen dataclasses so the engine never touches an
ORM session: everything it needs is loaded up front in one transaction.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

PERCENT_SCALE = Decimal(100)


@dataclass(frozen=True, slots=True)
class LaboratoryRef:
    id: str
    name: str
    code: str


@dataclass(frozen=True, slots=True)
class EntrySnapshot:
    entry_id: str
    laboratory_id: str
    lab_test_id: str
    local_test_name: str
    price_centimes: int


@dataclass(frozen=True, slots=True)
class MappingSnapshot:
    id: str
    canonical_name: str
    normalized_name: str
    entries: tuple[EntrySnapshot, ...] = ()

    @property
    def sort_key(self) -> tuple[str, str, str]:
        return (self.normalized_name, self.canonical_name, self.id)


@dataclass(frozen=True, slots=True)
class DealSnapshot:
    id: str
    name: str
    mapping_ids: frozenset[str]
    discount_kind: str
    discount_percent: Decimal | None = None
    discount_amount_centimes: int | None = None

    def discount_for(self, subtotal: int) -> int:
        """Centimes taken off ``subtotal``, never negative and never above it."""
        if subtotal <= 0:
            return 0
        if self.discount_kind == "percentage":
            percent = self.discount_percent or Decimal(0)
            raw = (Decimal(subtotal) * percent / PERCENT_SCALE).quantize(
                Decimal(1), rounding=ROUND_HALF_UP
            )
            discount = int(raw)
        else:
            discount = self.discount_amount_centimes or 0
        return max(0, min(discount, subtotal))


@dataclass(frozen=True, slots=True)
class CatalogSnapshot:
    mappings: Mapping[str, MappingSnapshot]
    laboratories: Mapping[str, LaboratoryRef]
    deals: tuple[DealSnapshot, ...]
    taken_at: datetime


@dataclass(frozen=True, slots=True)
class ComparisonItem:
    mapping_id: str
    canonical_name: str


@dataclass(frozen=True, slots=True)
class AppliedBundle:
    id: str
    name: str
    discount: int


@dataclass(frozen=True, slots=True)
class LaboratoryRow:
    laboratory: LaboratoryRef
    prices: Mapping[str, int]
    missing_canonical_names: tuple[str, ...]
    raw_total: int
    applied_bundle: AppliedBundle | None = None
    final_total: int | None = None
    local_test_names: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        return not self.missing_canonical_names


@dataclass(frozen=True, slots=True)
class IncompleteLaboratory:
    laboratory_id: str
    missing_canonical_names: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class ComparisonResult:
    items: tuple[ComparisonItem, ...]
    laboratories: tuple[LaboratoryRow, ...]
    cheapest_laboratory_id: str | None
    incomplete_laboratories: tuple[IncompleteLaboratory, ...] = field(default_factory=tuple)
    compared_at: datetime | None = None
