from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Literal

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, Field, model_validator

from labquote_api.utils.normalization import normalize_canonical_name, normalize_lab_code

_DEFAULT_SEED_PATH = Path(__file__).with_name("catalog.yaml")


class SeedLabTest(BaseModel):
    name: str
    price_centimes: int = Field(..., ge=0)
    code: str | None = None
    category: str | None = None


class SeedPriceList(BaseModel):
    name: str
    active: bool = False
    valid_from: date | None = None
    valid_until: date | None = None
    tests: list[SeedLabTest] = Field(default_factory=list)


class SeedLaboratory(BaseModel):
    code: str
    name: str
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    is_active: bool = True
    price_lists: list[SeedPriceList] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_lists(self) -> SeedLaboratory:
        self.code = normalize_lab_code(self.code)
        active = [price_list.name for price_list in self.price_lists if price_list.active]
        if len(active) > 1:
            raise ValueError(
                f"Laboratory '{self.code}' declares more than one active price list: "
                + ", ".join(active)
            )
        return self


class SeedMapping(BaseModel):
    canonical_name: str
    category: str | None = None
    description: str | None = None
    # laboratory code -> lab test code (or name when the lab has no codes)
    entries: dict[str, str] = Field(default_factory=dict)


class SeedDeal(BaseModel):
    name: str
    mappings: list[str]
    discount_kind: Literal["percentage", "fixed"]
    discount_percent: Decimal | None = None
    discount_amount_centimes: int | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    description: str | None = None
    category: str | None = None
    is_active: bool = True
    sort_order: int = 0


class SeedConfig(BaseModel):
    version: int = 1
    laboratories: list[SeedLaboratory] = Field(default_factory=list)
    mappings: list[SeedMapping] = Field(default_factory=list)
    deals: list[SeedDeal] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_references(self) -> SeedConfig:
        known = {normalize_canonical_name(mapping.canonical_name) for mapping in self.mappings}
        for deal in self.deals:
            unknown = [
                name for name in deal.mappings if normalize_canonical_name(name) not in known
            ]
            if unknown:
                raise ValueError(
                    f"Bundle deal '{deal.name}' references unknown mappings: {', '.join(unknown)}"
                )
        return self


def load_seed(path: str | Path | None = None) -> SeedConfig:
    target = Path(path) if path else _DEFAULT_SEED_PATH
    with target.open("r", encoding="utf-8") as fh:
        payload = yaml.safe_load(fh) or {}
    return SeedConfig.model_validate(payload)


__all__ = [
    "SeedConfig",
    "SeedDeal",
    "SeedLabTest",
    "SeedLaboratory",
    "SeedMapping",
    "SeedPriceList",
    "load_seed",
]
