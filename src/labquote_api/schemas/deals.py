from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import Field, field_validator

from labquote_api.schemas.common import APIModel, PageMeta


class BundleDealCreate(APIModel):
    name: str = Field(..., max_length=200)
    test_mapping_ids: list[str]
    discount_kind: Literal["percentage", "fixed"]
    discount_percent: Decimal | None = None
    discount_amount_centimes: int | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    description: str | None = None
    category: str | None = Field(default=None, max_length=100)
    is_active: bool = True
    sort_order: int = 0


class BundleDealUpdate(APIModel):
    is_active: bool


class BundleDealOut(APIModel):
    id: str
    name: str
    description: str | None = None
    category: str | None = None
    test_mapping_ids: list[str]
    discount_kind: str
    discount_percent: Decimal | None = None
    discount_amount_centimes: int | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    is_active: bool
    sort_order: int
    created_at: datetime

    @field_validator("test_mapping_ids", mode="before")
    @classmethod
    def _sorted_ids(cls, value: object) -> object:
        if isinstance(value, (set, frozenset)):
            return sorted(value)
        return value


class ActiveBundleDealOut(BundleDealOut):
    canonical_names: list[str] = Field(default_factory=list)


class BundleDealListResponse(APIModel):
    meta: PageMeta
    results: list[BundleDealOut]
