from __future__ import annotations

from datetime import date, datetime

from pydantic import EmailStr, Field, field_validator

from labquote_api.schemas.common import APIModel, PageMeta
from labquote_api.utils.normalization import normalize_lab_code


class LaboratoryCreate(APIModel):
    name: str = Field(..., min_length=1, max_length=200)
    code: str
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=32)
    address: str | None = Field(default=None, max_length=500)
    city: str | None = Field(default=None, max_length=100)
    is_active: bool = True

    @field_validator("code")
    @classmethod
    def _normalize_code(cls, value: str) -> str:
        return normalize_lab_code(value)


class LabTestIn(APIModel):
    name: str = Field(..., min_length=1, max_length=300)
    code: str | None = Field(default=None, max_length=64)
    category: str | None = Field(default=None, max_length=100)
    price_centimes: int = Field(..., ge=0)


class PriceListCreate(APIModel):
    name: str = Field(..., min_length=1, max_length=200)
    valid_from: date | None = None
    valid_until: date | None = None
    activate: bool = False
    tests: list[LabTestIn] = Field(default_factory=list)


class LabTestOut(APIModel):
    id: str
    price_list_id: str
    name: str
    code: str | None = None
    category: str | None = None
    price_centimes: int


class PriceListOut(APIModel):
    id: str
    laboratory_id: str
    name: str
    valid_from: date | None = None
    valid_until: date | None = None
    is_active: bool
    created_at: datetime
    tests: list[LabTestOut] = Field(default_factory=list)


class LaboratoryOut(APIModel):
    id: str
    name: str
    code: str
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    is_active: bool
    created_at: datetime


class LaboratoryDetail(LaboratoryOut):
    price_lists: list[PriceListOut] = Field(default_factory=list)


class LaboratoryListResponse(APIModel):
    meta: PageMeta
    results: list[LaboratoryOut]


class RepointedEntry(APIModel):
    entry_id: str
    test_mapping_id: str
    lab_test_id: str
    price_centimes: int


class RemovedEntry(APIModel):
    entry_id: str
    test_mapping_id: str
    local_test_name: str


class ActivationResponse(APIModel):
    price_list: PriceListOut
    previous_price_list_id: str | None = None
    repointed: list[RepointedEntry] = Field(default_factory=list)
    removed: list[RemovedEntry] = Field(default_factory=list)


class CatalogSummary(APIModel):
    laboratory_count: int
    active_laboratory_count: int
    lab_test_count: int
    test_mapping_count: int
    unmapped_mapping_count: int
    active_deal_count: int
    currency: str
    generated_at: datetime
