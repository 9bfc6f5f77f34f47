from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        from_attributes=True, populate_by_name=True, alias_generator=to_camel
    )


class ComparisonRequest(CamelModel):
    test_mapping_ids: list[str] = Field(default_factory=list)


class ComparisonItemOut(CamelModel):
    canonical_name: str
    mapping_id: str


class AppliedBundleOut(CamelModel):
    id: str
    name: str
    discount: int


class LaboratoryRowOut(CamelModel):
    laboratory_id: str
    name: str
    code: str
    prices: dict[str, int]
    is_complete: bool
    missing_canonical_names: list[str] = Field(default_factory=list)
    raw_total: int
    applied_bundle: AppliedBundleOut | None = None
    final_total: int | None = None
    local_test_names: dict[str, str] = Field(default_factory=dict)


class IncompleteLaboratoryOut(CamelModel):
    laboratory_id: str
    missing_canonical_names: list[str]


class ComparisonResponse(CamelModel):
    items: list[ComparisonItemOut]
    laboratories: list[LaboratoryRowOut]
    cheapest_laboratory_id: str | None = None
    incomplete_laboratories: list[IncompleteLaboratoryOut] = Field(default_factory=list)
    currency: str
    compared_at: datetime
