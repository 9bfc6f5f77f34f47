from __future__ import annotations

from datetime import datetime

from pydantic import Field

from labquote_api.schemas.common import APIModel, PageMeta


class TestMappingCreate(APIModel):
    __test__ = False

    canonical_name: str = Field(..., max_length=300)
    lab_test_ids: list[str] = Field(default_factory=list)
    category: str | None = Field(default=None, max_length=100)
    description: str | None = None


class TestMappingUpdate(APIModel):
    __test__ = False

    canonical_name: str | None = Field(default=None, max_length=300)
    category: str | None = Field(default=None, max_length=100)
    description: str | None = None


class TestMappingEntryCreate(APIModel):
    __test__ = False

    lab_test_id: str


class TestMappingEntryOut(APIModel):
    __test__ = False

    id: str
    laboratory_id: str
    laboratory_name: str | None = None
    lab_test_id: str
    local_test_name: str
    price_centimes: int
    match_type: str
    position: int


class TestMappingOut(APIModel):
    __test__ = False

    id: str
    canonical_name: str
    category: str | None = None
    description: str | None = None
    created_by_id: str | None = None
    created_at: datetime
    entries: list[TestMappingEntryOut] = Field(default_factory=list)


class TestMappingListResponse(APIModel):
    __test__ = False

    meta: PageMeta
    results: list[TestMappingOut]
