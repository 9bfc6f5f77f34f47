from __future__ import annotations

from labquote_api.schemas.common import APIModel


class LabTestMatchOut(APIModel):
    lab_test_id: str
    name: str
    code: str | None = None
    category: str | None = None
    price_centimes: int
    laboratory_id: str
    laboratory_name: str
    laboratory_code: str
    score: float
    match_type: str


class LabTestSearchResponse(APIModel):
    query: str
    results: list[LabTestMatchOut]


class MappingSuggestionsResponse(APIModel):
    test_mapping_id: str
    canonical_name: str
    results: list[LabTestMatchOut]


class SuggestionAccept(APIModel):
    lab_test_id: str
