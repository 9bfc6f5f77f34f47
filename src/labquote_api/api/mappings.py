from __future__ import annotations

from fastapi import APIRouter, Response, status

from labquote_api.api.deps import ActorIdDep, SessionDep
from labquote_api.matching import accept_suggestion, suggest_entries
from labquote_api.matching.suggest import DEFAULT_THRESHOLD
from labquote_api.schemas.common import PageMeta
from labquote_api.schemas.mappings import (
    TestMappingCreate,
    TestMappingEntryCreate,
    TestMappingEntryOut,
    TestMappingListResponse,
    TestMappingOut,
    TestMappingUpdate,
)
from labquote_api.schemas.matching import (
    LabTestMatchOut,
    MappingSuggestionsResponse,
    SuggestionAccept,
)
from labquote_api.services.test_mappings import TestMappingRegistry

router = APIRouter()


@router.get("", response_model=TestMappingListResponse)
async def list_mappings(
    session: SessionDep,
    page: int = 1,
    page_size: int | None = None,
    search: str | None = None,
    category: str | None = None,
) -> TestMappingListResponse:
    result = await TestMappingRegistry(session).list_mappings(
        page=page, page_size=page_size, search=search, category=category
    )
    return TestMappingListResponse(
        meta=PageMeta(
            total=result.total, page=result.page, page_size=result.page_size, pages=result.pages
        ),
        results=[TestMappingOut.model_validate(mapping) for mapping in result.items],
    )


@router.post("", response_model=TestMappingOut, status_code=status.HTTP_201_CREATED)
async def create_mapping(
    payload: TestMappingCreate,
    session: SessionDep,
    actor_id: ActorIdDep,
) -> TestMappingOut:
    mapping = await TestMappingRegistry(session).create_mapping(
        payload.canonical_name,
        payload.lab_test_ids,
        created_by_id=actor_id,
        category=payload.category,
        description=payload.description,
    )
    return TestMappingOut.model_validate(mapping)


@router.get("/{mapping_id}", response_model=TestMappingOut)
async def get_mapping(mapping_id: str, session: SessionDep) -> TestMappingOut:
    mapping = await TestMappingRegistry(session).get_mapping(mapping_id)
    return TestMappingOut.model_validate(mapping)


@router.delete("/{mapping_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_mapping(mapping_id: str, session: SessionDep) -> Response:
    await TestMappingRegistry(session).delete_mapping(mapping_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{mapping_id}/entries",
    response_model=TestMappingEntryOut,
    status_code=status.HTTP_201_CREATED,
)
async def add_entry(
    mapping_id: str,
    payload: TestMappingEntryCreate,
    session: SessionDep,
) -> TestMappingEntryOut:
    entry = await TestMappingRegistry(session).add_entry(mapping_id, payload.lab_test_id)
    return TestMappingEntryOut.model_validate(entry)


@router.delete("/{mapping_id}/entries/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_entry(mapping_id: str, entry_id: str, session: SessionDep) -> Response:
    await TestMappingRegistry(session).remove_entry(mapping_id, entry_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/{mapping_id}", response_model=TestMappingOut)
async def update_mapping(
    mapping_id: str,
    payload: TestMappingUpdate,
    session: SessionDep,
) -> TestMappingOut:
    registry = TestMappingRegistry(session)
    current = await registry.get_mapping(mapping_id)
    fields = payload.model_fields_set
    canonical_name = current.canonical_name
    if "canonical_name" in fields:
        canonical_name = payload.canonical_name or ""
    mapping = await registry.update_mapping(
        mapping_id,
        canonical_name=canonical_name,
        category=payload.category if "category" in fields else current.category,
        description=payload.description if "description" in fields else current.description,
    )
    return TestMappingOut.model_validate(mapping)


@router.get("/{mapping_id}/suggestions", response_model=MappingSuggestionsResponse)
async def get_suggestions(
    mapping_id: str,
    session: SessionDep,
    threshold: float = DEFAULT_THRESHOLD,
) -> MappingSuggestionsResponse:
    mapping = await TestMappingRegistry(session).get_mapping(mapping_id)
    candidates = await suggest_entries(session, mapping_id, threshold=threshold)
    return MappingSuggestionsResponse(
        test_mapping_id=mapping.id,
        canonical_name=mapping.canonical_name,
        results=[LabTestMatchOut.model_validate(candidate) for candidate in candidates],
    )


@router.post(
    "/{mapping_id}/suggestions/accept",
    response_model=TestMappingEntryOut,
    status_code=status.HTTP_201_CREATED,
)
async def accept_mapping_suggestion(
    mapping_id: str,
    payload: SuggestionAccept,
    session: SessionDep,
) -> TestMappingEntryOut:
    entry = await accept_suggestion(session, mapping_id, payload.lab_test_id)
    return TestMappingEntryOut.model_validate(entry)
