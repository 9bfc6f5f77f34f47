from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Query, Response, status

from labquote_api.api.deps import SessionDep
from labquote_api.matching import search_lab_tests
from labquote_api.matching.suggest import DEFAULT_LIMIT, DEFAULT_THRESHOLD
from labquote_api.schemas.catalog import (
    ActivationResponse,
    LaboratoryCreate,
    LaboratoryDetail,
    LaboratoryListResponse,
    LaboratoryOut,
    PriceListCreate,
)
from labquote_api.schemas.common import PageMeta
from labquote_api.schemas.matching import LabTestMatchOut, LabTestSearchResponse
from labquote_api.services.catalog import CatalogService, LabTestData

router = APIRouter()
lab_tests_router = APIRouter()


@router.get("", response_model=LaboratoryListResponse)
async def list_laboratories(
    session: SessionDep,
    page: int = 1,
    page_size: int | None = None,
) -> LaboratoryListResponse:
    result = await CatalogService(session).list_laboratories(page=page, page_size=page_size)
    return LaboratoryListResponse(
        meta=PageMeta(
            total=result.total, page=result.page, page_size=result.page_size, pages=result.pages
        ),
        results=[LaboratoryOut.model_validate(laboratory) for laboratory in result.items],
    )


@router.post("", response_model=LaboratoryOut, status_code=status.HTTP_201_CREATED)
async def create_laboratory(payload: LaboratoryCreate, session: SessionDep) -> LaboratoryOut:
    laboratory = await CatalogService(session).create_laboratory(
        payload.name,
        payload.code,
        email=payload.email,
        phone=payload.phone,
        address=payload.address,
        city=payload.city,
        is_active=payload.is_active,
    )
    return LaboratoryOut.model_validate(laboratory)


@router.get("/{laboratory_id}", response_model=LaboratoryDetail)
async def get_laboratory(laboratory_id: str, session: SessionDep) -> LaboratoryDetail:
    laboratory = await CatalogService(session).get_laboratory(laboratory_id)
    return LaboratoryDetail.model_validate(laboratory)


@router.delete("/{laboratory_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_laboratory(laboratory_id: str, session: SessionDep) -> Response:
    await CatalogService(session).delete_laboratory(laboratory_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{laboratory_id}/price-lists",
    response_model=ActivationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_price_list(
    laboratory_id: str, payload: PriceListCreate, session: SessionDep
) -> ActivationResponse:
    result = await CatalogService(session).create_price_list(
        laboratory_id,
        payload.name,
        [
            LabTestData(
                name=test.name,
                price_centimes=test.price_centimes,
                code=test.code,
                category=test.category,
            )
            for test in payload.tests
        ],
        valid_from=payload.valid_from,
        valid_until=payload.valid_until,
        activate=payload.activate,
    )
    return ActivationResponse.model_validate(result)


@router.post(
    "/{laboratory_id}/price-lists/{price_list_id}/activate",
    response_model=ActivationResponse,
)
async def activate_price_list(
    laboratory_id: str, price_list_id: str, session: SessionDep
) -> ActivationResponse:
    result = await CatalogService(session).activate_price_list(laboratory_id, price_list_id)
    return ActivationResponse.model_validate(result)


@router.delete(
    "/{laboratory_id}/price-lists/{price_list_id}", status_code=status.HTTP_204_NO_CONTENT
)
async def delete_price_list(
    laboratory_id: str, price_list_id: str, session: SessionDep
) -> Response:
    await CatalogService(session).delete_price_list(laboratory_id, price_list_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@lab_tests_router.get("/lab-tests", response_model=LabTestSearchResponse)
async def search_lab_tests_endpoint(
    q: Annotated[str, Query(min_length=1, description="Lab test name or code")],
    session: SessionDep,
    laboratory_id: Annotated[str | None, Query(alias="laboratoryId")] = None,
    category: str | None = None,
    threshold: float = DEFAULT_THRESHOLD,
    limit: int = DEFAULT_LIMIT,
) -> LabTestSearchResponse:
    candidates = await search_lab_tests(
        session,
        q,
        laboratory_id=laboratory_id,
        category=category,
        threshold=threshold,
        limit=limit,
    )
    return LabTestSearchResponse(
        query=q,
        results=[LabTestMatchOut.model_validate(candidate) for candidate in candidates],
    )


@lab_tests_router.delete("/lab-tests/{lab_test_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_lab_test(lab_test_id: str, session: SessionDep) -> Response:
    await CatalogService(session).delete_lab_test(lab_test_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
