from __future__ import annotations

from fastapi import APIRouter

from labquote_api.api.deps import SessionDep, SettingsDep
from labquote_api.comparison.service import ComparisonService
from labquote_api.schemas.comparison import ComparisonRequest, ComparisonResponse
from labquote_api.schemas.common import ErrorResponse

router = APIRouter()


@router.post(
    "/comparison",
    response_model=ComparisonResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def compare_laboratories(
    payload: ComparisonRequest,
    session: SessionDep,
    settings: SettingsDep,
) -> ComparisonResponse:
    service = ComparisonService(session, currency=settings.currency)
    return await service.compare(payload.test_mapping_ids)
