from __future__ import annotations

from fastapi import APIRouter

from labquote_api.api.deps import SessionDep
from labquote_api.schemas.catalog import CatalogSummary
from labquote_api.services import catalog

router = APIRouter()


@router.get("/summary", response_model=CatalogSummary)
async def get_summary(session: SessionDep) -> CatalogSummary:
    return await catalog.get_catalog_summary_cached(session)
