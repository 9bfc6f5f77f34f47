from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Response, status

from labquote_api.api.deps import SessionDep
from labquote_api.schemas.common import PageMeta
from labquote_api.schemas.deals import (
    ActiveBundleDealOut,
    BundleDealCreate,
    BundleDealListResponse,
    BundleDealOut,
    BundleDealUpdate,
)
from labquote_api.services.bundle_deals import BundleDealData, BundleDealRegistry

router = APIRouter()


@router.get("", response_model=BundleDealListResponse)
async def list_deals(
    session: SessionDep,
    page: int = 1,
    page_size: int | None = None,
) -> BundleDealListResponse:
    result = await BundleDealRegistry(session).list_deals(page=page, page_size=page_size)
    return BundleDealListResponse(
        meta=PageMeta(
            total=result.total, page=result.page, page_size=result.page_size, pages=result.pages
        ),
        results=[BundleDealOut.model_validate(deal) for deal in result.items],
    )


@router.get("/active", response_model=list[ActiveBundleDealOut])
async def list_active_deals(
    session: SessionDep,
    at: datetime | None = None,
) -> list[ActiveBundleDealOut]:
    registry = BundleDealRegistry(session)
    deals = await registry.get_active_deals(at or datetime.now(UTC))
    names = await registry.canonical_names(deals)
    return [
        ActiveBundleDealOut.model_validate(deal).model_copy(
            update={"canonical_names": names[deal.id]}
        )
        for deal in deals
    ]


@router.post("", response_model=BundleDealOut, status_code=status.HTTP_201_CREATED)
async def create_deal(payload: BundleDealCreate, session: SessionDep) -> BundleDealOut:
    deal = await BundleDealRegistry(session).create_deal(
        BundleDealData(
            name=payload.name,
            test_mapping_ids=payload.test_mapping_ids,
            discount_kind=payload.discount_kind,
            discount_percent=payload.discount_percent,
            discount_amount_centimes=payload.discount_amount_centimes,
            starts_at=payload.starts_at,
            ends_at=payload.ends_at,
            description=payload.description,
            category=payload.category,
            is_active=payload.is_active,
            sort_order=payload.sort_order,
        )
    )
    return BundleDealOut.model_validate(deal)


@router.patch("/{deal_id}", response_model=BundleDealOut)
async def update_deal(
    deal_id: str, payload: BundleDealUpdate, session: SessionDep
) -> BundleDealOut:
    deal = await BundleDealRegistry(session).set_active(deal_id, payload.is_active)
    return BundleDealOut.model_validate(deal)


@router.delete("/{deal_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_deal(deal_id: str, session: SessionDep) -> Response:
    await BundleDealRegistry(session).delete_deal(deal_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
