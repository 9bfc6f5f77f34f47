from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import insert, select
from sqlalchemy.exc import IntegrityError

from labquote_api.db import models


async def _laboratory_with_list(db_session, *, code: str = "LAB", active: bool = True) -> None:
    await db_session.execute(
        insert(models.Laboratory).values(id=f"lab-{code}", name=f"Lab {code}", code=code)
    )
    await db_session.execute(
        insert(models.PriceList).values(
            id=f"pl-{code}-1", laboratory_id=f"lab-{code}", name="2025", is_active=active
        )
    )


class TestDatabaseModels:
    async def test_laboratory_price_list_relationship(self, db_session):
        """Price lists and their tests load through the laboratory."""
        await _laboratory_with_list(db_session)
        await db_session.execute(
            insert(models.LabTest).values(
                id="t-1", price_list_id="pl-LAB-1", name="NFS", code="NFS", price_centimes=8000
            )
        )
        await db_session.commit()

        laboratory = await db_session.get(models.Laboratory, "lab-LAB")
        await db_session.refresh(laboratory, ["price_lists"])
        (price_list,) = laboratory.price_lists
        await db_session.refresh(price_list, ["tests"])

        assert price_list.is_active is True
        assert [test.code for test in price_list.tests] == ["NFS"]
        assert laboratory.created_at is not None

    async def test_second_active_price_list_is_rejected(self, db_session):
        await _laboratory_with_list(db_session)
        await db_session.commit()

        with pytest.raises(IntegrityError):
            await db_session.execute(
                insert(models.PriceList).values(
                    id="pl-LAB-2", laboratory_id="lab-LAB", name="2026", is_active=True
                )
            )
        await db_session.rollback()

    async def test_inactive_price_lists_are_unbounded(self, db_session):
        await _laboratory_with_list(db_session)
        await db_session.execute(
            insert(models.PriceList).values(
                [
                    {"id": "pl-LAB-2", "laboratory_id": "lab-LAB", "name": "old", "is_active": False},
                    {"id": "pl-LAB-3", "laboratory_id": "lab-LAB", "name": "draft", "is_active": False},
                ]
            )
        )
        await db_session.commit()

        count = len((await db_session.scalars(select(models.PriceList.id))).all())
        assert count == 3

    async def test_negative_price_is_rejected(self, db_session):
        await _laboratory_with_list(db_session)

        with pytest.raises(IntegrityError):
            await db_session.execute(
                insert(models.LabTest).values(
                    id="t-neg", price_list_id="pl-LAB-1", name="NFS", price_centimes=-1
                )
            )
        await db_session.rollback()

    async def test_deal_discount_must_match_kind(self, db_session):
        with pytest.raises(IntegrityError):
            await db_session.execute(
                insert(models.BundleDeal).values(
                    id="deal-1",
                    name="Broken",
                    discount_kind="percentage",
                    discount_percent=Decimal("0"),
                )
            )
        await db_session.rollback()

    async def test_deal_exposes_mapping_ids(self, db_session):
        db_session.add_all(
            [
                models.TestMapping(id="m-1", canonical_name="NFS", normalized_name="nfs"),
                models.TestMapping(id="m-2", canonical_name="TSH", normalized_name="tsh"),
            ]
        )
        deal = models.BundleDeal(
            id="deal-1",
            name="Check-up",
            discount_kind="percentage",
            discount_percent=Decimal("10"),
            items=[
                models.BundleDealItem(test_mapping_id="m-1"),
                models.BundleDealItem(test_mapping_id="m-2"),
            ],
        )
        db_session.add(deal)
        await db_session.commit()

        assert deal.test_mapping_ids == frozenset({"m-1", "m-2"})
        assert deal.is_active is True
