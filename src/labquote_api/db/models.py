from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from labquote_api.db.base import Base

MATCH_TYPES = ("MANUAL", "EXACT", "FUZZY")
DISCOUNT_KINDS = ("percentage", "fixed")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid4())


class Laboratory(Base):
    __tablename__ = "laboratory"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )

    price_lists: Mapped[list[PriceList]] = relationship(
        "PriceList",
        back_populates="laboratory",
        cascade="all, delete-orphan",
        order_by="PriceList.created_at",
    )


class PriceList(Base):
    __tablename__ = "price_list"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    laboratory_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("laboratory.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    valid_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    valid_until: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )

    laboratory: Mapped[Laboratory] = relationship("Laboratory", back_populates="price_lists")
    tests: Mapped[list[LabTest]] = relationship(
        "LabTest", back_populates="price_list", cascade="all, delete-orphan"
    )

    __table_args__ = (
        # At most one active price list per laboratory.
        Index(
            "uq_price_list_one_active",
            "laboratory_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )


class LabTest(Base):
    __tablename__ = "lab_test"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    price_list_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("price_list.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    price_centimes: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )

    price_list: Mapped[PriceList] = relationship("PriceList", back_populates="tests")

    __table_args__ = (
        CheckConstraint("price_centimes >= 0", name="price_non_negative"),
    )


class TestMapping(Base):
    __tablename__ = "test_mapping"
    __test__ = False  # not a pytest test class

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    canonical_name: Mapped[str] = mapped_column(String(300), nullable=False)
    normalized_name: Mapped[str] = mapped_column(String(300), nullable=False, unique=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )

    entries: Mapped[list[TestMappingEntry]] = relationship(
        "TestMappingEntry",
        back_populates="mapping",
        cascade="all, delete-orphan",
        order_by="TestMappingEntry.position",
    )


class TestMappingEntry(Base):
    __tablename__ = "test_mapping_entry"
    __test__ = False

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    test_mapping_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("test_mapping.id", ondelete="CASCADE"), nullable=False
    )
    laboratory_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("laboratory.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    lab_test_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("lab_test.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    local_test_name: Mapped[str] = mapped_column(String(300), nullable=False)
    price_centimes: Mapped[int] = mapped_column(Integer, nullable=False)
    match_type: Mapped[str] = mapped_column(String(16), nullable=False, default="MANUAL")
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )

    mapping: Mapped[TestMapping] = relationship("TestMapping", back_populates="entries")
    laboratory: Mapped[Laboratory] = relationship("Laboratory")
    lab_test: Mapped[LabTest] = relationship("LabTest")

    __table_args__ = (
        UniqueConstraint("test_mapping_id", "laboratory_id", name="uq_test_mapping_entry_lab"),
        CheckConstraint(
            "match_type IN ('MANUAL', 'EXACT', 'FUZZY')", name="match_type_check"
        ),
    )

    @property
    def laboratory_name(self) -> str:
        return self.laboratory.name


class BundleDeal(Base):
    __tablename__ = "bundle_deal"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    discount_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    discount_percent: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    discount_amount_centimes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    starts_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )

    items: Mapped[list[BundleDealItem]] = relationship(
        "BundleDealItem", back_populates="deal", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("discount_kind IN ('percentage', 'fixed')", name="discount_kind_check"),
        CheckConstraint(
            "(discount_kind = 'percentage' AND discount_percent > 0 AND discount_percent <= 100)"
            " OR (discount_kind = 'fixed' AND discount_amount_centimes > 0)",
            name="discount_value_check",
        ),
        Index("ix_bundle_deal_active_window", "is_active", "starts_at", "ends_at"),
    )

    @property
    def test_mapping_ids(self) -> frozenset[str]:
        return frozenset(item.test_mapping_id for item in self.items)


class BundleDealItem(Base):
    __tablename__ = "bundle_deal_item"

    bundle_deal_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("bundle_deal.id", ondelete="CASCADE"), primary_key=True
    )
    test_mapping_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("test_mapping.id", ondelete="RESTRICT"),
        primary_key=True,
        index=True,
    )

    deal: Mapped[BundleDeal] = relationship("BundleDeal", back_populates="items")


__all__ = [
    "DISCOUNT_KINDS",
    "MATCH_TYPES",
    "BundleDeal",
    "BundleDealItem",
    "LabTest",
    "Laboratory",
    "PriceList",
    "TestMapping",
    "TestMappingEntry",
]
