"""Initial schema for Labquote

Revision ID: 2025100100001
Revises:
Create Date: 2025-10-01 00:00:00.000000
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "2025100100001"
down_revision = None
branch_labels = None
depends_on = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
    )


def upgrade() -> None:
    op.create_table(
        "laboratory",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("code", sa.String(length=20), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("address", sa.String(length=500), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_laboratory"),
        sa.UniqueConstraint("code", name="uq_laboratory_code"),
    )

    op.create_table(
        "price_list",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("laboratory_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("valid_from", sa.Date(), nullable=True),
        sa.Column("valid_until", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_price_list"),
        sa.ForeignKeyConstraint(
            ["laboratory_id"],
            ["laboratory.id"],
            name="fk_price_list_laboratory_id_laboratory",
            ondelete="CASCADE",
        ),
    )
    op.create_index(
        "uq_price_list_one_active",
        "price_list",
        ["laboratory_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
        sqlite_where=sa.text("is_active = 1"),
    )

    op.create_table(
        "lab_test",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("price_list_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=300), nullable=False),
        sa.Column("code", sa.String(length=64), nullable=True),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("price_centimes", sa.Integer(), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_lab_test"),
        sa.ForeignKeyConstraint(
            ["price_list_id"],
            ["price_list.id"],
            name="fk_lab_test_price_list_id_price_list",
            ondelete="CASCADE",
        ),
        sa.CheckConstraint("price_centimes >= 0", name="ck_lab_test_price_non_negative"),
    )
    op.create_index("ix_lab_test_price_list_id", "lab_test", ["price_list_id"])

    op.create_table(
        "test_mapping",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("canonical_name", sa.String(length=300), nullable=False),
        sa.Column("normalized_name", sa.String(length=300), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_by_id", sa.String(length=64), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_test_mapping"),
        sa.UniqueConstraint("normalized_name", name="uq_test_mapping_normalized_name"),
    )

    op.create_table(
        "test_mapping_entry",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("test_mapping_id", sa.String(length=36), nullable=False),
        sa.Column("laboratory_id", sa.String(length=36), nullable=False),
        sa.Column("lab_test_id", sa.String(length=36), nullable=False),
        sa.Column("local_test_name", sa.String(length=300), nullable=False),
        sa.Column("price_centimes", sa.Integer(), nullable=False),
        sa.Column(
            "match_type", sa.String(length=16), nullable=False, server_default=sa.text("'MANUAL'")
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_test_mapping_entry"),
        sa.ForeignKeyConstraint(
            ["test_mapping_id"],
            ["test_mapping.id"],
            name="fk_test_mapping_entry_test_mapping_id_test_mapping",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["laboratory_id"],
            ["laboratory.id"],
            name="fk_test_mapping_entry_laboratory_id_laboratory",
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["lab_test_id"],
            ["lab_test.id"],
            name="fk_test_mapping_entry_lab_test_id_lab_test",
            ondelete="RESTRICT",
        ),
        sa.UniqueConstraint(
            "test_mapping_id", "laboratory_id", name="uq_test_mapping_entry_lab"
        ),
        sa.CheckConstraint(
            "match_type IN ('MANUAL', 'EXACT', 'FUZZY')",
            name="ck_test_mapping_entry_match_type_check",
        ),
    )
    op.create_index(
        "ix_test_mapping_entry_laboratory_id", "test_mapping_entry", ["laboratory_id"]
    )
    op.create_index("ix_test_mapping_entry_lab_test_id", "test_mapping_entry", ["lab_test_id"])

    op.create_table(
        "bundle_deal",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("discount_kind", sa.String(length=16), nullable=False),
        sa.Column("discount_percent", sa.Numeric(5, 2), nullable=True),
        sa.Column("discount_amount_centimes", sa.Integer(), nullable=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_bundle_deal"),
        sa.CheckConstraint(
            "discount_kind IN ('percentage', 'fixed')",
            name="ck_bundle_deal_discount_kind_check",
        ),
        sa.CheckConstraint(
            "(discount_kind = 'percentage' AND discount_percent > 0 AND discount_percent <= 100)"
            " OR (discount_kind = 'fixed' AND discount_amount_centimes > 0)",
            name="ck_bundle_deal_discount_value_check",
        ),
    )
    op.create_index(
        "ix_bundle_deal_active_window", "bundle_deal", ["is_active", "starts_at", "ends_at"]
    )

    op.create_table(
        "bundle_deal_item",
        sa.Column("bundle_deal_id", sa.String(length=36), nullable=False),
        sa.Column("test_mapping_id", sa.String(length=36), nullable=False),
        sa.PrimaryKeyConstraint("bundle_deal_id", "test_mapping_id", name="pk_bundle_deal_item"),
        sa.ForeignKeyConstraint(
            ["bundle_deal_id"],
            ["bundle_deal.id"],
            name="fk_bundle_deal_item_bundle_deal_id_bundle_deal",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["test_mapping_id"],
            ["test_mapping.id"],
            name="fk_bundle_deal_item_test_mapping_id_test_mapping",
            ondelete="RESTRICT",
        ),
    )
    op.create_index(
        "ix_bundle_deal_item_test_mapping_id", "bundle_deal_item", ["test_mapping_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_bundle_deal_item_test_mapping_id", table_name="bundle_deal_item")
    op.drop_table("bundle_deal_item")
    op.drop_index("ix_bundle_deal_active_window", table_name="bundle_deal")
    op.drop_table("bundle_deal")
    op.drop_index("ix_test_mapping_entry_lab_test_id", table_name="test_mapping_entry")
    op.drop_index("ix_test_mapping_entry_laboratory_id", table_name="test_mapping_entry")
    op.drop_table("test_mapping_entry")
    op.drop_table("test_mapping")
    op.drop_index("ix_lab_test_price_list_id", table_name="lab_test")
    op.drop_table("lab_test")
    op.drop_index("uq_price_list_one_active", table_name="price_list")
    op.drop_table("price_list")
    op.drop_table("laboratory")
