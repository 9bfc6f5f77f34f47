from __future__ import annotations

import pytest
from sqlalchemy import inspect


@pytest.mark.integration
async def test_migrations_apply_cleanly(pg_session, labquote_schema: str) -> None:
    def _describe(connection):
        inspector = inspect(connection)
        tables = set(inspector.get_table_names(schema=labquote_schema))
        indexes = {
            index["name"]
            for index in inspector.get_indexes("price_list", schema=labquote_schema)
        }
        return tables, indexes

    connection = await pg_session.connection()
    tables, indexes = await connection.run_sync(_describe)

    assert {
        "laboratory",
        "price_list",
        "lab_test",
        "test_mapping",
        "test_mapping_entry",
        "bundle_deal",
        "bundle_deal_item",
    } <= tables
    assert "uq_price_list_one_active" in indexes
