from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import AsyncIterator, Iterator
from dataclasses import dataclass
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from labquote_api.core.settings import get_settings
from labquote_api.db import models
from labquote_api.db import session as session_module
from labquote_api.db.base import metadata
from labquote_api.db.session import _to_async_url
from labquote_api.seed import SeedLoader, SeedReport, load_seed

PROJECT_ROOT = Path(__file__).resolve().parents[2]


async def _drop_schema(url: str, schema: str) -> None:
    engine = create_async_engine(_to_async_url(url))
    try:
        async with engine.begin() as connection:
            quoted = connection.dialect.identifier_preparer.quote(schema)
            await connection.execute(text(f"DROP SCHEMA IF EXISTS {quoted} CASCADE"))
    finally:
        await engine.dispose()


@pytest.fixture(scope="session")
def integration_database_url() -> str:
    url = os.getenv("INTEGRATION_DATABASE_URL")
    if not url:
        pytest.skip("INTEGRATION_DATABASE_URL is not set")
    return url


@pytest.fixture(scope="session")
def integration_schema() -> str:
    schema = os.getenv("INTEGRATION_DB_SCHEMA") or f"labquote_test_{uuid.uuid4().hex[:8]}"
    if schema.lower() == "public":
        raise RuntimeError("Integration schema must not be public")
    return schema


@pytest.fixture(scope="session")
def labquote_schema(integration_database_url: str, integration_schema: str) -> Iterator[str]:
    """Point the application at a scratch schema and migrate it to head."""
    with pytest.MonkeyPatch.context() as patch:
        patch.setenv("DATABASE_URL", integration_database_url)
        patch.setenv("DB_SCHEMA", integration_schema)
        patch.setattr(session_module, "_engine", None)
        patch.setattr(session_module, "_session_factory", None)
        get_settings.cache_clear()

        asyncio.run(_drop_schema(integration_database_url, integration_schema))
        config = Config(str(PROJECT_ROOT / "alembic.ini"))
        config.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
        command.upgrade(config, "head")

        yield integration_schema

        asyncio.run(_drop_schema(integration_database_url, integration_schema))
    get_settings.cache_clear()


@pytest.fixture
async def pg_session(
    labquote_schema: str, integration_database_url: str
) -> AsyncIterator[AsyncSession]:
    """A session on the migrated schema, with every catalog table emptied first."""
    engine = create_async_engine(
        _to_async_url(integration_database_url),
        connect_args={"server_settings": {"search_path": labquote_schema}},
    )
    async with engine.begin() as connection:
        preparer = connection.dialect.identifier_preparer
        tables = ", ".join(preparer.format_table(table) for table in metadata.sorted_tables)
        await connection.execute(text(f"TRUNCATE {tables} CASCADE"))

    session_maker = async_sessionmaker(bind=engine, expire_on_commit=False)
    async with session_maker() as session:
        yield session
        await session.rollback()
    await engine.dispose()


@dataclass
class SeededCatalog:
    report: SeedReport
    laboratory_ids: dict[str, str]
    mapping_ids: dict[str, str]


@pytest.fixture
async def seeded_catalog(pg_session: AsyncSession) -> SeededCatalog:
    """The bundled seed document applied to an empty schema, keyed by lab code and name."""
    report = await SeedLoader(pg_session, load_seed()).apply()
    await pg_session.commit()

    laboratories = await pg_session.execute(
        select(models.Laboratory.code, models.Laboratory.id)
    )
    mappings = await pg_session.execute(
        select(models.TestMapping.canonical_name, models.TestMapping.id)
    )
    return SeededCatalog(
        report=report,
        laboratory_ids=dict(laboratories.tuples().all()),
        mapping_ids=dict(mappings.tuples().all()),
    )
