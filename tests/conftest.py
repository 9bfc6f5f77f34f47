from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///test.db")

from collections.abc import AsyncIterator  # noqa: E402
from dataclasses import dataclass  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from labquote_api.core import metrics  # noqa: E402
from labquote_api.core.cache import clear_all_caches  # noqa: E402
from labquote_api.core.settings import Settings, get_settings  # noqa: E402
from labquote_api.db import models  # noqa: E402
from labquote_api.db.base import Base  # noqa: E402
from labquote_api.main import create_app  # noqa: E402
from labquote_api.services.catalog import CatalogService, LabTestData  # noqa: E402
from labquote_api.services.test_mappings import TestMappingRegistry  # noqa: E402


@pytest.fixture(autouse=True)
def reset_process_state() -> None:
    metrics.reset()
    clear_all_caches()


@pytest.fixture
def test_settings() -> Settings:
    """Test settings with SQLite database."""
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite+aiosqlite:///test.db",
        DB_SCHEMA=None,
        CORS_ORIGINS=["http://localhost:3000"],
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
async def db_session(test_settings: Settings) -> AsyncIterator[AsyncSession]:
    """Create a database session for testing."""
    engine = create_async_engine(test_settings.database_url)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    async with session_maker() as session:
        yield session

    await engine.dispose()

    # Clean up test database
    if os.path.exists("test.db"):
        os.remove("test.db")


@pytest.fixture
def override_get_settings(test_settings: Settings):
    def _override_get_settings() -> Settings:
        return test_settings

    return _override_get_settings


@pytest.fixture
def override_get_db_session(db_session: AsyncSession):
    """Override database session dependency for testing."""

    async def _override_get_db_session():
        yield db_session

    return _override_get_db_session


@pytest.fixture
def app(override_get_settings, override_get_db_session):
    """Create FastAPI app for testing."""
    from labquote_api.api.deps import get_db_session

    app = create_app()
    app.dependency_overrides[get_settings] = override_get_settings
    app.dependency_overrides[get_db_session] = override_get_db_session
    return app


@pytest.fixture
async def async_client(app) -> AsyncIterator[AsyncClient]:
    """Create async test client."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@dataclass
class CatalogFixture:
    lab_a: models.Laboratory
    lab_b: models.Laboratory
    tests: dict[str, models.LabTest]
    cbc: models.TestMapping
    lipid: models.TestMapping


@pytest.fixture
async def catalog(db_session: AsyncSession) -> CatalogFixture:
    """Two laboratories: A offers CBC (1000) and Lipid Panel (1500), B only CBC (900)."""
    service = CatalogService(db_session)
    lab_a = await service.create_laboratory("Lab A", "LAB-A")
    lab_b = await service.create_laboratory("Lab B", "LAB-B")

    list_a = await service.create_price_list(
        lab_a.id,
        "Tarifs A",
        [
            LabTestData(name="Hemogramme", code="CBC", price_centimes=1000),
            LabTestData(name="Bilan lipidique", code="LIP", price_centimes=1500),
        ],
        activate=True,
    )
    list_b = await service.create_price_list(
        lab_b.id,
        "Tarifs B",
        [LabTestData(name="NFS", code="NFS", price_centimes=900)],
        activate=True,
    )
    tests = {
        f"{lab.code}:{test.code}": test
        for lab, result in ((lab_a, list_a), (lab_b, list_b))
        for test in result.price_list.tests
    }

    registry = TestMappingRegistry(db_session)
    cbc = await registry.create_mapping(
        "CBC", [tests["LAB-A:CBC"].id, tests["LAB-B:NFS"].id], created_by_id="user-1"
    )
    lipid = await registry.create_mapping("Lipid Panel", [tests["LAB-A:LIP"].id])
    await db_session.commit()
    return CatalogFixture(lab_a=lab_a, lab_b=lab_b, tests=tests, cbc=cbc, lipid=lipid)
