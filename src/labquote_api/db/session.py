"""Engine and session lifecycle for the catalog database.

Production runs on PostgreSQL through asyncpg; the test suite and local
development use SQLite through aiosqlite. Plain driver URLs are rewritten to
their async variants so the same ``DATABASE_URL`` works for alembic too.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from labquote_api.core.settings import Settings, get_settings

SNAPSHOT_ISOLATION_LEVEL = "REPEATABLE READ"

_ASYNC_DRIVERS = {
    "postgresql://": "postgresql+asyncpg://",
    "postgresql+psycopg2://": "postgresql+asyncpg://",
    "sqlite://": "sqlite+aiosqlite://",
}

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _to_async_url(url: str) -> str:
    if "+asyncpg" in url or "+aiosqlite" in url:
        return url
    for prefix, replacement in _ASYNC_DRIVERS.items():
        if url.startswith(prefix):
            return replacement + url[len(prefix) :]
    return url


def _engine_options(settings: Settings, async_url: str) -> dict[str, Any]:
    options: dict[str, Any] = {"pool_pre_ping": True, "connect_args": {}}
    if not async_url.startswith("postgresql"):
        return options

    options.update(
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_pool_max_overflow,
        pool_recycle=settings.db_pool_recycle,
        pool_timeout=settings.db_pool_timeout,
    )
    if settings.db_schema:
        options["connect_args"] = {"server_settings": {"search_path": settings.db_schema}}
    return options


def init_engine() -> AsyncEngine:
    global _engine, _session_factory
    if _engine is not None:
        return _engine

    settings = get_settings()
    async_url = _to_async_url(settings.database_url)
    _engine = create_async_engine(async_url, **_engine_options(settings, async_url))
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _engine


async def dispose_engine() -> None:
    global _engine, _session_factory
    engine, _engine, _session_factory = _engine, None, None
    if engine is not None:
        await engine.dispose()


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    """Yield a session that commits on success and rolls back on any error."""
    if _session_factory is None:
        init_engine()
    assert _session_factory is not None
    async with _session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def begin_snapshot(session: AsyncSession) -> None:
    """Pin the session's transaction to one consistent view of the catalog.

    PostgreSQL gets ``REPEATABLE READ`` when no transaction is open yet; an
    already-open transaction is reused as is. SQLite transactions are
    already serializable.
    """
    bind = session.get_bind()
    if bind.dialect.name == "postgresql" and not session.in_transaction():
        await session.connection(
            execution_options={"isolation_level": SNAPSHOT_ISOLATION_LEVEL}
        )
    else:
        await session.connection()


__all__ = ["begin_snapshot", "dispose_engine", "get_session", "init_engine"]
