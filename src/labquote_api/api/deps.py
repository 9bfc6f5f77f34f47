from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from labquote_api.core.settings import Settings, get_settings
from labquote_api.db.session import get_session

USER_ID_HEADER = "X-User-Id"


async def get_db_session() -> AsyncIterator[AsyncSession]:
    """Yield a database session for request handlers.

    Uses the get_session context manager internally to handle
    commit/rollback/close lifecycle.
    """
    async with get_session() as session:
        yield session


SessionDep = Annotated[AsyncSession, Depends(get_db_session)]
SettingsDep = Annotated[Settings, Depends(get_settings)]


async def get_actor_id(
    user_id: Annotated[str | None, Header(alias=USER_ID_HEADER)] = None,
) -> str | None:
    if user_id is None:
        return None
    return user_id.strip() or None


ActorIdDep = Annotated[str | None, Depends(get_actor_id)]


__all__ = [
    "USER_ID_HEADER",
    "ActorIdDep",
    "SessionDep",
    "SettingsDep",
    "get_actor_id",
    "get_db_session",
]
