from __future__ import annotations

import logging

from labquote_api.core.cache import clear_all_caches
from labquote_api.core.settings import get_settings
from labquote_api.db.session import dispose_engine, init_engine

logger = logging.getLogger(__name__)


class LifecycleManager:
    async def startup(self) -> None:
        settings = get_settings()
        logger.info("Starting Labquote API (currency=%s)", settings.currency)
        init_engine()

    async def shutdown(self) -> None:
        logger.info("Shutting down Labquote API")
        clear_all_caches()
        await dispose_engine()
