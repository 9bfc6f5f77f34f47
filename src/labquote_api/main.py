from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from labquote_api.api.errors import register_exception_handlers
from labquote_api.api.router import api_router
from labquote_api.core.logging import configure_logging
from labquote_api.core.settings import get_settings
from labquote_api.middleware.request_id import RequestIdMiddleware
from labquote_api.services.lifecycle import LifecycleManager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    lifecycle = LifecycleManager()
    await lifecycle.startup()
    try:
        yield
    finally:
        await lifecycle.shutdown()


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)
    app = FastAPI(title="Labquote API", version="0.1.0", lifespan=lifespan)

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    app.add_middleware(RequestIdMiddleware)

    register_exception_handlers(app)
    app.include_router(api_router)
    return app


app = create_app()
