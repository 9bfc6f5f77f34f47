from __future__ import annotations

from fastapi import APIRouter

from labquote_api.api import catalog, comparison, deals, health, laboratories, mappings

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(catalog.router, prefix="/catalog", tags=["catalog"])
api_router.include_router(comparison.router, tags=["comparison"])
api_router.include_router(mappings.router, prefix="/mappings", tags=["mappings"])
api_router.include_router(deals.router, prefix="/deals", tags=["deals"])
api_router.include_router(laboratories.router, prefix="/laboratories", tags=["laboratories"])
api_router.include_router(laboratories.lab_tests_router, tags=["laboratories"])
