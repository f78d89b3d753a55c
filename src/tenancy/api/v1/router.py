"""V1 API router -- aggregates the v1 endpoint routers.

The tenant config router is mounted separately in create_app() because its
prefix is configurable.
"""

from __future__ import annotations

from fastapi import APIRouter

from src.tenancy.api.v1 import health, tenants

router = APIRouter()

router.include_router(health.router)
router.include_router(tenants.router)
