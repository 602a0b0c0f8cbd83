"""API route aggregation.

All routers registered here get mounted in main.py under /api/v1.

Learn: Access rules are not attached here. Every route names its own
AccessPolicy through enforce(...), so reading a handler tells you
whether it is public, authenticated, or role-gated.
"""

from fastapi import APIRouter

from tenantkit.api.auth import router as auth_router
from tenantkit.api.health import router as health_router
from tenantkit.api.protected import router as protected_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])
api_router.include_router(protected_router, tags=["protected"])
