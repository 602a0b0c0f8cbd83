"""Health and hello endpoints.

Learn: Both are public. /health reports process uptime; it does not
touch the database so it stays cheap enough for load-balancer probes.
"""

import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from tenantkit import __version__
from tenantkit.auth.dependencies import PUBLIC, enforce
from tenantkit.schemas.auth import HealthResponse, HelloResponse

router = APIRouter(dependencies=[Depends(enforce(PUBLIC))])

_started = time.monotonic()


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Report liveness, server time and seconds since startup."""
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc),
        uptime=round(time.monotonic() - _started, 3),
        version=__version__,
    )


@router.get("/hello", response_model=HelloResponse)
async def hello():
    return HelloResponse(
        message="Hello from the TenantKit backend!",
        timestamp=datetime.now(timezone.utc),
    )
