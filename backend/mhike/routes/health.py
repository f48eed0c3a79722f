"""
M-Hike API: Health Check Route
================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Pings the database with SELECT 1 and reports uptime and version.
Who:   Called by container health checks and uptime monitors.

Status levels:
    - healthy:   database reachable (HTTP 200)
    - unhealthy: database unreachable (HTTP 503, stop routing traffic)
"""

import logging
import time

from fastapi import APIRouter, Depends, Response

from mhike import __version__
from mhike.database import Database, get_database
from mhike.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Health"])

# Initialized once when the module loads
_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    responses={503: {"description": "Database unreachable", "model": HealthResponse}},
)
async def health_check(
    response: Response,
    database: Database = Depends(get_database),
) -> HealthResponse:
    connected = await database.ping()
    if not connected:
        response.status_code = 503
        logger.warning("Health check: database unreachable")

    return HealthResponse(
        status="healthy" if connected else "unhealthy",
        version=__version__,
        database="connected" if connected else "disconnected",
        uptime_seconds=round(time.time() - _start_time, 2),
    )
