"""
App Catalog Backend — Health Check Route
=========================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Checks the database and the cron scheduler and returns an aggregate status.

Status levels:
    - healthy:   database reachable, scheduler running (or disabled)
    - degraded:  database reachable, scheduler expected but not running
    - unhealthy: database unreachable (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Depends, Request, Response, status

from catalog import __version__
from catalog.dependencies import get_app_repository, get_sync_service
from catalog.repositories.app_repository import AppRepository
from catalog.schemas.app import HealthResponse
from catalog.services.sync_service import SyncService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(
    request: Request,
    response: Response,
    repository: AppRepository = Depends(get_app_repository),
    sync: SyncService = Depends(get_sync_service),
) -> HealthResponse:
    overall = "healthy"

    db_status = "connected"
    if not await repository.ping():
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable")

    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        scheduler_status = "disabled"
    elif scheduler.running:
        scheduler_status = "running"
    else:
        scheduler_status = "stopped"
        if overall == "healthy":
            overall = "degraded"

    if overall == "unhealthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        scheduler=scheduler_status,
        active_sync_runs=len(sync.active_runs),
        uptime_seconds=round(time.time() - _start_time, 2),
    )
