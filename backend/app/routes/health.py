"""
Writegy Backend - Health Check Route
======================================

What:  Health endpoint for container health checks and load balancers.
How:   SELECT 1 against the database and a quota-free look at the
       completion client (credentials present, circuit not open).

Status levels:
    healthy    all dependencies operational
    degraded   AI endpoint unavailable; grammar checks still answer
               through the heuristic checker
    unhealthy  database unreachable (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Response
from sqlalchemy import text

from app import __version__
from app.config import settings
from app.database import engine
from app.schemas.common import HealthResponse
from app.services.completion_client import CircuitBreaker, completion_client

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(response: Response) -> HealthResponse:
    db_status = "connected"
    llm_status = "available"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    if completion_client.circuit_breaker.state == CircuitBreaker.OPEN:
        llm_status = "circuit_open"
    elif not await completion_client.health_check():
        llm_status = "unconfigured"
    if llm_status != "available" and overall == "healthy":
        overall = "degraded"

    if overall == "unhealthy":
        response.status_code = 503

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        llm=llm_status,
        storage_backend=settings.storage_backend,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
