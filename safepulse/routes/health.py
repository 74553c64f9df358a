"""
Health check endpoint.

Used by:
  - Docker HEALTHCHECK instruction
  - Load balancers / orchestrators
  - The dashboard frontend to check API connectivity

Returns status + DB connectivity + refresh loop state so callers can
distinguish between "API down", "API up but DB unreachable" and "API up
but no live dashboard pushes".
"""

import logging

from fastapi import APIRouter, Request
from pydantic import BaseModel

from safepulse import __version__
from safepulse.core import database as db_module

logger = logging.getLogger(__name__)
router = APIRouter()


class HealthResponse(BaseModel):
    status: str  # Always "ok" if the API process is alive
    version: str
    database: str  # "connected" | "disconnected"
    environment: str
    refresh_loop: str  # "running" | "stopped"


@router.get("", response_model=HealthResponse, summary="API health check")
async def health_check(request: Request) -> HealthResponse:
    """
    Returns the liveness status of the API and its database connection.

    The API is considered healthy (HTTP 200) even when the database is
    disconnected; metric endpoints answer 503 in that state instead.
    """
    from safepulse.core.config import settings

    db_status = "disconnected"
    try:
        # Access via module reference so tests can patch db_module.db_client
        if db_module.db_client.client is not None:
            await db_module.db_client.client.admin.command("ping")
            db_status = "connected"
    except Exception as exc:
        logger.warning("DB ping failed: %s", exc)

    services = getattr(request.app.state, "services", None)
    loop_running = services is not None and services.refresh_loop.running

    return HealthResponse(
        status="ok",
        version=__version__,
        database=db_status,
        environment=settings.environment,
        refresh_loop="running" if loop_running else "stopped",
    )
