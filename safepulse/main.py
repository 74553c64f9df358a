"""
SafePulse API — Application entry point.

Bootstraps FastAPI, wires up middleware, registers route groups,
and manages the MongoDB connection and the metrics refresh loop.

Extension points:
  - Add new route groups with app.include_router() below
  - Add new middleware in the middleware block
  - Change startup behaviour in the lifespan context manager
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from safepulse import __version__
from safepulse.core import database
from safepulse.core.config import settings
from safepulse.core.errors import MetricsUnavailableError, StoreUnavailableError
from safepulse.core.rate_limit import limiter
from safepulse.routes.admin import router as admin_router
from safepulse.routes.analytics import router as analytics_router
from safepulse.routes.dashboard import router as dashboard_router
from safepulse.routes.health import router as health_router
from safepulse.services.container import build_services

# ─── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ─── Lifespan ──────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage startup and shutdown lifecycle.

    Startup: connect MongoDB (degraded mode if unreachable), build the
    services around the database handle, start the refresh loop.
    Shutdown: stop the loop first (cancelling any tick in progress), then
    close MongoDB.
    """
    logger.info("Starting SafePulse API (env: %s)", settings.environment)
    await database.connect_to_mongo()
    services = build_services(database.get_db(), settings)
    app.state.services = services
    services.refresh_loop.start()
    yield
    logger.info("Shutting down SafePulse API")
    await services.refresh_loop.stop()
    await database.close_mongo_connection()


# ─── App ───────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="SafePulse API",
    description=(
        "Community safety analytics: live dashboard metrics, incident trends, "
        "hotspots and area safety scores."
    ),
    version=__version__,
    lifespan=lifespan,
    # Disable docs in production to reduce attack surface
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
)


# ─── Rate limiting ─────────────────────────────────────────────────────────────
# Routes opt-in with @limiter.limit(...) + request: Request parameter.
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# ─── Service errors ────────────────────────────────────────────────────────────
# Only the generic message reaches the client; the cause is logged by the service.
async def _store_unavailable_handler(request: Request, exc: StoreUnavailableError):
    return JSONResponse(status_code=503, content={"detail": str(exc)})


async def _metrics_unavailable_handler(request: Request, exc: MetricsUnavailableError):
    return JSONResponse(status_code=500, content={"detail": str(exc)})


app.add_exception_handler(StoreUnavailableError, _store_unavailable_handler)
app.add_exception_handler(MetricsUnavailableError, _metrics_unavailable_handler)

# ─── Middleware ─────────────────────────────────────────────────────────────────
# CORS: allow the dashboard frontend to call the API.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Routes ────────────────────────────────────────────────────────────────────
app.include_router(health_router, prefix="/health", tags=["health"])
app.include_router(dashboard_router)
app.include_router(analytics_router)
app.include_router(admin_router)


@app.get("/", tags=["root"])
async def root():
    """API root — basic metadata."""
    return {
        "name": "SafePulse API",
        "version": __version__,
        "status": "running",
        "environment": settings.environment,
        "docs": "/docs",
    }
