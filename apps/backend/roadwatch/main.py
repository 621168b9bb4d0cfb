"""
Roadwatch console API — Application entry point.

Bootstraps FastAPI with rate limiting and CORS, registers the route
groups and keeps one predictions view (map included) per console
session. Every session's map is released on shutdown.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from roadwatch.core.config import settings
from roadwatch.core.rate_limit import limiter
from roadwatch.routes.dashboard import router as dashboard_router
from roadwatch.routes.deps import build_view
from roadwatch.routes.health import VERSION
from roadwatch.routes.health import router as health_router
from roadwatch.routes.predictions import router as predictions_router
from roadwatch.services.sessions import ViewRegistry

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
    Code before `yield` runs on startup; code after runs on shutdown.

    Views are created per session on first request and start on the
    predictions tab, so no map exists until an admin opens the
    incidents tab.
    """
    logger.info("Starting Roadwatch console API (env: %s)", settings.environment)
    app.state.views = ViewRegistry(build_view)
    yield
    logger.info("Shutting down Roadwatch console API")
    app.state.views.unmount_all()


# ─── App ───────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="Roadwatch console API",
    description=(
        "Incident map, predictions and peak-time analytics for the road "
        "incident admin console. Predictions are statistical estimates."
    ),
    version=VERSION,
    lifespan=lifespan,
    # Disable docs in production to reduce attack surface
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
)


# ─── Rate limiting ─────────────────────────────────────────────────────────────
# Attach the limiter to app state so slowapi can find it.
# Routes opt-in with @limiter.limit("N/minute") + request: Request parameter.
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ─── Middleware ─────────────────────────────────────────────────────────────────
# CORS: allow the admin console front-end to call the API.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Routes ────────────────────────────────────────────────────────────────────
app.include_router(health_router, prefix="/health", tags=["health"])
app.include_router(predictions_router)
app.include_router(dashboard_router)


@app.get("/", tags=["root"])
async def root():
    """API root — basic metadata."""
    return {
        "name": "Roadwatch console API",
        "version": VERSION,
        "status": "running",
        "environment": settings.environment,
        "docs": "/docs",
    }
