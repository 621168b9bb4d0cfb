"""
Health check endpoint.

Used by:
  - Docker HEALTHCHECK instruction
  - Load balancers / orchestrators
  - The admin console to check API connectivity

Returns status + whether any console session has loaded the map library,
so callers can tell "API down" apart from "API up but the map assets never arrived".
"""

import logging

from fastapi import APIRouter
from pydantic import BaseModel

from roadwatch.core.config import settings
from roadwatch.routes.deps import ViewsDep

logger = logging.getLogger(__name__)
router = APIRouter()

VERSION = "0.1.0"


class HealthResponse(BaseModel):
    status: str  # Always "ok" if the API process is alive
    version: str
    map_library: str  # "loaded" | "not_loaded"
    environment: str


@router.get("", response_model=HealthResponse, summary="API health check")
async def health_check(views: ViewsDep) -> HealthResponse:
    """
    Liveness of the API. Stays 200 while the map library is not loaded:
    it is only fetched when an admin first opens the incidents tab.
    """
    return HealthResponse(
        status="ok",
        version=VERSION,
        map_library="loaded" if views.map_library_loaded() else "not_loaded",
        environment=settings.environment,
    )
