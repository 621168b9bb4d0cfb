"""
predictions.py — Routes of the predictions & analytics view.

Routes (all under /api/v1/predictions):
  GET  /state           — full view snapshot
  POST /tab             — switch tab (incidents | predictions | peak_times)
  POST /location        — set the query centre from numeric input
  POST /radius          — set the query radius (metres)
  POST /type            — set / clear the incident type filter
  POST /click           — click forwarded from the rendered map
  POST /search          — address search (Nominatim, 30/minute per IP)
  POST /locate          — device geolocation
  POST /zoom/in         — zoom the live map in
  POST /zoom/out        — zoom the live map out (never below 1)
  POST /style           — toggle standard / satellite tiles
  POST /incidents       — fetch incidents and refresh the map markers
  POST /predictions     — fetch per-type probabilities
  POST /peak-times      — fetch peak hours / days
  POST /banner/dismiss  — hide the map-library error banner
  GET  /map             — the live map as a standalone Leaflet page
  GET  /page            — the host page shell (anchors + resources)

Each browser session (cookie `roadwatch_session`) owns its own view and
map. The caller's bearer token is forwarded to the reporting API. Remote
failures are kept in the view state (shown as the page-level error) and
reported as 401 (no session) or 502 (remote API problem).

TESTING
───────
  pytest apps/backend/tests/test_predictions_routes.py -v

  curl http://localhost:8000/api/v1/predictions/state
  curl -X POST http://localhost:8000/api/v1/predictions/tab \
       -H 'Content-Type: application/json' -d '{"tab": "incidents"}'
"""

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import HTMLResponse

from roadwatch.core.rate_limit import limiter
from roadwatch.models.api import ApiFailure, FailureKind
from roadwatch.models.view import (
    AddressSearchRequest,
    CoordinatesRequest,
    LocationResponse,
    RadiusRequest,
    TabRequest,
    TypeRequest,
    ViewSnapshot,
)
from roadwatch.routes.deps import TokenDep, ViewDep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/predictions", tags=["predictions"])


def _raise_for_failure(result: object) -> None:
    if not isinstance(result, ApiFailure):
        return
    status = 401 if result.kind is FailureKind.SESSION_EXPIRED else 502
    raise HTTPException(status_code=status, detail=result.message)


# ── State & inputs ────────────────────────────────────────────────────────────

@router.get("/state", response_model=ViewSnapshot)
async def get_state(view: ViewDep) -> ViewSnapshot:
    return view.snapshot()


@router.post("/tab", response_model=ViewSnapshot)
async def set_tab(payload: TabRequest, view: ViewDep, token: TokenDep) -> ViewSnapshot:
    """
    Switch tab. Opening the incidents tab loads the map library, creates
    the map and (first time only) fetches the incidents; leaving it tears
    the map down.
    """
    await view.activate_tab(payload.tab, token)
    return view.snapshot()


@router.post("/location", response_model=ViewSnapshot)
async def set_location(payload: CoordinatesRequest, view: ViewDep) -> ViewSnapshot:
    view.set_location(payload.latitude, payload.longitude)
    return view.snapshot()


@router.post("/radius", response_model=ViewSnapshot)
async def set_radius(payload: RadiusRequest, view: ViewDep) -> ViewSnapshot:
    view.set_radius(payload.radius)
    return view.snapshot()


@router.post("/type", response_model=ViewSnapshot)
async def set_type(payload: TypeRequest, view: ViewDep) -> ViewSnapshot:
    view.set_incident_type(payload.incident_type)
    return view.snapshot()


@router.post("/click", response_model=ViewSnapshot, name="map_click")
async def map_click(payload: CoordinatesRequest, view: ViewDep) -> ViewSnapshot:
    view.surface.handle_click(payload.latitude, payload.longitude)
    return view.snapshot()


@router.post("/search", response_model=LocationResponse)
@limiter.limit("30/minute")
async def search_address(request: Request, payload: AddressSearchRequest, view: ViewDep) -> LocationResponse:
    result = await view.search_address(payload.query)
    return LocationResponse(result=result, state=view.snapshot())


@router.post("/locate", response_model=LocationResponse)
async def locate(view: ViewDep) -> LocationResponse:
    result = await view.detect_location()
    return LocationResponse(result=result, state=view.snapshot())


@router.post("/zoom/in", response_model=ViewSnapshot)
async def zoom_in(view: ViewDep) -> ViewSnapshot:
    view.zoom_in()
    return view.snapshot()


@router.post("/zoom/out", response_model=ViewSnapshot)
async def zoom_out(view: ViewDep) -> ViewSnapshot:
    view.zoom_out()
    return view.snapshot()


@router.post("/style", response_model=ViewSnapshot)
async def toggle_style(view: ViewDep) -> ViewSnapshot:
    view.toggle_map_style()
    return view.snapshot()


@router.post("/banner/dismiss", response_model=ViewSnapshot)
async def dismiss_banner(view: ViewDep) -> ViewSnapshot:
    view.dismiss_resource_error()
    return view.snapshot()


# ── Remote data ───────────────────────────────────────────────────────────────

@router.post("/incidents", response_model=ViewSnapshot)
async def fetch_incidents(view: ViewDep, token: TokenDep) -> ViewSnapshot:
    _raise_for_failure(await view.fetch_incidents(token))
    return view.snapshot()


@router.post("/predictions", response_model=ViewSnapshot)
async def predict_incidents(view: ViewDep, token: TokenDep) -> ViewSnapshot:
    _raise_for_failure(await view.predict_incidents(token))
    return view.snapshot()


@router.post("/peak-times", response_model=ViewSnapshot)
async def fetch_peak_times(view: ViewDep, token: TokenDep) -> ViewSnapshot:
    _raise_for_failure(await view.fetch_peak_times(token))
    return view.snapshot()


# ── HTML ──────────────────────────────────────────────────────────────────────

@router.get("/map", response_class=HTMLResponse)
async def render_map(request: Request, view: ViewDep) -> str:
    page = view.render_map(click_url=str(request.url_for("map_click")))
    if page is None:
        raise HTTPException(status_code=404, detail="No live map: open the incidents tab first")
    return page


@router.get("/page", response_class=HTMLResponse)
async def render_page(view: ViewDep) -> str:
    return view.render_page()
