#!/usr/bin/env python3
"""
render_incident_map.py — Fetch incident reports and write them as a standalone map.

Usage (from apps/backend/):
    python scripts/render_incident_map.py                         # all types, Paris
    python scripts/render_incident_map.py --type ACCIDENT -o accidents.html
    python scripts/render_incident_map.py --lat 45.764 --lon 4.8357 --satellite

Prerequisites:
    • API_TOKEN env var set (or .env file present), or pass --token
    • network access to the reporting API and the Leaflet CDN

The page is built with the same components as the console's incidents tab
(MapSurface + MarkerReconciler), so markers, colours and the bounds fit
are identical.
"""

import argparse
import asyncio
import sys
from pathlib import Path

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv

load_dotenv(ROOT / ".env")

from roadwatch.core.config import settings  # noqa: E402
from roadwatch.core.document import Document  # noqa: E402
from roadwatch.models.api import ApiFailure  # noqa: E402
from roadwatch.models.incident import DEFAULT_LATITUDE, DEFAULT_LONGITUDE, IncidentType  # noqa: E402
from roadwatch.services.map_loader import MapResourceLoader, ResourceLoadError  # noqa: E402
from roadwatch.services.map_surface import DEFAULT_ZOOM, INCIDENT_MAP_ANCHOR, BaseStyle, MapSurface  # noqa: E402
from roadwatch.services.marker_reconciler import MarkerReconciler  # noqa: E402
from roadwatch.services.report_client import ReportClient  # noqa: E402


async def render(args: argparse.Namespace) -> int:
    client = ReportClient()
    incident_type = IncidentType(args.type) if args.type else None
    result = await client.get_incidents(args.token, incident_type, args.limit)
    if isinstance(result, ApiFailure):
        print(f"ERROR: {result.message}")
        return 1

    document = Document()
    document.mount_anchor(INCIDENT_MAP_ANCHOR)
    surface = MapSurface(document, MapResourceLoader(document))
    try:
        await surface.load()
    except ResourceLoadError as exc:
        print(f"ERROR: {exc}")
        return 1

    if args.satellite:
        surface.base_style = BaseStyle.SATELLITE
    handle = surface.acquire(INCIDENT_MAP_ANCHOR, (args.lat, args.lon), args.zoom)
    if handle is None:
        print("ERROR: the map could not be created")
        return 1

    reconciler = MarkerReconciler(surface, fit_delay=0)
    reconciler.sync_current_position(handle, args.lat, args.lon)
    placed = reconciler.sync_incidents(handle, result.reports)
    await reconciler.wait_settled()

    Path(args.output).write_text(handle.to_html(), encoding="utf-8")
    skipped = len(result.reports) - placed
    print(f"{placed} incidents written to {args.output} ({skipped} skipped)")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Render Roadwatch incidents to a standalone HTML map")
    parser.add_argument("--type", choices=[t.value for t in IncidentType], help="Only this incident type")
    parser.add_argument("--lat", type=float, default=DEFAULT_LATITUDE, help="Current position latitude")
    parser.add_argument("--lon", type=float, default=DEFAULT_LONGITUDE, help="Current position longitude")
    parser.add_argument("--zoom", type=int, default=DEFAULT_ZOOM)
    parser.add_argument("--limit", type=int, default=settings.incident_fetch_limit)
    parser.add_argument("--satellite", action="store_true", help="Use satellite imagery tiles")
    parser.add_argument("--token", default=settings.api_token, help="Bearer token for the reporting API")
    parser.add_argument("-o", "--output", default="incident_map.html")
    args = parser.parse_args()

    print(f"Roadwatch incident map  (api: {settings.api_base_url})")
    sys.exit(asyncio.run(render(args)))
