"""
pytest configuration and shared fixtures for the Roadwatch console tests.

Key concern: tests must not touch the network (reporting API, Leaflet CDN,
Nominatim, IP geolocation). We achieve this by:
  1. Giving every component that talks HTTP an httpx.MockTransport.
  2. Building the PredictionsView from those components and serving it
     through a ViewRegistry injected with app.dependency_overrides[get_views].
  3. Zeroing the map init / fit delays so tests never sleep.
"""

import os

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

# Set env vars BEFORE importing the app so Settings picks them up correctly
os.environ.setdefault("ENVIRONMENT", "test")
os.environ["API_TOKEN"] = ""
os.environ["DISPLAY_TIMEZONE"] = "UTC"

from roadwatch.core.document import Document  # noqa: E402
from roadwatch.services.geo_resolver import GeoResolver, PositionOptions  # noqa: E402
from roadwatch.services.map_loader import MapResourceLoader  # noqa: E402
from roadwatch.services.predictions_view import PredictionsView  # noqa: E402
from roadwatch.services.report_client import ReportClient  # noqa: E402

TOKEN = "test-token"


# ── Sample data ───────────────────────────────────────────────────────────────

def make_report(id_, type_="ACCIDENT", lng=2.35, lat=48.85, count=1, upvotes=0,
                created_at="2024-03-04T08:15:00Z", **extra):
    report = {
        "_id": id_,
        "type": type_,
        "location": {"type": "Point", "coordinates": [lng, lat]},
        "count": count,
        "upvotes": upvotes,
        "createdAt": created_at,
    }
    report.update(extra)
    return report


SAMPLE_REPORTS = [
    make_report("r1", "ACCIDENT", 2.35, 48.85, count=2, upvotes=4),
    make_report("r2", "TRAFFIC_JAM", 2.36, 48.86, created_at="2024-03-04T17:40:00Z"),
    make_report("r3", "ACCIDENT", 2.30, 48.80, created_at="2024-03-05T08:05:00Z"),
]

SAMPLE_PREDICTIONS = {
    "success": True,
    "location": {"latitude": 48.8566, "longitude": 2.3522, "radius": 1000},
    "time": {"dayOfWeek": 1, "hourOfDay": 8, "date": "2024-03-04T08:00:00Z"},
    "predictions": {
        "ACCIDENT": {"probability": 42.123, "confidence": 80.456, "sampleSize": 12},
        "POLICE": {"probability": 5.0, "confidence": 30.0, "sampleSize": 2},
    },
    "metadata": {
        "totalHistoricalReports": 14,
        "dataPeriodDays": 30,
        "reportsByType": {"ACCIDENT": 12, "POLICE": 2},
    },
}

SAMPLE_PEAK_TIMES = {
    "success": True,
    "location": {"latitude": 48.8566, "longitude": 2.3522, "radius": 1000},
    "peakHours": {
        "ACCIDENT": [
            {"hour": 17, "count": 6, "percentage": 50.0},
            {"hour": 8, "count": 4, "percentage": 33.3},
            {"hour": 12, "count": 1, "percentage": 8.3},
            {"hour": 3, "count": 1, "percentage": 8.3},
        ],
    },
    "peakDays": {
        "ACCIDENT": [
            {"day": 5, "dayName": "Friday", "count": 7, "percentage": 58.3},
            {"day": 1, "dayName": "Monday", "count": 5, "percentage": 41.7},
        ],
    },
    "metadata": {"dataPeriod": "30 days", "reportType": "ACCIDENT"},
}


# ── Mock transports ───────────────────────────────────────────────────────────

def reporting_api(reports=None, predictions=None, peak_times=None, calls=None):
    """MockTransport answering the three reporting API endpoints."""
    reports = SAMPLE_REPORTS if reports is None else reports

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        path = request.url.path
        if path.endswith("/reports/all"):
            return httpx.Response(200, json={"success": True, "reports": reports})
        if path.endswith("/predictions/incidents"):
            return httpx.Response(200, json=predictions or SAMPLE_PREDICTIONS)
        if path.endswith("/predictions/peakTimes"):
            return httpx.Response(200, json=peak_times or SAMPLE_PEAK_TIMES)
        return httpx.Response(404, json={"success": False, "message": "Not found"})

    return httpx.MockTransport(handler)


def leaflet_cdn(status=200, calls=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        return httpx.Response(status, text="/* leaflet */")

    return httpx.MockTransport(handler)


def nominatim(results=None, status=200, calls=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        return httpx.Response(status, json=results if results is not None else [])

    return httpx.MockTransport(handler)


class FixedPosition:
    """PositionProvider returning a fixed fix (or raising `error`)."""

    def __init__(self, latitude=45.764, longitude=4.8357, error=None):
        self.position = (latitude, longitude)
        self.error = error
        self.calls = []

    async def get_current_position(self, options):
        self.calls.append(options)
        if self.error is not None:
            raise self.error
        return self.position


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture()
def document():
    return Document()


@pytest.fixture()
def loader(document):
    return MapResourceLoader(document, transport=leaflet_cdn())


@pytest.fixture()
def build_view():
    """
    Factory for a fully mocked PredictionsView.

    Usage:
        def test_x(build_view):
            view = build_view(reports=[...])
    """

    def _build(reports=None, api_transport=None, cdn_transport=None,
               geocoder_transport=None, provider=None):
        document = Document()
        return PredictionsView(
            client=ReportClient(
                base_url="https://api.test/api",
                transport=api_transport or reporting_api(reports),
            ),
            resolver=GeoResolver(
                provider=provider,
                options=PositionOptions(timeout=0.5),
                nominatim_url="https://geo.test/search",
                transport=geocoder_transport or nominatim(),
            ),
            document=document,
            loader=MapResourceLoader(document, transport=cdn_transport or leaflet_cdn()),
            init_delay=0,
            fit_delay=0,
        )

    return _build


@pytest.fixture()
def view(build_view):
    return build_view(provider=FixedPosition())


@pytest.fixture()
async def client(view):
    """
    HTTPX async test client wired to the FastAPI app. Every console session
    it opens is served by the `view` fixture.

    Usage:
        async def test_something(client):
            response = await client.get("/health")
            assert response.status_code == 200
    """
    from roadwatch.main import app
    from roadwatch.routes.deps import get_views
    from roadwatch.services.sessions import ViewRegistry

    views = ViewRegistry(factory=lambda: view)
    app.dependency_overrides[get_views] = lambda: views
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
