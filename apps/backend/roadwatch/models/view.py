"""
view.py — Request and response schemas for the predictions view routes.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from roadwatch.models.analytics import (
    ChartSeries,
    DayCount,
    IncidentSummary,
    PeakDay,
    PeakHour,
    PredictionRow,
    TypeShare,
)
from roadwatch.models.incident import IncidentRecord, IncidentType, LocationQuery
from roadwatch.services.geo_resolver import LocationResult


class Tab(str, Enum):
    INCIDENTS = "incidents"
    PREDICTIONS = "predictions"
    PEAK_TIMES = "peak_times"


# ── Requests ──────────────────────────────────────────────────────────────────

class TabRequest(BaseModel):
    tab: Tab


class CoordinatesRequest(BaseModel):
    """Direct numeric input, or a click forwarded from the rendered map."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class RadiusRequest(BaseModel):
    radius: int = Field(..., ge=100, le=10_000)


class TypeRequest(BaseModel):
    incident_type: Optional[IncidentType] = None   # null = all types


class AddressSearchRequest(BaseModel):
    query: str = Field(default="", max_length=500)


# ── Snapshot ──────────────────────────────────────────────────────────────────

class MapInfo(BaseModel):
    state: str
    style: str
    zoom: int
    incident_markers: int
    has_position_marker: bool


class PredictionsPanel(BaseModel):
    rows: list[PredictionRow]
    distribution: list[TypeShare]
    total_historical_reports: int
    data_period_days: int


class PeakTimesPanel(BaseModel):
    hours_chart: Optional[ChartSeries] = None
    days_chart: Optional[ChartSeries] = None
    top_hours: dict[str, list[PeakHour]]


class IncidentsPanel(BaseModel):
    summary: IncidentSummary
    peak_hours: list[PeakHour]
    peak_days: list[PeakDay]


class ViewSnapshot(BaseModel):
    """Everything the console needs to draw the predictions page."""

    active_tab: Tab
    query: LocationQuery
    map: MapInfo
    location_status: Optional[str] = None
    error: Optional[str] = None
    resource_error: Optional[str] = None   # dismissible; retry by re-opening the incidents tab
    loading: bool = False
    incidents_loading: bool = False
    incidents: Optional[IncidentsPanel] = None
    predictions: Optional[PredictionsPanel] = None
    peak_times: Optional[PeakTimesPanel] = None


class LocationResponse(BaseModel):
    """Outcome of an address search or device geolocation, plus the new state."""

    result: LocationResult
    state: ViewSnapshot


# ── Dashboard ─────────────────────────────────────────────────────────────────

class DashboardResponse(BaseModel):
    total: int
    today: int
    unique_types: int
    daily: list[DayCount]            # trailing 30 days, oldest first
    distribution: list[TypeShare]
    top_types: list[TypeShare]       # five most frequent
    recent: list[IncidentRecord]     # ten most recent
