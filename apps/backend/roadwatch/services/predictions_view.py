"""
predictions_view.py — Orchestrates the predictions & analytics page.

The view owns the page state (active tab, LocationQuery, zoom, banners,
last responses) and wires it to the map components:

  open incidents tab → mount anchor → MapResourceLoader.ensure_loaded()
      → init delay → MapSurface.acquire() → mark current position
      → fetch incidents (first time) → MarkerReconciler.sync_incidents()

  click / search / geolocate / numeric input → LocationQuery
      → MapSurface.recenter() + MarkerReconciler.sync_current_position()

  leave incidents tab / unmount → MapSurface.release() + unmount anchor

Responses that arrive after the admin moved on are harmless: every map
mutation goes through the surface's *current* handle, and is a no-op once
the map is gone.

One PredictionsView exists per running app (see main.py lifespan); it is
never shared between processes.
"""

import asyncio
import logging
from typing import Optional

from roadwatch.core.config import settings
from roadwatch.core.document import Document
from roadwatch.models.api import (
    ApiFailure,
    IncidentsResult,
    PeakTimesPayload,
    PeakTimesResult,
    PredictionsPayload,
    PredictionsResult,
)
from roadwatch.models.incident import IncidentRecord, IncidentType, LocationQuery
from roadwatch.models.view import (
    IncidentsPanel,
    MapInfo,
    PeakTimesPanel,
    PredictionsPanel,
    Tab,
    ViewSnapshot,
)
from roadwatch.services import analytics
from roadwatch.services.geo_resolver import GeoResolver, LocationResult, LocationStatus
from roadwatch.services.map_loader import MapResourceLoader, ResourceLoadError
from roadwatch.services.map_surface import (
    DEFAULT_ZOOM,
    INCIDENT_MAP_ANCHOR,
    BaseStyle,
    MapHandle,
    MapSurface,
    OverlayKind,
)
from roadwatch.services.marker_reconciler import MarkerReconciler
from roadwatch.services.report_client import ReportClient

logger = logging.getLogger(__name__)

MIN_ZOOM = 1
MAP_PATH = "/api/v1/predictions/map"


class PredictionsView:
    def __init__(
        self,
        client: ReportClient,
        resolver: GeoResolver,
        document: Optional[Document] = None,
        loader: Optional[MapResourceLoader] = None,
        init_delay: Optional[float] = None,
        fit_delay: Optional[float] = None,
    ) -> None:
        self.client = client
        self.resolver = resolver
        self.document = document or Document()
        self.loader = loader or MapResourceLoader(self.document)
        self.surface = MapSurface(self.document, self.loader, on_click=self.handle_map_click)
        self.reconciler = MarkerReconciler(self.surface, fit_delay=fit_delay)
        self.init_delay = init_delay if init_delay is not None else settings.map_init_delay_seconds

        self.active_tab = Tab.PREDICTIONS
        self.query = LocationQuery()
        self.zoom = DEFAULT_ZOOM

        self.location_status: Optional[str] = None
        self.error: Optional[str] = None
        self.resource_error: Optional[str] = None
        self.loading = False
        self.incidents_loading = False

        self.incidents: list[IncidentRecord] = []
        self.predictions: Optional[PredictionsPayload] = None
        self.peak_times: Optional[PeakTimesPayload] = None

    # ── Tabs & map lifecycle ──────────────────────────────────────────────────

    async def activate_tab(self, tab: Tab, token: Optional[str]) -> None:
        previous = self.active_tab
        self.active_tab = tab
        if previous is Tab.INCIDENTS and tab is not Tab.INCIDENTS:
            self._hide_map()
        if tab is Tab.INCIDENTS:
            await self._show_map(token)

    async def _show_map(self, token: Optional[str]) -> None:
        self.document.mount_anchor(INCIDENT_MAP_ANCHOR, src=MAP_PATH)

        try:
            await self.surface.load()
        except ResourceLoadError as exc:
            self.resource_error = str(exc)
            return
        self.resource_error = None

        # Let the page layout settle; the tab may be left meanwhile.
        await asyncio.sleep(self.init_delay)
        handle = self.surface.acquire(
            INCIDENT_MAP_ANCHOR, (self.query.latitude, self.query.longitude), self.zoom
        )
        if handle is None:
            return

        self.reconciler.sync_current_position(handle, self.query.latitude, self.query.longitude)
        if self.incidents:
            self.reconciler.sync_incidents(handle, self.incidents)
        elif not self.incidents_loading:
            logger.info("Loading incidents for the map")
            await self.fetch_incidents(token)

    def _hide_map(self) -> None:
        self.surface.release()
        self.document.unmount_anchor(INCIDENT_MAP_ANCHOR)

    def unmount(self) -> None:
        """The page is going away: drop the map and its anchor."""
        self._hide_map()

    def dismiss_resource_error(self) -> None:
        self.resource_error = None

    def _live_handle(self) -> Optional[MapHandle]:
        handle = self.surface.handle
        return handle if self.surface.is_live(handle) else None

    # ── Location ──────────────────────────────────────────────────────────────

    def set_location(self, latitude: float, longitude: float) -> None:
        """Raises pydantic.ValidationError on out-of-range coordinates."""
        self.query = self.query.updated(latitude=latitude, longitude=longitude)
        self._follow_location()

    def set_radius(self, radius: int) -> None:
        self.query = self.query.updated(radius=radius)

    def set_incident_type(self, incident_type: Optional[IncidentType]) -> None:
        self.query = self.query.updated(incident_type=incident_type)

    def handle_map_click(self, latitude: float, longitude: float) -> None:
        self.set_location(latitude, longitude)

    def _follow_location(self) -> None:
        handle = self.surface.handle
        self.surface.recenter(handle, self.query.latitude, self.query.longitude, self.zoom)
        self.reconciler.sync_current_position(handle, self.query.latitude, self.query.longitude)

    def zoom_in(self) -> None:
        self._zoom_to(self.zoom + 1)

    def zoom_out(self) -> None:
        self._zoom_to(self.zoom - 1)

    def _zoom_to(self, zoom: int) -> None:
        self.zoom = max(MIN_ZOOM, zoom)
        self._follow_location()

    async def search_address(self, text: str) -> LocationResult:
        if text.strip():
            self.location_status = "Searching for the address..."
        result = await self.resolver.resolve_address(text)
        self._apply_location_result(result)
        return result

    async def detect_location(self) -> LocationResult:
        self.location_status = "Detecting your position..."
        result = await self.resolver.detect_device()
        self._apply_location_result(result)
        return result

    def _apply_location_result(self, result: LocationResult) -> None:
        if result.status is LocationStatus.NO_QUERY:
            return
        if result.found:
            self.set_location(result.latitude, result.longitude)
        self.location_status = result.message

    def toggle_map_style(self) -> BaseStyle:
        style = BaseStyle.SATELLITE if self.surface.base_style is BaseStyle.STANDARD else BaseStyle.STANDARD
        self.surface.set_base_style(self.surface.handle, style)
        return style

    # ── Remote data ───────────────────────────────────────────────────────────

    async def fetch_incidents(self, token: Optional[str]) -> IncidentsResult:
        self.incidents_loading = True
        self.error = None
        try:
            result = await self.client.get_incidents(
                token, self.query.incident_type, settings.incident_fetch_limit
            )
        finally:
            self.incidents_loading = False

        if isinstance(result, ApiFailure):
            self.error = result.message
            return result

        self.incidents = result.reports
        self.reconciler.sync_incidents(self._live_handle(), self.incidents)
        return result

    async def predict_incidents(self, token: Optional[str]) -> PredictionsResult:
        self.loading = True
        self.error = None
        try:
            result = await self.client.get_predictions(token, self.query)
        finally:
            self.loading = False

        if isinstance(result, ApiFailure):
            self.error = result.message
        else:
            self.predictions = result
        return result

    async def fetch_peak_times(self, token: Optional[str]) -> PeakTimesResult:
        self.loading = True
        self.error = None
        try:
            result = await self.client.get_peak_times(token, self.query)
        finally:
            self.loading = False

        if isinstance(result, ApiFailure):
            self.error = result.message
        else:
            self.peak_times = result
        return result

    # ── Output ────────────────────────────────────────────────────────────────

    def render_map(self, click_url: Optional[str] = None) -> Optional[str]:
        handle = self._live_handle()
        return handle.to_html(click_url) if handle is not None else None

    def render_page(self) -> str:
        return self.document.render()

    def snapshot(self) -> ViewSnapshot:
        handle = self._live_handle()
        selected = self.query.incident_type.value if self.query.incident_type else None

        incidents_panel = None
        if self.incidents:
            incidents_panel = IncidentsPanel(
                summary=analytics.incident_summary(self.incidents, self.query.radius),
                peak_hours=analytics.peak_hours(self.incidents, selected),
                peak_days=analytics.peak_days(self.incidents, selected),
            )

        predictions_panel = None
        if self.predictions is not None:
            predictions_panel = PredictionsPanel(
                rows=analytics.prediction_rows(self.predictions),
                distribution=analytics.type_distribution(self.predictions),
                total_historical_reports=self.predictions.metadata.total_historical_reports,
                data_period_days=self.predictions.metadata.data_period_days,
            )

        peak_panel = None
        if self.peak_times is not None:
            peak_panel = PeakTimesPanel(
                hours_chart=analytics.peak_hours_chart(self.peak_times, selected),
                days_chart=analytics.peak_days_chart(self.peak_times, selected),
                top_hours=analytics.top_peak_hours(self.peak_times),
            )

        return ViewSnapshot(
            active_tab=self.active_tab,
            query=self.query,
            map=MapInfo(
                state=self.surface.state.value,
                style=self.surface.base_style.value,
                zoom=self.zoom,
                incident_markers=len(handle.overlays(OverlayKind.INCIDENT)) if handle else 0,
                has_position_marker=bool(handle and handle.overlays(OverlayKind.CURRENT_POSITION)),
            ),
            location_status=self.location_status,
            error=self.error,
            resource_error=self.resource_error,
            loading=self.loading,
            incidents_loading=self.incidents_loading,
            incidents=incidents_panel,
            predictions=predictions_panel,
            peak_times=peak_panel,
        )
