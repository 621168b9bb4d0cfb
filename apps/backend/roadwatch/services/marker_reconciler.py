"""
marker_reconciler.py — Keeps the map's overlays in step with the data.

sync_incidents(handle, records)
  1. Drop records that cannot be placed (see IncidentRecord.lat_lon);
     each one is logged, none aborts the sync.
  2. Remove every INCIDENT overlay from the map. The current-position
     marker and the tile layers are never touched.
  3. Add one overlay per remaining record: dot diameter grows with the
     incident count, colour comes from the incident type.
  4. If anything was added, fit the viewport to the incident overlays
     after a short delay (layout settles first). Nothing added → the
     viewport is left alone.

Full teardown + recreate on every call makes the sync last-write-wins:
two quick calls leave exactly the second call's overlays, and a newer
sync cancels the older one's pending fit.

sync_current_position(handle, lat, lon) replaces the single
CURRENT_POSITION overlay and is independent of incident syncs.
"""

import asyncio
import contextlib
import html
import logging
from collections.abc import Iterable
from typing import Optional

from roadwatch.core.config import settings
from roadwatch.models.incident import IncidentRecord, IncidentType, display_type
from roadwatch.services.analytics import to_local
from roadwatch.services.map_surface import MapHandle, MapSurface, MarkerOverlay, OverlayKind

logger = logging.getLogger(__name__)

INCIDENT_COLORS: dict[str, str] = {
    IncidentType.ACCIDENT.value:    "red",
    IncidentType.TRAFFIC_JAM.value: "orange",
    IncidentType.ROAD_CLOSED.value: "purple",
    IncidentType.POLICE.value:      "blue",
    IncidentType.OBSTACLE.value:    "brown",
}
DEFAULT_COLOR = "gray"

# Dot diameter = _DOT_BASE + _SIZE_STEP * count; the icon box adds a margin.
_DOT_BASE  = 10
_ICON_BASE = 15
_SIZE_STEP = 3

FIT_PADDING  = (50, 50)
FIT_MAX_ZOOM = 15

CURRENT_POSITION_LABEL = "Current position"


def incident_color(incident_type: str) -> str:
    return INCIDENT_COLORS.get(incident_type, DEFAULT_COLOR)


def marker_size(count: int) -> int:
    return _DOT_BASE + _SIZE_STEP * count


def incident_popup(record: IncidentRecord) -> str:
    when = record.timestamp
    when_text = to_local(when).strftime("%d/%m/%Y %H:%M:%S") if when else "unknown"
    return (
        f"<strong>{html.escape(display_type(record.type))}</strong><br>"
        f"Date: {when_text}<br>"
        f"Count: {record.count}<br>"
        f"Upvotes: {record.upvotes}"
    )


class MarkerReconciler:
    def __init__(self, surface: MapSurface, fit_delay: Optional[float] = None) -> None:
        self.surface = surface
        self.fit_delay = fit_delay if fit_delay is not None else settings.map_fit_delay_seconds
        self._pending_fit: Optional[asyncio.Task] = None

    # ── Incidents ─────────────────────────────────────────────────────────────

    def sync_incidents(self, handle: Optional[MapHandle], records: Iterable[IncidentRecord]) -> int:
        """Replace the incident overlays with `records`. Returns how many were placed."""
        if not self.surface.is_live(handle):
            logger.debug("Incident sync skipped: the map is not live")
            return 0

        placeable: list[tuple[IncidentRecord, tuple[float, float]]] = []
        for record in records:
            position = record.lat_lon()
            if position is None:
                logger.warning(
                    "Incident %s skipped: invalid coordinates %.120r", record.id, record.location
                )
                continue
            placeable.append((record, position))

        for overlay in handle.overlays(OverlayKind.INCIDENT):
            handle.remove_layer(overlay)

        for record, (lat, lng) in placeable:
            handle.add_layer(
                MarkerOverlay(
                    kind=OverlayKind.INCIDENT,
                    latitude=lat,
                    longitude=lng,
                    popup_html=incident_popup(record),
                    color=incident_color(record.type),
                    size=marker_size(record.count),
                    icon_size=_ICON_BASE + _SIZE_STEP * record.count,
                    record_id=record.id,
                )
            )

        self._cancel_pending_fit()
        if placeable:
            self._schedule_fit(handle)

        logger.info("%d incidents displayed on the map", len(placeable))
        return len(placeable)

    def _cancel_pending_fit(self) -> None:
        if self._pending_fit is not None and not self._pending_fit.done():
            self._pending_fit.cancel()
        self._pending_fit = None

    def _schedule_fit(self, handle: MapHandle) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Called outside the event loop (scripts): nothing to wait for.
            self._fit(handle)
            return
        self._pending_fit = loop.create_task(self._fit_later(handle))

    async def _fit_later(self, handle: MapHandle) -> None:
        await asyncio.sleep(self.fit_delay)
        self._fit(handle)

    def _fit(self, handle: MapHandle) -> None:
        if not self.surface.is_live(handle):
            logger.debug("Bounds fit skipped: the map was released")
            return
        points = [(o.latitude, o.longitude) for o in handle.overlays(OverlayKind.INCIDENT)]
        if not points:
            return
        lats = [p[0] for p in points]
        lngs = [p[1] for p in points]
        handle.fit_bounds(
            ((min(lats), min(lngs)), (max(lats), max(lngs))),
            padding=FIT_PADDING,
            max_zoom=FIT_MAX_ZOOM,
        )

    async def wait_settled(self) -> None:
        """Wait for a pending bounds fit, if any."""
        task = self._pending_fit
        if task is None:
            return
        with contextlib.suppress(asyncio.CancelledError):
            await task

    # ── Current position ──────────────────────────────────────────────────────

    def sync_current_position(self, handle: Optional[MapHandle], latitude: float, longitude: float) -> None:
        if not self.surface.is_live(handle):
            logger.debug("Current position not marked: the map is not live")
            return
        for overlay in handle.overlays(OverlayKind.CURRENT_POSITION):
            handle.remove_layer(overlay)
        handle.add_layer(
            MarkerOverlay(
                kind=OverlayKind.CURRENT_POSITION,
                latitude=latitude,
                longitude=longitude,
                popup_html=CURRENT_POSITION_LABEL,
                open_popup=True,
            )
        )
