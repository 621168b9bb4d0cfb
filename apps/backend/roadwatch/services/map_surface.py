"""
map_surface.py — Owns the single live map instance of the predictions view.

LIFECYCLE
─────────
  UNLOADED  ──load()──▶  LOADING  ──acquire(anchor mounted)──▶  READY
      ▲                     ▲                                      │
      │                     └────────────── load() ◀── DESTROYED ◀─┘ release()

  - acquire() creates a MapHandle only if none is held; while READY it
    returns the existing handle, so two instances are never bound to the
    same anchor.
  - acquire() returns None (never raises) when the library is not loaded
    or the anchor is not mounted, e.g. the tab was left while the loader
    or the init delay was still pending.
  - Every operation on a stale handle, or on a handle whose anchor has
    disappeared, is a logged no-op.

A map click only reports coordinates through the on_click callback.
Overlays are changed exclusively by MarkerReconciler.

RENDERING
─────────
MapHandle keeps the live map state (view, tile layers, overlays, fitted
bounds). to_html() serialises it with folium; folium types never leave
this module.
"""

import html
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

import folium
from branca.element import MacroElement
from jinja2 import Template

from roadwatch.core.config import settings
from roadwatch.core.document import Document
from roadwatch.services.map_loader import MapResourceLoader

logger = logging.getLogger(__name__)

INCIDENT_MAP_ANCHOR = "incident-map"
DEFAULT_ZOOM = 13

Bounds = tuple[tuple[float, float], tuple[float, float]]   # ((south, west), (north, east))


class MapLifecycleState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    DESTROYED = "destroyed"


class BaseStyle(str, Enum):
    STANDARD = "standard"
    SATELLITE = "satellite"


class OverlayKind(str, Enum):
    CURRENT_POSITION = "current_position"
    INCIDENT = "incident"


@dataclass(frozen=True)
class TileLayer:
    """Base tile layer (background imagery)."""

    style: BaseStyle
    url: str
    attribution: str


@dataclass(eq=False)
class MarkerOverlay:
    """
    A marker on the map. Compared by identity: two overlays at the same
    place are still two overlays.
    """

    kind: OverlayKind
    latitude: float
    longitude: float
    popup_html: str
    color: Optional[str] = None       # incident dot colour
    size: int = 0                     # incident dot diameter (px)
    icon_size: int = 0                # incident icon box (px)
    record_id: Optional[str] = None
    open_popup: bool = False


Layer = Union[TileLayer, MarkerOverlay]


def tile_layer_for(style: BaseStyle) -> TileLayer:
    if style is BaseStyle.SATELLITE:
        return TileLayer(style, settings.satellite_tiles_url, settings.satellite_tiles_attribution)
    return TileLayer(style, settings.standard_tiles_url, settings.standard_tiles_attribution)


class ClickForwarder(MacroElement):
    """Posts every map click to `url` as {"latitude": .., "longitude": ..}."""

    _template = Template(
        """
        {% macro script(this, kwargs) %}
            {{ this._parent.get_name() }}.on('click', function(e) {
                fetch({{ this.url|tojson }}, {
                    method: 'POST',
                    headers: {'Content-Type': 'application/json'},
                    body: JSON.stringify({latitude: e.latlng.lat, longitude: e.latlng.lng})
                }).then(function() { window.location.reload(); });
            });
        {% endmacro %}
        """
    )

    def __init__(self, url: str) -> None:
        super().__init__()
        self._name = "ClickForwarder"
        self.url = url


class MapHandle:
    """Live state of one map instance bound to one anchor."""

    def __init__(self, anchor_id: str, center: tuple[float, float], zoom: int) -> None:
        self.anchor_id = anchor_id
        self.center = center
        self.zoom = zoom
        self.alive = True
        self.fitted_bounds: Optional[Bounds] = None
        self.fit_padding: tuple[int, int] = (0, 0)
        self.fit_max_zoom: Optional[int] = None
        self._layers: list[Layer] = []

    # ── Layers ────────────────────────────────────────────────────────────────

    def add_layer(self, layer: Layer) -> None:
        if not any(existing is layer for existing in self._layers):
            self._layers.append(layer)

    def remove_layer(self, layer: Layer) -> None:
        self._layers = [existing for existing in self._layers if existing is not layer]

    def each_layer(self) -> list[Layer]:
        """Snapshot of the current layers; safe to mutate the map while iterating."""
        return list(self._layers)

    def overlays(self, kind: Optional[OverlayKind] = None) -> list[MarkerOverlay]:
        return [
            layer for layer in self._layers
            if isinstance(layer, MarkerOverlay) and (kind is None or layer.kind is kind)
        ]

    def tile_layers(self) -> list[TileLayer]:
        return [layer for layer in self._layers if isinstance(layer, TileLayer)]

    # ── Viewport ──────────────────────────────────────────────────────────────

    def set_view(self, latitude: float, longitude: float, zoom: int) -> None:
        self.center = (latitude, longitude)
        self.zoom = zoom
        # An explicit view replaces any earlier bounds fit.
        self.fitted_bounds = None

    def fit_bounds(self, bounds: Bounds, padding: tuple[int, int], max_zoom: int) -> None:
        self.fitted_bounds = bounds
        self.fit_padding = padding
        self.fit_max_zoom = max_zoom

    # ── Rendering ─────────────────────────────────────────────────────────────

    def to_html(self, click_url: Optional[str] = None) -> str:
        """Render the map as a standalone Leaflet page."""
        m = folium.Map(
            location=list(self.center),
            zoom_start=self.zoom,
            tiles=None,
            control_scale=True,
        )

        for layer in self._layers:
            if isinstance(layer, TileLayer):
                folium.TileLayer(
                    tiles=layer.url,
                    attr=layer.attribution,
                    name=layer.style.value,
                ).add_to(m)
            else:
                self._marker(layer).add_to(m)

        if self.fitted_bounds is not None:
            m.fit_bounds(
                [list(self.fitted_bounds[0]), list(self.fitted_bounds[1])],
                padding=self.fit_padding,
                max_zoom=self.fit_max_zoom,
            )

        if click_url:
            ClickForwarder(click_url).add_to(m)

        return m.get_root().render()

    @staticmethod
    def _marker(overlay: MarkerOverlay) -> folium.Marker:
        popup = folium.Popup(overlay.popup_html, max_width=300, show=overlay.open_popup)
        if overlay.kind is not OverlayKind.INCIDENT:
            return folium.Marker(location=[overlay.latitude, overlay.longitude], popup=popup)

        dot = (
            f'<div style="width: {overlay.size}px; height: {overlay.size}px; '
            f"background-color: {html.escape(overlay.color or 'gray')}; border-radius: 50%; "
            'opacity: 0.7; border: 2px solid white;"></div>'
        )
        icon = folium.DivIcon(
            html=dot,
            icon_size=(overlay.icon_size, overlay.icon_size),
            class_name="custom-incident-marker",
        )
        return folium.Marker(location=[overlay.latitude, overlay.longitude], popup=popup, icon=icon)


class MapSurface:
    """
    Single map instance per hosting view.

    The view owns the surface and passes its handle explicitly to
    MarkerReconciler; nothing reads the map from module-level state.
    """

    def __init__(
        self,
        document: Document,
        loader: MapResourceLoader,
        on_click: Optional[Callable[[float, float], None]] = None,
    ) -> None:
        self.document = document
        self.loader = loader
        self.on_click = on_click
        self.state = MapLifecycleState.UNLOADED
        self.base_style = BaseStyle.STANDARD
        self._handle: Optional[MapHandle] = None

    @property
    def handle(self) -> Optional[MapHandle]:
        return self._handle

    async def load(self) -> None:
        """Make the map library available. Raises ResourceLoadError on failure."""
        await self.loader.ensure_loaded()
        if self._handle is None:
            self.state = MapLifecycleState.LOADING

    def is_live(self, handle: Optional[MapHandle]) -> bool:
        """True if `handle` is the current instance and its anchor is still mounted."""
        return (
            handle is not None
            and handle is self._handle
            and handle.alive
            and self.document.has_anchor(handle.anchor_id)
        )

    def acquire(
        self,
        anchor_id: str,
        center: tuple[float, float],
        zoom: int = DEFAULT_ZOOM,
    ) -> Optional[MapHandle]:
        if not self.loader.ready:
            logger.error("Map library not loaded — cannot create a map on '%s'", anchor_id)
            return None

        if not self.document.has_anchor(anchor_id):
            logger.error("Anchor '%s' is not in the document — map not created", anchor_id)
            return None

        if self._handle is not None and self.state is MapLifecycleState.READY:
            if self._handle.anchor_id == anchor_id and self._handle.alive:
                logger.debug("Map already initialised on '%s', reusing it", anchor_id)
                return self._handle
            # One instance per view: the previous one goes before a new one is bound.
            self.release()

        handle = MapHandle(anchor_id=anchor_id, center=center, zoom=zoom)
        handle.add_layer(tile_layer_for(self.base_style))
        self._handle = handle
        self.state = MapLifecycleState.READY
        logger.info("Map created on '%s' at %.5f, %.5f (zoom %d)", anchor_id, center[0], center[1], zoom)
        return handle

    def recenter(self, handle: Optional[MapHandle], latitude: float, longitude: float, zoom: int) -> None:
        if not self.is_live(handle):
            logger.debug("recenter skipped: no live map")
            return
        handle.set_view(latitude, longitude, zoom)

    def set_base_style(self, handle: Optional[MapHandle], style: BaseStyle) -> None:
        self.base_style = style
        if not self.is_live(handle):
            logger.debug("set_base_style skipped: no live map")
            return
        for layer in handle.tile_layers():
            handle.remove_layer(layer)
        handle.add_layer(tile_layer_for(style))
        logger.info("Map style switched to %s", style.value)

    def release(self, handle: Optional[MapHandle] = None) -> None:
        """Tear down the current instance. No-op when nothing is held."""
        current = self._handle
        if current is None or (handle is not None and handle is not current):
            return
        current.alive = False
        self._handle = None
        self.state = MapLifecycleState.DESTROYED
        logger.info("Map on '%s' released", current.anchor_id)

    def handle_click(self, latitude: float, longitude: float) -> None:
        """Forward a click on the live map to the view. Never touches overlays."""
        if self._handle is None:
            logger.debug("Click ignored: no live map")
            return
        if self.on_click is not None:
            self.on_click(latitude, longitude)
