"""
geo_resolver.py — Turns "where am I?" and free-text addresses into coordinates.

detect_device()
  Asks a PositionProvider for the current position with a fixed policy
  (high accuracy, 5 s timeout, never reuse a cached fix). Failures are
  classified like the W3C Geolocation API (permission denied / position
  unavailable / timeout / unknown) and returned as a LocationResult —
  never raised, so a failed lookup cannot break the view.

resolve_address(text)
  Queries Nominatim (OpenStreetMap) and keeps the first match. Blank input
  returns NO_QUERY immediately without touching the network.

Both return a LocationResult carrying a human-readable `message` that the
view shows as its location status line.

The default PositionProvider approximates the position from the public IP
address (ipapi.co). Swap it for any object with the same
`get_current_position(options)` coroutine, e.g. one fed by the browser.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional, Protocol, Union

import httpx
from pydantic import BaseModel

from roadwatch.core.config import settings

logger = logging.getLogger(__name__)


class LocationStatus(str, Enum):
    FOUND = "found"
    NO_QUERY = "no_query"
    NOT_FOUND = "not_found"
    LOOKUP_FAILED = "lookup_failed"
    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"
    UNSUPPORTED = "unsupported"


_MESSAGES: dict[LocationStatus, str] = {
    LocationStatus.NO_QUERY:             "Enter an address to search",
    LocationStatus.NOT_FOUND:            "No result found for this address",
    LocationStatus.LOOKUP_FAILED:        "Error while searching for the address",
    LocationStatus.PERMISSION_DENIED:    "You denied the geolocation request",
    LocationStatus.POSITION_UNAVAILABLE: "Location information is unavailable",
    LocationStatus.TIMEOUT:              "The location request timed out",
    LocationStatus.UNKNOWN:              "An unknown error occurred during geolocation",
    LocationStatus.UNSUPPORTED:          "Geolocation is not supported here",
}


class LocationResult(BaseModel):
    status: LocationStatus
    message: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    label: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.status is LocationStatus.FOUND


def _status(status: LocationStatus) -> LocationResult:
    return LocationResult(status=status, message=_MESSAGES[status])


def _in_range(latitude: float, longitude: float) -> bool:
    return -90 <= latitude <= 90 and -180 <= longitude <= 180


# ── Device position ───────────────────────────────────────────────────────────

class PositionErrorCode(IntEnum):
    """Numeric codes of the W3C GeolocationPositionError."""

    PERMISSION_DENIED = 1
    POSITION_UNAVAILABLE = 2
    TIMEOUT = 3


class PositionError(Exception):
    """Raised by a PositionProvider; `code` is a PositionErrorCode, its name or its number."""

    def __init__(self, code: Union[int, str], message: str = "") -> None:
        super().__init__(message or str(code))
        self.code = code


@dataclass(frozen=True)
class PositionOptions:
    enable_high_accuracy: bool = True
    timeout: float = 5.0        # seconds
    maximum_age: float = 0.0    # seconds; 0 = always a fresh fix


class PositionProvider(Protocol):
    async def get_current_position(self, options: PositionOptions) -> tuple[float, float]:
        """Return (latitude, longitude) or raise PositionError."""
        ...


def classify_position_error(code: Union[int, str, None]) -> LocationStatus:
    try:
        if isinstance(code, str):
            error = PositionErrorCode[code.upper()]
        else:
            error = PositionErrorCode(code)
    except (KeyError, ValueError):
        return LocationStatus.UNKNOWN
    return LocationStatus[error.name]


class IpPositionProvider:
    """Approximate position of the server's / caller's public IP address."""

    def __init__(
        self,
        url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url or settings.ip_geolocation_url
        self._transport = transport

    async def get_current_position(self, options: PositionOptions) -> tuple[float, float]:
        # No caching here, so maximum_age=0 holds trivially.
        async with httpx.AsyncClient(timeout=options.timeout, transport=self._transport) as client:
            try:
                response = await client.get(self.url, headers={"User-Agent": settings.geocoder_user_agent})
                response.raise_for_status()
                data = response.json()
            except httpx.TimeoutException as exc:
                raise PositionError(PositionErrorCode.TIMEOUT, "IP geolocation timed out") from exc
            except (httpx.HTTPError, ValueError) as exc:
                raise PositionError(PositionErrorCode.POSITION_UNAVAILABLE, str(exc)) from exc

        try:
            return float(data["latitude"]), float(data["longitude"])
        except (KeyError, TypeError, ValueError) as exc:
            raise PositionError(PositionErrorCode.POSITION_UNAVAILABLE, "No position in response") from exc


# ── Resolver ──────────────────────────────────────────────────────────────────

class GeoResolver:
    def __init__(
        self,
        provider: Optional[PositionProvider] = None,
        options: Optional[PositionOptions] = None,
        nominatim_url: Optional[str] = None,
        user_agent: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.provider = provider
        self.options = options or PositionOptions(timeout=settings.geolocation_timeout_seconds)
        self.nominatim_url = nominatim_url or settings.nominatim_url
        self.user_agent = user_agent or settings.geocoder_user_agent
        self.timeout = timeout if timeout is not None else settings.geocoder_timeout_seconds
        self._transport = transport

    async def detect_device(self) -> LocationResult:
        if self.provider is None:
            return _status(LocationStatus.UNSUPPORTED)

        try:
            latitude, longitude = await asyncio.wait_for(
                self.provider.get_current_position(self.options),
                timeout=self.options.timeout,
            )
        except asyncio.TimeoutError:
            logger.info("Device geolocation timed out after %.1fs", self.options.timeout)
            return _status(LocationStatus.TIMEOUT)
        except PositionError as exc:
            status = classify_position_error(exc.code)
            logger.info("Device geolocation failed (%s): %s", status.value, exc)
            return _status(status)
        except Exception as exc:
            logger.error("Device geolocation raised unexpectedly: %s", exc)
            return _status(LocationStatus.UNKNOWN)

        if not _in_range(latitude, longitude):
            logger.warning("Device geolocation returned out-of-range %s, %s", latitude, longitude)
            return _status(LocationStatus.POSITION_UNAVAILABLE)

        return LocationResult(
            status=LocationStatus.FOUND,
            message="Position detected successfully",
            latitude=latitude,
            longitude=longitude,
        )

    async def resolve_address(self, text: str) -> LocationResult:
        query = (text or "").strip()
        if not query:
            return _status(LocationStatus.NO_QUERY)

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.get(
                    self.nominatim_url,
                    params={"format": "json", "q": query, "limit": 1},
                    headers={"User-Agent": self.user_agent},
                )
                response.raise_for_status()
                results = response.json()
            except httpx.HTTPStatusError as exc:
                logger.error(
                    "Nominatim error: %s — %s",
                    exc.response.status_code,
                    exc.response.text[:200],
                )
                return _status(LocationStatus.LOOKUP_FAILED)
            except (httpx.HTTPError, ValueError) as exc:
                logger.error("Address lookup failed: %s", exc)
                return _status(LocationStatus.LOOKUP_FAILED)

        if not isinstance(results, list) or not results:
            return _status(LocationStatus.NOT_FOUND)

        first = results[0]
        try:
            latitude, longitude = float(first["lat"]), float(first["lon"])
        except (KeyError, TypeError, ValueError):
            logger.warning("Nominatim result without usable coordinates: %.200r", first)
            return _status(LocationStatus.LOOKUP_FAILED)
        if not _in_range(latitude, longitude):
            return _status(LocationStatus.LOOKUP_FAILED)

        label = first.get("display_name") or query
        return LocationResult(
            status=LocationStatus.FOUND,
            message=f"Address found: {label}",
            latitude=latitude,
            longitude=longitude,
            label=label,
        )
