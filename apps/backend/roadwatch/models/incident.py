"""
incident.py — Pydantic schemas for crowd-sourced road incidents.

IncidentType   — the five report categories users can submit
IncidentRecord — one report as returned by the remote API (read-only snapshot)
LocationQuery  — the centre / radius / type every geospatial query starts from

Remote payloads use Mongo-style keys (`_id`, `createdAt`) and GeoJSON
points whose coordinates are [longitude, latitude].
"""

import logging
import math
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

logger = logging.getLogger(__name__)

# Paris, where the reporting app launched.
DEFAULT_LATITUDE = 48.8566
DEFAULT_LONGITUDE = 2.3522
DEFAULT_RADIUS = 1000


class IncidentType(str, Enum):
    ACCIDENT = "ACCIDENT"
    TRAFFIC_JAM = "TRAFFIC_JAM"
    ROAD_CLOSED = "ROAD_CLOSED"
    POLICE = "POLICE"
    OBSTACLE = "OBSTACLE"


def display_type(type_: str) -> str:
    """'TRAFFIC_JAM' → 'TRAFFIC JAM' (labels, popups, tables)."""
    return type_.replace("_", " ")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _whole_number(value: Any, floor: int) -> int:
    """Coerce a loosely-typed counter (1.5, "3", None) to an int no lower than floor."""
    try:
        number = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return floor
    return max(floor, number)


_TIMESTAMP = TypeAdapter(Optional[datetime])


class IncidentRecord(BaseModel):
    """
    A single incident report.

    `location`, the counters and the timestamps are loose: one malformed
    record must not make the whole fetch fail. lat_lon() is the single place
    that decides whether a record can be placed on the map.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(alias="_id")
    type: str
    location: Any = None                  # GeoJSON Point: {"type": "Point", "coordinates": [lng, lat]}
    count: int = 1                        # reports merged into this incident
    upvotes: int = 0
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    date: Optional[datetime] = None       # older records carry `date` instead of createdAt
    localisation: Optional[str] = None    # free-text place name
    status: Optional[str] = None

    @field_validator("count", mode="before")
    @classmethod
    def _count_at_least_one(cls, value: Any) -> int:
        return _whole_number(value, floor=1)

    @field_validator("upvotes", mode="before")
    @classmethod
    def _upvotes_not_negative(cls, value: Any) -> int:
        return _whole_number(value, floor=0)

    @field_validator("created_at", "date", mode="before")
    @classmethod
    def _timestamp_or_none(cls, value: Any) -> Optional[datetime]:
        try:
            return _TIMESTAMP.validate_python(value)
        except ValidationError:
            logger.warning("Unreadable incident timestamp %.60r ignored", value)
            return None

    @property
    def timestamp(self) -> Optional[datetime]:
        return self.date or self.created_at

    def lat_lon(self) -> Optional[tuple[float, float]]:
        """
        Return (latitude, longitude) when the record can be rendered, else None.

        Valid means: exactly two finite numbers, longitude in [-180, 180]
        and latitude in [-90, 90].
        """
        if not isinstance(self.location, dict):
            return None
        coords = self.location.get("coordinates")
        if not isinstance(coords, (list, tuple)) or len(coords) != 2:
            return None
        if not all(_is_number(c) and math.isfinite(c) for c in coords):
            return None
        lng, lat = coords
        if not (-180 <= lng <= 180 and -90 <= lat <= 90):
            return None
        return float(lat), float(lng)


class LocationQuery(BaseModel):
    """Input to every geospatial operation of the predictions view."""

    latitude: float = Field(default=DEFAULT_LATITUDE, ge=-90, le=90)
    longitude: float = Field(default=DEFAULT_LONGITUDE, ge=-180, le=180)
    radius: int = Field(default=DEFAULT_RADIUS, ge=100, le=10_000)   # metres
    incident_type: Optional[IncidentType] = None

    def updated(self, **changes: Any) -> "LocationQuery":
        """
        Return a validated copy with *changes* applied.

        model_copy(update=...) skips validation, so out-of-range input would
        slip through; rebuilding the model keeps the invariants.
        """
        return LocationQuery.model_validate({**self.model_dump(), **changes})
