"""
analytics.py — Derived aggregates shown in the predictions view and dashboard.

Nothing here is persisted: every aggregate is recomputed from the latest
fetch and replaced wholesale.

Models that also appear in remote payloads (PredictionAggregate, PeakHour,
PeakDay) keep the remote camelCase names as aliases.
"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PredictionAggregate(BaseModel):
    """Server-side prediction for one incident type at the queried place/time."""

    model_config = ConfigDict(populate_by_name=True)

    probability: float = Field(ge=0, le=100)
    confidence: float = Field(ge=0, le=100)
    sample_size: int = Field(default=0, ge=0, alias="sampleSize")


class PeakHour(BaseModel):
    hour: int = Field(ge=0, le=23)
    count: int
    percentage: float


class PeakDay(BaseModel):
    """day follows the remote API convention: 0 = Sunday … 6 = Saturday."""

    model_config = ConfigDict(populate_by_name=True)

    day: int = Field(ge=0, le=6)
    day_name: str = Field(default="", alias="dayName")
    count: int
    percentage: float


class DayCount(BaseModel):
    """One bucket of the trailing-window daily series."""

    day: date
    label: str       # "dd/MM" for chart axes
    count: int


class TypeShare(BaseModel):
    type: str
    label: str       # display label ("TRAFFIC JAM")
    count: int
    percentage: float


class PredictionRow(BaseModel):
    """One row of the predictions bar chart / table."""

    type: str
    probability: float
    confidence: float
    sample_size: int


class ChartSeries(BaseModel):
    """Labels + values pair consumed by the console's chart components."""

    title: str
    labels: list[str]
    values: list[float]


class IncidentSummary(BaseModel):
    """Header cards + per-type table of the incidents tab."""

    total: int
    most_recent: Optional[date] = None
    most_frequent_type: Optional[str] = None
    radius: int
    by_type: list[TypeShare]
