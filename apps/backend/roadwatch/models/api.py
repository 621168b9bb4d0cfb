"""
api.py — Response shapes of the remote reporting API.

Every endpoint answers `{"success": true, ...}` or `{"success": false,
"message": ...}`. ReportClient matches on `success` exhaustively:

  success is True   → the endpoint's *Payload model (validated)
  success is False  → ApiFailure(kind=REJECTED, message=<server message>)
  anything else     → ApiFailure(kind=MALFORMED)

There is no best-effort scraping of "the first list in the body"; an
unexpected shape is a failed fetch.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from roadwatch.models.analytics import PeakDay, PeakHour, PredictionAggregate
from roadwatch.models.incident import IncidentRecord

logger = logging.getLogger(__name__)


class FailureKind(str, Enum):
    SESSION_EXPIRED = "session_expired"   # no bearer token available; nothing was sent
    NETWORK = "network"                   # transport error or non-2xx status
    REJECTED = "rejected"                 # server answered success=false
    MALFORMED = "malformed"               # body did not match the expected shape


class ApiFailure(BaseModel):
    kind: FailureKind
    message: str


class QueriedLocation(BaseModel):
    latitude: float
    longitude: float
    radius: int


# ── GET reports/all ───────────────────────────────────────────────────────────

class IncidentsPayload(BaseModel):
    reports: list[IncidentRecord]

    @field_validator("reports", mode="before")
    @classmethod
    def _drop_unreadable_reports(cls, value: Any) -> Any:
        # A non-list still fails the payload; unreadable entries are dropped one by one.
        if not isinstance(value, list):
            return value
        reports = []
        for index, raw in enumerate(value):
            try:
                reports.append(IncidentRecord.model_validate(raw))
            except ValidationError as exc:
                logger.warning("Incident report #%d dropped: %d invalid field(s)", index, exc.error_count())
        return reports


# ── GET predictions/incidents ─────────────────────────────────────────────────

class PredictionTime(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    day_of_week: Optional[int] = Field(default=None, alias="dayOfWeek")
    hour_of_day: Optional[int] = Field(default=None, alias="hourOfDay")
    date: Optional[datetime] = None


class PredictionMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_historical_reports: int = Field(default=0, alias="totalHistoricalReports")
    data_period_days: int = Field(default=0, alias="dataPeriodDays")
    reports_by_type: dict[str, int] = Field(default_factory=dict, alias="reportsByType")


class PredictionsPayload(BaseModel):
    location: Optional[QueriedLocation] = None
    time: Optional[PredictionTime] = None
    predictions: dict[str, PredictionAggregate]
    metadata: PredictionMetadata = Field(default_factory=PredictionMetadata)


# ── GET predictions/peakTimes ─────────────────────────────────────────────────

class PeakTimesMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    data_period: Optional[str] = Field(default=None, alias="dataPeriod")
    start_date: Optional[datetime] = Field(default=None, alias="startDate")
    report_type: Optional[str] = Field(default=None, alias="reportType")


class PeakTimesPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    location: Optional[QueriedLocation] = None
    peak_hours: dict[str, list[PeakHour]] = Field(alias="peakHours")
    peak_days: dict[str, list[PeakDay]] = Field(alias="peakDays")
    metadata: PeakTimesMetadata = Field(default_factory=PeakTimesMetadata)


IncidentsResult = Union[IncidentsPayload, ApiFailure]
PredictionsResult = Union[PredictionsPayload, ApiFailure]
PeakTimesResult = Union[PeakTimesPayload, ApiFailure]
