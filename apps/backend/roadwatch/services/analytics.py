"""
analytics.py — Client-side aggregates for the predictions view and dashboard.

Every function here is pure: same input → same output, nothing cached
between calls, inputs never mutated. Safe to call on every request.

Two families:
  - from raw incident records: count_by_type, top_types, peak_hours,
    peak_days, by_day, incident_summary, is_report_from_today
  - from server payloads: prediction_rows, type_distribution,
    peak_hours_chart, peak_days_chart, top_peak_hours

Times are bucketed in the display timezone (settings.display_timezone,
or the server's local zone when unset). Naive timestamps are taken as
already local.

Day-of-week numbering follows the remote API: 0 = Sunday … 6 = Saturday.
"""

from __future__ import annotations

import calendar
from collections.abc import Iterable, Mapping
from datetime import date, datetime, timedelta, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

from roadwatch.core.config import settings
from roadwatch.models.analytics import (
    ChartSeries,
    DayCount,
    IncidentSummary,
    PeakDay,
    PeakHour,
    PredictionRow,
    TypeShare,
)
from roadwatch.models.api import PeakTimesPayload, PredictionsPayload
from roadwatch.models.incident import IncidentRecord, display_type

DEFAULT_WINDOW_DAYS = 30


# ── Time helpers ──────────────────────────────────────────────────────────────

def display_zone() -> Optional[tzinfo]:
    return ZoneInfo(settings.display_timezone) if settings.display_timezone else None


def to_local(moment: datetime, tz: Optional[tzinfo] = None) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(tz or display_zone())


def _today(tz: Optional[tzinfo] = None) -> date:
    return datetime.now(tz or display_zone()).date()


def _weekday(moment: datetime) -> int:
    """Python's Monday=0 → the API's Sunday=0."""
    return (moment.weekday() + 1) % 7


def _day_name(moment: datetime) -> str:
    return calendar.day_name[moment.weekday()]


def _percentage(count: int, total: int) -> float:
    return 100.0 * count / total if total else 0.0


# ── From raw records ──────────────────────────────────────────────────────────

def count_by_type(records: Iterable[IncidentRecord]) -> dict[str, int]:
    """Counts per type, keys in first-seen order."""
    counts: dict[str, int] = {}
    for record in records:
        counts[record.type] = counts.get(record.type, 0) + 1
    return counts


def top_types(counts: Mapping[str, int], n: int) -> list[str]:
    """
    The `n` most frequent types, highest count first.

    Ties keep insertion order (sorted() is stable).
    """
    ranked = sorted(counts.items(), key=lambda item: -item[1])
    return [type_ for type_, _ in ranked[:n]]


def _timestamps(
    records: Iterable[IncidentRecord],
    incident_type: Optional[str],
    tz: Optional[tzinfo],
) -> list[datetime]:
    return [
        to_local(record.timestamp, tz)
        for record in records
        if record.timestamp is not None
        and (incident_type is None or record.type == incident_type)
    ]


def peak_hours(
    records: Iterable[IncidentRecord],
    incident_type: Optional[str] = None,
    tz: Optional[tzinfo] = None,
) -> list[PeakHour]:
    """Incidents per hour of day for one type (None = all), ascending by hour."""
    moments = _timestamps(records, incident_type, tz)
    counts: dict[int, int] = {}
    for moment in moments:
        counts[moment.hour] = counts.get(moment.hour, 0) + 1
    total = len(moments)
    return [
        PeakHour(hour=hour, count=count, percentage=_percentage(count, total))
        for hour, count in sorted(counts.items())
    ]


def peak_days(
    records: Iterable[IncidentRecord],
    incident_type: Optional[str] = None,
    tz: Optional[tzinfo] = None,
) -> list[PeakDay]:
    """Incidents per day of week for one type (None = all), Sunday first."""
    moments = _timestamps(records, incident_type, tz)
    counts: dict[int, int] = {}
    names: dict[int, str] = {}
    for moment in moments:
        day = _weekday(moment)
        counts[day] = counts.get(day, 0) + 1
        names[day] = _day_name(moment)
    total = len(moments)
    return [
        PeakDay(day=day, day_name=names[day], count=count, percentage=_percentage(count, total))
        for day, count in sorted(counts.items())
    ]


def by_day(
    records: Iterable[IncidentRecord],
    window_days: int = DEFAULT_WINDOW_DAYS,
    today: Optional[date] = None,
    tz: Optional[tzinfo] = None,
) -> list[DayCount]:
    """
    Zero-filled daily counts for the trailing `window_days` days ending
    today, oldest first. Records outside the window are ignored.
    """
    today = today or _today(tz)
    days = [today - timedelta(days=offset) for offset in range(window_days - 1, -1, -1)]
    counts = {day: 0 for day in days}
    for record in records:
        if record.timestamp is None:
            continue
        day = to_local(record.timestamp, tz).date()
        if day in counts:
            counts[day] += 1
    return [DayCount(day=day, label=day.strftime("%d/%m"), count=counts[day]) for day in days]


def is_report_from_today(
    record: IncidentRecord,
    today: Optional[date] = None,
    tz: Optional[tzinfo] = None,
) -> bool:
    if record.timestamp is None:
        return False
    return to_local(record.timestamp, tz).date() == (today or _today(tz))


def type_shares(counts: Mapping[str, int]) -> list[TypeShare]:
    """Per-type count and share of the total, most frequent first."""
    total = sum(counts.values())
    return [
        TypeShare(
            type=type_,
            label=display_type(type_),
            count=counts[type_],
            percentage=round(_percentage(counts[type_], total), 1),
        )
        for type_ in top_types(counts, len(counts))
    ]


def incident_summary(records: Iterable[IncidentRecord], radius: int) -> IncidentSummary:
    """Header cards and per-type table of the incidents tab."""
    records = list(records)
    counts = count_by_type(records)
    # Compare local wall-clock times so naive and aware stamps can mix.
    stamps = [to_local(record.timestamp).replace(tzinfo=None) for record in records if record.timestamp]
    most_recent = max(stamps).date() if stamps else None
    leaders = top_types(counts, 1)
    return IncidentSummary(
        total=len(records),
        most_recent=most_recent,
        most_frequent_type=display_type(leaders[0]) if leaders else None,
        radius=radius,
        by_type=type_shares(counts),
    )


# ── From server payloads ──────────────────────────────────────────────────────

def prediction_rows(payload: PredictionsPayload) -> list[PredictionRow]:
    return [
        PredictionRow(
            type=type_,
            probability=round(aggregate.probability, 2),
            confidence=round(aggregate.confidence, 2),
            sample_size=aggregate.sample_size,
        )
        for type_, aggregate in payload.predictions.items()
    ]


def type_distribution(payload: PredictionsPayload) -> list[TypeShare]:
    """Historical report counts per type (pie chart), in server order."""
    counts = payload.metadata.reports_by_type
    total = sum(counts.values())
    return [
        TypeShare(
            type=type_,
            label=display_type(type_),
            count=count,
            percentage=round(_percentage(count, total), 1),
        )
        for type_, count in counts.items()
    ]


def _chart_type(series: Mapping[str, list], incident_type: Optional[str]) -> Optional[str]:
    """The requested type, or the first one the server returned."""
    type_ = incident_type or next(iter(series), None)
    return type_ if type_ in series else None


def peak_hours_chart(payload: PeakTimesPayload, incident_type: Optional[str] = None) -> Optional[ChartSeries]:
    type_ = _chart_type(payload.peak_hours, incident_type)
    if type_ is None:
        return None
    hours = sorted(payload.peak_hours[type_], key=lambda item: item.hour)
    return ChartSeries(
        title=f"Incidents per hour ({type_})",
        labels=[f"{item.hour}h" for item in hours],
        values=[item.count for item in hours],
    )


def peak_days_chart(payload: PeakTimesPayload, incident_type: Optional[str] = None) -> Optional[ChartSeries]:
    type_ = _chart_type(payload.peak_days, incident_type)
    if type_ is None:
        return None
    days = sorted(payload.peak_days[type_], key=lambda item: item.day)
    return ChartSeries(
        title=f"Incidents per day ({type_})",
        labels=[item.day_name for item in days],
        values=[item.count for item in days],
    )


def top_peak_hours(payload: PeakTimesPayload, n: int = 3) -> dict[str, list[PeakHour]]:
    """The `n` busiest hours of every type (the per-type tables under the charts)."""
    return {
        type_: sorted(hours, key=lambda item: -item.count)[:n]
        for type_, hours in payload.peak_hours.items()
    }
