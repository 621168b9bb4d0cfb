"""
dashboard.py — Overview of all incident reports.

  GET /api/v1/dashboard — totals, today's count, 30-day series,
                          type distribution, top 5 types, 10 latest reports

Everything is computed from a single reports/all fetch; nothing is cached.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from roadwatch.models.api import ApiFailure, FailureKind
from roadwatch.models.view import DashboardResponse
from roadwatch.routes.deps import TokenDep, get_report_client
from roadwatch.services import analytics
from roadwatch.services.report_client import ReportClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/dashboard", tags=["dashboard"])

TOP_TYPES = 5
RECENT_REPORTS = 10


@router.get("", response_model=DashboardResponse)
async def get_dashboard(
    token: TokenDep,
    client: ReportClient = Depends(get_report_client),
) -> DashboardResponse:
    result = await client.get_all_reports(token)
    if isinstance(result, ApiFailure):
        status = 401 if result.kind is FailureKind.SESSION_EXPIRED else 502
        raise HTTPException(status_code=status, detail=result.message)

    reports = result.reports
    if not reports:
        raise HTTPException(status_code=404, detail="No reports found")

    counts = analytics.count_by_type(reports)
    shares = analytics.type_shares(counts)
    recent = sorted(
        (r for r in reports if r.timestamp is not None),
        key=lambda r: analytics.to_local(r.timestamp).replace(tzinfo=None),
        reverse=True,
    )[:RECENT_REPORTS]

    logger.info("Dashboard built from %d reports", len(reports))
    return DashboardResponse(
        total=len(reports),
        today=sum(1 for r in reports if analytics.is_report_from_today(r)),
        unique_types=len(counts),
        daily=analytics.by_day(reports),
        distribution=shares,
        top_types=shares[:TOP_TYPES],
        recent=recent,
    )
