"""
ReportClient — Thin async wrapper around the remote reporting API.

Endpoints used by the console:
  GET reports/all            — incident reports (optionally filtered by type)
  GET predictions/incidents  — per-type probabilities around a point
  GET predictions/peakTimes  — per-type peak hours / days around a point

Every call needs the admin's bearer token. When none is available the
call short-circuits with FailureKind.SESSION_EXPIRED and no request is
sent. No method raises on expected failures (network error, non-2xx,
success=false, unexpected shape); they return an ApiFailure instead so
the view can show a page-level message. There is no automatic retry.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from roadwatch.core.config import settings
from roadwatch.models.api import (
    ApiFailure,
    FailureKind,
    IncidentsPayload,
    IncidentsResult,
    PeakTimesPayload,
    PeakTimesResult,
    PredictionsPayload,
    PredictionsResult,
)
from roadwatch.models.incident import IncidentType, LocationQuery

logger = logging.getLogger(__name__)

SESSION_EXPIRED_MESSAGE = "Session expired, please sign in again"

PayloadT = TypeVar("PayloadT", bound=BaseModel)


def _server_message(response: httpx.Response) -> Optional[str]:
    """Pull `message` out of an error body, if the server sent one."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("message"), str):
        return body["message"]
    return None


def match_response(body: Any, model: type[PayloadT], what: str) -> PayloadT | ApiFailure:
    """
    Map a decoded response body onto `model` or an ApiFailure.

    `what` is a human label for the request ("incidents", "predictions"...)
    used in messages.
    """
    if not isinstance(body, dict) or not isinstance(body.get("success"), bool):
        logger.warning("Unexpected %s response shape: %.200r", what, body)
        return ApiFailure(
            kind=FailureKind.MALFORMED,
            message=f"Unexpected response while fetching {what}",
        )

    if body["success"] is False:
        message = body.get("message") or "Unknown error"
        logger.info("%s request rejected by server: %s", what.capitalize(), message)
        return ApiFailure(kind=FailureKind.REJECTED, message=f"Request failed: {message}")

    try:
        return model.model_validate(body)
    except ValidationError as exc:
        logger.warning("Invalid %s payload: %s", what, exc)
        return ApiFailure(
            kind=FailureKind.MALFORMED,
            message=f"Unexpected response while fetching {what}",
        )


class ReportClient:
    """
    Async client for the reporting API.

    A fresh httpx.AsyncClient is opened per call; `transport` lets tests
    plug in an httpx.MockTransport.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.api_base_url).rstrip("/") + "/"
        self.timeout = timeout if timeout is not None else settings.api_timeout_seconds
        self._transport = transport

    async def _get(
        self,
        path: str,
        token: Optional[str],
        params: dict[str, Any],
        model: type[PayloadT],
        what: str,
    ) -> PayloadT | ApiFailure:
        if not token:
            logger.warning("No API token available — %s request not sent", what)
            return ApiFailure(kind=FailureKind.SESSION_EXPIRED, message=SESSION_EXPIRED_MESSAGE)

        params = {k: v for k, v in params.items() if v is not None}
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            try:
                response = await client.get(
                    path,
                    params=params,
                    headers={"Authorization": f"Bearer {token}"},
                )
                response.raise_for_status()
                body = response.json()
            except httpx.HTTPStatusError as exc:
                logger.error(
                    "Reporting API error on %s: %s — %s",
                    path,
                    exc.response.status_code,
                    exc.response.text[:200],
                )
                message = _server_message(exc.response) or f"Error while fetching {what}"
                return ApiFailure(kind=FailureKind.NETWORK, message=message)
            except (httpx.HTTPError, ValueError) as exc:
                logger.error("Reporting API request %s failed: %s", path, exc)
                return ApiFailure(kind=FailureKind.NETWORK, message=f"Error while fetching {what}")

        return match_response(body, model, what)

    async def get_incidents(
        self,
        token: Optional[str],
        incident_type: Optional[IncidentType] = None,
        limit: Optional[int] = None,
    ) -> IncidentsResult:
        """All incident reports, optionally restricted to one type."""
        params = {
            "type": incident_type.value if incident_type else None,
            "limit": limit,
        }
        result = await self._get("reports/all", token, params, IncidentsPayload, "incidents")
        if isinstance(result, IncidentsPayload):
            logger.info("%d incidents fetched", len(result.reports))
        return result

    async def get_all_reports(self, token: Optional[str]) -> IncidentsResult:
        """Every report, unfiltered (dashboard)."""
        return await self.get_incidents(token, limit=settings.incident_fetch_limit)

    async def get_predictions(
        self,
        token: Optional[str],
        query: LocationQuery,
        at: Optional[datetime] = None,
    ) -> PredictionsResult:
        """Per-type incident probabilities around `query` at time `at` (default now)."""
        at = at or datetime.now(tz=timezone.utc)
        params = {
            "latitude": query.latitude,
            "longitude": query.longitude,
            "radius": query.radius,
            "date": at.isoformat(),
        }
        return await self._get(
            "predictions/incidents", token, params, PredictionsPayload, "predictions"
        )

    async def get_peak_times(self, token: Optional[str], query: LocationQuery) -> PeakTimesResult:
        """Peak hours and days around `query`, for its incident type or all types."""
        params = {
            "latitude": query.latitude,
            "longitude": query.longitude,
            "radius": query.radius,
            "type": query.incident_type.value if query.incident_type else None,
        }
        return await self._get(
            "predictions/peakTimes", token, params, PeakTimesPayload, "peak times"
        )


# Module-level singleton
report_client = ReportClient()
