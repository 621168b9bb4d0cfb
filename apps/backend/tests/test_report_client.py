"""
test_report_client.py — Tests for ReportClient and response matching.

The reporting API is replaced by httpx.MockTransport; no request leaves
the process.
"""

from datetime import datetime, timezone

import httpx
import pytest

from conftest import SAMPLE_PEAK_TIMES, SAMPLE_PREDICTIONS, TOKEN, make_report, reporting_api
from roadwatch.models.api import (
    ApiFailure,
    FailureKind,
    IncidentsPayload,
    PeakTimesPayload,
    PredictionsPayload,
)
from roadwatch.models.incident import IncidentType, LocationQuery
from roadwatch.services.report_client import (
    SESSION_EXPIRED_MESSAGE,
    ReportClient,
    match_response,
)

BASE_URL = "https://api.test/api"


def _client(transport):
    return ReportClient(base_url=BASE_URL, transport=transport)


def _answer(status, body):
    return httpx.MockTransport(lambda request: httpx.Response(status, json=body))


# ── match_response ────────────────────────────────────────────────────────────

class TestMatchResponse:
    def test_success_true_validates_payload(self):
        result = match_response(
            {"success": True, "reports": [make_report("a")]}, IncidentsPayload, "incidents"
        )
        assert isinstance(result, IncidentsPayload)
        assert result.reports[0].id == "a"

    def test_success_false_is_rejected(self):
        result = match_response({"success": False, "message": "Forbidden"}, IncidentsPayload, "incidents")
        assert result == ApiFailure(kind=FailureKind.REJECTED, message="Request failed: Forbidden")

    def test_success_false_without_message(self):
        result = match_response({"success": False}, IncidentsPayload, "incidents")
        assert result.kind is FailureKind.REJECTED
        assert result.message == "Request failed: Unknown error"

    @pytest.mark.parametrize("body", [None, [], "ok", {"reports": []}, {"success": "yes"}])
    def test_unexpected_shapes_are_malformed(self, body):
        result = match_response(body, IncidentsPayload, "incidents")
        assert isinstance(result, ApiFailure)
        assert result.kind is FailureKind.MALFORMED

    def test_missing_payload_field_is_malformed(self):
        result = match_response({"success": True, "data": []}, IncidentsPayload, "incidents")
        assert result.kind is FailureKind.MALFORMED


# ── Session handling ──────────────────────────────────────────────────────────

class TestSession:
    @pytest.mark.parametrize("token", [None, ""])
    async def test_missing_token_sends_nothing(self, token):
        calls = []
        result = await _client(reporting_api(calls=calls)).get_incidents(token)

        assert result == ApiFailure(kind=FailureKind.SESSION_EXPIRED, message=SESSION_EXPIRED_MESSAGE)
        assert calls == []

    async def test_bearer_token_is_sent(self):
        calls = []
        await _client(reporting_api(calls=calls)).get_incidents(TOKEN)
        assert calls[0].headers["Authorization"] == f"Bearer {TOKEN}"


# ── Endpoints ─────────────────────────────────────────────────────────────────

class TestGetIncidents:
    async def test_returns_reports(self):
        result = await _client(reporting_api()).get_incidents(TOKEN)
        assert isinstance(result, IncidentsPayload)
        assert [r.id for r in result.reports] == ["r1", "r2", "r3"]

    async def test_type_and_limit_params(self):
        calls = []
        await _client(reporting_api(calls=calls)).get_incidents(TOKEN, IncidentType.POLICE, 50)

        request = calls[0]
        assert request.url.path == "/api/reports/all"
        assert request.url.params["type"] == "POLICE"
        assert request.url.params["limit"] == "50"

    async def test_no_type_param_when_unfiltered(self):
        calls = []
        await _client(reporting_api(calls=calls)).get_incidents(TOKEN)
        assert "type" not in calls[0].url.params
        assert "limit" not in calls[0].url.params

    async def test_all_reports_is_unfiltered_with_default_limit(self):
        calls = []
        result = await _client(reporting_api(calls=calls)).get_all_reports(TOKEN)

        assert len(result.reports) == 3
        assert "type" not in calls[0].url.params
        assert calls[0].url.params["limit"] == "500"

    async def test_malformed_record_does_not_fail_the_fetch(self):
        reports = [make_report("a"), {**make_report("b"), "location": "somewhere"}]
        result = await _client(reporting_api(reports=reports)).get_incidents(TOKEN)
        assert isinstance(result, IncidentsPayload)
        assert result.reports[1].lat_lon() is None

    async def test_unreadable_timestamp_is_cleared(self):
        reports = [make_report("a"), make_report("b", created_at="not a date")]
        result = await _client(reporting_api(reports=reports)).get_incidents(TOKEN)

        assert isinstance(result, IncidentsPayload)
        assert [r.id for r in result.reports] == ["a", "b"]
        assert result.reports[1].timestamp is None
        assert result.reports[1].lat_lon() == (48.85, 2.35)

    @pytest.mark.parametrize("raw, expected", [(1.5, 1), (4.9, 4), ("3", 3), ("many", 1), (None, 1)])
    async def test_loose_count_is_coerced(self, raw, expected):
        reports = [make_report("a"), make_report("b", count=raw)]
        result = await _client(reporting_api(reports=reports)).get_incidents(TOKEN)

        assert isinstance(result, IncidentsPayload)
        assert result.reports[1].count == expected

    async def test_loose_upvotes_are_coerced(self):
        reports = [make_report("a", upvotes=2.7), make_report("b", upvotes="lots")]
        result = await _client(reporting_api(reports=reports)).get_incidents(TOKEN)
        assert [r.upvotes for r in result.reports] == [2, 0]

    async def test_record_without_id_is_dropped(self):
        nameless = {k: v for k, v in make_report("b").items() if k != "_id"}
        reports = [make_report("a"), nameless, make_report("c")]
        result = await _client(reporting_api(reports=reports)).get_incidents(TOKEN)

        assert isinstance(result, IncidentsPayload)
        assert [r.id for r in result.reports] == ["a", "c"]

    async def test_reports_not_a_list_is_malformed(self):
        result = await _client(_answer(200, {"success": True, "reports": {"a": 1}})).get_incidents(TOKEN)
        assert result.kind is FailureKind.MALFORMED

    async def test_http_error_uses_server_message(self):
        result = await _client(_answer(401, {"success": False, "message": "Token expired"})).get_incidents(TOKEN)
        assert result == ApiFailure(kind=FailureKind.NETWORK, message="Token expired")

    async def test_http_error_without_message(self):
        result = await _client(_answer(500, {"oops": True})).get_incidents(TOKEN)
        assert result.kind is FailureKind.NETWORK
        assert result.message == "Error while fetching incidents"

    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("offline", request=request)

        result = await _client(httpx.MockTransport(handler)).get_incidents(TOKEN)
        assert result.kind is FailureKind.NETWORK

    async def test_non_json_body_is_network_failure(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))
        result = await _client(transport).get_incidents(TOKEN)
        assert result.kind is FailureKind.NETWORK

    async def test_rejected_by_server(self):
        result = await _client(_answer(200, {"success": False, "message": "Admins only"})).get_incidents(TOKEN)
        assert result.kind is FailureKind.REJECTED


class TestGetPredictions:
    async def test_params_and_payload(self):
        calls = []
        query = LocationQuery(latitude=45.0, longitude=4.0, radius=2000)
        at = datetime(2024, 3, 4, 8, 0, tzinfo=timezone.utc)

        result = await _client(reporting_api(calls=calls)).get_predictions(TOKEN, query, at)

        assert isinstance(result, PredictionsPayload)
        assert result.predictions["ACCIDENT"].sample_size == 12
        assert result.metadata.reports_by_type == {"ACCIDENT": 12, "POLICE": 2}

        params = calls[0].url.params
        assert calls[0].url.path == "/api/predictions/incidents"
        assert params["latitude"] == "45.0"
        assert params["longitude"] == "4.0"
        assert params["radius"] == "2000"
        assert params["date"] == at.isoformat()

    async def test_probability_out_of_range_is_malformed(self):
        body = {**SAMPLE_PREDICTIONS, "predictions": {"ACCIDENT": {"probability": 140, "confidence": 10}}}
        result = await _client(_answer(200, body)).get_predictions(TOKEN, LocationQuery())
        assert result.kind is FailureKind.MALFORMED


class TestGetPeakTimes:
    async def test_params_and_payload(self):
        calls = []
        query = LocationQuery(incident_type=IncidentType.ACCIDENT)

        result = await _client(reporting_api(calls=calls)).get_peak_times(TOKEN, query)

        assert isinstance(result, PeakTimesPayload)
        assert result.peak_days["ACCIDENT"][0].day_name == "Friday"
        assert calls[0].url.path == "/api/predictions/peakTimes"
        assert calls[0].url.params["type"] == "ACCIDENT"
        assert calls[0].url.params["radius"] == "1000"

    async def test_missing_peak_days_is_malformed(self):
        body = {k: v for k, v in SAMPLE_PEAK_TIMES.items() if k != "peakDays"}
        result = await _client(_answer(200, body)).get_peak_times(TOKEN, LocationQuery())
        assert result.kind is FailureKind.MALFORMED
