"""
test_geo_resolver.py — Tests for device geolocation and Nominatim address search.
"""

import asyncio

import httpx
import pytest

from conftest import FixedPosition, nominatim
from roadwatch.services.geo_resolver import (
    GeoResolver,
    IpPositionProvider,
    LocationStatus,
    PositionError,
    PositionErrorCode,
    PositionOptions,
    classify_position_error,
)

LYON = [{"lat": "45.7578137", "lon": "4.8320114", "display_name": "Lyon, France"}]


class SlowPosition:
    async def get_current_position(self, options):
        await asyncio.sleep(5)
        return (0.0, 0.0)


# ── detect_device ─────────────────────────────────────────────────────────────

class TestDetectDevice:
    async def test_success(self):
        result = await GeoResolver(provider=FixedPosition(45.764, 4.8357)).detect_device()
        assert result.found
        assert (result.latitude, result.longitude) == (45.764, 4.8357)
        assert result.message == "Position detected successfully"

    async def test_fixed_request_policy(self):
        provider = FixedPosition()
        await GeoResolver(provider=provider).detect_device()

        options = provider.calls[0]
        assert options.enable_high_accuracy is True
        assert options.timeout == 5.0
        assert options.maximum_age == 0

    async def test_unsupported_without_provider(self):
        result = await GeoResolver().detect_device()
        assert result.status is LocationStatus.UNSUPPORTED
        assert not result.found

    @pytest.mark.parametrize(
        "code, status",
        [
            (PositionErrorCode.PERMISSION_DENIED, LocationStatus.PERMISSION_DENIED),
            (2, LocationStatus.POSITION_UNAVAILABLE),
            ("timeout", LocationStatus.TIMEOUT),
            (99, LocationStatus.UNKNOWN),
        ],
    )
    async def test_position_errors_are_classified(self, code, status):
        provider = FixedPosition(error=PositionError(code, "nope"))
        result = await GeoResolver(provider=provider).detect_device()
        assert result.status is status
        assert result.message

    async def test_slow_provider_times_out(self):
        resolver = GeoResolver(provider=SlowPosition(), options=PositionOptions(timeout=0.01))
        result = await resolver.detect_device()
        assert result.status is LocationStatus.TIMEOUT

    async def test_unexpected_exception_is_unknown(self):
        provider = FixedPosition(error=RuntimeError("boom"))
        result = await GeoResolver(provider=provider).detect_device()
        assert result.status is LocationStatus.UNKNOWN

    async def test_out_of_range_fix_is_unavailable(self):
        result = await GeoResolver(provider=FixedPosition(123.0, 4.0)).detect_device()
        assert result.status is LocationStatus.POSITION_UNAVAILABLE


class TestClassifyPositionError:
    def test_none_is_unknown(self):
        assert classify_position_error(None) is LocationStatus.UNKNOWN

    def test_name_is_case_insensitive(self):
        assert classify_position_error("Permission_Denied") is LocationStatus.PERMISSION_DENIED


class TestIpPositionProvider:
    async def test_reads_latitude_and_longitude(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json={"latitude": 48.85, "longitude": 2.35})
        )
        provider = IpPositionProvider(url="https://ip.test/json/", transport=transport)
        assert await provider.get_current_position(PositionOptions()) == (48.85, 2.35)

    async def test_missing_fields_raise_unavailable(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"error": True}))
        provider = IpPositionProvider(url="https://ip.test/json/", transport=transport)
        with pytest.raises(PositionError) as exc_info:
            await provider.get_current_position(PositionOptions())
        assert exc_info.value.code is PositionErrorCode.POSITION_UNAVAILABLE

    async def test_resolver_maps_provider_failure(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500, json={}))
        provider = IpPositionProvider(url="https://ip.test/json/", transport=transport)
        result = await GeoResolver(provider=provider).detect_device()
        assert result.status is LocationStatus.POSITION_UNAVAILABLE


# ── resolve_address ───────────────────────────────────────────────────────────

class TestResolveAddress:
    async def test_first_match_wins(self):
        calls = []
        resolver = GeoResolver(nominatim_url="https://geo.test/search", transport=nominatim(LYON, calls=calls))
        result = await resolver.resolve_address("Lyon")

        assert result.found
        assert result.latitude == pytest.approx(45.7578137)
        assert result.longitude == pytest.approx(4.8320114)
        assert result.label == "Lyon, France"
        assert result.message == "Address found: Lyon, France"

        params = calls[0].url.params
        assert params["format"] == "json"
        assert params["q"] == "Lyon"
        assert params["limit"] == "1"
        assert calls[0].headers["User-Agent"]

    @pytest.mark.parametrize("text", ["", "   ", "\t\n"])
    async def test_blank_query_makes_no_request(self, text):
        calls = []
        resolver = GeoResolver(nominatim_url="https://geo.test/search", transport=nominatim(LYON, calls=calls))
        result = await resolver.resolve_address(text)

        assert result.status is LocationStatus.NO_QUERY
        assert calls == []

    async def test_no_match(self):
        resolver = GeoResolver(nominatim_url="https://geo.test/search", transport=nominatim([]))
        result = await resolver.resolve_address("nowhere at all")
        assert result.status is LocationStatus.NOT_FOUND
        assert not result.found

    async def test_http_error_is_lookup_failed(self):
        resolver = GeoResolver(nominatim_url="https://geo.test/search", transport=nominatim(status=503))
        result = await resolver.resolve_address("Lyon")
        assert result.status is LocationStatus.LOOKUP_FAILED

    async def test_network_error_is_lookup_failed(self):
        def handler(request):
            raise httpx.ConnectError("offline", request=request)

        resolver = GeoResolver(nominatim_url="https://geo.test/search", transport=httpx.MockTransport(handler))
        result = await resolver.resolve_address("Lyon")
        assert result.status is LocationStatus.LOOKUP_FAILED

    async def test_match_without_coordinates_is_lookup_failed(self):
        resolver = GeoResolver(
            nominatim_url="https://geo.test/search", transport=nominatim([{"display_name": "??"}])
        )
        result = await resolver.resolve_address("Lyon")
        assert result.status is LocationStatus.LOOKUP_FAILED

    async def test_timeout_comes_from_settings(self):
        from roadwatch.core.config import settings

        assert GeoResolver().timeout == settings.geocoder_timeout_seconds

    async def test_explicit_timeout_is_sent_with_the_request(self):
        calls = []
        resolver = GeoResolver(
            nominatim_url="https://geo.test/search",
            timeout=2.5,
            transport=nominatim(LYON, calls=calls),
        )
        await resolver.resolve_address("Lyon")
        assert calls[0].extensions["timeout"]["read"] == 2.5
