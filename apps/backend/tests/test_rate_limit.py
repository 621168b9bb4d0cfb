"""
test_rate_limit.py — Tests for rate limiting of the address search.

Every /api/v1/predictions/search call is forwarded to Nominatim, so the
route is limited to 30/minute per client IP.

Strategy for the 429 tests:
  Patch `limiter.limiter.hit` to return False, which tells slowapi that
  the moving-window bucket is full → raises RateLimitExceeded → 429.
  This avoids sending 30 real requests per test.
"""

from unittest.mock import patch

import pytest

from conftest import nominatim

LYON = [{"lat": "45.764", "lon": "4.8357", "display_name": "Lyon, France"}]
SEARCH = "/api/v1/predictions/search"


@pytest.fixture()
async def rl_client(client):
    """
    The regular test client with the limiter's in-memory counters reset,
    so previous requests don't bleed into the next test.
    """
    from roadwatch.core.rate_limit import limiter

    limiter.reset()
    yield client


@pytest.fixture()
def view(build_view):
    return build_view(geocoder_transport=nominatim(LYON))


class TestRateLimitNormal:
    async def test_search_returns_200(self, rl_client):
        r = await rl_client.post(SEARCH, json={"query": "Lyon"})
        assert r.status_code == 200
        assert r.json()["result"]["label"] == "Lyon, France"

    async def test_multiple_requests_within_limit_succeed(self, rl_client):
        for _ in range(3):
            r = await rl_client.post(SEARCH, json={"query": "Lyon"})
            assert r.status_code == 200

    async def test_other_routes_are_not_limited(self, rl_client):
        from roadwatch.core.rate_limit import limiter

        with patch.object(limiter.limiter, "hit", return_value=False):
            r = await rl_client.post("/api/v1/predictions/zoom/in")
        assert r.status_code == 200


class TestRateLimitExceeded:
    async def test_search_429_when_limit_exceeded(self, rl_client):
        from roadwatch.core.rate_limit import limiter

        with patch.object(limiter.limiter, "hit", return_value=False):
            r = await rl_client.post(SEARCH, json={"query": "Lyon"})

        assert r.status_code == 429
        assert "error" in r.json()

    async def test_limited_search_does_not_move_location(self, rl_client, view):
        from roadwatch.core.rate_limit import limiter

        with patch.object(limiter.limiter, "hit", return_value=False):
            await rl_client.post(SEARCH, json={"query": "Lyon"})

        assert view.query.latitude == 48.8566

    async def test_after_limit_reset_request_succeeds(self, rl_client):
        from roadwatch.core.rate_limit import limiter

        with patch.object(limiter.limiter, "hit", return_value=False):
            r_limited = await rl_client.post(SEARCH, json={"query": "Lyon"})
        assert r_limited.status_code == 429

        r_ok = await rl_client.post(SEARCH, json={"query": "Lyon"})
        assert r_ok.status_code == 200


class TestLimiterSetup:
    async def test_limiter_attached_to_app_state(self):
        from roadwatch.core.rate_limit import limiter
        from roadwatch.main import app

        assert app.state.limiter is limiter

    async def test_limiter_uses_ip_key_function(self):
        from slowapi.util import get_remote_address

        from roadwatch.core.rate_limit import limiter

        assert limiter._key_func is get_remote_address
