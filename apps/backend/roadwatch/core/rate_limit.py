"""
rate_limit.py — Global rate limiter instance.

Uses slowapi (a Starlette-compatible wrapper around the `limits` library).
Requests are keyed by client IP address.

The address search route is the one that needs it: every call is forwarded
to the public Nominatim service, whose usage policy caps clients at roughly
one request per second.

Usage in routes:
    from fastapi import Request
    from roadwatch.core.rate_limit import limiter

    @router.post("/search")
    @limiter.limit("30/minute")
    async def search(request: Request, payload: AddressSearch):
        ...
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)
