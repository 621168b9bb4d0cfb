"""
deps.py — Shared FastAPI dependencies.

get_views       — the app's ViewRegistry (created by the lifespan, or lazily
                  on first use when the lifespan did not run)
get_view        — the caller's own PredictionsView, found by session cookie;
                  a new session (and cookie) is opened when there is none
get_report_client — the ReportClient used by the dashboard
get_api_token   — the caller's bearer token, falling back to settings.api_token

Tests swap any of these with app.dependency_overrides.
"""

from typing import Annotated, Optional

from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from roadwatch.core.config import settings
from roadwatch.services.geo_resolver import GeoResolver, IpPositionProvider
from roadwatch.services.predictions_view import PredictionsView
from roadwatch.services.report_client import ReportClient, report_client
from roadwatch.services.sessions import SESSION_COOKIE, ViewRegistry

# Reusable bearer extractor (does NOT auto-raise on missing token)
_bearer = HTTPBearer(auto_error=False)
CredDep = Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)]


def build_view() -> PredictionsView:
    return PredictionsView(
        client=report_client,
        resolver=GeoResolver(provider=IpPositionProvider()),
    )


def get_views(request: Request) -> ViewRegistry:
    views = getattr(request.app.state, "views", None)
    if views is None:
        views = ViewRegistry(build_view)
        request.app.state.views = views
    return views


ViewsDep = Annotated[ViewRegistry, Depends(get_views)]


def get_view(request: Request, response: Response, views: ViewsDep) -> PredictionsView:
    view = views.get(request.cookies.get(SESSION_COOKIE))
    if view is None:
        session_id, view = views.open()
        response.set_cookie(
            SESSION_COOKIE,
            session_id,
            httponly=True,
            samesite="lax",
            secure=settings.environment == "production",
        )
    return view


def get_report_client() -> ReportClient:
    return report_client


def get_api_token(credentials: CredDep) -> Optional[str]:
    """
    The token forwarded to the reporting API.

    None means no session: the client then answers SESSION_EXPIRED
    without sending anything.
    """
    if credentials:
        return credentials.credentials
    return settings.api_token or None


ViewDep = Annotated[PredictionsView, Depends(get_view)]
TokenDep = Annotated[Optional[str], Depends(get_api_token)]
