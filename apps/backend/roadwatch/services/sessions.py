"""
sessions.py — One PredictionsView per console session.

Every admin browser gets its own view (active tab, map surface, query,
cached incidents), keyed by an opaque session id kept in a cookie. A map
handle therefore never leaves the session that acquired it.

Sessions are kept in least-recently-used order; once `max_sessions` is
exceeded the oldest one is unmounted and forgotten.
"""

import logging
import secrets
from collections import OrderedDict
from typing import Callable, Optional

from roadwatch.core.config import settings
from roadwatch.services.predictions_view import PredictionsView

logger = logging.getLogger(__name__)

SESSION_COOKIE = "roadwatch_session"


class ViewRegistry:
    def __init__(
        self,
        factory: Callable[[], PredictionsView],
        max_sessions: Optional[int] = None,
    ) -> None:
        self.factory = factory
        self.max_sessions = max_sessions if max_sessions is not None else settings.max_console_sessions
        self._views: OrderedDict[str, PredictionsView] = OrderedDict()

    def __len__(self) -> int:
        return len(self._views)

    def get(self, session_id: Optional[str]) -> Optional[PredictionsView]:
        """The session's view, or None for a missing / unknown / evicted id."""
        if not session_id or session_id not in self._views:
            return None
        self._views.move_to_end(session_id)
        return self._views[session_id]

    def open(self) -> tuple[str, PredictionsView]:
        session_id = secrets.token_urlsafe(16)
        view = self.factory()
        self._views[session_id] = view
        logger.info("Console session opened (%d active)", len(self._views))

        while len(self._views) > self.max_sessions:
            _, oldest = self._views.popitem(last=False)
            oldest.unmount()
            logger.info("Least recently used console session closed")
        return session_id, view

    def map_library_loaded(self) -> bool:
        return any(view.loader.ready for view in self._views.values())

    def unmount_all(self) -> None:
        for view in self._views.values():
            view.unmount()
        self._views.clear()
