"""
map_loader.py — Makes the Leaflet library available to the host document.

ensure_loaded() fetches the Leaflet script and stylesheet once, then
inserts exactly one <script id="leaflet-script"> and one leaflet.css
<link> into the Document. Each insertion is guarded by an identity check,
so a stylesheet some other component already added is never duplicated.

Concurrency: all callers that arrive while a load is in flight await the
same task (shielded, so one cancelled caller does not abort the load for
the others). After a successful load every call returns immediately.

Failure: ResourceLoadError is raised to every waiter and the loader
forgets the failed attempt, so calling ensure_loaded() again retries. There
is no automatic retry; the view shows a dismissible banner instead.
"""

import asyncio
import logging
from typing import Optional

import httpx

from roadwatch.core.config import settings
from roadwatch.core.document import Document, ResourceNode

logger = logging.getLogger(__name__)

SCRIPT_ID = "leaflet-script"
STYLESHEET_MARKER = "leaflet.css"


class ResourceLoadError(Exception):
    """The map library or its stylesheet could not be loaded (retryable)."""


class MapResourceLoader:
    def __init__(
        self,
        document: Document,
        script_url: Optional[str] = None,
        stylesheet_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.document = document
        self.script_url = script_url or settings.leaflet_script_url
        self.stylesheet_url = stylesheet_url or settings.leaflet_stylesheet_url
        self.timeout = timeout if timeout is not None else settings.asset_timeout_seconds
        self._transport = transport
        self._task: Optional[asyncio.Task] = None
        self._loaded = False

    @property
    def ready(self) -> bool:
        return self._loaded

    async def ensure_loaded(self) -> None:
        if self._loaded:
            return

        if self._task is None:
            self._task = asyncio.create_task(self._load())
        task = self._task

        try:
            await asyncio.shield(task)
        except ResourceLoadError:
            # Forget the failed attempt so the next call starts a fresh load.
            if self._task is task:
                self._task = None
            raise

    async def _load(self) -> None:
        logger.info("Loading map library from %s", self.script_url)
        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            try:
                script, stylesheet = await asyncio.gather(
                    client.get(self.script_url),
                    client.get(self.stylesheet_url),
                )
                script.raise_for_status()
                stylesheet.raise_for_status()
            except httpx.HTTPError as exc:
                logger.error("Map library failed to load: %s", exc)
                raise ResourceLoadError(
                    "The map library could not be loaded. Please try again."
                ) from exc

        if self.document.find_stylesheet(STYLESHEET_MARKER) is None:
            self.document.append_head(ResourceNode(kind="stylesheet", href=self.stylesheet_url))
        if self.document.find_script(SCRIPT_ID) is None:
            self.document.append_body(
                ResourceNode(kind="script", href=self.script_url, node_id=SCRIPT_ID)
            )

        self._loaded = True
        self._task = None
        logger.info("Map library ready")
