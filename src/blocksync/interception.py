"""
Playwright integration: block requests and apply cosmetic resources on pages.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from playwright.async_api import Error as PlaywrightError

from .decision import DecisionEngine
from .engine import RequestType

if TYPE_CHECKING:
    from playwright.async_api import Frame, Page, Request, Route

logger = logging.getLogger(__name__)

# Map Playwright resource types to our RequestType enum
PLAYWRIGHT_TYPE_MAP = {
    "document": RequestType.DOCUMENT,
    "stylesheet": RequestType.STYLESHEET,
    "image": RequestType.IMAGE,
    "media": RequestType.MEDIA,
    "font": RequestType.FONT,
    "script": RequestType.SCRIPT,
    "texttrack": RequestType.OTHER,
    "xhr": RequestType.XMLHTTPREQUEST,
    "fetch": RequestType.XMLHTTPREQUEST,
    "eventsource": RequestType.OTHER,
    "websocket": RequestType.WEBSOCKET,
    "manifest": RequestType.OTHER,
    "other": RequestType.OTHER,
}


def _is_http(url: str | None) -> bool:
    return bool(url) and url.startswith(("http://", "https://"))


class PageShield:
    """Route a page's requests through a ``DecisionEngine``.

    Blocked requests are aborted with ``blockedbyclient``. On every
    main-frame navigation the page's cosmetic resources are injected.
    """

    def __init__(self, decision: DecisionEngine) -> None:
        self._decision = decision
        self._background_tasks: set[asyncio.Task[None]] = set()

        # Statistics
        self._requests_checked = 0
        self._requests_blocked = 0
        self._pages_styled = 0

    async def setup_page(self, page: Page) -> None:
        """Install the route handler and navigation hook on a page."""
        await page.route("**/*", self.handle_route)
        page.on("framenavigated", self._schedule_frame_navigated)
        logger.debug("Adblock setup complete for page")

    def _schedule_frame_navigated(self, frame: Frame) -> None:
        task = asyncio.create_task(self.on_frame_navigated(frame))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    @staticmethod
    def _source_url(request: Request) -> str:
        # Service worker requests have no frame
        try:
            frame = request.frame
        except PlaywrightError:
            return ""
        return frame.url if frame and frame.url else ""

    async def handle_route(self, route: Route) -> None:
        """Abort the request if the decision engine blocks it, else continue."""
        request = route.request
        url = request.url

        if not _is_http(url):
            await route.continue_()
            return

        self._requests_checked += 1
        resource_type = PLAYWRIGHT_TYPE_MAP.get(request.resource_type, RequestType.OTHER)
        source_url = self._source_url(request)

        if self._decision.should_block(url, source_url, resource_type):
            self._requests_blocked += 1
            logger.debug("Blocking: %s", url[:80])
            try:
                await route.abort("blockedbyclient")
            except PlaywrightError as e:
                logger.debug("Failed to abort: %s", e)
            return

        try:
            await route.continue_()
        except PlaywrightError as e:
            # Route may already be handled
            logger.debug("Failed to continue route: %s", e)

    async def on_frame_navigated(self, frame: Frame) -> None:
        """Inject the cosmetic filters script into a navigated main frame."""
        if frame.parent_frame is not None:
            return

        url = frame.url
        if not _is_http(url):
            return

        script = self._decision.cosmetic_filters_script(url)
        if script is None:
            return

        try:
            await frame.evaluate(script)
            self._pages_styled += 1
            logger.debug("Injected cosmetic filters for %s", url[:80])
        except PlaywrightError as e:
            logger.debug("Failed to apply cosmetic filters: %s", e)

    def get_stats(self) -> dict[str, int]:
        """Get blocking statistics."""
        return {
            "requests_checked": self._requests_checked,
            "requests_blocked": self._requests_blocked,
            "pages_styled": self._pages_styled,
        }
