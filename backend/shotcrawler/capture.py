"""
Single-page capture: load one URL in its own page, pull the raw hrefs out of
the DOM, clear overlays, then take a full-page JPEG.

Navigation waits only for DOMContentLoaded. Heavy sites often never reach
``networkidle``, so that wait is a short, optional second step.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from shotcrawler.config import Settings, get_settings
from shotcrawler.engine import RenderingEngine
from shotcrawler.errors import CaptureError, EngineUninitialized, NavigationError
from shotcrawler.image_utils import optimize_screenshot
from shotcrawler.overlays import dismiss_overlays

logger = logging.getLogger(__name__)

# Raw attribute values plus the document base they resolve against. The base
# follows redirects and any <base href>, so it can differ from the requested URL.
EXTRACT_LINKS_SCRIPT = '''() => {
    return {
        base: document.baseURI,
        links: [...document.querySelectorAll('a[href]')]
            .map(a => a.getAttribute('href'))
            .filter(href => href),
    };
}'''

SCROLL_TO_TOP_SCRIPT = "() => window.scrollTo(0, 0)"


@dataclass(slots=True)
class PageCapture:
    """What one page yields: its outbound links and a JPEG of the whole page.

    ``base_url`` is where relative ``links`` resolve from; it defaults to
    ``url`` when the page doesn't report one.
    """
    url: str
    image: bytes
    links: List[str] = field(default_factory=list)
    base_url: Optional[str] = None

    def __post_init__(self):
        if not self.base_url:
            self.base_url = self.url


async def capture_page(
    engine: Optional[RenderingEngine],
    url: str,
    settings: Optional[Settings] = None,
) -> PageCapture:
    """
    Drive one page through load, link extraction and screenshot.

    Raises ``NavigationError`` if the page doesn't load in time and
    ``CaptureError`` if links or pixels can't be read. The page is closed on
    every path.
    """
    settings = settings or get_settings()
    if engine is None:
        raise EngineUninitialized("Browser not initialized")

    try:
        page = await engine.new_page()
    except Exception as e:
        raise CaptureError(f"Failed to open page: {e}") from e

    try:
        try:
            await page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=settings.navigation_timeout_ms,
            )
        except Exception as e:
            raise NavigationError(f"Failed to load URL: {e}") from e

        try:
            extracted = await page.evaluate(EXTRACT_LINKS_SCRIPT) or {}
            links = extracted.get("links") or []
            base_url = extracted.get("base") or url
        except Exception as e:
            raise CaptureError(f"Failed to extract links: {e}") from e

        await dismiss_overlays(page)

        # Give lazy content a moment; a timeout here is fine
        try:
            await page.wait_for_load_state("networkidle", timeout=settings.idle_wait_timeout_ms)
        except Exception:
            logger.debug("[capture] Network idle wait timed out for %s, continuing with screenshot", url)

        try:
            await page.evaluate(SCROLL_TO_TOP_SCRIPT)
            image = await page.screenshot(
                full_page=True,
                type="jpeg",
                quality=settings.screenshot_quality,
            )
            if settings.screenshot_max_width:
                image = optimize_screenshot(
                    image,
                    max_width=settings.screenshot_max_width,
                    quality=settings.screenshot_quality,
                )
        except Exception as e:
            raise CaptureError(f"Failed to capture screenshot: {e}") from e

        return PageCapture(
            url=url,
            image=image,
            links=[str(link) for link in links],
            base_url=str(base_url),
        )
    finally:
        try:
            await page.close()
        except Exception as e:
            logger.warning("[capture] Failed to close page for %s: %s", url, e)
