"""
Rendering engine seam.

The crawler only ever needs: open a page, navigate, evaluate a script,
look up an element, wait for the network, screenshot, close. Playwright's
async ``Page`` already speaks that API, so ``BrowserPage`` is just the
subset we call, and tests can hand in a fake with the same methods.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Protocol

from playwright.async_api import Browser, Playwright, async_playwright

from shotcrawler.config import Settings, get_settings

logger = logging.getLogger(__name__)


class BrowserPage(Protocol):
    async def goto(self, url: str, *, wait_until: str, timeout: float) -> Any: ...

    async def evaluate(self, expression: str) -> Any: ...

    async def query_selector(self, selector: str) -> Any: ...

    async def wait_for_load_state(self, state: str, *, timeout: float) -> None: ...

    async def screenshot(self, *, full_page: bool, type: str, quality: int) -> bytes: ...

    async def close(self) -> None: ...


class RenderingEngine(Protocol):
    async def start(self) -> None: ...

    async def new_page(self) -> BrowserPage: ...

    async def close(self) -> None: ...


EngineFactory = Callable[[Settings], RenderingEngine]


class PlaywrightEngine:
    """One headless Chromium process; every ``new_page`` is an isolated context."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    async def start(self) -> None:
        if self._browser is not None:
            return
        logger.info("[engine] Starting browser...")
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(
                headless=self.settings.headless,
                executable_path=self.settings.chromium_executable_path,
                args=self.settings.chromium_args,
            )
        except Exception:
            await self._playwright.stop()
            self._playwright = None
            raise

    async def new_page(self) -> BrowserPage:
        if self._browser is None:
            raise RuntimeError("Browser not started")
        # browser.new_page() creates a fresh context owned by the page
        return await self._browser.new_page(
            viewport={
                "width": self.settings.viewport_width,
                "height": self.settings.viewport_height,
            },
        )

    async def close(self) -> None:
        browser, self._browser = self._browser, None
        playwright, self._playwright = self._playwright, None
        if browser is not None:
            try:
                await browser.close()
            except Exception as e:
                logger.warning("[engine] Error during browser cleanup: %s", e)
        if playwright is not None:
            await playwright.stop()


def playwright_engine(settings: Settings) -> RenderingEngine:
    return PlaywrightEngine(settings)
