"""Best-effort removal of cookie banners and consent modals before capture."""
from __future__ import annotations

import logging

from shotcrawler.engine import BrowserPage

logger = logging.getLogger(__name__)

# Probed in order; only the first match is clicked
OVERLAY_SELECTORS = (
    'button:has-text("Accept")',
    'button:has-text("Accept All")',
    'button:has-text("OK")',
    'button:has-text("I Accept")',
    'button:has-text("Close")',
    '[aria-label="Accept cookies"]',
    '#cookie-notice button',
    '.cookie-banner button',
    '.consent-banner button',
)


async def dismiss_overlays(page: BrowserPage, selectors=OVERLAY_SELECTORS) -> str | None:
    """
    Click the first overlay control found on the page.

    Returns the selector that matched, or None. Never raises: a banner we
    can't close just ends up in the screenshot.
    """
    try:
        for selector in selectors:
            button = await page.query_selector(selector)
            if not button:
                continue
            try:
                await button.click()
            except Exception as e:
                logger.debug("[overlay] Click on %s failed: %s", selector, e)
            return selector
    except Exception as e:
        logger.debug("[overlay] Overlay lookup failed: %s", e)
    return None
