# app/services/purchaser/browser.py
"""
Playwright plumbing shared by the purchase steps: browser lifecycle,
screenshots, highlighting, and the fallback-selector lookup.
"""
from __future__ import annotations

import asyncio
import re
from contextlib import asynccontextmanager, suppress
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, Iterable, Optional, Union

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page, async_playwright

from app.core.config import Settings
from app.core.logging import PURCHASE_LOGGER, get_logger
from app.services.purchaser.errors import ElementNotFound

logger = get_logger(f"{PURCHASE_LOGGER}.browser")

# how many matches of one selector are checked for visibility
MAX_CANDIDATES = 25

_HIGHLIGHT_JS = """
(el, color) => {
    el.style.outline = `3px solid ${color}`;
    el.style.backgroundColor = color === 'red' ? 'rgba(255, 0, 0, 0.2)' : 'rgba(0, 255, 0, 0.2)';
    el.scrollIntoView({ behavior: 'instant', block: 'center' });
}
"""


@asynccontextmanager
async def open_browser(cfg: Settings) -> AsyncIterator[Page]:
    async with async_playwright() as pw:
        browser = await pw.chromium.launch(
            headless=cfg.HEADLESS,
            slow_mo=cfg.SLOW_MO_MS,
        )
        try:
            context = await browser.new_context(
                viewport={"width": cfg.VIEWPORT_WIDTH, "height": cfg.VIEWPORT_HEIGHT})
            page = await context.new_page()
            page.set_default_timeout(cfg.ACTION_TIMEOUT_MS)
            page.set_default_navigation_timeout(cfg.NAVIGATION_TIMEOUT_MS)
            yield page
            if cfg.KEEP_OPEN_SECONDS > 0:
                logger.info("Keeping browser open for %ds", cfg.KEEP_OPEN_SECONDS)
                await asyncio.sleep(cfg.KEEP_OPEN_SECONDS)
        finally:
            await browser.close()


def _slug(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9]+", "_", name).strip("_").lower() or "shot"


class Screenshotter:
    """Writes <root>/<run>/<name>_<timestamp>.png; a failed capture only warns."""

    def __init__(self, root: str, run_id: str, enabled: bool = True):
        self.enabled = enabled
        self.directory = Path(root) / run_id
        if enabled:
            self.directory.mkdir(parents=True, exist_ok=True)

    async def take(self, page: Page, name: str, full_page: bool = False) -> Optional[Path]:
        if not self.enabled:
            return None
        stamp = datetime.now().strftime("%Y%m%dT%H%M%S%f")
        path = self.directory / f"{_slug(name)}_{stamp}.png"
        try:
            await page.screenshot(path=str(path), full_page=full_page)
        except PlaywrightError as e:
            logger.warning("Screenshot %s failed: %s", name, e)
            return None
        logger.debug("Screenshot saved: %s", path)
        return path


async def highlight(locator: Locator, color: str = "green") -> None:
    with suppress(PlaywrightError):
        await locator.evaluate(_HIGHLIGHT_JS, color)


async def find_first(page: Union[Page, Locator], selectors: Iterable[str],
                     visible: bool = True) -> Optional[Locator]:
    """Return the first (visible) element matched by the earliest selector.

    ``page`` may also be a Locator to search inside one element only.
    """
    for sel in selectors:
        loc = page.locator(sel)
        try:
            count = await loc.count()
        except PlaywrightError as e:
            logger.debug("Selector %r rejected: %s", sel, e)
            continue
        for i in range(min(count, MAX_CANDIDATES)):
            cand = loc.nth(i)
            if not visible or await cand.is_visible():
                logger.debug("Matched %r (#%d)", sel, i)
                return cand
    return None


async def require_first(page: Page, selectors: Iterable[str], what: str,
                        visible: bool = True) -> Locator:
    selectors = list(selectors)
    found = await find_first(page, selectors, visible=visible)
    if found is None:
        raise ElementNotFound(what, selectors)
    return found


async def click_first(page: Page, selectors: Iterable[str], what: str) -> Locator:
    target = await require_first(page, selectors, what)
    await highlight(target)
    await target.click()
    logger.info("Clicked %s", what)
    return target


async def fill_first(page: Page, selectors: Iterable[str], what: str, value: str) -> Locator:
    target = await require_first(page, selectors, what)
    await target.click()
    await target.fill(value)
    return target
