"""
Page fetcher capability backed by Playwright
The crawler only needs navigate / evaluate / wait_for_selector / click; timeouts
and navigation errors are the only signals surfaced to callers
"""
import logging
from typing import Any, List, Optional

from playwright.async_api import Browser, Page, async_playwright, Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout

from ..errors import NavigationError, SelectorTimeoutError

# Get logger
logger = logging.getLogger(__name__)

PAGE_TEXT_SCRIPT = "() => document.body ? document.body.innerText : ''"
PAGE_HTML_SCRIPT = "() => document.documentElement ? document.documentElement.outerHTML : ''"


class PlaywrightPageFetcher:
    """Wraps one Playwright page"""

    def __init__(self, page: Page, settle_timeout_ms: int = 8000, settle_pause_ms: int = 3000):
        """
        Args:
            page: Playwright page object
            settle_timeout_ms: Max wait for network idle after a click
            settle_pause_ms: Extra pause after the network settles
        """
        self.page = page
        self.settle_timeout_ms = settle_timeout_ms
        self.settle_pause_ms = settle_pause_ms

    @property
    def url(self) -> str:
        return self.page.url

    async def navigate(self, url: str, wait_until: str = "networkidle", timeout_ms: int = 30000) -> None:
        try:
            await self.page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        except PlaywrightTimeout as e:
            raise NavigationError(f"Timed out loading {url}: {str(e)[:120]}") from e
        except PlaywrightError as e:
            raise NavigationError(f"Failed to load {url}: {str(e)[:120]}") from e

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        try:
            if arg is None:
                return await self.page.evaluate(script)
            return await self.page.evaluate(script, arg)
        except PlaywrightError as e:
            raise NavigationError(f"Script evaluation failed: {str(e)[:120]}") from e

    async def wait_for_selector(self, selector: str, timeout_ms: int = 15000) -> None:
        try:
            await self.page.wait_for_selector(selector, timeout=timeout_ms)
        except PlaywrightTimeout as e:
            raise SelectorTimeoutError(f"{selector} not found after {timeout_ms}ms") from e

    async def click(self, selector: str) -> None:
        """Click and wait for the page to settle (network idle, bounded)"""
        try:
            await self.page.click(selector)
        except PlaywrightError as e:
            raise NavigationError(f"Failed to click {selector}: {str(e)[:120]}") from e

        try:
            await self.page.wait_for_load_state("networkidle", timeout=self.settle_timeout_ms)
        except PlaywrightTimeout:
            pass

        await self.page.wait_for_timeout(self.settle_pause_ms)

    async def pause(self, ms: int) -> None:
        await self.page.wait_for_timeout(ms)

    async def close(self) -> None:
        try:
            await self.page.close()
        except PlaywrightError:
            logger.debug("page.close() failed", exc_info=True)


class BrowserSession:
    """
    Async context manager owning one Chromium instance
    Hands out one PlaywrightPageFetcher per worker
    """

    def __init__(self, headless: bool = True):
        self.headless = headless
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._fetchers: List[PlaywrightPageFetcher] = []

    async def __aenter__(self) -> "BrowserSession":
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(headless=self.headless)
        logger.info(f"  ✓ Browser launched (headless={self.headless})")
        return self

    async def new_fetcher(self) -> PlaywrightPageFetcher:
        page = await self._browser.new_page()
        fetcher = PlaywrightPageFetcher(page)
        self._fetchers.append(fetcher)
        return fetcher

    async def __aexit__(self, exc_type, exc, tb) -> None:
        for fetcher in self._fetchers:
            await fetcher.close()
        if self._browser:
            await self._browser.close()
        if self._playwright:
            await self._playwright.stop()
