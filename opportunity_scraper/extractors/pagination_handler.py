"""
Listing Pagination Module
Walks the paginated opportunity listing and yields one ListingStub per new card

The walk is lazy and single-pass: stubs are yielded as each page is scraped,
so detail fetching can start before the listing is exhausted.
"""
import logging
from typing import AsyncIterator, Any, Optional

from pydantic import ValidationError

from ..config import DEFAULT_BASE_URL
from ..errors import NavigationError, ListingUnavailableError, SelectorTimeoutError
from ..models import ListingStub, RunState

# Get logger
logger = logging.getLogger(__name__)

CARD_SELECTOR = "a.opportunities-card__link"
NEXT_SELECTOR = 'ul.pagination li a:has-text("›")'

# Scrapes {id, url, title} from every card on the current page
STUB_SCRIPT = """(baseUrl) => {
    const results = [];
    document.querySelectorAll('a.opportunities-card__link').forEach((link) => {
        const href = link.getAttribute('href') || '';
        const url = href.startsWith('http') ? href : `${baseUrl}/sp${href}`;
        const ariaLabel = link.getAttribute('aria-label') || '';
        const titleEl = link.querySelector('strong');
        const title = titleEl && titleEl.textContent ? titleEl.textContent.trim() : '';
        const idEl = link.querySelector('.opportunities-card__number');
        const idMatch = ((idEl && idEl.textContent) || '').match(/ID:\\s*([A-Z]+-\\d+)/i) ||
                        ariaLabel.match(/ID:\\s*([A-Z]+-\\d+)/i);
        const id = idMatch ? idMatch[1] : '';
        if (id && href) {
            results.push({ id, url, title });
        }
    });
    return results;
}"""

# 'absent' | 'disabled' | 'enabled'
NEXT_STATE_SCRIPT = """() => {
    const links = Array.from(document.querySelectorAll('ul.pagination li a'));
    const next = links.find((a) => (a.textContent || '').trim() === '›');
    if (!next) return 'absent';
    const li = next.closest('li');
    return li && li.classList.contains('disabled') ? 'disabled' : 'enabled';
}"""


class PaginationWalker:
    """Traditional next-button pagination over the opportunity listing"""

    def __init__(
        self,
        listing_url: str,
        state: RunState,
        base_url: str = DEFAULT_BASE_URL,
        navigation_timeout_ms: int = 60000,
        selector_timeout_ms: int = 15000,
        max_empty_pages: int = 3,
        initial_settle_ms: int = 5000
    ):
        """
        Args:
            listing_url: First listing page (status filter already applied)
            state: Run state; seen_ids is read and extended here
            base_url: Prefix for relative card links
            navigation_timeout_ms: Timeout for the first listing navigation
            selector_timeout_ms: Wait for cards on each page
            max_empty_pages: Consecutive pages with no new stubs before giving up
            initial_settle_ms: Pause after the first load
        """
        self.listing_url = listing_url
        self.state = state
        self.base_url = base_url.rstrip("/")
        self.navigation_timeout_ms = navigation_timeout_ms
        self.selector_timeout_ms = selector_timeout_ms
        self.max_empty_pages = max_empty_pages
        self.initial_settle_ms = initial_settle_ms
        self.pages_visited = 0

    async def _next_state(self, fetcher: Any) -> str:
        return await fetcher.evaluate(NEXT_STATE_SCRIPT) or "absent"

    async def _skip_to(self, fetcher: Any, start_page: int) -> int:
        """Click next start_page - 1 times; returns the page actually reached"""
        logger.info(f"  Skipping to page {start_page}...")
        page_num = 1
        while page_num < start_page:
            if await self._next_state(fetcher) != "enabled":
                logger.warning(f"  ⚠️  Could not skip to page {start_page}, only {page_num} pages found")
                break
            await fetcher.click(NEXT_SELECTOR)
            page_num += 1
        return page_num

    def _to_stub(self, item: Any) -> Optional[ListingStub]:
        if not isinstance(item, dict):
            return None
        try:
            return ListingStub(
                natural_id=str(item.get("id") or ""),
                detail_url=str(item.get("url") or ""),
                list_title=str(item.get("title") or ""),
            )
        except ValidationError:
            return None

    async def walk(self, fetcher: Any, start_page: int = 1, cap: int = 200) -> AsyncIterator[ListingStub]:
        """
        Yield unseen stubs until the cap, the last page, or a card timeout

        Raises:
            ListingUnavailableError: the first listing page could not be loaded
            NavigationError: clicking through pages failed mid-walk
        """
        try:
            await fetcher.navigate(self.listing_url, wait_until="networkidle", timeout_ms=self.navigation_timeout_ms)
        except NavigationError as e:
            raise ListingUnavailableError(f"Listing unavailable: {e}") from e

        await fetcher.pause(self.initial_settle_ms)

        page_num = 1
        if start_page > 1:
            page_num = await self._skip_to(fetcher, start_page)

        yielded = 0
        empty_streak = 0

        while yielded < cap:
            logger.info(f"  Collecting from page {page_num}...")
            try:
                await fetcher.wait_for_selector(CARD_SELECTOR, timeout_ms=self.selector_timeout_ms)
            except SelectorTimeoutError:
                logger.warning(f"  ⚠️  No cards found on page {page_num}")
                return

            self.pages_visited += 1
            items = await fetcher.evaluate(STUB_SCRIPT, self.base_url) or []

            new_count = 0
            for item in items:
                if yielded >= cap:
                    break
                stub = self._to_stub(item)
                if stub is None or stub.natural_id in self.state.seen_ids:
                    continue
                self.state.seen_ids.add(stub.natural_id)
                new_count += 1
                yielded += 1
                yield stub

            logger.info(f"  Page {page_num}: {len(items)} cards, {new_count} new (total {yielded})")

            if yielded >= cap:
                logger.info(f"  ✓ Reached cap of {cap} opportunities")
                return

            if await self._next_state(fetcher) != "enabled":
                logger.info(f"  ✓ Last page reached ({page_num})")
                return

            if new_count == 0:
                empty_streak += 1
                if empty_streak > self.max_empty_pages:
                    logger.warning(f"  ⚠️  {empty_streak} pages in a row with no new cards, stopping")
                    return
            else:
                empty_streak = 0

            await fetcher.click(NEXT_SELECTOR)
            page_num += 1
