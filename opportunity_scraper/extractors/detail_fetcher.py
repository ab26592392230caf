"""
Detail page fetching
Loads one opportunity detail page and hands it to the FieldExtractor.
Never raises: any failure degrades to a stub-only record.
"""
import asyncio
import logging
from typing import Any
from urllib.parse import urlparse

import requests

from ..models import ExtractedRecord, FetchStatus, ListingStub
from ..utils.page_fetcher import PAGE_HTML_SCRIPT, PAGE_TEXT_SCRIPT
from .field_extractor import FieldExtractor, RenderedPage, ExtractionContext

# Get logger
logger = logging.getLogger(__name__)


class DetailFetcher:
    """Fetch + extract for one stub at a time"""

    def __init__(
        self,
        extractor: FieldExtractor,
        timeout_ms: int = 30000,
        settle_ms: int = 2000,
        delay: float = 0.5,
        download_timeout: float = 30.0
    ):
        """
        Args:
            extractor: Field extractor used for every page
            timeout_ms: Navigation timeout per detail page
            settle_ms: Pause after navigation before reading the DOM
            delay: Seconds to wait after every fetch
            download_timeout: Timeout for direct PDF downloads
        """
        self.extractor = extractor
        self.timeout_ms = timeout_ms
        self.settle_ms = settle_ms
        self.delay = delay
        self.download_timeout = download_timeout

    @staticmethod
    def is_document(url: str) -> bool:
        return urlparse(url).path.lower().endswith(".pdf")

    def _download(self, url: str) -> bytes:
        response = requests.get(url, timeout=self.download_timeout)
        response.raise_for_status()
        return response.content

    async def _render(self, stub: ListingStub, fetcher: Any) -> RenderedPage:
        await fetcher.navigate(stub.detail_url, wait_until="networkidle", timeout_ms=self.timeout_ms)
        await fetcher.pause(self.settle_ms)
        html = await fetcher.evaluate(PAGE_HTML_SCRIPT) or ""
        text = await fetcher.evaluate(PAGE_TEXT_SCRIPT) or ""
        return RenderedPage(url=stub.detail_url, html=html, text=text)

    async def fetch_detail(self, stub: ListingStub, fetcher: Any) -> ExtractedRecord:
        """
        Args:
            stub: Listing stub to fetch
            fetcher: Page fetcher owned by the calling worker

        Returns:
            Extracted record; stub-only with fetch_status=failed on any error
        """
        try:
            if self.is_document(stub.detail_url):
                content = await asyncio.to_thread(self._download, stub.detail_url)
                page = RenderedPage(url=stub.detail_url, document=content)
                kind = "pdf"
            else:
                page = await self._render(stub, fetcher)
                kind = "html"

            context = ExtractionContext(natural_id=stub.natural_id, kind=kind, hint_title=stub.list_title)
            record = await self.extractor.extract(page, context)
            # Stub wins for identity
            record.natural_id = stub.natural_id
            record.source_url = stub.detail_url

            if record.fetch_status == FetchStatus.SUCCESS:
                logger.info(f"  ✓ {stub.natural_id}: {record.completeness.value}")
            else:
                logger.info(f"  ⚠️  {stub.natural_id}: {record.completeness.value} (missing {', '.join(record.missing_required())})")
            return record

        except Exception as e:
            logger.warning(f"  ✗ {stub.natural_id}: detail fetch failed: {str(e)[:120]}")
            return ExtractedRecord.from_stub(
                stub,
                status_label=self.extractor.status_label,
                fetch_status=FetchStatus.FAILED,
            )

        finally:
            if self.delay:
                await asyncio.sleep(self.delay)
