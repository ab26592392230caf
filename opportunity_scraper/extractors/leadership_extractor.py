"""
Leadership Extraction Module
Finds the senior people of one government agency

For each agency stub (natural_id=agency id, detail_url=website, list_title=name):
1. Visit the homepage and look for a leadership link (else try well-known paths)
2. On each candidate page prefer org-chart PDFs (AI PDF extraction)
3. Otherwise, if the page mentions leadership terms, run AI HTML extraction
"""
import asyncio
import json
import logging
from typing import List, Any, Optional

import requests

from ..detectors import LeadershipDetector
from ..errors import NavigationError
from ..models import ExtractedRecord, FetchStatus, ListingStub, Person
from ..utils.page_fetcher import PAGE_HTML_SCRIPT, PAGE_TEXT_SCRIPT
from .ai_extractor import AIExtractor

# Get logger
logger = logging.getLogger(__name__)


class LeadershipFetcher:
    """Same contract as DetailFetcher, for agency stubs"""

    def __init__(
        self,
        ai: AIExtractor,
        timeout_ms: int = 60000,
        settle_ms: int = 2000,
        delay: float = 0.5,
        download_timeout: float = 30.0
    ):
        self.ai = ai
        self.timeout_ms = timeout_ms
        self.settle_ms = settle_ms
        self.delay = delay
        self.download_timeout = download_timeout

    @staticmethod
    def homepage_url(website: str) -> str:
        website = website.strip()
        if not website.startswith("http"):
            website = f"https://{website}"
        return website

    def _download(self, url: str) -> bytes:
        response = requests.get(url, timeout=self.download_timeout)
        response.raise_for_status()
        return response.content

    async def _load(self, fetcher: Any, url: str):
        await fetcher.navigate(url, wait_until="networkidle", timeout_ms=self.timeout_ms)
        await fetcher.pause(self.settle_ms)
        html = await fetcher.evaluate(PAGE_HTML_SCRIPT) or ""
        text = await fetcher.evaluate(PAGE_TEXT_SCRIPT) or ""
        return html, text

    async def _people_from_pdfs(self, agency_name: str, pdf_urls: List[str]):
        for pdf_url in pdf_urls:
            logger.info(f"    Attempting org chart PDF: {pdf_url}")
            try:
                content = await asyncio.to_thread(self._download, pdf_url)
            except requests.RequestException as e:
                logger.warning(f"    ⚠️  PDF download failed: {str(e)[:100]}")
                continue

            people = await self.ai.extract_people(agency_name, document=content)
            if people:
                logger.info(f"    ✓ Extracted {len(people)} people from PDF")
                return people, pdf_url
        return [], None

    async def _extract_from_page(self, stub: ListingStub, fetcher: Any, url: str):
        """(people, org_chart_url) for one candidate leadership page"""
        try:
            html, text = await self._load(fetcher, url)
        except NavigationError as e:
            logger.info(f"    Skipping {url}: {str(e)[:80]}")
            return [], None

        pdf_urls = LeadershipDetector.find_org_chart_pdfs(html, url)
        if pdf_urls:
            logger.info(f"    Found {len(pdf_urls)} PDF org chart(s)")
            people, pdf_url = await self._people_from_pdfs(stub.list_title, pdf_urls)
            if people:
                return people, pdf_url

        if not LeadershipDetector.has_leadership_content(text):
            logger.info(f"    Page doesn't appear to contain leadership info: {url}")
            return [], None

        people = await self.ai.extract_people(stub.list_title, html=LeadershipDetector.clean_html(html))
        return people, (url if people else None)

    async def fetch_detail(self, stub: ListingStub, fetcher: Any) -> ExtractedRecord:
        """
        Returns:
            Record with people + org_chart_url, or stub-only on failure
        """
        homepage = self.homepage_url(stub.detail_url)
        status = FetchStatus.PARTIAL
        people: List[Person] = []
        org_chart_url: Optional[str] = None

        try:
            logger.info(f"  Checking homepage: {homepage}")
            html, _text = await self._load(fetcher, homepage)

            link = LeadershipDetector.find_leadership_link(html, homepage)
            if link:
                logger.info(f"  Found leadership page: {link}")
                candidates = [link]
            else:
                candidates = LeadershipDetector.fallback_urls(homepage)

            for url in candidates:
                people, org_chart_url = await self._extract_from_page(stub, fetcher, url)
                if people:
                    status = FetchStatus.SUCCESS
                    break

        except Exception as e:
            logger.warning(f"  ✗ {stub.natural_id}: leadership fetch failed: {str(e)[:120]}")
            status = FetchStatus.FAILED
            people, org_chart_url = [], None

        finally:
            if self.delay:
                await asyncio.sleep(self.delay)

        if people:
            logger.info(f"  ✓ Found {len(people)} people at {stub.list_title}")
        return ExtractedRecord.from_stub(
            stub,
            people=people,
            org_chart_url=org_chart_url,
            fetch_status=status,
        )


def load_agency_stubs(path: str, max_agencies: int = 100) -> List[ListingStub]:
    """
    Agency list JSON ([{id, name, website}, ...]) -> stubs

    Agencies without a website are skipped.
    """
    with open(path, "r", encoding="utf-8") as f:
        agencies = json.load(f)

    stubs = []
    for agency in agencies[:max_agencies]:
        website = (agency.get("website") or "").strip()
        name = agency.get("name") or ""
        if not website:
            logger.info(f"  Skipping {name} - no website")
            continue
        stubs.append(ListingStub(
            natural_id=str(agency.get("id") or ""),
            detail_url=LeadershipFetcher.homepage_url(website),
            list_title=name,
        ))

    logger.info(f"  Queued {len(stubs)} agencies for processing")
    return stubs
