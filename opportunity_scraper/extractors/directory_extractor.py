"""
Government Directory Module
Builds the agency list from directory.gov.au

Phase 1: portfolios index -> portfolio pages
Phase 2: portfolio page -> agency detail links (one stub each)
Phase 3: agency detail page -> AgencyProfile

The walker and fetcher plug into the RunController like the opportunity
walker and DetailFetcher, so agencies are batched and delivered the same way.
"""
import asyncio
import json
import logging
import os
import re
from typing import AsyncIterator, Any, Dict, List, Optional, Tuple
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from ..config import DEFAULT_DIRECTORY_URL
from ..enrichment import RecordNormalizer
from ..errors import ListingUnavailableError, NavigationError
from ..models import AgencyProfile, ExtractedRecord, FetchStatus, ListingStub, RunState
from ..utils.page_fetcher import PAGE_HTML_SCRIPT, PAGE_TEXT_SCRIPT

# Get logger
logger = logging.getLogger(__name__)

# /portfolios/<portfolio>/<agency>
AGENCY_PATH_RE = re.compile(r"^/portfolios/[^/]+/[^/]+/?$")
PORTFOLIO_PATH_RE = re.compile(r"^/portfolios/[^/]+/?$")
EXCLUDED_PATH_TERMS = ("/reports", "/legislation")

# Hosts that are never an agency's own website
NON_AGENCY_HOSTS = ("directory.gov.au", "legislation.gov.au")

ABN_RE = re.compile(r"ABN[:\s]*(\d{2}\s*\d{3}\s*\d{3}\s*\d{3})", re.IGNORECASE)

# "Further information" block: label -> profile field
FURTHER_INFO_PATTERNS = (
    ("type_of_body", re.compile(r"(?:^|\n)\s*Type of Body[:\s]*([^\n]+)", re.IGNORECASE)),
    ("gfs_classification", re.compile(r"GFS Sector Classification[:\s]*([^\n]+)", re.IGNORECASE)),
    ("established_info", re.compile(r"Established By\s*/\s*Under\s*More info[:\s]*([^\n]+)", re.IGNORECASE)),
    ("established_under", re.compile(r"Established By\s*/\s*Under(?!\s*More info)[:\s]*([^\n]+)", re.IGNORECASE)),
    ("classification", re.compile(r"(?:^|\n)\s*Classification[:\s]*([^\n]+)", re.IGNORECASE)),
    ("materiality", re.compile(r"Materiality[:\s]*([^\n]+)", re.IGNORECASE)),
    ("creation_date", re.compile(r"Creation Date[:\s]*([^\n]+)", re.IGNORECASE)),
)


def _path(href: str, base_url: str) -> Tuple[str, str]:
    """(absolute url, path) for an href, or ('', '') when it leaves the directory"""
    absolute = urljoin(base_url + "/", href)
    parsed = urlparse(absolute)
    if parsed.netloc and parsed.netloc != urlparse(base_url).netloc:
        return "", ""
    return absolute, parsed.path


class DirectoryWalker:
    """
    Yields one ListingStub per agency (natural_id = agency slug,
    list_title = agency name as linked from its portfolio)
    """

    def __init__(
        self,
        state: RunState,
        base_url: str = DEFAULT_DIRECTORY_URL,
        portfolio_filter: Optional[str] = None,
        navigation_timeout_ms: int = 60000,
        settle_ms: int = 2000
    ):
        self.state = state
        self.base_url = base_url.rstrip("/")
        self.portfolio_filter = (portfolio_filter or "").strip().lower() or None
        self.navigation_timeout_ms = navigation_timeout_ms
        self.settle_ms = settle_ms

    @property
    def portfolios_url(self) -> str:
        return f"{self.base_url}/portfolios"

    def portfolio_links(self, html: str) -> List[str]:
        """Absolute portfolio page URLs, in page order, after the portfolio filter"""
        soup = BeautifulSoup(html or "", "html.parser")
        links = []
        for anchor in soup.find_all("a", href=True):
            absolute, path = _path(anchor["href"], self.base_url)
            if not PORTFOLIO_PATH_RE.match(path) or absolute in links:
                continue
            if self.portfolio_filter and self.portfolio_filter not in path.lower():
                continue
            links.append(absolute)
        return links

    def agency_links(self, html: str) -> List[Tuple[str, str, str]]:
        """(slug, absolute url, link text) for agency links in the main content"""
        soup = BeautifulSoup(html or "", "html.parser")
        content = soup.find("main") or soup.body or soup
        found: Dict[str, Tuple[str, str, str]] = {}
        for anchor in content.find_all("a", href=True):
            absolute, path = _path(anchor["href"], self.base_url)
            if not AGENCY_PATH_RE.match(path):
                continue
            if any(term in path for term in EXCLUDED_PATH_TERMS):
                continue
            slug = path.rstrip("/").rsplit("/", 1)[-1]
            if slug not in found:
                found[slug] = (slug, absolute, anchor.get_text(" ", strip=True))
        return list(found.values())

    async def walk(self, fetcher: Any, start_page: int = 1, cap: int = 100) -> AsyncIterator[ListingStub]:
        """
        Args:
            fetcher: Page fetcher for the index and portfolio pages
            start_page: 1-based portfolio to start from (resume)
            cap: Maximum number of new agencies to yield

        Raises:
            ListingUnavailableError: the portfolios index could not be loaded
        """
        logger.info(f"=== Phase 1: Collecting portfolio pages from {self.portfolios_url} ===")
        try:
            await fetcher.navigate(self.portfolios_url, wait_until="networkidle", timeout_ms=self.navigation_timeout_ms)
        except NavigationError as e:
            raise ListingUnavailableError(f"Directory unavailable: {e}") from e

        portfolios = self.portfolio_links(await fetcher.evaluate(PAGE_HTML_SCRIPT) or "")
        logger.info(f"Found {len(portfolios)} portfolios")

        emitted = 0
        for index, portfolio_url in enumerate(portfolios[start_page - 1:], start_page):
            if emitted >= cap:
                break

            logger.info(f"=== Portfolio {index}/{len(portfolios)}: {portfolio_url} ===")
            try:
                await fetcher.navigate(portfolio_url, wait_until="networkidle", timeout_ms=self.navigation_timeout_ms)
            except NavigationError as e:
                logger.warning(f"  ⚠️  Skipping portfolio {portfolio_url}: {str(e)[:100]}")
                continue
            await fetcher.pause(self.settle_ms)

            agencies = self.agency_links(await fetcher.evaluate(PAGE_HTML_SCRIPT) or "")
            logger.info(f"  Found {len(agencies)} agencies")

            for slug, url, name in agencies:
                if emitted >= cap:
                    logger.info(f"Reached max agencies limit ({cap})")
                    break
                if slug in self.state.seen_ids:
                    continue
                self.state.seen_ids.add(slug)
                emitted += 1
                yield ListingStub(natural_id=slug, detail_url=url, list_title=name)


class DirectoryFetcher:
    """
    fetch_detail(stub, fetcher) for agency pages

    Every profile with a name is also kept in self.agencies so the entry
    point can write the list leadership mode reads.
    """

    def __init__(self, timeout_ms: int = 60000, settle_ms: int = 1500, delay: float = 0.5):
        self.timeout_ms = timeout_ms
        self.settle_ms = settle_ms
        self.delay = delay
        self.agencies: Dict[str, AgencyProfile] = {}

    @staticmethod
    def _text(node) -> Optional[str]:
        if node is None:
            return None
        return RecordNormalizer.normalize_text(node.get_text(" ", strip=True))

    @staticmethod
    def portfolio_from_url(url: str) -> Optional[str]:
        """'/portfolios/attorney-generals/...' -> 'Attorney Generals'"""
        parts = urlparse(url).path.strip("/").split("/")
        if len(parts) >= 2 and parts[0] == "portfolios":
            return parts[1].replace("-", " ").title()
        return None

    @classmethod
    def parse_agency(cls, html: str, text: str, url: str) -> Optional[AgencyProfile]:
        """AgencyProfile from a rendered agency page, or None when it has no name"""
        soup = BeautifulSoup(html or "", "html.parser")
        text = text or soup.get_text("\n")

        name = cls._text(soup.find("h1"))
        if not name:
            return None

        fields: Dict[str, Optional[str]] = {
            "name": name,
            "portfolio": cls._text(soup.select_one('.field--name-field-portfolio a, .badge, [class*="portfolio"]'))
            or cls.portfolio_from_url(url),
            "description": cls._text(soup.select_one(".field--name-body p, .description, article > p")),
            "address": cls._text(soup.select_one('a[href*="maps"], .field--name-field-address, [class*="address"]')),
            "directory_url": url,
        }

        phones = [p for p in (cls._text(a) for a in soup.select('a[href^="tel:"]')) if p]
        fields["phone"] = phones[0] if phones else None
        fields["fax"] = phones[1] if len(phones) > 1 else None

        for anchor in soup.select('a[href^="http"]'):
            host = urlparse(anchor["href"]).netloc.lower()
            if not any(host.endswith(blocked) for blocked in NON_AGENCY_HOSTS):
                fields["website"] = anchor["href"]
                break

        abn = ABN_RE.search(text)
        fields["abn"] = re.sub(r"\s", "", abn.group(1)) if abn else None

        for field_name, pattern in FURTHER_INFO_PATTERNS:
            match = pattern.search(text)
            fields[field_name] = RecordNormalizer.normalize_text(match.group(1)) if match else None

        if fields["creation_date"]:
            fields["creation_date"] = RecordNormalizer.normalize_date(fields["creation_date"])

        return AgencyProfile(**fields)

    async def fetch_detail(self, stub: ListingStub, fetcher: Any) -> ExtractedRecord:
        """
        Returns:
            Record carrying the AgencyProfile, or stub-only on failure
        """
        logger.info(f"  Scraping agency: {stub.detail_url}")
        try:
            await fetcher.navigate(stub.detail_url, wait_until="networkidle", timeout_ms=self.timeout_ms)
            await fetcher.pause(self.settle_ms)
            html = await fetcher.evaluate(PAGE_HTML_SCRIPT) or ""
            text = await fetcher.evaluate(PAGE_TEXT_SCRIPT) or ""
            profile = self.parse_agency(html, text, stub.detail_url)
        except Exception as e:
            logger.warning(f"  ✗ Failed to extract agency from {stub.detail_url}: {str(e)[:120]}")
            return ExtractedRecord.from_stub(stub, fetch_status=FetchStatus.FAILED)
        finally:
            if self.delay:
                await asyncio.sleep(self.delay)

        if profile is None:
            logger.warning(f"  ⚠️  No agency name on {stub.detail_url}")
            return ExtractedRecord.from_stub(stub, fetch_status=FetchStatus.PARTIAL)

        self.agencies[stub.natural_id] = profile
        logger.info(f"  ✓ Extracted: {profile.name} ({len(self.agencies)} total)")
        return ExtractedRecord(
            natural_id=stub.natural_id,
            source_url=stub.detail_url,
            title=profile.name,
            description=profile.description,
            agency=profile,
            fetch_status=FetchStatus.SUCCESS if profile.website else FetchStatus.PARTIAL,
        )


def save_agency_list(agencies: Dict[str, AgencyProfile], path: str) -> str:
    """
    Write [{id, name, website, ...}] in the shape load_agency_stubs reads
    """
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    rows = [{"id": natural_id, **profile.model_dump()} for natural_id, profile in agencies.items()]
    with open(path, "w", encoding="utf-8") as f:
        json.dump(rows, f, indent=2, ensure_ascii=False)

    logger.info(f"✓ Saved {len(rows)} agencies: {path}")
    return path
