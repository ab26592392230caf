"""
Leadership Page Detection Module
Finds an agency's leadership / executive page and org-chart PDFs from its HTML
"""
import re
import logging
from typing import List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

# Get logger
logger = logging.getLogger(__name__)

# Common URL patterns for leadership pages, most specific first
LEADERSHIP_PATTERNS = [
    "/about-us/our-people",
    "/about-us/executive",
    "/about-us/leadership",
    "/about-us/senior-executive",
    "/about/our-people",
    "/about/executive",
    "/about/leadership",
    "/our-people",
    "/executive",
    "/leadership",
    "/senior-executives",
    "/our-leadership",
    "/organisational-structure",
    "/org-structure",
    "/who-we-are/executive",
    "/who-we-are/leadership",
]

LINK_TEXT_TERMS = (
    "executive", "leadership", "our people", "senior staff",
    "org chart", "organisational structure",
)

ORG_CHART_TERMS = ("org", "chart", "structure")

LEADERSHIP_CONTENT_TERMS = ("secretary", "executive", "director", "commissioner", "leadership")

FALLBACK_PATTERN_COUNT = 5


class LeadershipDetector:
    """Link heuristics for leadership pages (no AI)"""

    @staticmethod
    def clean_html(html: str) -> str:
        """Strip scripts and styles before the HTML is sent for extraction"""
        html = re.sub(r'<script[^>]*>.*?</script>', '', html, flags=re.DOTALL | re.IGNORECASE)
        html = re.sub(r'<style[^>]*>.*?</style>', '', html, flags=re.DOTALL | re.IGNORECASE)
        return html

    @staticmethod
    def find_leadership_link(html: str, page_url: str) -> Optional[str]:
        """
        First link whose href matches a leadership pattern or whose text
        mentions leadership, resolved against page_url
        """
        soup = BeautifulSoup(html or "", "html.parser")

        for link in soup.find_all("a", href=True):
            href = link["href"]
            href_lower = href.lower()
            text = link.get_text(" ", strip=True).lower()

            if any(pattern in href_lower for pattern in LEADERSHIP_PATTERNS):
                return urljoin(page_url, href)
            if any(term in text for term in LINK_TEXT_TERMS):
                return urljoin(page_url, href)

        return None

    @staticmethod
    def fallback_urls(page_url: str) -> List[str]:
        """Well-known leadership paths on the agency's origin"""
        parsed = urlparse(page_url)
        origin = f"{parsed.scheme}://{parsed.netloc}"
        return [f"{origin}{pattern}" for pattern in LEADERSHIP_PATTERNS[:FALLBACK_PATTERN_COUNT]]

    @staticmethod
    def find_org_chart_pdfs(html: str, page_url: str) -> List[str]:
        """PDF links that look like an organisational chart"""
        soup = BeautifulSoup(html or "", "html.parser")
        pdfs = []

        for link in soup.find_all("a", href=True):
            href = link["href"]
            href_lower = href.lower()
            if not urlparse(href_lower).path.endswith(".pdf"):
                continue
            text = link.get_text(" ", strip=True).lower()
            if any(term in text or term in href_lower for term in ORG_CHART_TERMS):
                url = urljoin(page_url, href)
                if url not in pdfs:
                    pdfs.append(url)

        return pdfs

    @staticmethod
    def has_leadership_content(text: str) -> bool:
        lowered = (text or "").lower()
        return any(term in lowered for term in LEADERSHIP_CONTENT_TERMS)
