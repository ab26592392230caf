"""
Field Extraction Module
Turns one rendered detail page (HTML or PDF) into an ExtractedRecord

Strategies, merged per field (first viable value wins):
1. Label adjacency: a line equal to a known label takes the next line
2. Structured DOM scan: <dl> dt/dd pairs and two-cell table rows
3. Patterns: e-mails, sections, essential criteria, document links
4. AI-assisted: only for required fields still missing, or for PDFs
"""
import logging
import re
from dataclasses import dataclass
from typing import List, Dict, Optional, Tuple, Any
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from ..enrichment import RecordNormalizer
from ..models import Attachment, ExtractedRecord, FetchStatus, REQUIRED_FIELDS
from .ai_extractor import AIExtractor, FIELD_DESCRIPTIONS

# Get logger
logger = logging.getLogger(__name__)

DEFAULT_MAX_LENGTH = 300

# (label as shown on the page, record field, max value length)
LABEL_TABLE: List[Tuple[str, str, int]] = [
    ("RFQ type", "rfq_type", DEFAULT_MAX_LENGTH),
    ("RFQ ID", "rfq_id", DEFAULT_MAX_LENGTH),
    ("RFQ published date", "publish_date", DEFAULT_MAX_LENGTH),
    ("Published date", "publish_date", DEFAULT_MAX_LENGTH),
    ("Deadline for asking questions", "deadline_for_questions", DEFAULT_MAX_LENGTH),
    ("RFQ closing date", "closing_date", DEFAULT_MAX_LENGTH),
    ("Closing date", "closing_date", DEFAULT_MAX_LENGTH),
    ("Buyer", "buyer", DEFAULT_MAX_LENGTH),
    ("Buyer contact", "buyer_contact", DEFAULT_MAX_LENGTH),
    ("Category", "category", DEFAULT_MAX_LENGTH),
    ("Engagement type", "engagement_type", DEFAULT_MAX_LENGTH),
    ("Estimated start date", "estimated_start_date", DEFAULT_MAX_LENGTH),
    ("Initial contract duration", "initial_contract_duration", DEFAULT_MAX_LENGTH),
    ("Extension term", "extension_term", DEFAULT_MAX_LENGTH),
    ("Extension term details", "extension_term_details", 1000),
    ("Number of extensions", "number_of_extensions", DEFAULT_MAX_LENGTH),
    ("Working arrangements", "working_arrangement", DEFAULT_MAX_LENGTH),
    ("Working arrangement", "working_arrangement", DEFAULT_MAX_LENGTH),
    ("Industry briefing", "industry_briefing", DEFAULT_MAX_LENGTH),
    ("Location", "location", DEFAULT_MAX_LENGTH),
    ("Location of work", "location", DEFAULT_MAX_LENGTH),
    # Labour hire
    ("Experience level", "experience_level", DEFAULT_MAX_LENGTH),
    ("Maximum number of candidates per seller", "max_candidates_per_seller", DEFAULT_MAX_LENGTH),
    ("Maximum hours", "max_hours", DEFAULT_MAX_LENGTH),
    ("Security clearance", "security_clearance", DEFAULT_MAX_LENGTH),
]

LABELS = {label for label, _field, _max in LABEL_TABLE}

EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

DOCUMENT_EXTENSIONS = ("pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx", "rtf", "odt", "zip")

SECTION_WINDOW = 2000
SECTION_MAX_LENGTH = 1500
MAX_CRITERIA = 5

TITLE_BLOCKLIST = ("logged in", "invited", "respond to this")


def normalize_key(label: str) -> str:
    """'Location of work:' -> 'location_of_work'"""
    return re.sub(r"[^a-z0-9]+", "_", label.lower()).strip("_")


# Normalised DOM keys that map onto record fields
KEY_TO_FIELD: Dict[str, str] = {normalize_key(label): name for label, name, _max in LABEL_TABLE}


@dataclass
class RenderedPage:
    """What the fetcher captured for one page"""
    url: str
    html: str = ""
    text: str = ""
    document: Optional[bytes] = None


@dataclass
class ExtractionContext:
    natural_id: str
    kind: str = "html"
    hint_title: str = ""


def resolve_title(detail_title: Optional[str], hint_title: Optional[str]) -> Optional[str]:
    """
    Detail-page title vs listing title

    The listing title wins when the detail title is empty, 5 characters or
    shorter, or looks like a session banner ("You are logged in as ...").
    """
    if detail_title:
        lowered = detail_title.lower()
        if len(detail_title) > 5 and "logged in" not in lowered and "invited" not in lowered:
            return detail_title
    return hint_title or None


class FieldExtractor:
    """Extracts opportunity fields from rendered HTML or PDF bytes"""

    def __init__(
        self,
        ai: Optional[AIExtractor] = None,
        site_brand: str = "BuyICT",
        status_label: Optional[str] = None
    ):
        """
        Args:
            ai: AI extractor for missing fields (None disables the AI strategy)
            site_brand: Brand string never accepted as a title
            status_label: Label from the listing status filter, copied to every record
        """
        self.ai = ai
        self.site_brand = site_brand
        self.status_label = status_label

    async def extract(self, page: RenderedPage, context: ExtractionContext) -> ExtractedRecord:
        """
        Extract one record; never raises

        On an unexpected error the result carries only identity and the hint title.
        """
        try:
            return await self._extract(page, context)
        except Exception as e:
            logger.error(f"  ✗ Extraction failed for {context.natural_id}: {str(e)[:120]}")
            return ExtractedRecord(
                natural_id=context.natural_id,
                source_url=page.url,
                title=context.hint_title or None,
                status_label=self.status_label,
                fetch_status=FetchStatus.FAILED,
            )

    async def _extract(self, page: RenderedPage, context: ExtractionContext) -> ExtractedRecord:
        soup = BeautifulSoup(page.html or "", "html.parser")
        text = page.text or (soup.get_text("\n") if page.html else "")
        lines = [line.strip() for line in text.split("\n") if line.strip()]

        fields: Dict[str, Any] = {}
        extra: Dict[str, str] = {}

        def put(name: str, value: Optional[str]) -> None:
            if value and not fields.get(name):
                fields[name] = value

        # Strategy 1
        for name, value in self._label_values(lines).items():
            put(name, value)

        # Strategy 2
        for key, value in self._dom_pairs(soup):
            name = KEY_TO_FIELD.get(key)
            if name:
                put(name, value)
            elif key not in extra:
                extra[key] = value[:DEFAULT_MAX_LENGTH]

        # Strategy 3
        emails = RecordNormalizer.clean_emails(EMAIL_RE.findall(text))
        if emails:
            gov = [e for e in emails if e.endswith(".gov.au")]
            put("buyer_contact", (gov or emails)[0])
            put("contact_text", ", ".join(emails))

        put("requirements", self._section(text, "Job details", ("\nKey duties", "\nCriteria")))
        put("requirements", self._section(text, "Requirements", ("\nCriteria",)))
        put("key_duties", self._section(
            text, "Key duties and responsibilities", ("\nCriteria", "\nCompliance")
        ))

        criteria = self._criteria(text)
        attachments = self._attachments(soup, page.url)

        detail_title = self._detail_title(soup, lines)

        # Strategy 4
        if self.ai:
            if context.kind == "pdf":
                wanted = [name for name in FIELD_DESCRIPTIONS if not fields.get(name)]
            else:
                wanted = [name for name in REQUIRED_FIELDS if not fields.get(name)]
            if wanted:
                found = await self.ai.extract_fields(
                    wanted,
                    content=text,
                    document=page.document if context.kind == "pdf" else None,
                    hint_title=context.hint_title,
                )
                if context.kind == "pdf" and not detail_title:
                    detail_title = found.pop("title", None)
                found.pop("title", None)
                for name, value in found.items():
                    put(name, value)

        # Derived
        put("description", fields.get("requirements") or fields.get("key_duties"))
        put("engagement_type", fields.get("rfq_type"))
        put("rfq_id", context.natural_id)
        fields["status_label"] = self.status_label
        fields = RecordNormalizer.normalize_fields(fields)

        record = ExtractedRecord(
            natural_id=context.natural_id,
            source_url=page.url,
            title=resolve_title(detail_title, context.hint_title),
            criteria=criteria,
            attachments=attachments,
            extra=extra,
            **{k: v for k, v in fields.items() if k in ExtractedRecord.model_fields},
        )
        if record.missing_required():
            record.fetch_status = FetchStatus.PARTIAL
        return record

    @staticmethod
    def _label_values(lines: List[str]) -> Dict[str, str]:
        """A line equal to a label takes the next non-label line"""
        table = {label: (name, max_length) for label, name, max_length in LABEL_TABLE}
        data: Dict[str, str] = {}

        for line, next_line in zip(lines, lines[1:]):
            entry = table.get(line)
            if not entry:
                continue
            name, max_length = entry
            if name in data or next_line in LABELS:
                continue
            if len(next_line) < max_length:
                data[name] = next_line

        return data

    @staticmethod
    def _dom_pairs(soup: BeautifulSoup) -> List[Tuple[str, str]]:
        """(normalised key, value) from <dl> and two-cell table rows"""
        pairs = []

        for dl in soup.find_all("dl"):
            for dt in dl.find_all("dt"):
                dd = dt.find_next_sibling("dd")
                if dd is None:
                    continue
                key = normalize_key(dt.get_text(" ", strip=True))
                value = dd.get_text(" ", strip=True)
                if key and value:
                    pairs.append((key, value))

        for row in soup.find_all("tr"):
            cells = row.find_all(["th", "td"], recursive=False)
            if len(cells) != 2:
                continue
            key = normalize_key(cells[0].get_text(" ", strip=True))
            value = cells[1].get_text(" ", strip=True)
            if key and value:
                pairs.append((key, value))

        return pairs

    @staticmethod
    def _section(text: str, heading: str, stops: Tuple[str, ...]) -> Optional[str]:
        """Text after a heading line, up to the next stop heading or the window size"""
        match = re.search(rf"(?m)^[ \t]*{re.escape(heading)}[ \t]*$", text)
        if not match:
            return None

        after = text[match.end():]
        end = min(len(after), SECTION_WINDOW)
        for stop in stops:
            index = after.find(stop)
            if 0 < index < end:
                end = index

        section = after[:end].strip()[:SECTION_MAX_LENGTH]
        return section or None

    @staticmethod
    def _criteria(text: str) -> List[str]:
        index = text.find("Essential criteria")
        if index == -1:
            return []

        criteria = []
        for line in text[index:index + SECTION_WINDOW].split("\n"):
            line = line.strip()
            if len(line) <= 30 or line.startswith(("Essential", "Weighting")) or line.isdigit():
                continue
            criteria.append(line)
            if len(criteria) == MAX_CRITERIA:
                break
        return criteria

    @staticmethod
    def _attachments(soup: BeautifulSoup, base_url: str) -> List[Attachment]:
        attachments = []
        seen = set()

        for link in soup.find_all("a", href=True):
            url = urljoin(base_url, link["href"])
            path = urlparse(url).path.lower()
            kind = path.rsplit(".", 1)[-1] if "." in path.rsplit("/", 1)[-1] else ""
            if kind not in DOCUMENT_EXTENSIONS or url in seen:
                continue
            seen.add(url)
            name = link.get_text(" ", strip=True) or path.rsplit("/", 1)[-1]
            attachments.append(Attachment(name=name, url=url, kind=kind))

        return attachments

    def _detail_title(self, soup: BeautifulSoup, lines: List[str]) -> Optional[str]:
        h1 = soup.find("h1")
        if h1:
            text = h1.get_text(" ", strip=True)
            if len(text) > 5 and text != self.site_brand:
                return text

        h2 = soup.find("h2")
        if h2:
            text = h2.get_text(" ", strip=True)
            if len(text) > 10:
                return text

        for line in lines[:20]:
            lowered = line.lower()
            if len(line) <= 15 or line == self.site_brand or line in LABELS:
                continue
            if any(term in lowered for term in TITLE_BLOCKLIST):
                continue
            return line

        return None
