"""
Data models for the opportunity scraper
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Dict, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FetchStatus(str, Enum):
    """Outcome of a single detail fetch"""
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class Completeness(str, Enum):
    """Derived from which fields of a record are non-null"""
    FULL = "full"
    PARTIAL = "partial"
    STUB_ONLY = "stub_only"


class RunStatus(str, Enum):
    """Run controller states"""
    IDLE = "idle"
    LISTING = "listing"
    DETAIL_FETCHING = "detail_fetching"
    DRAINING = "draining"
    DONE = "done"
    ABORTED = "aborted"


class ListingStub(BaseModel):
    """Discovery-time record captured from a listing card"""
    model_config = ConfigDict(frozen=True)

    natural_id: str = Field(description="Site-assigned reference code (e.g. ICT-12345)")
    detail_url: str = Field(description="Absolute URL of the detail page")
    list_title: str = Field("", description="Title shown on the listing card")

    @field_validator("natural_id", "detail_url")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("must be non-empty")
        return value


class Attachment(BaseModel):
    """Document linked from a detail page"""
    name: str
    url: str
    kind: str = Field(description="Lower-cased file extension, e.g. 'pdf'")


class Person(BaseModel):
    """Senior person extracted from a leadership page or org chart"""
    name: str
    title: Optional[str] = None
    division: Optional[str] = None
    seniority_level: Optional[int] = Field(
        None, description="1=Secretary/CEO, 2=Deputy, 3=First Assistant Secretary, 4=Director, 5=Other"
    )
    email: Optional[str] = None
    phone: Optional[str] = None


class AgencyProfile(BaseModel):
    """One entity from the government directory (directory mode)"""
    name: str
    portfolio: Optional[str] = None
    description: Optional[str] = None
    website: Optional[str] = None
    phone: Optional[str] = None
    fax: Optional[str] = None
    abn: Optional[str] = None
    address: Optional[str] = None
    type_of_body: Optional[str] = None
    gfs_classification: Optional[str] = None
    established_under: Optional[str] = None
    established_info: Optional[str] = None
    classification: Optional[str] = None
    materiality: Optional[str] = None
    creation_date: Optional[str] = None
    directory_url: Optional[str] = None


# Fields whose presence makes an opportunity record "full"
REQUIRED_FIELDS = ("buyer", "publish_date", "closing_date")

# Identity/derived fields that do not count as extracted content
_NON_CONTENT_FIELDS = {
    "natural_id", "source_url", "title", "status_label", "rfq_id",
    "opportunity_type", "fetch_status",
}


class ExtractedRecord(BaseModel):
    """
    Flat, best-effort record for one opportunity (or one agency in leadership / directory mode)
    Only natural_id and source_url are guaranteed
    """
    # Identity
    natural_id: str
    source_url: str
    title: Optional[str] = None

    # Core opportunity fields
    buyer: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    publish_date: Optional[str] = None
    closing_date: Optional[str] = None
    status_label: Optional[str] = None
    contact_text: Optional[str] = None
    buyer_contact: Optional[str] = None

    # RFQ details
    rfq_id: Optional[str] = None
    rfq_type: Optional[str] = None
    engagement_type: Optional[str] = None
    deadline_for_questions: Optional[str] = None
    estimated_start_date: Optional[str] = None
    initial_contract_duration: Optional[str] = None
    extension_term: Optional[str] = None
    extension_term_details: Optional[str] = None
    number_of_extensions: Optional[str] = None
    industry_briefing: Optional[str] = None
    requirements: Optional[str] = None
    key_duties: Optional[str] = None
    location: Optional[str] = None
    working_arrangement: Optional[str] = None

    # Labour hire
    opportunity_type: Optional[str] = None
    experience_level: Optional[str] = None
    max_candidates_per_seller: Optional[str] = None
    max_hours: Optional[str] = None
    security_clearance: Optional[str] = None

    # Collections
    criteria: List[str] = Field(default_factory=list)
    attachments: List[Attachment] = Field(default_factory=list)
    people: List[Person] = Field(default_factory=list)
    org_chart_url: Optional[str] = None
    agency: Optional[AgencyProfile] = None
    extra: Dict[str, str] = Field(default_factory=dict)

    # In-memory only, never sent to the sink
    fetch_status: FetchStatus = Field(FetchStatus.SUCCESS, exclude=True)

    @field_validator("natural_id", "source_url")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("must be non-empty")
        return value

    @classmethod
    def from_stub(cls, stub: ListingStub, **fields) -> "ExtractedRecord":
        """Stub-only record: identity + listing title, everything else null"""
        return cls(
            natural_id=stub.natural_id,
            source_url=stub.detail_url,
            title=stub.list_title or None,
            **fields
        )

    @property
    def completeness(self) -> Completeness:
        """full / partial / stub_only, computed from non-null fields"""
        if self.people or (self.agency and self.agency.website):
            return Completeness.FULL

        has_content = False
        for name in type(self).model_fields:
            if name in _NON_CONTENT_FIELDS:
                continue
            if getattr(self, name):
                has_content = True
                break

        if not has_content:
            return Completeness.STUB_ONLY
        if all(getattr(self, name) for name in REQUIRED_FIELDS):
            return Completeness.FULL
        return Completeness.PARTIAL

    def missing_required(self) -> List[str]:
        return [name for name in REQUIRED_FIELDS if not getattr(self, name)]

    def to_payload(self) -> Dict:
        """JSON-safe dict for the webhook envelope"""
        return self.model_dump(mode="json")


class DeliveryBatch(BaseModel):
    """Immutable batch handed to the dispatcher"""
    model_config = ConfigDict(frozen=True)

    records: List[ExtractedRecord]
    is_final: bool = False
    emitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def ids(self) -> List[str]:
        return [r.natural_id for r in self.records]


class DeliveryOutcome(BaseModel):
    """Result of one deliver() call - no partial-batch crediting"""
    delivered: Set[str] = Field(default_factory=set)
    failed: Set[str] = Field(default_factory=set)
    added: int = 0
    updated: int = 0


class RunOutcome(BaseModel):
    """Counts reported to the caller at the end of a run"""
    state: RunStatus = RunStatus.IDLE
    discovered: int = 0
    fetched: int = 0
    delivered: int = 0
    partial: int = 0
    failed_details: int = 0
    batches_sent: int = 0
    batches_failed: int = 0
    never_delivered: List[str] = Field(default_factory=list)
    delivered_ids: List[str] = Field(default_factory=list)
    sink_added: int = 0
    sink_updated: int = 0
    error: Optional[str] = None

    def summary(self) -> str:
        return (
            f"ran with {self.discovered} discovered / {self.delivered} delivered / "
            f"{len(self.never_delivered)} never delivered"
        )


@dataclass
class RunState:
    """
    Mutable state for one crawl invocation
    Owned by the run controller; seen_ids and delivered_ids only ever grow
    """
    target_capacity: int
    start_offset: int = 1
    seen_ids: Set[str] = field(default_factory=set)
    delivered_ids: Set[str] = field(default_factory=set)
    pending_buffer: Dict[str, ExtractedRecord] = field(default_factory=dict)

    @classmethod
    def seeded(cls, target_capacity: int, start_offset: int = 1, known_ids=None) -> "RunState":
        """Pre-seed both id sets with references a previous run already delivered"""
        known = set(known_ids or [])
        return cls(
            target_capacity=target_capacity,
            start_offset=start_offset,
            seen_ids=set(known),
            delivered_ids=set(known),
        )
