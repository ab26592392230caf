"""
Run configuration
All settings come from environment variables (SCRAPER_* convention), with
keyword overrides from the command line
"""
import json
import os
from typing import List, Optional, Dict, Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

DEFAULT_BASE_URL = "https://buyict.gov.au"
DEFAULT_AI_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_AI_MODEL = "openai/gpt-4o-mini"

# Status filter -> (query suffix, label stored on records)
STATUS_FILTERS = {
    "live": ("", "Open"),
    "closing_soon": ("&opportunities_status=Closing%20Soon", "Closing Soon"),
    "closed": ("&opportunities_status=Closed", "Closed"),
}

MAX_DETAIL_CONCURRENCY = 3

MODES = ("opportunities", "leadership", "directory")
DEFAULT_DIRECTORY_URL = "https://www.directory.gov.au"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def parse_references(raw: Optional[str]) -> List[str]:
    """Comma-separated ids, or '@path' to a JSON list / prior run outcome file"""
    if not raw:
        return []
    raw = raw.strip()
    if raw.startswith("@"):
        with open(raw[1:], "r", encoding="utf-8") as f:
            data = json.load(f)
        if isinstance(data, dict):
            # A saved RunOutcome: resume from what was delivered
            data = data.get("delivered_ids", [])
        return [str(item).strip() for item in data if str(item).strip()]
    return [part.strip() for part in raw.split(",") if part.strip()]


class RunConfig(BaseModel):
    """Configuration for one crawl invocation"""

    mode: str = Field("opportunities", description="'opportunities', 'leadership' or 'directory'")

    # Target site
    base_url: str = DEFAULT_BASE_URL
    status: str = "live"
    site_brand: str = "BuyICT"
    max_opportunities: int = 200
    start_page: int = 1
    existing_references: List[str] = Field(default_factory=list)

    # Leadership / directory mode
    agencies_path: Optional[str] = None
    max_agencies: int = 100
    directory_url: str = DEFAULT_DIRECTORY_URL
    portfolio_filter: Optional[str] = None
    agencies_output: str = "output/agencies.json"

    # Delivery
    webhook_url: Optional[str] = None
    tenant_id: Optional[str] = None
    source: str = "opportunity-scraper"
    batch_size: int = 20
    webhook_timeout: float = 30.0

    # Browser
    headless: bool = True
    detail_concurrency: int = 1
    listing_timeout_ms: int = 60000
    listing_selector_timeout_ms: int = 15000
    detail_timeout_ms: int = 30000
    detail_settle_ms: int = 2000
    detail_delay: float = 0.5
    max_empty_pages: int = 3

    # AI inference
    api_key: Optional[str] = None
    ai_model: str = DEFAULT_AI_MODEL
    ai_base_url: str = DEFAULT_AI_BASE_URL
    ai_max_retries: int = 3
    ai_retry_delay: float = 2.0
    ai_timeout: float = 60.0
    ai_max_chars: int = 50000

    @field_validator("mode")
    @classmethod
    def _known_mode(cls, value: str) -> str:
        if value not in MODES:
            raise ValueError(f"unknown mode {value!r}")
        return value

    @field_validator("status")
    @classmethod
    def _known_status(cls, value: str) -> str:
        if value not in STATUS_FILTERS:
            raise ValueError(f"status must be one of {sorted(STATUS_FILTERS)}")
        return value

    @field_validator("detail_concurrency")
    @classmethod
    def _clamp_concurrency(cls, value: int) -> int:
        return max(1, min(int(value), MAX_DETAIL_CONCURRENCY))

    @field_validator("start_page", "batch_size", "max_opportunities")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be >= 1")
        return value

    @property
    def listing_url(self) -> str:
        suffix, _label = STATUS_FILTERS[self.status]
        return f"{self.base_url.rstrip('/')}/sp?id=opportunities{suffix}"

    @property
    def status_label(self) -> str:
        return STATUS_FILTERS[self.status][1]

    @classmethod
    def from_env(cls, overrides: Optional[Dict[str, Any]] = None) -> "RunConfig":
        """Build config from .env / environment, then apply non-None overrides"""
        load_dotenv()

        values: Dict[str, Any] = {
            "mode": os.getenv("SCRAPER_MODE", "opportunities"),
            "base_url": os.getenv("SCRAPER_BASE_URL", DEFAULT_BASE_URL),
            "status": os.getenv("SCRAPER_STATUS", "live"),
            "site_brand": os.getenv("SCRAPER_SITE_BRAND", "BuyICT"),
            "max_opportunities": int(os.getenv("SCRAPER_MAX_OPPORTUNITIES", "200")),
            "start_page": int(os.getenv("SCRAPER_START_PAGE", "1")),
            "existing_references": parse_references(os.getenv("SCRAPER_EXISTING_REFERENCES")),
            "agencies_path": os.getenv("SCRAPER_AGENCIES_PATH"),
            "max_agencies": int(os.getenv("SCRAPER_MAX_AGENCIES", "100")),
            "directory_url": os.getenv("SCRAPER_DIRECTORY_URL", DEFAULT_DIRECTORY_URL),
            "portfolio_filter": os.getenv("SCRAPER_PORTFOLIO_FILTER"),
            "agencies_output": os.getenv("SCRAPER_AGENCIES_OUTPUT", "output/agencies.json"),
            "webhook_url": os.getenv("SCRAPER_WEBHOOK_URL"),
            "tenant_id": os.getenv("SCRAPER_TENANT_ID"),
            "source": os.getenv("SCRAPER_SOURCE", "opportunity-scraper"),
            "batch_size": int(os.getenv("SCRAPER_BATCH_SIZE", "20")),
            "headless": _env_bool("SCRAPER_HEADLESS", "true"),
            "detail_concurrency": int(os.getenv("SCRAPER_DETAIL_CONCURRENCY", "1")),
            "api_key": os.getenv("OPENAI_API_KEY"),
            "ai_model": os.getenv("SCRAPER_AI_MODEL", DEFAULT_AI_MODEL),
            "ai_base_url": os.getenv("SCRAPER_AI_BASE_URL", DEFAULT_AI_BASE_URL),
        }

        for key, value in (overrides or {}).items():
            if value is not None:
                values[key] = value

        return cls(**values)
