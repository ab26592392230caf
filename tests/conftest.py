# tests/conftest.py
import json

import pytest
import requests

from opportunity_scraper.errors import NavigationError, SelectorTimeoutError
from opportunity_scraper.extractors.pagination_handler import STUB_SCRIPT, NEXT_STATE_SCRIPT
from opportunity_scraper.utils.page_fetcher import PAGE_HTML_SCRIPT, PAGE_TEXT_SCRIPT

SINK_URL = "https://sink.example.org/hooks/opportunities"

DEFAULT_DETAIL_HTML = "<html><body><h1>Cloud services for the department</h1></body></html>"
DEFAULT_DETAIL_TEXT = (
    "Cloud services for the department\n"
    "Buyer\nDepartment of Finance\n"
    "RFQ published date\n13/01/2025\n"
    "RFQ closing date\n27/01/2025\n"
)


# ---------------------------------------------------------------------
# Test-wide env isolation
# ---------------------------------------------------------------------
@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """No SCRAPER_* or API key leaks in from the developer's shell or a .env"""
    import os
    for name in list(os.environ):
        if name.startswith("SCRAPER_") or name == "OPENAI_API_KEY":
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    yield


def card(n: int, title: str = None) -> dict:
    return {
        "id": f"ICT-{n}",
        "url": f"https://buyict.gov.au/sp?id=opportunity_details&ref=ICT-{n}",
        "title": title or f"Opportunity number {n}",
    }


def cards(start: int, stop: int) -> list:
    return [card(n) for n in range(start, stop)]


# ---------------------------------------------------------------------
# Page fetcher fakes
# ---------------------------------------------------------------------
class FakeListingFetcher:
    """Listing pages as lists of card dicts; 'next' is enabled on all but the last page"""

    def __init__(self, pages, fail_navigate=False, click_error=None, fail_click_on=None):
        self.pages = pages
        self.fail_navigate = fail_navigate
        self.click_error = click_error
        self.fail_click_on = fail_click_on
        self.index = 0
        self.clicks = 0
        self.navigated = []

    async def navigate(self, url, wait_until="networkidle", timeout_ms=30000):
        self.navigated.append(url)
        if self.fail_navigate:
            raise NavigationError(f"Failed to load {url}")

    async def pause(self, ms):
        return None

    async def wait_for_selector(self, selector, timeout_ms=15000):
        if self.index >= len(self.pages):
            raise SelectorTimeoutError(selector)

    async def evaluate(self, script, arg=None):
        if script == STUB_SCRIPT:
            return list(self.pages[self.index])
        if script == NEXT_STATE_SCRIPT:
            return "enabled" if self.index < len(self.pages) - 1 else "disabled"
        raise AssertionError(f"unexpected script: {script[:40]}")

    async def click(self, selector):
        if self.click_error and (self.fail_click_on is None or self.fail_click_on == self.clicks):
            raise self.click_error
        self.clicks += 1
        self.index += 1


class FakeDetailFetcher:
    """Serves (html, text) per URL; unknown URLs get a complete default page"""

    def __init__(self, pages=None, failing=()):
        self.pages = pages or {}
        self.failing = set(failing)
        self.current = None
        self.visits = []

    async def navigate(self, url, wait_until="networkidle", timeout_ms=30000):
        self.visits.append(url)
        if url in self.failing:
            raise NavigationError(f"Timed out loading {url}")
        self.current = url

    async def pause(self, ms):
        return None

    async def evaluate(self, script, arg=None):
        html, text = self.pages.get(self.current, (DEFAULT_DETAIL_HTML, DEFAULT_DETAIL_TEXT))
        if script == PAGE_HTML_SCRIPT:
            return html
        if script == PAGE_TEXT_SCRIPT:
            return text
        raise AssertionError(f"unexpected script: {script[:40]}")


# ---------------------------------------------------------------------
# Inference fake
# ---------------------------------------------------------------------
class FakeInference:
    """Returns queued responses in order; exceptions in the queue are raised"""

    def __init__(self, responses=()):
        self.responses = list(responses)
        self.calls = []

    async def infer(self, prompt, document=None):
        self.calls.append((prompt, document))
        if not self.responses:
            return ""
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


# ---------------------------------------------------------------------
# Sink fake: upsert by natural id, behind a requests-like session
# ---------------------------------------------------------------------
class FakeResponse:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self._body = body

    @property
    def text(self):
        return "" if self._body is None else json.dumps(self._body)

    def json(self):
        if self._body is None:
            raise ValueError("No JSON object could be decoded")
        return self._body


class FakeSink:
    """
    failures: queue of 'http500' | 'error' | 'reject' | 'nojson' | 'badstats' | 'badcounts'
              consumed one per POST
    down: every POST raises a connection error
    """

    def __init__(self):
        self.store = {}
        self.posts = []
        self.accepted = []
        self.failures = []
        self.down = False

    def post(self, url, json=None, headers=None, timeout=None):
        self.posts.append(json)
        if self.down:
            raise requests.ConnectionError("sink unreachable")

        mode = self.failures.pop(0) if self.failures else None
        if mode == "error":
            raise requests.ConnectionError("connection reset")
        if mode == "http500":
            return FakeResponse(500, {"ok": False})
        if mode == "reject":
            return FakeResponse(200, {"ok": False, "error": "tenant unknown"})

        added = updated = 0
        for record in json["records"]:
            if record["natural_id"] in self.store:
                updated += 1
            else:
                added += 1
            self.store[record["natural_id"]] = record
        self.accepted.append(json)

        if mode == "nojson":
            return FakeResponse(204, None)
        if mode == "badstats":
            return FakeResponse(200, {"ok": True, "stats": "n/a"})
        if mode == "badcounts":
            return FakeResponse(200, {"ok": True, "stats": {"added": "many", "updated": None}})
        return FakeResponse(200, {"ok": True, "stats": {"added": added, "updated": updated}})

    def accepted_ids(self):
        return [r["natural_id"] for envelope in self.accepted for r in envelope["records"]]


@pytest.fixture
def sink():
    return FakeSink()
