from types import SimpleNamespace

import pytest
import requests

from conftest import FakeDetailFetcher, FakeInference
from opportunity_scraper.extractors import AIExtractor, DetailFetcher, FieldExtractor
from opportunity_scraper.models import Completeness, FetchStatus, ListingStub


def make_stub(url="https://buyict.gov.au/sp?ref=ICT-1", natural_id="ICT-1"):
    return ListingStub(natural_id=natural_id, detail_url=url, list_title="Listing title for ICT-1")


def detail_fetcher(ai=None):
    return DetailFetcher(FieldExtractor(ai, status_label="Open"), delay=0, settle_ms=0)


@pytest.mark.asyncio
async def test_successful_fetch_merges_stub_identity():
    page = FakeDetailFetcher()
    record = await detail_fetcher().fetch_detail(make_stub(), page)

    assert page.visits == ["https://buyict.gov.au/sp?ref=ICT-1"]
    assert record.natural_id == "ICT-1"
    assert record.source_url == "https://buyict.gov.au/sp?ref=ICT-1"
    assert record.title == "Cloud services for the department"
    assert record.buyer == "Department of Finance"
    assert record.completeness == Completeness.FULL
    assert record.fetch_status == FetchStatus.SUCCESS


@pytest.mark.asyncio
async def test_navigation_failure_degrades_to_stub_only():
    stub = make_stub()
    page = FakeDetailFetcher(failing=[stub.detail_url])

    record = await detail_fetcher().fetch_detail(stub, page)

    assert record.fetch_status == FetchStatus.FAILED
    assert record.completeness == Completeness.STUB_ONLY
    assert record.title == "Listing title for ICT-1"
    assert record.status_label == "Open"


@pytest.mark.asyncio
async def test_pdf_detail_is_downloaded_and_sent_to_ai(monkeypatch):
    downloads = []

    def fake_get(url, timeout=None):
        downloads.append(url)
        return SimpleNamespace(content=b"%PDF-1.4 body", raise_for_status=lambda: None)

    monkeypatch.setattr(requests, "get", fake_get)
    inference = FakeInference(['{"buyer": "ATO", "publish_date": "01/02/2025", "closing_date": "15/02/2025"}'])
    stub = make_stub(url="https://buyict.gov.au/files/ICT-1.PDF")
    page = FakeDetailFetcher()

    record = await detail_fetcher(AIExtractor(inference)).fetch_detail(stub, page)

    assert downloads == [stub.detail_url]
    assert page.visits == []
    assert inference.calls[0][1] == b"%PDF-1.4 body"
    assert record.buyer == "ATO"
    assert record.completeness == Completeness.FULL


@pytest.mark.asyncio
async def test_pdf_download_failure_degrades(monkeypatch):
    def fake_get(url, timeout=None):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(requests, "get", fake_get)
    record = await detail_fetcher().fetch_detail(make_stub(url="https://buyict.gov.au/a.pdf"), FakeDetailFetcher())

    assert record.fetch_status == FetchStatus.FAILED
    assert record.completeness == Completeness.STUB_ONLY


def test_is_document():
    assert DetailFetcher.is_document("https://x.gov.au/files/a.pdf?download=1")
    assert not DetailFetcher.is_document("https://buyict.gov.au/sp?id=opportunity_details")
