import json

import pytest

from conftest import SINK_URL, FakeDetailFetcher
from opportunity_scraper.config import RunConfig
from opportunity_scraper.delivery import WebhookDispatcher
from opportunity_scraper.errors import ListingUnavailableError
from opportunity_scraper.extractors import (
    DirectoryFetcher, DirectoryWalker, load_agency_stubs, save_agency_list,
)
from opportunity_scraper.models import Completeness, FetchStatus, ListingStub, RunState, RunStatus
from orchestrator.run_controller import RunController

BASE = "https://www.directory.gov.au"

INDEX_HTML = """<html><body><main>
<a href="/portfolios">All portfolios</a>
<a href="/portfolios/defence">Defence</a>
<a href="/portfolios/finance">Finance</a>
<a href="/portfolios/finance">Finance (again)</a>
<a href="https://elsewhere.gov.au/portfolios/health">External</a>
</main></body></html>"""

DEFENCE_HTML = """<html><head><title>Defence | Directory</title></head><body>
<nav><a href="/portfolios/defence/nav-only-entity">Nav</a></nav>
<main>
<a href="/portfolios/defence/department-of-defence">Department of Defence</a>
<a href="/portfolios/defence/department-of-defence">Department of Defence</a>
<a href="/portfolios/defence/australian-signals-directorate">Australian Signals Directorate</a>
<a href="/portfolios/defence/reports">Annual reports</a>
<a href="/portfolios/defence/department-of-defence/legislation">Legislation</a>
</main></body></html>"""

FINANCE_HTML = """<html><body><main>
<a href="/portfolios/finance/department-of-finance">Department of Finance</a>
<a href="/portfolios/finance/australian-electoral-commission">Australian Electoral Commission</a>
</main></body></html>"""

AGENCY_HTML = """<html><body>
<h1>Department of   Finance</h1>
<div class="field--name-field-portfolio"><a href="/portfolios/finance">Finance</a></div>
<div class="field--name-body"><p>Supports sustainable government finances.</p></div>
<a href="tel:0262152222">02 6215 2222</a>
<a href="tel:0262733021">02 6273 3021</a>
<a href="https://www.directory.gov.au/portfolios/finance">Back</a>
<a href="https://www.legislation.gov.au/C2004A00538">Act</a>
<a href="https://www.finance.gov.au">www.finance.gov.au</a>
<a href="https://maps.google.com/?q=1+Canberra+Ave">1 Canberra Avenue, Forrest ACT 2603</a>
</body></html>"""

AGENCY_TEXT = "\n".join([
    "Department of Finance",
    "ABN: 61 970 632 495",
    "Further information",
    "Type of Body",
    "A. Non Corporate Commonwealth Entity",
    "GFS Sector Classification",
    "General Government Sector",
    "Established By / Under",
    "Public Service Act 1999",
    "Established By/Under More info",
    "Section 65 of the Public Service Act 1999",
    "Classification",
    "Department of State",
    "Materiality",
    "Material",
    "Creation Date",
    "1 July 1999",
])


def directory_pages(**extra):
    pages = {
        f"{BASE}/portfolios": (INDEX_HTML, ""),
        f"{BASE}/portfolios/defence": (DEFENCE_HTML, ""),
        f"{BASE}/portfolios/finance": (FINANCE_HTML, ""),
        f"{BASE}/portfolios/finance/department-of-finance": (AGENCY_HTML, AGENCY_TEXT),
    }
    pages.update(extra)
    return pages


def walker(state=None, **kwargs):
    return DirectoryWalker(state or RunState(target_capacity=100), base_url=BASE, settle_ms=0, **kwargs)


async def collect(walk):
    return [stub async for stub in walk]


def test_portfolio_links_are_deduplicated_and_stay_on_the_directory():
    assert walker().portfolio_links(INDEX_HTML) == [f"{BASE}/portfolios/defence", f"{BASE}/portfolios/finance"]


def test_portfolio_filter():
    assert walker(portfolio_filter="Finance").portfolio_links(INDEX_HTML) == [f"{BASE}/portfolios/finance"]


def test_agency_links_skip_reports_legislation_and_navigation():
    links = walker().agency_links(DEFENCE_HTML)
    assert [slug for slug, _url, _name in links] == ["department-of-defence", "australian-signals-directorate"]
    assert links[0][1] == f"{BASE}/portfolios/defence/department-of-defence"
    assert links[0][2] == "Department of Defence"


@pytest.mark.asyncio
async def test_walk_yields_agencies_across_portfolios():
    stubs = await collect(walker().walk(FakeDetailFetcher(directory_pages())))

    assert [s.natural_id for s in stubs] == [
        "department-of-defence", "australian-signals-directorate",
        "department-of-finance", "australian-electoral-commission",
    ]
    assert stubs[2].list_title == "Department of Finance"


@pytest.mark.asyncio
async def test_walk_respects_cap_seen_ids_and_start_page():
    state = RunState.seeded(100, known_ids=["department-of-finance"])
    stubs = await collect(walker(state).walk(FakeDetailFetcher(directory_pages()), start_page=2, cap=5))
    assert [s.natural_id for s in stubs] == ["australian-electoral-commission"]

    capped = await collect(walker().walk(FakeDetailFetcher(directory_pages()), cap=3))
    assert len(capped) == 3


@pytest.mark.asyncio
async def test_failing_portfolio_is_skipped():
    fetcher = FakeDetailFetcher(directory_pages(), failing=[f"{BASE}/portfolios/defence"])
    stubs = await collect(walker().walk(fetcher))
    assert [s.natural_id for s in stubs] == ["department-of-finance", "australian-electoral-commission"]


@pytest.mark.asyncio
async def test_unreachable_index_is_listing_unavailable():
    fetcher = FakeDetailFetcher(directory_pages(), failing=[f"{BASE}/portfolios"])
    with pytest.raises(ListingUnavailableError):
        await collect(walker().walk(fetcher))


def test_parse_agency_profile():
    url = f"{BASE}/portfolios/finance/department-of-finance"
    profile = DirectoryFetcher.parse_agency(AGENCY_HTML, AGENCY_TEXT, url)

    assert profile.name == "Department of Finance"
    assert profile.portfolio == "Finance"
    assert profile.description == "Supports sustainable government finances."
    assert profile.website == "https://www.finance.gov.au"
    assert (profile.phone, profile.fax) == ("02 6215 2222", "02 6273 3021")
    assert profile.abn == "61970632495"
    assert profile.address == "1 Canberra Avenue, Forrest ACT 2603"
    assert profile.type_of_body == "A. Non Corporate Commonwealth Entity"
    assert profile.gfs_classification == "General Government Sector"
    assert profile.established_under == "Public Service Act 1999"
    assert profile.established_info == "Section 65 of the Public Service Act 1999"
    assert profile.classification == "Department of State"
    assert profile.materiality == "Material"
    assert profile.creation_date == "1999-07-01"
    assert profile.directory_url == url


def test_parse_agency_without_name_or_tag():
    assert DirectoryFetcher.parse_agency("<html><body><p>Nothing</p></body></html>", "", BASE) is None

    profile = DirectoryFetcher.parse_agency(
        "<html><body><h1>Australian Signals Directorate</h1></body></html>", "",
        f"{BASE}/portfolios/attorney-generals/asd",
    )
    assert profile.portfolio == "Attorney Generals"
    assert profile.website is None


@pytest.mark.asyncio
async def test_fetch_detail_keeps_profiles_and_degrades_on_failure():
    good = ListingStub(
        natural_id="department-of-finance",
        detail_url=f"{BASE}/portfolios/finance/department-of-finance",
        list_title="Department of Finance",
    )
    bad = ListingStub(natural_id="gone", detail_url=f"{BASE}/portfolios/finance/gone", list_title="Gone")
    fetcher = DirectoryFetcher(delay=0, settle_ms=0)
    page = FakeDetailFetcher(directory_pages(), failing=[bad.detail_url])

    record = await fetcher.fetch_detail(good, page)
    failed = await fetcher.fetch_detail(bad, page)

    assert record.title == "Department of Finance"
    assert record.agency.website == "https://www.finance.gov.au"
    assert record.completeness == Completeness.FULL
    assert failed.fetch_status == FetchStatus.FAILED
    assert failed.completeness == Completeness.STUB_ONLY
    assert list(fetcher.agencies) == ["department-of-finance"]


@pytest.mark.asyncio
async def test_saved_agency_list_feeds_leadership_mode(tmp_path):
    fetcher = DirectoryFetcher(delay=0, settle_ms=0)
    stub = ListingStub(natural_id="department-of-finance", detail_url=f"{BASE}/portfolios/finance/department-of-finance")
    await fetcher.fetch_detail(stub, FakeDetailFetcher(directory_pages()))

    path = save_agency_list(fetcher.agencies, str(tmp_path / "out" / "agencies.json"))

    with open(path, "r", encoding="utf-8") as f:
        rows = json.load(f)
    assert rows[0]["id"] == "department-of-finance"
    assert rows[0]["abn"] == "61970632495"
    stubs = load_agency_stubs(path)
    assert [(s.natural_id, s.detail_url, s.list_title) for s in stubs] == [
        ("department-of-finance", "https://www.finance.gov.au", "Department of Finance"),
    ]


@pytest.mark.asyncio
async def test_directory_run_delivers_agencies(sink):
    config = RunConfig(mode="directory", webhook_url=SINK_URL, directory_url=BASE, portfolio_filter="finance")
    controller = RunController.from_config(config)
    controller.walker.settle_ms = 0
    controller.detail_fetcher.delay = 0
    controller.detail_fetcher.settle_ms = 0
    controller.dispatcher = WebhookDispatcher(SINK_URL, session=sink)
    pages = directory_pages()

    outcome = await controller.run([FakeDetailFetcher(pages)], listing_fetcher=FakeDetailFetcher(pages))

    assert outcome.state == RunStatus.DONE
    assert outcome.discovered == 2
    assert outcome.delivered == 2
    assert sink.store["department-of-finance"]["agency"]["abn"] == "61970632495"
    assert sink.posts[-1]["isFinal"] is True


def test_from_config_wires_directory_mode():
    config = RunConfig(mode="directory", webhook_url=SINK_URL, max_agencies=7)
    controller = RunController.from_config(config)

    assert isinstance(controller.walker, DirectoryWalker)
    assert isinstance(controller.detail_fetcher, DirectoryFetcher)
    assert controller.state.target_capacity == 7
