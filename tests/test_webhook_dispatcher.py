import pytest

from conftest import SINK_URL
from opportunity_scraper.delivery import WebhookDispatcher
from opportunity_scraper.errors import SinkConfigurationError
from opportunity_scraper.models import DeliveryBatch, ExtractedRecord, FetchStatus


def batch(ids, is_final=False):
    records = [
        ExtractedRecord(
            natural_id=natural_id,
            source_url=f"https://buyict.gov.au/sp?ref={natural_id}",
            fetch_status=FetchStatus.PARTIAL,
        )
        for natural_id in ids
    ]
    return DeliveryBatch(records=records, is_final=is_final)


def dispatcher(sink):
    return WebhookDispatcher(SINK_URL, tenant_id="tenant-1", source="opportunity-scraper", session=sink)


@pytest.mark.parametrize("url", [None, "", "ftp://sink.example.org/x", "not a url"])
def test_missing_or_invalid_url_is_configuration_error(url):
    with pytest.raises(SinkConfigurationError):
        WebhookDispatcher(url)


def test_envelope_shape(sink):
    envelope = dispatcher(sink).build_envelope(batch(["ICT-1", "ICT-2"], is_final=True))

    assert set(envelope) == {"tenantId", "records", "scrapedAt", "totalCount", "source", "isFinal"}
    assert envelope["tenantId"] == "tenant-1"
    assert envelope["totalCount"] == 2
    assert envelope["isFinal"] is True
    assert envelope["records"][0]["natural_id"] == "ICT-1"
    assert "fetch_status" not in envelope["records"][0]


@pytest.mark.asyncio
async def test_successful_delivery(sink):
    outcome = await dispatcher(sink).deliver(batch(["ICT-1", "ICT-2"]))

    assert outcome.delivered == {"ICT-1", "ICT-2"}
    assert outcome.failed == set()
    assert (outcome.added, outcome.updated) == (2, 0)


@pytest.mark.asyncio
async def test_redelivery_is_idempotent_at_the_sink(sink):
    d = dispatcher(sink)
    await d.deliver(batch(["ICT-1", "ICT-2"]))
    again = await d.deliver(batch(["ICT-1", "ICT-2"]))

    assert sorted(sink.store) == ["ICT-1", "ICT-2"]
    assert (again.added, again.updated) == (0, 2)


@pytest.mark.asyncio
@pytest.mark.parametrize("mode", ["http500", "error", "reject"])
async def test_any_failure_fails_the_whole_batch(sink, mode):
    sink.failures = [mode]
    outcome = await dispatcher(sink).deliver(batch(["ICT-1", "ICT-2", "ICT-3"]))

    assert outcome.delivered == set()
    assert outcome.failed == {"ICT-1", "ICT-2", "ICT-3"}


@pytest.mark.asyncio
async def test_2xx_without_json_body_counts_as_delivered(sink):
    sink.failures = ["nojson"]
    outcome = await dispatcher(sink).deliver(batch(["ICT-1"]))
    assert outcome.delivered == {"ICT-1"}
    assert (outcome.added, outcome.updated) == (0, 0)


@pytest.mark.asyncio
async def test_empty_batch_is_not_posted(sink):
    outcome = await dispatcher(sink).deliver(DeliveryBatch(records=[]))
    assert sink.posts == []
    assert outcome.delivered == set()


@pytest.mark.asyncio
@pytest.mark.parametrize("mode", ["badstats", "badcounts"])
async def test_malformed_stats_still_count_as_delivered(sink, mode):
    sink.failures = [mode]
    outcome = await dispatcher(sink).deliver(batch(["ICT-1", "ICT-2"]))

    assert outcome.delivered == {"ICT-1", "ICT-2"}
    assert outcome.failed == set()
    assert (outcome.added, outcome.updated) == (0, 0)
