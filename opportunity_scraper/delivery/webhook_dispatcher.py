"""
Webhook Delivery Module
POSTs one DeliveryBatch to the sink; the sink upserts by natural id
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from urllib.parse import urlparse

import requests

from ..errors import SinkConfigurationError
from ..models import DeliveryBatch, DeliveryOutcome

# Get logger
logger = logging.getLogger(__name__)


class WebhookDispatcher:
    """
    One POST per batch, no retry loop here

    A batch is credited all-or-nothing: non-2xx, transport errors and
    ok:false bodies fail every id in it.
    """

    def __init__(
        self,
        webhook_url: Optional[str],
        tenant_id: Optional[str] = None,
        source: str = "opportunity-scraper",
        timeout: float = 30.0,
        session: Optional[requests.Session] = None
    ):
        """
        Raises:
            SinkConfigurationError: URL missing or not http(s)
        """
        if not webhook_url:
            raise SinkConfigurationError("Webhook URL is not configured (SCRAPER_WEBHOOK_URL)")
        parsed = urlparse(webhook_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise SinkConfigurationError(f"Invalid webhook URL: {webhook_url}")

        self.webhook_url = webhook_url
        self.tenant_id = tenant_id
        self.source = source
        self.timeout = timeout
        self.session = session or requests.Session()

    def build_envelope(self, batch: DeliveryBatch) -> Dict[str, Any]:
        return {
            "tenantId": self.tenant_id,
            "records": [record.to_payload() for record in batch.records],
            "scrapedAt": datetime.now(timezone.utc).isoformat(),
            "totalCount": len(batch.records),
            "source": self.source,
            "isFinal": batch.is_final,
        }

    def _post(self, envelope: Dict[str, Any]) -> requests.Response:
        return self.session.post(
            self.webhook_url,
            json=envelope,
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
        )

    async def deliver(self, batch: DeliveryBatch) -> DeliveryOutcome:
        ids = set(batch.ids)
        if not ids:
            return DeliveryOutcome()

        kind = "final" if batch.is_final else "incremental"
        logger.info(f"📤 Sending batch of {len(ids)} records ({kind})...")

        try:
            response = await asyncio.to_thread(self._post, self.build_envelope(batch))
        except requests.RequestException as e:
            logger.error(f"  ✗ Batch webhook error: {str(e)[:120]}")
            return DeliveryOutcome(failed=ids)

        if not 200 <= response.status_code < 300:
            logger.error(f"  ✗ Batch webhook failed. Status: {response.status_code}, Response: {response.text[:200]}")
            return DeliveryOutcome(failed=ids)

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if body.get("ok") is False:
            logger.error(f"  ✗ Sink rejected batch: {body.get('error', 'ok=false')}")
            return DeliveryOutcome(failed=ids)

        stats = body.get("stats")
        if not isinstance(stats, dict):
            stats = {}
        added = self._count(stats.get("added"))
        updated = self._count(stats.get("updated"))
        logger.info(f"  ✓ Batch saved: {added} added, {updated} updated")
        return DeliveryOutcome(delivered=ids, added=added, updated=updated)

    @staticmethod
    def _count(value: Any) -> int:
        """Sink stats are informational; anything non-numeric counts as 0"""
        if isinstance(value, bool):
            return 0
        try:
            return max(0, int(value or 0))
        except (TypeError, ValueError, OverflowError):
            return 0
