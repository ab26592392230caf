#!/usr/bin/env python3
"""
Extract specific detail pages without walking the listing or calling the webhook
Useful for checking the field extractor against a handful of live opportunities
"""
import os
import sys
import json
import asyncio
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from opportunity_scraper.config import RunConfig
from opportunity_scraper.extractors import AIExtractor, InferenceClient, FieldExtractor, DetailFetcher
from opportunity_scraper.models import ListingStub
from opportunity_scraper.utils import BrowserSession


async def extract_detail_urls():
    """Extract records from the URLs below"""
    config = RunConfig.from_env()

    if not config.api_key:
        print("⚠️  OPENAI_API_KEY not set - AI fallback disabled")

    # ============================================
    # CUSTOMIZE THESE URLS (id, detail url, listing title)
    # ============================================
    URLS_TO_TEST = [
        ("ICT-12345", "https://buyict.gov.au/sp?id=opportunity_details&table=u_pcs_procurement&sys_id=0000", ""),
        # Add more detail pages here
    ]
    # ============================================

    print("\n" + "="*80)
    print("SPECIFIC DETAIL PAGE EXTRACTION")
    print("="*80)
    print(f"Testing {len(URLS_TO_TEST)} URL(s)")
    print("="*80 + "\n")

    ai = None
    if config.api_key:
        ai = AIExtractor(
            InferenceClient(config.api_key, model=config.ai_model, base_url=config.ai_base_url),
            max_chars=config.ai_max_chars,
        )
    fetcher = DetailFetcher(
        FieldExtractor(ai, site_brand=config.site_brand, status_label=config.status_label),
        timeout_ms=config.detail_timeout_ms,
        settle_ms=config.detail_settle_ms,
    )

    records = []
    async with BrowserSession(headless=config.headless) as browser:
        page = await browser.new_fetcher()
        for i, (natural_id, url, title) in enumerate(URLS_TO_TEST, 1):
            print(f"[{i}/{len(URLS_TO_TEST)}] {natural_id}: {url[:70]}")
            stub = ListingStub(natural_id=natural_id, detail_url=url, list_title=title)
            records.append(await fetcher.fetch_detail(stub, page))

    print("\n" + "="*80)
    print("RESULTS SUMMARY")
    print("="*80)

    for record in records:
        print(f"\n{record.natural_id} ({record.completeness.value}, fetch {record.fetch_status.value})")
        print(f"  Title: {record.title or 'N/A'}")
        print(f"  Buyer: {record.buyer or 'N/A'}")
        print(f"  Published: {record.publish_date or 'N/A'}")
        print(f"  Closing: {record.closing_date or 'N/A'}")
        print(f"  Type: {record.opportunity_type or 'N/A'}")
        print(f"  Criteria: {len(record.criteria)}, Attachments: {len(record.attachments)}")

    os.makedirs("output", exist_ok=True)
    with open("output/detail_records.json", "w", encoding="utf-8") as f:
        json.dump([r.to_payload() for r in records], f, indent=2, ensure_ascii=False)
    print("\n✓ Saved: output/detail_records.json")


if __name__ == "__main__":
    asyncio.run(extract_detail_urls())
