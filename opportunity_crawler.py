#!/usr/bin/env python3
"""
Opportunity / leadership crawler entry point

Configuration comes from SCRAPER_* environment variables (.env supported);
command-line flags override them. The final RunOutcome is written to
output/run_outcome_<timestamp>.json so a later run can resume with
--existing-references @output/run_outcome_<timestamp>.json
"""
import os
import sys
import json
import asyncio
import argparse
import logging
from datetime import datetime

from opportunity_scraper.config import RunConfig, parse_references
from opportunity_scraper.errors import RunAbortedError
from opportunity_scraper.extractors import save_agency_list
from opportunity_scraper.models import RunOutcome
from opportunity_scraper.utils import BrowserSession
from orchestrator.run_controller import RunController


def setup_logging():
    """Setup logging to write to both file and stdout"""
    # Create logs directory
    os.makedirs("logs", exist_ok=True)

    # Create log filename with timestamp
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = f"logs/crawler_{timestamp}.log"

    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)

    # Remove existing handlers
    root_logger.handlers = []

    file_handler = logging.FileHandler(log_file, encoding='utf-8')
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    root_logger.info("="*80)
    root_logger.info(f"Logging initialized - writing to: {log_file}")
    root_logger.info("="*80)

    return log_file


logger = logging.getLogger(__name__)


def parse_args(argv=None) -> dict:
    """CLI flags -> RunConfig overrides (None means 'use the environment')"""
    parser = argparse.ArgumentParser(description="Crawl opportunities or agency leadership and deliver to a webhook")
    parser.add_argument("--mode", choices=["opportunities", "leadership", "directory"])
    parser.add_argument("--status", choices=["live", "closing_soon", "closed"])
    parser.add_argument("--webhook-url")
    parser.add_argument("--tenant-id")
    parser.add_argument("--max-opportunities", type=int)
    parser.add_argument("--start-page", type=int)
    parser.add_argument("--existing-references", help="Comma-separated ids or @file.json")
    parser.add_argument("--batch-size", type=int)
    parser.add_argument("--detail-concurrency", type=int)
    parser.add_argument("--agencies", dest="agencies_path", help="Agency list JSON (leadership mode)")
    parser.add_argument("--max-agencies", type=int)
    parser.add_argument("--portfolio", dest="portfolio_filter", help="Only crawl matching directory portfolios")
    parser.add_argument("--agencies-output", help="Where directory mode writes the agency list")
    parser.add_argument("--headed", action="store_true", help="Show the browser window")
    args = parser.parse_args(argv)

    overrides = {
        "mode": args.mode,
        "status": args.status,
        "webhook_url": args.webhook_url,
        "tenant_id": args.tenant_id,
        "max_opportunities": args.max_opportunities,
        "start_page": args.start_page,
        "batch_size": args.batch_size,
        "detail_concurrency": args.detail_concurrency,
        "agencies_path": args.agencies_path,
        "max_agencies": args.max_agencies,
        "portfolio_filter": args.portfolio_filter,
        "agencies_output": args.agencies_output,
    }
    if args.existing_references is not None:
        overrides["existing_references"] = parse_references(args.existing_references)
    if args.headed:
        overrides["headless"] = False
    return overrides


def save_outcome(outcome: RunOutcome) -> str:
    os.makedirs("output", exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    path = f"output/run_outcome_{timestamp}.json"
    with open(path, "w", encoding="utf-8") as f:
        json.dump(outcome.model_dump(mode="json"), f, indent=2, ensure_ascii=False)
    logger.info(f"✓ Saved: {path}")
    return path


async def main(argv=None) -> RunOutcome:
    logger.info("="*80)
    logger.info("CRAWLER STARTING")
    logger.info("="*80)

    config = RunConfig.from_env(parse_args(argv))

    logger.info("Config:")
    logger.info(f"  Mode: {config.mode}")
    if config.mode == "opportunities":
        logger.info(f"  Listing: {config.listing_url}")
        logger.info(f"  Max opportunities: {config.max_opportunities} (start page {config.start_page})")
    elif config.mode == "directory":
        logger.info(f"  Directory: {config.directory_url} (portfolio filter: {config.portfolio_filter or 'none'})")
        logger.info(f"  Max agencies: {config.max_agencies} -> {config.agencies_output}")
    else:
        logger.info(f"  Agencies: {config.agencies_path} (max {config.max_agencies})")
    logger.info(f"  Webhook URL: {'PROVIDED' if config.webhook_url else 'NOT PROVIDED'}")
    logger.info(f"  API Key: {'SET' if config.api_key else 'NOT SET'}")
    logger.info(f"  Known references: {len(config.existing_references)}")
    logger.info(f"  Detail workers: {config.detail_concurrency}")
    logger.info("="*80)

    controller = RunController.from_config(config)

    async with BrowserSession(headless=config.headless) as browser:
        detail_fetchers = [await browser.new_fetcher() for _ in range(config.detail_concurrency)]
        listing_fetcher = await browser.new_fetcher() if config.mode != "leadership" else None

        try:
            outcome = await controller.run(detail_fetchers, listing_fetcher=listing_fetcher)
        except RunAbortedError as e:
            if e.outcome is not None:
                save_outcome(e.outcome)
            raise
        finally:
            if config.mode == "directory":
                save_agency_list(controller.detail_fetcher.agencies, config.agencies_output)

    save_outcome(outcome)
    return outcome


if __name__ == "__main__":
    setup_logging()
    try:
        asyncio.run(main())
    except Exception as e:
        logger.error("="*80)
        logger.error("FATAL ERROR IN CRAWLER")
        logger.error("="*80)
        logger.error(f"Error: {str(e)}")
        raise
