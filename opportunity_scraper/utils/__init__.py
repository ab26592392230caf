"""Shared helpers: page fetcher adapter and JSON-from-text parsing"""
from .json_text import extract_first_json, coerce_records
from .page_fetcher import PlaywrightPageFetcher, BrowserSession

__all__ = ["extract_first_json", "coerce_records", "PlaywrightPageFetcher", "BrowserSession"]
