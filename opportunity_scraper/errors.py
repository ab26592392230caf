"""
Exceptions raised by the opportunity scraper
Only listing-phase and sink-configuration errors are meant to reach the caller
"""
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .models import RunOutcome


class ScraperError(Exception):
    """Base exception for scraper failures"""


class NavigationError(ScraperError):
    """Page navigation or interaction failed"""


class SelectorTimeoutError(ScraperError):
    """A selector did not appear within its wait budget"""


class ListingUnavailableError(NavigationError):
    """The first listing page could not be loaded (nothing to crawl)"""


class InferenceError(ScraperError):
    """AI inference failed after all attempts"""


class SinkConfigurationError(ScraperError):
    """Webhook sink URL is missing or invalid"""


class RunAbortedError(ScraperError):
    """Run ended in the Aborted state; carries the outcome collected so far"""

    def __init__(self, message: str, outcome: Optional["RunOutcome"] = None):
        super().__init__(message)
        self.outcome = outcome
