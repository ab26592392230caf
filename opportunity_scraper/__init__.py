"""
Opportunity & leadership crawler
Listing pagination -> detail extraction -> batched webhook delivery
"""
from .config import RunConfig
from .models import ListingStub, ExtractedRecord, DeliveryBatch, DeliveryOutcome, RunOutcome, RunState

__all__ = ["RunConfig", "ListingStub", "ExtractedRecord", "DeliveryBatch", "DeliveryOutcome", "RunOutcome", "RunState"]
