"""
Dedup & Batch Buffer
Collects extracted records keyed by natural id and cuts them into delivery batches

Every undelivered record stays in RunState.pending_buffer until the sink
confirms it; ids handed out in a batch are "in flight" until settled, so no id
is ever part of two outstanding batches.
"""
import logging
from typing import List, Optional, Set

from ..models import DeliveryBatch, DeliveryOutcome, ExtractedRecord, RunState

# Get logger
logger = logging.getLogger(__name__)


class BatchBuffer:
    """Keyed buffer over RunState.pending_buffer"""

    def __init__(self, state: RunState, threshold: int = 20):
        """
        Args:
            state: Run state owning pending_buffer and delivered_ids
            threshold: Records per non-final batch
        """
        self.state = state
        self.threshold = threshold
        self.in_flight: Set[str] = set()

    def offer(self, record: ExtractedRecord) -> bool:
        """
        Add or replace a record

        Returns:
            False when the id was already delivered (accepted, never batched)
        """
        if record.natural_id in self.state.delivered_ids:
            logger.debug(f"{record.natural_id} already delivered, not re-batching")
            return False
        self.state.pending_buffer[record.natural_id] = record
        return True

    def eligible_ids(self) -> List[str]:
        """Pending ids not currently in flight, in arrival order"""
        return [
            natural_id for natural_id in self.state.pending_buffer
            if natural_id not in self.in_flight and natural_id not in self.state.delivered_ids
        ]

    def drain(self, force: bool = False) -> Optional[DeliveryBatch]:
        """
        Cut the next batch

        Non-forced: exactly `threshold` records once that many are eligible.
        Forced: everything eligible, flagged is_final. None when nothing to send.
        """
        ids = self.eligible_ids()
        if force:
            if not ids:
                return None
        else:
            if len(ids) < self.threshold:
                return None
            ids = ids[:self.threshold]

        self.in_flight.update(ids)
        return DeliveryBatch(
            records=[self.state.pending_buffer[natural_id] for natural_id in ids],
            is_final=force,
        )

    def settle(self, batch: DeliveryBatch, outcome: DeliveryOutcome) -> None:
        """Release a batch: delivered ids leave the buffer, failed ids become eligible again"""
        for natural_id in batch.ids:
            self.in_flight.discard(natural_id)

        for natural_id in outcome.delivered:
            self.state.delivered_ids.add(natural_id)
            self.state.pending_buffer.pop(natural_id, None)

        if outcome.failed:
            logger.warning(f"  ⚠️  {len(outcome.failed)} records stay pending for redelivery")

    @property
    def pending_count(self) -> int:
        return len(self.state.pending_buffer)

    def undelivered_ids(self) -> List[str]:
        return [
            natural_id for natural_id in self.state.pending_buffer
            if natural_id not in self.state.delivered_ids
        ]
