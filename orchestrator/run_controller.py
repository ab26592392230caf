"""
Run Controller
Coordinates one crawl: listing -> detail fetching -> batching -> webhook delivery

States: Idle -> Listing -> DetailFetching -> Draining -> Done | Aborted
"""
import asyncio
import logging
from typing import AsyncIterator, List, Optional, Any

from opportunity_scraper.config import RunConfig
from opportunity_scraper.delivery import BatchBuffer, WebhookDispatcher
from opportunity_scraper.errors import NavigationError, SinkConfigurationError, RunAbortedError
from opportunity_scraper.extractors import (
    AIExtractor, InferenceClient, FieldExtractor, PaginationWalker,
    DetailFetcher, LeadershipFetcher, load_agency_stubs, DirectoryWalker, DirectoryFetcher,
)
from opportunity_scraper.models import (
    Completeness, DeliveryOutcome, ExtractedRecord, FetchStatus, ListingStub, RunOutcome, RunState, RunStatus,
)

# Get logger
logger = logging.getLogger(__name__)


class RunController:
    """
    Owns the RunState for one invocation

    Detail fetches run on a pool of 1-3 page fetchers bounded by a semaphore;
    offer/drain/deliver are serialised by a single lock.
    """

    def __init__(
        self,
        config: RunConfig,
        detail_fetcher: Any,
        state: Optional[RunState] = None,
        walker: Any = None,
        stubs: Optional[List[ListingStub]] = None,
        dispatcher: Optional[WebhookDispatcher] = None
    ):
        """
        Args:
            config: Run configuration
            detail_fetcher: DetailFetcher or LeadershipFetcher
            state: Pre-built run state (defaults to one seeded from existing_references)
            walker: PaginationWalker or DirectoryWalker
            stubs: Fixed stub list (leadership mode); takes precedence over walker
            dispatcher: Webhook dispatcher (built from config when omitted)
        """
        self.config = config
        self.detail_fetcher = detail_fetcher
        self.state = state or RunState.seeded(
            target_capacity=config.max_opportunities,
            start_offset=config.start_page,
            known_ids=config.existing_references,
        )
        self.walker = walker
        self.stubs = stubs
        self.dispatcher = dispatcher
        self.buffer = BatchBuffer(self.state, threshold=config.batch_size)
        self.status = RunStatus.IDLE
        self.outcome = RunOutcome()
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: RunConfig, inference: Any = None) -> "RunController":
        """Wire the production components for config.mode"""
        if inference is None and config.api_key:
            inference = InferenceClient(
                api_key=config.api_key,
                model=config.ai_model,
                base_url=config.ai_base_url,
                max_retries=config.ai_max_retries,
                retry_delay=config.ai_retry_delay,
                timeout=config.ai_timeout,
            )
        ai = AIExtractor(inference, max_chars=config.ai_max_chars) if inference else None
        state = RunState.seeded(
            target_capacity=config.max_agencies if config.mode == "directory" else config.max_opportunities,
            start_offset=config.start_page,
            known_ids=config.existing_references,
        )

        if config.mode == "leadership":
            if ai is None:
                raise ValueError("leadership mode needs OPENAI_API_KEY")
            if not config.agencies_path:
                raise ValueError("leadership mode needs SCRAPER_AGENCIES_PATH")
            return cls(
                config,
                LeadershipFetcher(ai, delay=config.detail_delay),
                state=state,
                stubs=load_agency_stubs(config.agencies_path, config.max_agencies),
            )

        if config.mode == "directory":
            walker = DirectoryWalker(
                state,
                base_url=config.directory_url,
                portfolio_filter=config.portfolio_filter,
                navigation_timeout_ms=config.listing_timeout_ms,
            )
            return cls(config, DirectoryFetcher(delay=config.detail_delay), state=state, walker=walker)

        if ai is None:
            logger.warning("⚠️  OPENAI_API_KEY not set - AI fallback disabled, DOM heuristics only")
        extractor = FieldExtractor(ai, site_brand=config.site_brand, status_label=config.status_label)
        fetcher = DetailFetcher(
            extractor,
            timeout_ms=config.detail_timeout_ms,
            settle_ms=config.detail_settle_ms,
            delay=config.detail_delay,
        )
        walker = PaginationWalker(
            config.listing_url,
            state,
            base_url=config.base_url,
            navigation_timeout_ms=config.listing_timeout_ms,
            selector_timeout_ms=config.listing_selector_timeout_ms,
            max_empty_pages=config.max_empty_pages,
        )
        return cls(config, fetcher, state=state, walker=walker)

    def _set_status(self, status: RunStatus) -> None:
        logger.info(f"Run state: {self.status.value} -> {status.value}")
        self.status = status
        self.outcome.state = status

    async def _stub_stream(self, listing_fetcher: Any) -> AsyncIterator[ListingStub]:
        if self.stubs is not None:
            emitted = 0
            for stub in self.stubs:
                if emitted >= self.state.target_capacity:
                    logger.info(f"  Reached cap of {self.state.target_capacity} stubs")
                    break
                if stub.natural_id in self.state.seen_ids:
                    continue
                self.state.seen_ids.add(stub.natural_id)
                emitted += 1
                yield stub
            return

        if self.walker is None:
            raise ValueError("RunController needs either a walker or a stub list")

        async for stub in self.walker.walk(
            listing_fetcher,
            start_page=self.state.start_offset,
            cap=self.state.target_capacity,
        ):
            yield stub

    async def _deliver_pending(self, force: bool = False) -> None:
        """Drain and deliver; caller holds the lock"""
        batch = self.buffer.drain(force=force)
        while batch is not None:
            try:
                result = await self.dispatcher.deliver(batch)
            except Exception as e:
                logger.error(f"  ✗ Batch delivery error: {type(e).__name__}: {str(e)[:120]}")
                result = DeliveryOutcome(failed=set(batch.ids))
            self.buffer.settle(batch, result)

            if result.failed:
                self.outcome.batches_failed += 1
                # Failed ids stay pending for the next drain
                break

            self.outcome.batches_sent += 1
            self.outcome.delivered += len(result.delivered)
            self.outcome.sink_added += result.added
            self.outcome.sink_updated += result.updated

            if force:
                break
            batch = self.buffer.drain(force=False)

    async def _process(self, index: int, stub: ListingStub, pool: asyncio.Queue, slots: asyncio.Semaphore) -> None:
        fetcher = await pool.get()
        try:
            logger.info(f"[{index}/{self.state.target_capacity}] Fetching: {stub.natural_id} - {stub.list_title[:40]}...")
            record = await self.detail_fetcher.fetch_detail(stub, fetcher)
        except Exception as e:
            logger.error(f"  ✗ {stub.natural_id}: fetch error: {type(e).__name__}: {str(e)[:120]}")
            record = ExtractedRecord.from_stub(stub, fetch_status=FetchStatus.FAILED)
        finally:
            pool.put_nowait(fetcher)
            slots.release()

        self.outcome.fetched += 1
        if record.fetch_status == FetchStatus.FAILED:
            self.outcome.failed_details += 1
        elif record.completeness != Completeness.FULL:
            self.outcome.partial += 1

        async with self._lock:
            self.buffer.offer(record)
            await self._deliver_pending(force=False)

    async def _final_drain(self) -> None:
        if self.dispatcher is None:
            return
        async with self._lock:
            await self._deliver_pending(force=True)

    def _finish(self, error: Optional[str] = None) -> RunOutcome:
        self.outcome.never_delivered = self.buffer.undelivered_ids()
        self.outcome.delivered_ids = sorted(self.state.delivered_ids)
        self.outcome.error = error
        logger.info(f"{'✓' if error is None else '✗'} Run {self.status.value}: {self.outcome.summary()}")
        return self.outcome

    async def run(self, detail_fetchers: List[Any], listing_fetcher: Any = None) -> RunOutcome:
        """
        Execute the crawl

        Args:
            detail_fetchers: One page fetcher per concurrent detail worker (1-3)
            listing_fetcher: Page fetcher used by the walker (opportunities mode)

        Returns:
            RunOutcome with final counts

        Raises:
            RunAbortedError: listing unavailable, navigation failure mid-walk,
                             or sink misconfiguration
        """
        if not detail_fetchers:
            raise ValueError("at least one detail fetcher is required")

        pool: asyncio.Queue = asyncio.Queue()
        for fetcher in detail_fetchers:
            pool.put_nowait(fetcher)
        slots = asyncio.Semaphore(len(detail_fetchers))
        tasks: List[asyncio.Task] = []

        logger.info("=" * 80)
        logger.info(f"RUN START: mode={self.config.mode}, cap={self.state.target_capacity}, "
                    f"workers={len(detail_fetchers)}, known ids={len(self.state.delivered_ids)}")
        logger.info("=" * 80)

        try:
            if self.dispatcher is None:
                self.dispatcher = WebhookDispatcher(
                    self.config.webhook_url,
                    tenant_id=self.config.tenant_id,
                    source=self.config.source,
                    timeout=self.config.webhook_timeout,
                )

            self._set_status(RunStatus.LISTING)
            async for stub in self._stub_stream(listing_fetcher):
                self.outcome.discovered += 1
                await slots.acquire()
                tasks.append(asyncio.create_task(
                    self._process(self.outcome.discovered, stub, pool, slots)
                ))

            self._set_status(RunStatus.DETAIL_FETCHING)
            await asyncio.gather(*tasks)

        except (NavigationError, SinkConfigurationError) as e:
            self._set_status(RunStatus.ABORTED)
            logger.error(f"✗ Run aborted: {e}")
            await asyncio.gather(*tasks, return_exceptions=True)
            # Best effort: whatever was extracted still goes out
            await self._final_drain()
            raise RunAbortedError(str(e), self._finish(error=str(e))) from e

        self._set_status(RunStatus.DRAINING)
        await self._final_drain()

        self._set_status(RunStatus.DONE)
        return self._finish()
