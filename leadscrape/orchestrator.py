"""Run coordinator: a pool of browser workers over a shared town queue.

Each worker loop pulls towns until the queue is empty or the run is
stopped. Pausing closes a gate the loops wait on between towns; stopping
lets every loop finish its current town (bounded by stop_timeout_secs).
Once all loops settle, phone numbers are sent through the provider lookup
unless the run was stopped.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Callable, Deque, List, Optional, Sequence, Set

from .browser import BrowserEngine, PlaywrightEngine
from .config import ScrapingConfig
from .error_logger import ErrorLogger
from .errors import OrchestratorStateError
from .events import CompleteEvent, ErrorEvent, FanOutObserver, ProgressEvent, ScrapeObserver
from .factory import ScraperFactory
from .logging_manager import LoggingManager
from .lookup import ProviderLookupService
from .metrics import ScrapeMetrics
from .models import UNKNOWN_PROVIDER, Business, LogLevel, ProgressState, RunStatus
from .worker import BrowserWorker

logger = logging.getLogger(__name__)

WorkerFactory = Callable[[int], BrowserWorker]


class ScrapingOrchestrator:
    def __init__(
        self,
        towns: Sequence[str],
        industries: Sequence[str],
        config: Optional[ScrapingConfig] = None,
        engine: Optional[BrowserEngine] = None,
        observer: Optional[ScrapeObserver] = None,
        lookup_service: Optional[ProviderLookupService] = None,
        error_logger: Optional[ErrorLogger] = None,
        logging_manager: Optional[LoggingManager] = None,
        worker_factory: Optional[WorkerFactory] = None,
        metrics: Optional[ScrapeMetrics] = None,
        scraper_factory: Optional[ScraperFactory] = None,
    ) -> None:
        self.towns = list(towns)
        self.industries = list(industries)
        self.config = config or ScrapingConfig()
        self._engine = engine or PlaywrightEngine()
        self._observer = FanOutObserver([observer] if observer is not None else [])
        self._error_logger = error_logger or ErrorLogger()
        self._narration = logging_manager or LoggingManager()
        self._narration.set_observer(self._observer)
        self._metrics = metrics or ScrapeMetrics()
        self._lookup = lookup_service
        self._scrapers = scraper_factory or ScraperFactory(self.config, self._error_logger)
        self._worker_factory = worker_factory or self._default_worker

        self._status = RunStatus.IDLE
        self._progress = self._fresh_progress()
        self._results: List[Business] = []
        self._seen_urls: Set[str] = set()
        self._queue: Deque[str] = deque(self.towns)
        self._active_towns: Set[str] = set()
        self._workers: List[BrowserWorker] = []
        self._loops: List["asyncio.Task[None]"] = []
        self._results_lock: Optional[asyncio.Lock] = None
        self._gate: Optional[asyncio.Event] = None
        self._enriching = False

    # -- accessors ----------------------------------------------------------

    @property
    def status(self) -> RunStatus:
        return self._status

    @property
    def logging_manager(self) -> LoggingManager:
        return self._narration

    @property
    def error_logger(self) -> ErrorLogger:
        return self._error_logger

    @property
    def metrics(self) -> ScrapeMetrics:
        return self._metrics

    def get_progress(self) -> ProgressState:
        return self._progress.copy()

    def get_results(self) -> List[Business]:
        return list(self._results)

    # -- control ------------------------------------------------------------

    async def start(self) -> List[Business]:
        """Run every town and the lookup stage; returns the accumulated records."""
        if self._status in (RunStatus.RUNNING, RunStatus.PAUSED):
            raise OrchestratorStateError("Scraping is already running")

        self._reset()
        self._status = RunStatus.RUNNING
        self._narration.log_message("Starting scraping session...")
        self._emit_progress()

        try:
            worker_count = min(self.config.simultaneous_towns, len(self.towns))
            self._narration.log_message(f"Initializing {worker_count} workers...")
            self._loops = [asyncio.create_task(self._run_worker(i)) for i in range(worker_count)]
            outcomes = await asyncio.gather(*self._loops, return_exceptions=True)
            for outcome in outcomes:
                if isinstance(outcome, Exception):
                    raise outcome

            if self._status is RunStatus.STOPPED:
                self._narration.log_message("Scraping stopped by user", LogLevel.WARNING)
                self._emit_complete()
                return self.get_results()

            self._enriching = True
            try:
                await self._enrich()
            finally:
                self._enriching = False
            self._status = RunStatus.IDLE
            self._narration.log_message(
                f"Scraping completed! Total businesses: {len(self._results)}", LogLevel.SUCCESS
            )
            self._emit_complete()
            return self.get_results()
        except Exception as exc:  # noqa: BLE001
            self._status = RunStatus.IDLE
            message = str(exc) or type(exc).__name__
            self._error_logger.log_error(
                "Orchestrator failed",
                exc,
                operation="orchestrator_start",
                total_towns=len(self.towns),
                total_industries=len(self.industries),
            )
            self._narration.log_error("System", "Orchestrator", message)
            self._observer.on_error(ErrorEvent(message))
            raise

    def pause(self) -> None:
        if self._status is not RunStatus.RUNNING or self._enriching:
            return
        self._status = RunStatus.PAUSED
        if self._gate is not None:
            self._gate.clear()
        self._narration.log_message("Scraping paused")
        self._emit_progress()

    def resume(self) -> None:
        if self._status is not RunStatus.PAUSED:
            return
        self._status = RunStatus.RUNNING
        if self._gate is not None:
            self._gate.set()
        self._narration.log_message("Scraping resumed")
        self._emit_progress()

    async def stop(self) -> None:
        """Stop after in-flight towns finish, then release every browser."""
        if self._status not in (RunStatus.RUNNING, RunStatus.PAUSED):
            return
        if self._enriching:
            # scraping has drained; the lookup stage runs to completion
            self._narration.log_message("Provider lookups in progress, stop ignored", LogLevel.WARNING)
            return
        self._status = RunStatus.STOPPED
        if self._gate is not None:
            self._gate.set()
        self._narration.log_message("Stopping scraping...")

        pending = [task for task in self._loops if not task.done()]
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=self.config.stop_timeout_secs)
            if still_running:
                self._narration.log_message("Force stopping workers after timeout", LogLevel.WARNING)
                for task in still_running:
                    task.cancel()
                await asyncio.gather(*still_running, return_exceptions=True)

        for worker in self._workers:
            await worker.cleanup()
        self._close_lookup()
        self._narration.log_message("Scraping stopped")

    # -- internals ----------------------------------------------------------

    def _fresh_progress(self) -> ProgressState:
        return ProgressState(
            total_towns=len(self.towns),
            total_industries=len(self.towns) * len(self.industries),
        )

    def _reset(self) -> None:
        self._narration.clear()
        self._progress = self._fresh_progress()
        self._results = []
        self._seen_urls = set()
        self._queue = deque(self.towns)
        self._active_towns = set()
        self._workers = []
        self._loops = []
        self._results_lock = asyncio.Lock()
        self._gate = asyncio.Event()
        self._gate.set()

    def _default_worker(self, worker_id: int) -> BrowserWorker:
        return BrowserWorker(
            worker_id,
            self.config,
            self._engine,
            self._error_logger,
            logging_manager=self._narration,
            factory=self._scrapers,
            metrics=self._metrics,
        )

    async def _run_worker(self, worker_id: int) -> None:
        worker = self._worker_factory(worker_id)
        self._workers.append(worker)
        try:
            while True:
                # checkpoint between towns for pause and stop
                await asyncio.sleep(0)
                await self._gate.wait()
                if self._status is RunStatus.STOPPED or not self._queue:
                    break
                town = self._queue.popleft()
                await self._process_town(worker, worker_id, town)
        finally:
            logger.debug("worker %d exiting, %d towns left in queue", worker_id, len(self._queue))
            await worker.cleanup()

    async def _process_town(self, worker: BrowserWorker, worker_id: int, town: str) -> None:
        self._active_towns.add(town)
        self._narration.log_town_start(town)
        started = time.time()
        try:
            businesses = await worker.process_partition(town, self.industries)
        except Exception as exc:  # noqa: BLE001
            self._error_logger.log_scraping_error(
                town, "All Industries", exc, worker_id=worker_id, operation="process_town_industries"
            )
            self._narration.log_error(town, "All Industries", str(exc) or type(exc).__name__)
            self._progress.completed_towns += 1
            self._emit_progress()
        else:
            accepted = await self._accumulate(businesses)
            duration = time.time() - started
            self._progress.completed_towns += 1
            self._progress.completed_industries += len(self.industries)
            self._progress.town_completion_times.append(duration)
            self._narration.log_town_complete(town, accepted, duration)
            self._emit_progress()
        finally:
            self._active_towns.discard(town)

    async def _accumulate(self, businesses: List[Business]) -> int:
        """Append a town's records, dropping map URLs another town already gave."""
        accepted = 0
        async with self._results_lock:
            for business in businesses:
                if business.maps_url:
                    if business.maps_url in self._seen_urls:
                        continue
                    self._seen_urls.add(business.maps_url)
                self._results.append(business)
                accepted += 1
            self._progress.total_businesses = len(self._results)
        return accepted

    async def _enrich(self) -> None:
        targets = [b for b in self._results if b.has_lookup_key]
        if not targets:
            self._narration.log_message("No phone numbers to lookup")
            return
        if self._lookup is None:
            self._narration.log_message("Provider lookup not configured, marking providers Unknown", LogLevel.WARNING)
            for business in targets:
                business.provider = business.provider or UNKNOWN_PROVIDER
            return

        self._narration.log_message(f"Starting provider lookups for {len(targets)} phone numbers...")
        try:
            providers = await asyncio.to_thread(self._lookup.lookup_many, [b.phone for b in targets])
        except Exception as exc:  # noqa: BLE001
            self._error_logger.log_error(
                "Provider lookup failed", exc, operation="provider_lookup_batch", phone_count=len(targets)
            )
            self._narration.log_error("System", "Provider Lookup", str(exc) or type(exc).__name__)
            for business in targets:
                if not business.provider:
                    business.provider = UNKNOWN_PROVIDER
        else:
            for business in targets:
                business.provider = providers.get(business.phone) or UNKNOWN_PROVIDER
            self._narration.log_message(f"Provider lookups completed. Found {len(providers)} providers.")
        finally:
            self._close_lookup()

    def _close_lookup(self) -> None:
        if self._lookup is None:
            return
        try:
            self._lookup.close()
        except Exception as exc:  # noqa: BLE001
            self._error_logger.log_error("Lookup service cleanup failed", exc, operation="lookup_cleanup")

    def _emit_progress(self) -> None:
        p = self._progress
        self._observer.on_progress(
            ProgressEvent(
                percentage=p.percentage,
                towns_remaining=p.towns_remaining,
                businesses_scraped=p.total_businesses,
                estimated_time_ms=p.estimated_time_ms,
                status=self._status.value,
            )
        )

    def _emit_complete(self) -> None:
        self._observer.on_complete(
            CompleteEvent(
                self.get_results(),
                self._narration.get_summary(),
                stopped=self._status is RunStatus.STOPPED,
            )
        )
