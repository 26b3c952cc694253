from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from .browser import BrowserEngine, BrowserHandle
from .config import ScrapingConfig
from .error_logger import ErrorLogger
from .errors import BrowserLaunchError
from .factory import ScraperFactory
from .logging_manager import LoggingManager
from .metrics import ScrapeMetrics
from .models import Business, LogLevel, SubUnitResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BrowserWorker:
    """Owns one browser for the duration of one town.

    Industries are scraped in batches of ``simultaneous_industries``, each
    on its own page. A failed industry is logged and skipped; a browser that
    cannot be launched fails the whole town."""

    def __init__(
        self,
        worker_id: int,
        config: ScrapingConfig,
        engine: BrowserEngine,
        error_logger: ErrorLogger,
        logging_manager: Optional[LoggingManager] = None,
        factory: Optional[ScraperFactory] = None,
        metrics: Optional[ScrapeMetrics] = None,
    ) -> None:
        self.worker_id = worker_id
        self.config = config
        self._engine = engine
        self._error_logger = error_logger
        self._narration = logging_manager or LoggingManager()
        self._factory = factory or ScraperFactory(config, error_logger)
        self._metrics = metrics or ScrapeMetrics()
        self._browser: Optional[BrowserHandle] = None
        self._active = 0

    @property
    def active_scrapes(self) -> int:
        return self._active

    @property
    def is_open(self) -> bool:
        return self._browser is not None

    async def process_partition(self, town: str, industries: List[str]) -> List[Business]:
        """Scrape every industry for one town and return the records in order."""
        businesses: List[Business] = []
        try:
            await self._init_browser()
            self._narration.log_message(f"Worker {self.worker_id}: Starting scrape for {town}")

            step = self.config.simultaneous_industries
            for i in range(0, len(industries), step):
                batch = industries[i : i + step]
                results = await asyncio.gather(
                    *(self._scrape_industry(town, industry) for industry in batch),
                    return_exceptions=True,
                )
                for industry, result in zip(batch, results):
                    if isinstance(result, BaseException):
                        if isinstance(result, asyncio.CancelledError):
                            raise result
                        self._error_logger.log_scraping_error(
                            town, industry, result, worker_id=self.worker_id, operation="scrape_industry"
                        )
                        self._narration.log_error(town, industry, str(result) or type(result).__name__)
                        continue
                    businesses.extend(result)
                    self._narration.log_industry_progress(town, industry, f"found {len(result)}")

            self._narration.log_message(
                f"Worker {self.worker_id}: Completed {town} - Total: {len(businesses)} businesses",
                LogLevel.SUCCESS,
            )
            return businesses
        except Exception as exc:  # noqa: BLE001
            self._error_logger.log_browser_error(
                exc, worker_id=self.worker_id, town=town, operation="process_town"
            )
            self._narration.log_message(
                f"Worker {self.worker_id}: Failed to process {town} - {exc}", LogLevel.ERROR
            )
            raise
        finally:
            await self.cleanup()

    async def lookup_business(self, query: str) -> List[Business]:
        """Single-business lookup on a fresh page; the browser stays open."""
        await self._init_browser()
        return await self._with_page(lambda page: self._factory.create_lookup_scraper(page, query).scrape())

    async def _scrape_industry(self, town: str, industry: str) -> List[Business]:
        self._narration.log_industry_progress(town, industry, "started")
        started = time.perf_counter()
        try:
            businesses = await self._with_page(
                lambda page: self._factory.create_industry_scraper(page, town, industry).scrape()
            )
        except Exception as exc:  # noqa: BLE001
            self._record(town, industry, started, success=False, error_type=type(exc).__name__)
            raise
        self._record(town, industry, started, success=True, count=len(businesses))
        return businesses

    async def _with_page(self, fn: Callable[[Any], Awaitable[T]]) -> T:
        if self._browser is None:
            raise BrowserLaunchError("browser not initialized")
        self._active += 1
        try:
            page = await self._browser.new_page()
            try:
                return await fn(page)
            finally:
                try:
                    await page.close()
                except Exception as exc:  # noqa: BLE001
                    self._error_logger.log_browser_error(
                        exc, worker_id=self.worker_id, operation="close_page"
                    )
        finally:
            self._active -= 1

    def _record(
        self,
        town: str,
        industry: str,
        started: float,
        success: bool,
        count: int = 0,
        error_type: Optional[str] = None,
    ) -> None:
        self._metrics.record(
            SubUnitResult(
                town=town,
                industry=industry,
                success=success,
                latency_ms=int((time.perf_counter() - started) * 1000),
                record_count=count,
                error_type=error_type,
            )
        )

    async def _init_browser(self) -> None:
        if self._browser is not None:
            return
        logger.debug("worker %d launching browser", self.worker_id)
        try:
            self._browser = await self._engine.launch(headless=self.config.browser_headless)
        except BrowserLaunchError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise BrowserLaunchError(f"worker {self.worker_id}: {exc}") from exc

    async def cleanup(self) -> None:
        """Close the browser if open. Safe to call repeatedly."""
        browser, self._browser = self._browser, None
        if browser is None:
            return
        try:
            await browser.close()
        except Exception as exc:  # noqa: BLE001
            self._error_logger.log_browser_error(exc, worker_id=self.worker_id, operation="cleanup")
