from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional

from .backoff import BackoffStrategy
from .classify import SpanClassifier
from .config import MapSelectors, ScraperTimings, ScrapingConfig
from .error_logger import ErrorLogger
from .page_scraper import BusinessLookupScraper, IndustryScraper
from .retry import RetryStrategy


class ScraperFactory:
    """Builds page scrapers that share one error logger, classifier and timings.

    The retry strategy is derived from the run config and shared by every
    scraper, since it holds no per-call state."""

    def __init__(
        self,
        config: ScrapingConfig,
        error_logger: ErrorLogger,
        selectors: Optional[MapSelectors] = None,
        timings: Optional[ScraperTimings] = None,
        classifier: Optional[SpanClassifier] = None,
        backoff: Optional[BackoffStrategy] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self._error_logger = error_logger
        self._selectors = selectors or MapSelectors()
        self._timings = timings or ScraperTimings()
        self._classifier = classifier or SpanClassifier()
        self._sleep = sleep
        self._retry = RetryStrategy(
            max_attempts=config.retry_attempts,
            base_delay_ms=config.retry_delay_ms,
            backoff=backoff,
            sleep=sleep,
        )

    @property
    def retry(self) -> RetryStrategy:
        return self._retry

    def _shared(self) -> dict:
        return {
            "retry": self._retry,
            "selectors": self._selectors,
            "timings": self._timings,
            "classifier": self._classifier,
            "sleep": self._sleep,
        }

    def create_industry_scraper(self, page: Any, town: str, industry: str) -> IndustryScraper:
        return IndustryScraper(page, town, industry, self._error_logger, **self._shared())

    def create_lookup_scraper(self, page: Any, query: str, max_results: int = 3) -> BusinessLookupScraper:
        return BusinessLookupScraper(page, query, self._error_logger, max_results=max_results, **self._shared())
