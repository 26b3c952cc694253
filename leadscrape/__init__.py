"""Business lead scraper package.

Drives headless Chromium over map search results for every
(town, industry) pair, collects business listings, and resolves the
network provider of each listing's phone number.

Key modules:
    orchestrator    -- ScrapingOrchestrator: worker pool, pause/stop, enrichment
    worker          -- BrowserWorker: one browser per town, batched industries
    page_scraper    -- IndustryScraper, BusinessLookupScraper page state machines
    classify        -- SpanClassifier for category/address heuristics
    factory         -- ScraperFactory for creating page scrapers
    browser         -- PlaywrightEngine and the BrowserEngine protocol
    lookup          -- ProviderLookupService, HttpProviderResolver, normalize_phone
    retry           -- RetryStrategy for bounded retries
    backoff         -- BackoffStrategy for retry delays
    rate_limiter    -- RateLimiter for lookup QPS throttling
    logging_manager -- LoggingManager for run narration
    error_logger    -- ErrorLogger structured error ledger
    events          -- observer interface and event payloads
    metrics         -- ScrapeMetrics for per-industry outcomes
    storage         -- SessionStore, JsonlSessionStore, SessionRecorder
    reporting       -- CSV export and provider helpers
    config          -- ScrapingConfig, ScraperTimings, MapSelectors
    models          -- Business, ProgressState and log entry dataclasses
    errors          -- exception hierarchy
"""
