from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import os
import uuid
from typing import Optional

from leadscrape.browser import PlaywrightEngine
from leadscrape.config import ScrapingConfig
from leadscrape.error_logger import ErrorLogger
from leadscrape.errors import ConfigError, LookupUnavailableError
from leadscrape.events import CallbackObserver, FanOutObserver, ProgressEvent
from leadscrape.logging_manager import LoggingManager
from leadscrape.lookup import HttpProviderResolver, ProviderLookupService
from leadscrape.models import UNKNOWN_PROVIDER
from leadscrape.orchestrator import ScrapingOrchestrator
from leadscrape.rate_limiter import RateLimiter
from leadscrape.reporting import export_by_town
from leadscrape.retry import RetryStrategy
from leadscrape.storage import JsonlSessionStore, SessionRecorder
from leadscrape.worker import BrowserWorker

logger = logging.getLogger(__name__)

LOOKUP_URL_ENV = "LEADSCRAPE_LOOKUP_URL"


def _load_lines(path: str, limit: int = 1000) -> list[str]:
    lines: list[str] = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            value = line.strip()
            if not value or value.startswith("#"):
                continue
            lines.append(value)
            if len(lines) >= limit:
                break
    if not lines:
        raise ValueError(f"No entries found in {path}")
    return lines


def build_config(args: argparse.Namespace) -> ScrapingConfig:
    return ScrapingConfig.from_options(
        {
            "simultaneous_towns": args.simultaneous_towns,
            "simultaneous_industries": args.simultaneous_industries,
            "simultaneous_lookups": args.simultaneous_lookups,
            "retry_attempts": args.retry_attempts,
            "retry_delay_ms": args.retry_delay,
            "browser_headless": not args.headful,
            "lookup_batch_size": args.lookup_batch_size,
            "lookup_qps": args.lookup_qps,
            "stop_timeout_secs": args.stop_timeout,
            "output_folder": args.export_folder,
        }
    )


def build_lookup(
    url_template: Optional[str],
    impersonate: Optional[str],
    config: ScrapingConfig,
    error_logger: ErrorLogger,
) -> Optional[ProviderLookupService]:
    if not url_template:
        return None
    return ProviderLookupService(
        HttpProviderResolver(url_template, impersonate=impersonate),
        max_concurrent_batches=config.simultaneous_lookups,
        batch_size=config.lookup_batch_size,
        error_logger=error_logger,
        retry=RetryStrategy(config.retry_attempts, config.retry_delay_ms),
        rate_limiter=RateLimiter(config.lookup_qps),
    )


def _print_progress(event: ProgressEvent) -> None:
    eta = f"{event.estimated_time_ms / 1000:.0f}s" if event.estimated_time_ms is not None else "-"
    print(
        f"progress={event.percentage}% towns_left={event.towns_remaining} "
        f"businesses={event.businesses_scraped} eta={eta} status={event.status}"
    )


async def run_scrape(
    towns: list[str],
    industries: list[str],
    config: ScrapingConfig,
    lookup_url: Optional[str],
    impersonate: Optional[str],
    results_path: Optional[str],
    export: bool,
) -> None:
    error_logger = ErrorLogger()
    observers = [CallbackObserver(progress=_print_progress)]
    store = None
    session_id = str(uuid.uuid4())
    if results_path:
        store = JsonlSessionStore(results_path)
        store.create_session(session_id, towns, industries, dataclasses.asdict(config))
        observers.append(SessionRecorder(store, session_id, error_logger))

    orchestrator = ScrapingOrchestrator(
        towns,
        industries,
        config,
        PlaywrightEngine(),
        observer=FanOutObserver(observers),
        lookup_service=build_lookup(lookup_url, impersonate, config, error_logger),
        error_logger=error_logger,
        logging_manager=LoggingManager(),
    )
    try:
        businesses = await orchestrator.start()
    finally:
        if store is not None:
            store.close()

    paths = []
    if export and businesses:
        paths = [str(p) for p in export_by_town(businesses, config.output_folder, towns)]

    for line in orchestrator.logging_manager.get_summary_table():
        print(line)

    summary = orchestrator.logging_manager.get_summary()
    snapshot = orchestrator.metrics.snapshot(window_secs=24 * 3600)
    print(
        json.dumps(
            {
                "session_id": session_id,
                "status": orchestrator.status.value,
                "businesses": len(businesses),
                "summary": dataclasses.asdict(summary),
                "errors": error_logger.stats().by_severity,
                "industries_ok": snapshot.success_count,
                "industries_failed": snapshot.failure_count,
                "exports": paths,
            },
            ensure_ascii=False,
        )
    )


async def run_lookup(query: str, config: ScrapingConfig, lookup_url: Optional[str], impersonate: Optional[str]) -> None:
    error_logger = ErrorLogger()
    worker = BrowserWorker(0, config, PlaywrightEngine(), error_logger)
    try:
        businesses = await worker.lookup_business(query)
    finally:
        await worker.cleanup()

    lookup = build_lookup(lookup_url, impersonate, config, error_logger)
    if lookup is not None:
        try:
            for business in businesses:
                if business.has_lookup_key:
                    try:
                        provider = await asyncio.to_thread(lookup.lookup_one, business.phone)
                    except LookupUnavailableError as exc:
                        logger.warning("provider lookup unavailable: %s", exc)
                        provider = None
                    business.provider = provider or UNKNOWN_PROVIDER
        finally:
            lookup.close()

    for business in businesses:
        print(json.dumps(business.to_dict(), ensure_ascii=False))
    if not businesses:
        print(json.dumps({"query": query, "found": 0}))


def main() -> None:
    parser = argparse.ArgumentParser(description="Collect business listings per town and industry")
    parser.add_argument("--towns", nargs="+", default=[], help="Towns to scrape")
    parser.add_argument("--towns-file", help="File with one town per line")
    parser.add_argument("--industries", nargs="+", default=[], help="Industries to search in every town")
    parser.add_argument("--lookup-business", metavar="QUERY", help="Look up a single business and exit")

    parser.add_argument("--simultaneous-towns", type=int, default=2, help="Towns scraped in parallel")
    parser.add_argument("--simultaneous-industries", type=int, default=5, help="Industries per town in parallel")
    parser.add_argument("--simultaneous-lookups", type=int, default=10, help="Provider lookup batches in parallel")
    parser.add_argument("--retry-attempts", type=int, default=3, help="Attempts per industry page")
    parser.add_argument("--retry-delay", type=int, default=2000, help="Delay between attempts in ms")
    parser.add_argument("--lookup-batch-size", type=int, default=5, help="Numbers per lookup batch")
    parser.add_argument("--lookup-qps", type=float, default=0.0, help="Provider lookup QPS limit (0 = off)")
    parser.add_argument("--stop-timeout", type=float, default=30.0, help="Seconds to wait for towns on stop")
    parser.add_argument("--headful", action="store_true", help="Show the browser window")

    parser.add_argument("--lookup-url", default=os.environ.get(LOOKUP_URL_ENV), help="Provider lookup URL with {number}")
    parser.add_argument("--impersonate", help="curl_cffi browser profile for lookups, e.g. chrome120")
    parser.add_argument("--results", help="Session journal JSONL path")
    parser.add_argument("--export-folder", default="exports", help="Folder for per-town CSV exports")
    parser.add_argument("--no-export", action="store_true", help="Skip per-town CSV export")
    parser.add_argument("--log-level", default="INFO", help="Logging level")

    args = parser.parse_args()
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = build_config(args)
    except ConfigError as exc:
        parser.error(str(exc))

    if args.lookup_business:
        asyncio.run(run_lookup(args.lookup_business, config, args.lookup_url, args.impersonate))
        return

    towns = list(args.towns)
    if args.towns_file:
        towns.extend(_load_lines(args.towns_file))
    if towns and args.industries:
        asyncio.run(
            run_scrape(
                towns,
                list(args.industries),
                config,
                args.lookup_url,
                args.impersonate,
                args.results,
                export=not args.no_export,
            )
        )
        return

    print("Nothing to do. Pass --towns and --industries, or --lookup-business QUERY.")


if __name__ == "__main__":
    main()
