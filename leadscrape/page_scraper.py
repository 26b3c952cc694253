from __future__ import annotations

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote

from .classify import SpanClassifier, SpanState
from .config import MapSelectors, ScraperTimings
from .error_logger import ErrorLogger
from .errors import ExtractionError, NavigationError
from .models import NO_PHONE, Business, ViewType
from .retry import RetryStrategy

logger = logging.getLogger(__name__)

PHONE_PATTERN = r"\d{3}[\s\-]?\d{3}[\s\-]?\d{4}"
_ARIA_PHONE = re.compile(r"[\d\s\-()+]+")

_SCROLL_FEED_JS = """(selector) => {
    const feed = document.querySelector(selector);
    if (feed) { feed.scrollTop = feed.scrollHeight; }
}"""
_END_OF_LIST_JS = "(marker) => !!document.body && document.body.innerText.includes(marker)"
_HAS_PHONE_JS = "(el, sel) => el.matches(sel) || el.querySelector(sel) !== null"
_LIST_VIEW_JS = """([feed, card]) =>
    document.querySelector(feed) !== null && document.querySelectorAll(card).length > 0"""
_DETAILS_VIEW_JS = """([panel, heading]) =>
    document.querySelector(panel) !== null && document.querySelector(heading) !== null"""
_BUTTON_PHONE_JS = """(pattern) => {
    const re = new RegExp(pattern);
    for (const button of document.querySelectorAll('button')) {
        const text = button.textContent || '';
        if (re.test(text)) { return text.trim(); }
    }
    return '';
}"""
_TEXT_NODE_PHONE_JS = """(pattern) => {
    const re = new RegExp(pattern);
    const walker = document.createTreeWalker(document.body, NodeFilter.SHOW_TEXT, null);
    let node;
    while ((node = walker.nextNode())) {
        const match = (node.textContent || '').match(re);
        if (match) { return match[0]; }
    }
    return '';
}"""


def is_plausible_phone(text: str, min_digits: int = 7) -> bool:
    return sum(c.isdigit() for c in text or "") >= min_digits


async def element_text(element: Any) -> str:
    if element is None:
        return ""
    return ((await element.text_content()) or "").strip()


class PageScraper(ABC):
    """Drives one browser page for one unit of work.

    Subclasses implement _attempt(); scrape() runs it under the retry
    strategy so navigation and feed failures are retried while per-card and
    per-field failures are logged and skipped inside the attempt."""

    def __init__(
        self,
        page: Any,
        error_logger: ErrorLogger,
        retry: Optional[RetryStrategy] = None,
        selectors: Optional[MapSelectors] = None,
        timings: Optional[ScraperTimings] = None,
        classifier: Optional[SpanClassifier] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self.page = page
        self.error_logger = error_logger
        self.retry = retry or RetryStrategy(3, 2000)
        self.selectors = selectors or MapSelectors()
        self.timings = timings or ScraperTimings()
        self.classifier = classifier or SpanClassifier()
        self._sleep = sleep or asyncio.sleep

    async def scrape(self) -> List[Business]:
        return await self.retry.execute(self._attempt)

    @abstractmethod
    async def _attempt(self) -> List[Business]:
        ...

    @abstractmethod
    def context(self) -> Dict[str, Any]:
        """Identity of this unit of work, attached to every log entry."""

    def _stamp(self, business: Business) -> Business:
        return business

    def search_url(self, query: str) -> str:
        return self.selectors.search_url.format(query=quote(query, safe=""))

    async def navigate(self, url: str, timeout_ms: int, wait_until: str = "networkidle") -> None:
        try:
            await self.page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        except Exception as exc:  # noqa: BLE001
            self.error_logger.log_error("Navigation failed", exc, operation="navigate", url=url, **self.context())
            raise NavigationError(url, f"navigation to {url} failed: {exc}") from exc

    async def wait_for_feed(self) -> None:
        try:
            await self.page.wait_for_selector(self.selectors.feed, timeout=self.timings.feed_timeout_ms)
        except Exception as exc:  # noqa: BLE001
            raise ExtractionError(f"results feed did not appear: {exc}") from exc

    # -- list mode ----------------------------------------------------------

    async def extract_list(self, max_results: Optional[int] = None) -> List[Business]:
        """Parse result cards, scrolling the feed until the end marker shows.

        Cards that fail to parse are logged and skipped. Results are
        deduplicated by map URL, or by content for cards without one, since
        every scroll round sees the earlier cards again."""
        businesses: List[Business] = []
        seen: set = set()
        rounds = 0

        while True:
            cards = await self.page.query_selector_all(self.selectors.card)
            for card in cards:
                if max_results is not None and len(businesses) >= max_results:
                    break
                try:
                    business = await self.parse_card(card)
                except Exception as exc:  # noqa: BLE001
                    self.error_logger.log_extraction_error(exc, operation="parse_business_card", **self.context())
                    continue
                if business is None:
                    continue
                key = business.maps_url or ("content", business.name, business.phone, business.address)
                if key in seen:
                    continue
                seen.add(key)
                businesses.append(business)

            if max_results is not None and len(businesses) >= max_results:
                break
            if await self.has_reached_end():
                break
            rounds += 1
            if rounds >= self.timings.max_scroll_rounds:
                self.error_logger.log_warning(
                    "Scroll limit reached before end of list",
                    operation="extract_list",
                    rounds=rounds,
                    **self.context(),
                )
                break
            await self.scroll_feed()
            await self._sleep(self.timings.scroll_pause)

        return businesses

    async def parse_card(self, card: Any) -> Optional[Business]:
        """Build a Business from one result card, or None if it has no name.

        Errors reading the name propagate to the caller; every other field
        is optional and falls back to an empty string."""
        ctx = self.context()
        name = await element_text(await card.query_selector(self.selectors.card_name))
        if not name:
            self.error_logger.log_warning(
                "Skipping business card with missing name",
                operation="parse_business_card",
                field="name",
                **ctx,
            )
            return None

        maps_url = ""
        try:
            link = await card.query_selector(self.selectors.card_link)
            if link is not None:
                maps_url = (await link.get_attribute("href")) or ""
        except Exception as exc:  # noqa: BLE001
            self.error_logger.log_extraction_error(
                exc, operation="extract_maps_url", field="maps_url", business_name=name, **ctx
            )

        phone = ""
        state = SpanState()
        try:
            info_elements = await card.query_selector_all(self.selectors.card_info)
        except Exception as exc:  # noqa: BLE001
            self.error_logger.log_extraction_error(
                exc, operation="extract_info", field="info", business_name=name, **ctx
            )
            info_elements = []

        for info in info_elements:
            try:
                if not phone:
                    phone = await element_text(await info.query_selector(self.selectors.card_phone))
            except Exception as exc:  # noqa: BLE001
                self.error_logger.log_extraction_error(
                    exc, operation="extract_phone", field="phone", business_name=name, **ctx
                )
            try:
                self.classifier.classify_spans(await self._span_texts(info), state)
            except Exception as exc:  # noqa: BLE001
                self.error_logger.log_extraction_error(
                    exc, operation="extract_address", field="address", business_name=name, **ctx
                )

        return self._stamp(
            Business(
                name=name,
                maps_url=maps_url,
                phone=phone,
                address=state.address,
                category=state.category,
            )
        )

    async def _span_texts(self, info: Any) -> List[str]:
        texts = []
        for span in await info.query_selector_all("span"):
            if await span.evaluate(_HAS_PHONE_JS, self.selectors.card_phone):
                continue
            texts.append(await element_text(span))
        return texts

    async def has_reached_end(self) -> bool:
        try:
            return bool(await self.page.evaluate(_END_OF_LIST_JS, self.selectors.end_of_list_text))
        except Exception as exc:  # noqa: BLE001
            self.error_logger.log_warning(
                f"End-of-list check failed: {exc}", operation="check_end_of_list", **self.context()
            )
            return False

    async def scroll_feed(self) -> None:
        await self.page.evaluate(_SCROLL_FEED_JS, self.selectors.feed)


class IndustryScraper(PageScraper):
    """Collects every listing for one industry in one town."""

    def __init__(self, page: Any, town: str, industry: str, error_logger: ErrorLogger, **kwargs: Any) -> None:
        super().__init__(page, error_logger, **kwargs)
        self.town = town
        self.industry = industry

    def context(self) -> Dict[str, Any]:
        return {"town": self.town, "industry": self.industry}

    @property
    def url(self) -> str:
        return self.search_url(f"{self.industry} in {self.town}")

    async def _attempt(self) -> List[Business]:
        await self.navigate(self.url, self.timings.navigation_timeout_ms, wait_until="networkidle")
        await self.wait_for_feed()
        businesses = await self.extract_list()
        logger.debug("%s - %s: %d businesses", self.town, self.industry, len(businesses))
        return businesses

    def _stamp(self, business: Business) -> Business:
        business.town = self.town
        business.category = self.industry
        return business


PhoneStrategy = Tuple[str, Callable[[], Awaitable[str]]]


class BusinessLookupScraper(PageScraper):
    """Looks up one business by free-text query.

    The map either lands on a single business (details view) or shows a
    short result list; list mode keeps at most ``max_results`` entries."""

    def __init__(self, page: Any, query: str, error_logger: ErrorLogger, max_results: int = 3, **kwargs: Any) -> None:
        super().__init__(page, error_logger, **kwargs)
        self.query = query
        self.max_results = max_results

    def context(self) -> Dict[str, Any]:
        return {"query": self.query}

    async def scrape(self) -> List[Business]:
        try:
            return await super().scrape()
        except Exception as exc:  # noqa: BLE001
            self.error_logger.log_error("Business lookup scraping failed", exc, operation="scrape", query=self.query)
            raise

    async def _attempt(self) -> List[Business]:
        await self.navigate(
            self.search_url(self.query),
            self.timings.lookup_navigation_timeout_ms,
            wait_until="domcontentloaded",
        )
        await self._sleep(self.timings.settle_delay)
        view = await self.detect_view()

        if view is ViewType.DETAILS:
            business = await self.extract_details()
            return [business] if business is not None else []
        if view is ViewType.LIST:
            await self.wait_for_feed()
            businesses = await self.extract_list(max_results=self.max_results)
            if not businesses:
                self.error_logger.log_warning(
                    "List view extraction returned no businesses",
                    operation="extract_from_list_view",
                    query=self.query,
                )
            return businesses

        self.error_logger.log_error("Unknown view type detected", operation="detect_view_type", query=self.query)
        return []

    async def detect_view(self) -> ViewType:
        sel = self.selectors
        has_list = await self._probe(_LIST_VIEW_JS, [sel.feed, sel.card], "detect_view_type_list_check")
        if has_list:
            return ViewType.LIST
        has_details = await self._probe(
            _DETAILS_VIEW_JS, [sel.details_panel, sel.details_name], "detect_view_type_details_check"
        )
        if has_details:
            return ViewType.DETAILS
        self.error_logger.log_warning(
            "View type could not be determined", operation="detect_view_type", query=self.query
        )
        return ViewType.UNKNOWN

    async def _probe(self, script: str, arg: Any, operation: str) -> bool:
        try:
            return bool(await self.page.evaluate(script, arg))
        except Exception as exc:  # noqa: BLE001
            self.error_logger.log_error("View probe failed", exc, operation=operation, query=self.query)
            return False

    async def extract_details(self) -> Optional[Business]:
        name = await self.extract_details_name()
        if not name:
            self.error_logger.log_error(
                "Business name extraction returned empty",
                operation="extract_from_details_view",
                field="name",
                query=self.query,
            )
            return None
        phone = await self.extract_details_phone()
        return Business(name=name, maps_url=self.page.url or "", phone=phone)

    async def extract_details_name(self) -> str:
        try:
            return await element_text(await self.page.query_selector(self.selectors.details_name))
        except Exception as exc:  # noqa: BLE001
            self.error_logger.log_error(
                "Name extraction failed", exc, operation="extract_name_from_details", query=self.query
            )
            return ""

    def phone_strategies(self) -> Sequence[PhoneStrategy]:
        return (
            ("aria_label", self._phone_from_aria_label),
            ("button_text", self._phone_from_button_text),
            ("text_nodes", self._phone_from_text_nodes),
        )

    async def extract_details_phone(self) -> str:
        """Try each phone strategy in order; the first plausible number wins."""
        strategies = self.phone_strategies()
        for name, strategy in strategies:
            try:
                phone = (await strategy()).strip()
            except Exception as exc:  # noqa: BLE001
                self.error_logger.log_error(
                    f"Phone extraction strategy {name} failed",
                    exc,
                    operation="extract_phone_from_details",
                    strategy=name,
                    query=self.query,
                )
                continue
            if is_plausible_phone(phone):
                logger.debug("phone found by %s strategy for %r", name, self.query)
                return phone

        self.error_logger.log_warning(
            "All phone extraction strategies failed",
            operation="extract_phone_from_details",
            query=self.query,
            strategies_attempted=len(strategies),
        )
        return NO_PHONE

    async def _phone_from_aria_label(self) -> str:
        button = await self.page.query_selector(self.selectors.phone_button)
        if button is None:
            return ""
        label = await button.get_attribute("aria-label") or ""
        for match in _ARIA_PHONE.findall(label):
            if is_plausible_phone(match):
                return match.strip()
        return ""

    async def _phone_from_button_text(self) -> str:
        return (await self.page.evaluate(_BUTTON_PHONE_JS, PHONE_PATTERN)) or ""

    async def _phone_from_text_nodes(self) -> str:
        return (await self.page.evaluate(_TEXT_NODE_PHONE_JS, PHONE_PATTERN)) or ""
