"""Tests for IndustryScraper and BusinessLookupScraper against fake pages."""

import unittest

from leadscrape.error_logger import ErrorLogger
from leadscrape.errors import ExtractionError, NavigationError
from leadscrape.models import NO_PHONE, Severity
from leadscrape.page_scraper import BusinessLookupScraper, IndustryScraper, is_plausible_phone
from leadscrape.retry import RetryStrategy

from tests.fakes import ZERO_TIMINGS, FakePage, make_card, no_sleep


def _industry(page, errors, attempts=3):
    return IndustryScraper(
        page,
        "Springs",
        "Plumbers",
        errors,
        retry=RetryStrategy(attempts, 0, sleep=no_sleep),
        timings=ZERO_TIMINGS,
        sleep=no_sleep,
    )


def _lookup(page, errors):
    return BusinessLookupScraper(
        page,
        "Acme Plumbing Springs",
        errors,
        retry=RetryStrategy(1, 0, sleep=no_sleep),
        timings=ZERO_TIMINGS,
        sleep=no_sleep,
    )


class TestIndustryScraperList(unittest.IsolatedAsyncioTestCase):
    """List-mode extraction over the results feed."""

    async def test_extracts_card_fields(self):
        """Name, URL, phone and address come from the card; category is the industry."""
        card = make_card(
            "Acme Plumbing",
            url="https://maps/place/acme",
            phone="011 555 0100",
            spans=["4.5", "·", "Plumber", "·", "12 Main Street, Springs", "Open 24 hours"],
        )
        errors = ErrorLogger()
        result = await _industry(FakePage(rounds=[[card]]), errors).scrape()

        self.assertEqual(len(result), 1)
        business = result[0]
        self.assertEqual(business.name, "Acme Plumbing")
        self.assertEqual(business.maps_url, "https://maps/place/acme")
        self.assertEqual(business.phone, "011 555 0100")
        self.assertEqual(business.address, "12 Main Street, Springs")
        self.assertEqual(business.category, "Plumbers")
        self.assertEqual(business.town, "Springs")
        self.assertEqual(len(errors), 0)

    async def test_blank_names_never_returned(self):
        """Cards with an empty, blank or missing name are dropped with a warning."""
        cards = [
            make_card("", url="https://maps/place/1"),
            make_card("   ", url="https://maps/place/2"),
            make_card(None, url="https://maps/place/3"),
            make_card("Real Name", url="https://maps/place/4"),
        ]
        errors = ErrorLogger()
        result = await _industry(FakePage(rounds=[cards]), errors).scrape()

        self.assertEqual([b.name for b in result], ["Real Name"])
        self.assertTrue(all(b.name.strip() for b in result))
        self.assertEqual(len(errors.by_severity(Severity.WARNING)), 3)

    async def test_dedup_across_scroll_rounds(self):
        """Cards seen again after scrolling, or sharing a URL, appear once."""
        a = make_card("A", url="https://maps/place/a")
        b = make_card("B", url="https://maps/place/b")
        c = make_card("C", url="https://maps/place/c")
        a_again = make_card("A duplicate", url="https://maps/place/a")
        page = FakePage(rounds=[[a, b], [a, b, c, a_again]])

        result = await _industry(page, ErrorLogger()).scrape()

        urls = [x.maps_url for x in result]
        self.assertEqual(urls, ["https://maps/place/a", "https://maps/place/b", "https://maps/place/c"])
        self.assertEqual(len(urls), len(set(urls)))
        self.assertEqual(page.scrolls, 1)

    async def test_cards_without_url_not_duplicated_by_rescans(self):
        """A URL-less card visible in every round is returned once."""
        plain = make_card("No Link Co", phone="011 000 0000")
        page = FakePage(rounds=[[plain], [plain], [plain]])

        result = await _industry(page, ErrorLogger()).scrape()

        self.assertEqual([b.name for b in result], ["No Link Co"])
        self.assertEqual(page.scrolls, 2)

    async def test_card_failures_are_isolated(self):
        """N cards with k failing parses yield N-k records and k error entries."""
        cards = [
            make_card("One", url="https://maps/place/1"),
            make_card(None, name_error=RuntimeError("detached node")),
            make_card("Three", url="https://maps/place/3"),
            make_card(None, name_error=ValueError("bad markup")),
            make_card("Five", url="https://maps/place/5"),
        ]
        errors = ErrorLogger()
        result = await _industry(FakePage(rounds=[cards]), errors).scrape()

        self.assertEqual(len(result), 3)
        error_entries = errors.by_severity(Severity.ERROR)
        self.assertEqual(len(error_entries), 2)
        for entry in error_entries:
            self.assertEqual(entry.context["operation"], "parse_business_card")
            self.assertEqual(entry.context["town"], "Springs")
            self.assertEqual(entry.context["industry"], "Plumbers")

    async def test_scroll_limit_stops_endless_feed(self):
        """A feed that never shows the end marker stops at max_scroll_rounds."""
        page = FakePage(rounds=[[make_card("Only", url="https://maps/place/o")]] * 100)
        scraper = _industry(page, ErrorLogger())

        result = await scraper.scrape()

        self.assertEqual(len(result), 1)
        self.assertEqual(page.scrolls, ZERO_TIMINGS.max_scroll_rounds - 1)


class TestIndustryScraperFailures(unittest.IsolatedAsyncioTestCase):
    """Navigation and feed failures go through the retry strategy."""

    async def test_navigation_failure_is_retried(self):
        """Two failed navigations followed by a good one still produce records."""
        page = FakePage(
            rounds=[[make_card("Acme", url="https://maps/place/acme")]],
            goto_errors=[TimeoutError("t1"), TimeoutError("t2")],
        )
        result = await _industry(page, ErrorLogger(), attempts=3).scrape()

        self.assertEqual(len(result), 1)
        self.assertEqual(len(page.gotos), 3)

    async def test_navigation_exhaustion_raises_navigation_error(self):
        """After the last attempt the NavigationError reaches the caller."""
        page = FakePage(goto_errors=[TimeoutError("t")] * 3)
        with self.assertRaises(NavigationError) as ctx:
            await _industry(page, ErrorLogger(), attempts=3).scrape()
        self.assertIn("maps/search", ctx.exception.url)
        self.assertEqual(len(page.gotos), 3)

    async def test_missing_feed_raises_extraction_error(self):
        """A feed that never appears fails the whole sub-unit."""
        page = FakePage(feed=False)
        with self.assertRaises(ExtractionError):
            await _industry(page, ErrorLogger(), attempts=2).scrape()
        self.assertEqual(len(page.gotos), 2)

    async def test_search_url_encodes_query(self):
        """The industry and town are URL-encoded into the search path."""
        scraper = _industry(FakePage(), ErrorLogger())
        self.assertEqual(scraper.url, "https://www.google.com/maps/search/Plumbers%20in%20Springs")


class TestBusinessLookupScraper(unittest.IsolatedAsyncioTestCase):
    """Single-business lookups in details, list and unknown views."""

    async def test_details_view_phone_from_aria_label(self):
        """The phone button's aria-label is the first strategy tried."""
        page = FakePage(view="details", details_name="Acme Plumbing", phone_label="Phone: 011 555 0100")
        result = await _lookup(page, ErrorLogger()).scrape()

        self.assertEqual(len(result), 1)
        self.assertEqual(result[0].name, "Acme Plumbing")
        self.assertEqual(result[0].phone, "011 555 0100")
        self.assertEqual(result[0].maps_url, page.url)

    async def test_details_view_falls_back_to_text_nodes(self):
        """When earlier strategies find nothing the text-node scan is used."""
        page = FakePage(view="details", details_name="Acme", text_phone="011 555 0100")
        result = await _lookup(page, ErrorLogger()).scrape()
        self.assertEqual(result[0].phone, "011 555 0100")

    async def test_details_view_button_text_beats_text_nodes(self):
        page = FakePage(view="details", details_name="Acme", button_phone="012 345 6789", text_phone="011 555 0100")
        result = await _lookup(page, ErrorLogger()).scrape()
        self.assertEqual(result[0].phone, "012 345 6789")

    async def test_details_view_no_phone_sentinel(self):
        """All strategies failing sets the sentinel and logs one warning."""
        errors = ErrorLogger()
        page = FakePage(view="details", details_name="Acme", phone_label="Call now")
        result = await _lookup(page, errors).scrape()

        self.assertEqual(result[0].phone, NO_PHONE)
        warnings = errors.by_context("operation", "extract_phone_from_details")
        self.assertEqual(len(warnings), 1)
        self.assertEqual(warnings[0].severity, Severity.WARNING)

    async def test_details_view_empty_name_discards_record(self):
        """An empty heading yields no record rather than a blank-named one."""
        errors = ErrorLogger()
        page = FakePage(view="details", details_name="   ")
        result = await _lookup(page, errors).scrape()
        self.assertEqual(result, [])
        self.assertEqual(len(errors.by_context("operation", "extract_from_details_view")), 1)

    async def test_list_view_capped_at_three(self):
        """List mode keeps at most three results."""
        cards = [make_card(f"Biz {i}", url=f"https://maps/place/{i}") for i in range(5)]
        result = await _lookup(FakePage(rounds=[cards], view="list"), ErrorLogger()).scrape()
        self.assertEqual([b.name for b in result], ["Biz 0", "Biz 1", "Biz 2"])

    async def test_unknown_view_yields_nothing(self):
        """An unrecognized page is logged and returns no records."""
        errors = ErrorLogger()
        result = await _lookup(FakePage(view="blank"), errors).scrape()
        self.assertEqual(result, [])
        self.assertEqual(len(errors.by_context("operation", "detect_view_type")), 2)


class TestPlausiblePhone(unittest.TestCase):
    def test_digit_threshold(self):
        self.assertTrue(is_plausible_phone("011 555 0100"))
        self.assertFalse(is_plausible_phone("12 34"))
        self.assertFalse(is_plausible_phone(""))


if __name__ == "__main__":
    unittest.main()
