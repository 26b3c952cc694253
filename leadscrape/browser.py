from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional, Protocol

from playwright.async_api import async_playwright

from .errors import BrowserLaunchError

logger = logging.getLogger(__name__)


USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

_BASE_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-software-rasterizer",
    "--disable-blink-features=AutomationControlled",
    "--disable-extensions",
    "--disable-background-networking",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-breakpad",
    "--disable-renderer-backgrounding",
    "--mute-audio",
    "--hide-scrollbars",
    "--window-size=1920,1080",
    "--no-first-run",
    "--no-default-browser-check",
    "--disable-default-apps",
    "--disable-popup-blocking",
    "--disable-sync",
    "--disable-translate",
]

# Extra flags for single-container serverless hosts.
_SERVERLESS_ARGS = ["--single-process", "--no-zygote", "--disable-crash-reporter"]


def is_serverless() -> bool:
    return bool(os.environ.get("AWS_LAMBDA_FUNCTION_NAME") or os.environ.get("VERCEL") == "1")


def launch_args(serverless: Optional[bool] = None) -> List[str]:
    if serverless is None:
        serverless = is_serverless()
    return _BASE_ARGS + (_SERVERLESS_ARGS if serverless else [])


def context_options() -> Dict[str, Any]:
    return {
        "viewport": {"width": 1920, "height": 1080},
        "user_agent": USER_AGENT,
        "locale": "en-US",
        "ignore_https_errors": True,
        "extra_http_headers": {"Accept-Language": "en-US,en;q=0.9"},
    }


class BrowserHandle(Protocol):
    async def new_page(self) -> Any:
        ...

    async def close(self) -> None:
        ...


class BrowserEngine(Protocol):
    async def launch(self, headless: bool = True) -> BrowserHandle:
        ...


class PlaywrightBrowser:
    """One Chromium process with a single browsing context."""

    def __init__(self, playwright: Any, browser: Any, context: Any) -> None:
        self._playwright = playwright
        self._browser = browser
        self._context = context

    async def new_page(self) -> Any:
        return await self._context.new_page()

    async def close(self) -> None:
        try:
            await self._context.close()
            await self._browser.close()
        finally:
            await self._playwright.stop()


class PlaywrightEngine:
    """Launches Chromium through Playwright's async API."""

    def __init__(self, executable_path: Optional[str] = None, serverless: Optional[bool] = None) -> None:
        self._executable_path = executable_path or os.environ.get("LEADSCRAPE_CHROMIUM_PATH") or None
        self._serverless = serverless

    async def launch(self, headless: bool = True) -> PlaywrightBrowser:
        playwright = await async_playwright().start()
        serverless = is_serverless() if self._serverless is None else self._serverless
        try:
            browser = await playwright.chromium.launch(
                # serverless hosts have no display
                headless=True if serverless else headless,
                args=launch_args(serverless),
                executable_path=self._executable_path,
            )
            context = await browser.new_context(**context_options())
        except Exception as exc:  # noqa: BLE001
            await playwright.stop()
            raise BrowserLaunchError(f"chromium launch failed: {exc}") from exc
        logger.debug("chromium launched (headless=%s, serverless=%s)", headless, serverless)
        return PlaywrightBrowser(playwright, browser, context)
