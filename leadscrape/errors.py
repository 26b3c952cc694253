from __future__ import annotations


class ScraperError(Exception):
    """Base class for every error raised by the scraping pipeline."""


class ConfigError(ScraperError, ValueError):
    """Raised when run parameters are out of range."""


class NavigationError(ScraperError):
    """The page never reached a ready state for the target URL."""

    def __init__(self, url: str, message: str = "") -> None:
        self.url = url
        super().__init__(message or f"navigation to {url} failed")


class ExtractionError(ScraperError):
    """Extraction could not start, e.g. the results feed never appeared."""


class BrowserLaunchError(ScraperError):
    """The browser engine failed to start."""


class LookupUnavailableError(ScraperError):
    """The provider lookup dependency could not be reached at all."""


class OrchestratorStateError(ScraperError, RuntimeError):
    """An orchestrator control call was made in the wrong state."""


class StoreError(ScraperError):
    """The session store rejected an operation."""


class ProviderLookupError(ScraperError):
    """The lookup endpoint answered but gave no usable provider."""
