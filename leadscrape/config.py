from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Mapping

from .errors import ConfigError


# Option names used by the external driver, mapped onto ScrapingConfig fields.
_OPTION_ALIASES = {
    "simultaneousTowns": "simultaneous_towns",
    "simultaneousIndustries": "simultaneous_industries",
    "simultaneousLookups": "simultaneous_lookups",
    "retryAttempts": "retry_attempts",
    "retryDelay": "retry_delay_ms",
    "browserHeadless": "browser_headless",
    "lookupBatchSize": "lookup_batch_size",
    "lookupQps": "lookup_qps",
    "stopTimeout": "stop_timeout_secs",
    "outputFolder": "output_folder",
}


@dataclass(frozen=True)
class ScrapingConfig:
    """Immutable run parameters, created once per run."""

    simultaneous_towns: int = 2
    simultaneous_industries: int = 5
    simultaneous_lookups: int = 10
    retry_attempts: int = 3
    retry_delay_ms: int = 2000
    browser_headless: bool = True
    lookup_batch_size: int = 5
    lookup_qps: float = 0.0
    stop_timeout_secs: float = 30.0
    output_folder: str = "exports"

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        for name in (
            "simultaneous_towns",
            "simultaneous_industries",
            "simultaneous_lookups",
            "retry_attempts",
            "lookup_batch_size",
        ):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ConfigError(f"{name} must be a positive integer, got {value!r}")
        if self.retry_delay_ms < 0:
            raise ConfigError(f"retry_delay_ms must be >= 0, got {self.retry_delay_ms!r}")
        if self.lookup_qps < 0:
            raise ConfigError(f"lookup_qps must be >= 0, got {self.lookup_qps!r}")
        if self.stop_timeout_secs <= 0:
            raise ConfigError(f"stop_timeout_secs must be > 0, got {self.stop_timeout_secs!r}")

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> "ScrapingConfig":
        """Build a config from driver options (camelCase or snake_case keys)."""
        known = {f.name: f for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in options.items():
            name = _OPTION_ALIASES.get(key, key)
            if name not in known or value is None:
                continue
            kwargs[name] = _coerce(name, value)
        return cls(**kwargs)


def _coerce(name: str, value: Any) -> Any:
    if name == "browser_headless":
        if isinstance(value, str):
            return value.strip().lower() not in ("0", "false", "no", "off")
        return bool(value)
    if name in ("lookup_qps", "stop_timeout_secs"):
        return float(value)
    if name == "output_folder":
        return str(value)
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc


@dataclass(frozen=True)
class ScraperTimings:
    """Waits used while driving a page. Seconds unless the name says ms."""

    navigation_timeout_ms: int = 60000
    lookup_navigation_timeout_ms: int = 30000
    feed_timeout_ms: int = 20000
    scroll_pause: float = 1.5
    settle_delay: float = 2.0
    max_scroll_rounds: int = 200


@dataclass(frozen=True)
class MapSelectors:
    """CSS selectors and marker text for the map results page."""

    feed: str = '[role="feed"]'
    card: str = '[role="feed"] .Nv2PK'
    card_name: str = ".qBF1Pd"
    card_link: str = 'a[href*="/maps/place/"]'
    card_info: str = ".W4Efsd"
    card_phone: str = ".UsdlK"
    details_panel: str = '[role="main"]'
    details_name: str = "h1"
    phone_button: str = '[data-item-id*="phone"]'
    end_of_list_text: str = "You've reached the end of the list."
    search_url: str = "https://www.google.com/maps/search/{query}"
