from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, Iterable, List, Optional

import requests
from curl_cffi import requests as curl_requests

from .error_logger import ErrorLogger
from .errors import LookupUnavailableError, ProviderLookupError
from .rate_limiter import RateLimiter
from .retry import RetryStrategy

logger = logging.getLogger(__name__)

Resolver = Callable[[str], str]

_NON_DIGITS = re.compile(r"[^\d+]")
_PROVIDER_KEYS = ("provider", "network", "operator", "carrier")
_MAX_TEXT_PROVIDER = 64


def normalize_phone(raw: str) -> str:
    """Reduce a phone number to digits, rewriting +27 / 27 prefixes to 0."""
    number = _NON_DIGITS.sub("", raw or "")
    if number.startswith("+27"):
        return "0" + number[3:]
    number = number.replace("+", "")
    if number.startswith("27") and len(number) > 10:
        return "0" + number[2:]
    return number


def _provider_from_payload(payload: Any) -> str:
    if not isinstance(payload, dict):
        return ""
    for key in _PROVIDER_KEYS:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    nested = payload.get("data")
    if isinstance(nested, dict):
        return _provider_from_payload(nested)
    return ""


class HttpProviderResolver:
    """Resolves a phone number to its network provider over HTTP.

    ``url_template`` holds a ``{number}`` placeholder. With ``impersonate``
    set (e.g. "chrome120") requests go through curl_cffi so the endpoint
    sees a browser TLS fingerprint; otherwise plain requests is used."""

    def __init__(
        self,
        url_template: str,
        timeout: float = 20,
        impersonate: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        if "{number}" not in url_template:
            raise ValueError("url_template must contain a {number} placeholder")
        self._url_template = url_template
        self._timeout = timeout
        self._impersonate = impersonate
        self._headers = headers or {"Accept": "application/json, text/plain;q=0.9"}
        self._session: Any = curl_requests.Session() if impersonate else requests.Session()

    def __call__(self, number: str) -> str:
        url = self._url_template.format(number=number)
        response = self._get(url)
        status = response.status_code
        if not 200 <= int(status) < 300:
            raise ProviderLookupError(f"lookup endpoint returned HTTP {status}")
        return self.parse(response)

    def _get(self, url: str) -> Any:
        if self._impersonate:
            try:
                return self._session.get(
                    url, headers=self._headers, impersonate=self._impersonate, timeout=self._timeout
                )
            except Exception as exc:  # noqa: BLE001
                raise LookupUnavailableError(f"lookup endpoint unreachable ({type(exc).__name__})") from exc
        try:
            return self._session.get(url, headers=self._headers, timeout=self._timeout)
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise LookupUnavailableError(f"lookup endpoint unreachable ({type(exc).__name__})") from exc

    @staticmethod
    def parse(response: Any) -> str:
        try:
            provider = _provider_from_payload(response.json())
        except ValueError:
            text = (getattr(response, "text", "") or "").strip()
            provider = text if 0 < len(text) <= _MAX_TEXT_PROVIDER and "\n" not in text else ""
        if not provider:
            raise ProviderLookupError("lookup response carried no provider")
        return provider

    def close(self) -> None:
        self._session.close()


class ProviderLookupService:
    """Resolves providers for many phone numbers in concurrent batches.

    Numbers are normalized and deduplicated, then split into batches of
    ``batch_size``; up to ``max_concurrent_batches`` batches run at once on
    worker threads. A number that cannot be resolved is logged and left out
    of the result, and a batch whose every number hit an unreachable endpoint
    is skipped. Only when no batch reached the endpoint does lookup_many()
    raise LookupUnavailableError."""

    def __init__(
        self,
        resolver: Resolver,
        max_concurrent_batches: int = 10,
        batch_size: int = 5,
        error_logger: Optional[ErrorLogger] = None,
        retry: Optional[RetryStrategy] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ) -> None:
        if max_concurrent_batches < 1 or batch_size < 1:
            raise ValueError("max_concurrent_batches and batch_size must be >= 1")
        self._resolver = resolver
        self._max_concurrent_batches = max_concurrent_batches
        self._batch_size = batch_size
        self._error_logger = error_logger or ErrorLogger()
        self._retry = retry or RetryStrategy(3, 2000)
        self._rate_limiter = rate_limiter or RateLimiter(0)

    def lookup_many(self, keys: Iterable[str]) -> Dict[str, str]:
        originals: Dict[str, List[str]] = {}
        for key in keys:
            number = normalize_phone(key)
            if not number:
                continue
            bucket = originals.setdefault(number, [])
            if key not in bucket:
                bucket.append(key)

        numbers = list(originals)
        batches = [numbers[i : i + self._batch_size] for i in range(0, len(numbers), self._batch_size)]
        if not batches:
            return {}

        logger.info("looking up %d numbers in %d batches", len(numbers), len(batches))
        results: Dict[str, str] = {}
        unreachable: List[LookupUnavailableError] = []
        workers = min(self._max_concurrent_batches, len(batches))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="lookup") as pool:
            futures = [pool.submit(self._run_batch, batch) for batch in batches]
            for future in as_completed(futures):
                try:
                    resolved = future.result()
                except LookupUnavailableError as exc:
                    logger.warning("%s", exc)
                    unreachable.append(exc)
                    continue
                for number, provider in resolved.items():
                    for key in originals[number]:
                        results[key] = provider
        if len(unreachable) == len(batches):
            raise LookupUnavailableError(
                f"lookup endpoint unreachable for all {len(numbers)} numbers"
            ) from unreachable[-1]
        logger.info("resolved %d of %d keys", len(results), sum(len(v) for v in originals.values()))
        return results

    def lookup_one(self, key: str) -> Optional[str]:
        return self.lookup_many([key]).get(key)

    def _run_batch(self, batch: List[str]) -> Dict[str, str]:
        resolved: Dict[str, str] = {}
        unavailable = 0
        for number in batch:
            try:
                resolved[number] = self._retry.call(lambda: self._resolve(number))
            except LookupUnavailableError as exc:
                unavailable += 1
                self._error_logger.log_lookup_error(number, exc)
            except Exception as exc:  # noqa: BLE001
                self._error_logger.log_lookup_error(number, exc)
        if unavailable == len(batch):
            raise LookupUnavailableError(f"lookup endpoint unreachable for a batch of {len(batch)}")
        return resolved

    def _resolve(self, number: str) -> str:
        self._rate_limiter.acquire()
        provider = (self._resolver(number) or "").strip()
        if not provider:
            raise ProviderLookupError("resolver returned an empty provider")
        return provider

    def close(self) -> None:
        close = getattr(self._resolver, "close", None)
        if callable(close):
            close()
