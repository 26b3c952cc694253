"""Heuristics that sort the free-text spans of a result card.

A card's info line mixes the category, the address, the rating, opening
hours, phone numbers and accessibility labels with no markup to tell them
apart. Each span runs through an ordered list of named stages; the first
stage that returns something other than PASS decides the span.

The thresholds come from one map provider's markup and are kept in
ClassifierThresholds rather than hard-coded.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence, Tuple


class SpanKind(str, Enum):
    SKIP = "skip"
    CATEGORY = "category"
    ADDRESS = "address"
    PASS = "pass"


@dataclass(frozen=True)
class Classification:
    kind: SpanKind
    stage: str


@dataclass(frozen=True)
class ClassifierThresholds:
    category_max_words: int = 3
    address_min_length: int = 10
    phone_min_digits: int = 7
    address_keywords: Tuple[str, ...] = (
        "street", "ave", "avenue", "road", "rd", "drive", "dr",
        "lane", "ln", "way", "blvd", "boulevard",
    )
    stop_keywords: Tuple[str, ...] = ("open", "close", "wheelchair")


@dataclass
class SpanState:
    """What has been found on the card so far."""

    category: str = ""
    address: str = ""


_SEPARATORS = {"", "·", "Â·", "•", "|"}
_RATING = re.compile(r"^\d+(\.\d+)?(\s*stars?)?$", re.IGNORECASE)
_STAR_WORD = re.compile(r"star", re.IGNORECASE)
_SHORT_DECIMAL = re.compile(r"^\d\.\d$")
_HOURS = (
    re.compile(r"open", re.IGNORECASE),
    re.compile(r"close", re.IGNORECASE),
    re.compile(r"\d+:\d+"),
    re.compile(r"\d+\s*[ap]m", re.IGNORECASE),
    re.compile(r"24\s*hours", re.IGNORECASE),
)
_PHONE_CHARS = re.compile(r"^[\d\s\-()+]+$")

Stage = Callable[[str, SpanState, ClassifierThresholds], SpanKind]


def looks_like_rating(text: str) -> bool:
    return bool(_RATING.match(text) or _STAR_WORD.search(text) or _SHORT_DECIMAL.match(text))


def looks_like_hours(text: str) -> bool:
    return any(p.search(text) for p in _HOURS)


def looks_like_phone(text: str, min_digits: int = 7) -> bool:
    return bool(_PHONE_CHARS.match(text)) and sum(c.isdigit() for c in text) >= min_digits


def _separator(text: str, state: SpanState, t: ClassifierThresholds) -> SpanKind:
    return SpanKind.SKIP if text.strip() in _SEPARATORS else SpanKind.PASS


def _rating(text: str, state: SpanState, t: ClassifierThresholds) -> SpanKind:
    return SpanKind.SKIP if looks_like_rating(text) else SpanKind.PASS


def _hours(text: str, state: SpanState, t: ClassifierThresholds) -> SpanKind:
    return SpanKind.SKIP if looks_like_hours(text) else SpanKind.PASS


def _phone(text: str, state: SpanState, t: ClassifierThresholds) -> SpanKind:
    return SpanKind.SKIP if looks_like_phone(text, t.phone_min_digits) else SpanKind.PASS


def _stoplist(text: str, state: SpanState, t: ClassifierThresholds) -> SpanKind:
    lowered = text.lower()
    return SpanKind.SKIP if any(k in lowered for k in t.stop_keywords) else SpanKind.PASS


def _category(text: str, state: SpanState, t: ClassifierThresholds) -> SpanKind:
    if state.address or len(text.split()) > t.category_max_words:
        return SpanKind.PASS
    return SpanKind.CATEGORY


def _address(text: str, state: SpanState, t: ClassifierThresholds) -> SpanKind:
    if state.address:
        return SpanKind.SKIP
    lowered = text.lower()
    if any(k in lowered for k in t.address_keywords) or len(text) > t.address_min_length:
        return SpanKind.ADDRESS
    return SpanKind.PASS


DEFAULT_STAGES: Sequence[Tuple[str, Stage]] = (
    ("separator", _separator),
    ("rating", _rating),
    ("hours", _hours),
    ("phone", _phone),
    ("stoplist", _stoplist),
    ("category", _category),
    ("address", _address),
)


class SpanClassifier:
    def __init__(
        self,
        thresholds: Optional[ClassifierThresholds] = None,
        stages: Sequence[Tuple[str, Stage]] = DEFAULT_STAGES,
    ) -> None:
        self.thresholds = thresholds or ClassifierThresholds()
        self._stages = list(stages)

    def classify(self, text: str, state: Optional[SpanState] = None) -> Classification:
        state = state or SpanState()
        text = (text or "").strip()
        for name, stage in self._stages:
            kind = stage(text, state, self.thresholds)
            if kind is not SpanKind.PASS:
                return Classification(kind, name)
        return Classification(SpanKind.PASS, "none")

    def classify_spans(self, texts: Iterable[str], state: Optional[SpanState] = None) -> SpanState:
        """Fold a card's span texts into a category and an address.

        Only the first category-like span counts; scanning stops at the first
        address. Pass the same state across a card's info lines to carry what
        earlier lines found."""
        state = state or SpanState()
        for text in texts:
            result = self.classify(text, state)
            if result.kind is SpanKind.CATEGORY and not state.category:
                state.category = text.strip()
            elif result.kind is SpanKind.ADDRESS:
                state.address = text.strip()
                break
        return state

    def stage_names(self) -> List[str]:
        return [name for name, _ in self._stages]
