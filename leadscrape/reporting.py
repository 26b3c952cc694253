from __future__ import annotations

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Sequence

import pandas as pd

from .models import UNKNOWN_PROVIDER, Business

logger = logging.getLogger(__name__)

UNKNOWN_TOWN = "Unknown"

_INVALID_FILENAME = re.compile(r'[\\/:*?"<>|\x00-\x1f]')
# Leading characters that make spreadsheet apps evaluate a cell as a formula.
_FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def sanitize_filename(name: str) -> str:
    """Replace characters Windows forbids in file names with underscores."""
    return _INVALID_FILENAME.sub("_", name)


def sanitize_csv_cell(value):
    if isinstance(value, str) and value.startswith(_FORMULA_PREFIXES):
        return "'" + value
    return value


def assign_town(business: Business, towns: Sequence[str], index: int) -> str:
    """Pick the town a record belongs to.

    In order: the town it was scraped under, a town named in its address,
    the part of a town before the first comma found in its address, the
    only town when there is one, and finally round robin on ``index``."""
    if business.town.strip():
        return business.town
    if not towns:
        return UNKNOWN_TOWN

    address = business.address.lower()
    if address:
        for town in towns:
            if town.lower() in address:
                return town
        for town in towns:
            first = town.split(",")[0].strip().lower()
            if first and first in address:
                return town

    if len(towns) == 1:
        return towns[0]
    return towns[index % len(towns)]


def extract_unique_providers(businesses: Iterable[Business]) -> List[str]:
    providers = {
        b.provider for b in businesses if b.provider.strip() and b.provider != UNKNOWN_PROVIDER
    }
    return sorted(providers)


def filter_by_providers(businesses: Iterable[Business], providers: Iterable[str]) -> List[Business]:
    wanted = set(providers)
    return [b for b in businesses if b.provider in wanted]


def to_frame(businesses: Iterable[Business]) -> pd.DataFrame:
    rows = [b.to_row() for b in businesses]
    return pd.DataFrame(rows, columns=list(Business.EXPORT_COLUMNS))


def write_csv(businesses: Iterable[Business], path: str | Path) -> Path:
    """Write records in export column order, neutralizing formula-like cells."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df = to_frame(businesses)
    for col in df.columns:
        df[col] = df[col].map(sanitize_csv_cell)
    df.to_csv(path, index=False)
    logger.info("wrote %d rows to %s", len(df), path)
    return path


def export_by_town(
    businesses: Sequence[Business],
    folder: str | Path,
    towns: Sequence[str] = (),
    timestamp: str | None = None,
) -> List[Path]:
    """Write one CSV per town into ``folder`` and return the paths.

    Records without a town are placed with assign_town() when ``towns`` is
    given, otherwise grouped under "Unknown"."""
    stamp = timestamp or datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
    grouped: Dict[str, List[Business]] = {}
    for index, business in enumerate(businesses):
        town = assign_town(business, towns, index) if towns else (business.town or UNKNOWN_TOWN)
        grouped.setdefault(town, []).append(business)

    paths = []
    for town, rows in grouped.items():
        safe_town = sanitize_filename(town.replace(" ", "_").replace(",", "_"))
        paths.append(write_csv(rows, Path(folder) / f"{safe_town}_leads_{stamp}.csv"))
    return paths
