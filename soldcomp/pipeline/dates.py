"""Sale-date parsing for the handful of formats seen in practice."""

from __future__ import annotations

import re
from datetime import date

MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

_SLASHED_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_MONTH_NAME_RE = re.compile(r"^(\d{1,2})[\s-]([A-Za-z]{3})[A-Za-z]*[\s-](\d{2,4})$")
_ISO_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T\s].*)?$")
_HYPHENATED_RE = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_sale_date(value: str | None) -> date | None:
    """DD/MM/YYYY, DD-Mon-YY(YY), ISO or DD-MM-YYYY; None otherwise.

    Two-digit years below 50 are read as 20xx, the rest as 19xx.
    """
    if not value:
        return None
    text = value.strip()

    match = _SLASHED_RE.match(text)
    if match:
        day, month, year = (int(part) for part in match.groups())
        return _safe_date(year, month, day)

    match = _MONTH_NAME_RE.match(text)
    if match:
        month = MONTHS.get(match.group(2).lower())
        if month is None:
            return None
        year = int(match.group(3))
        if year < 100:
            year += 2000 if year < 50 else 1900
        return _safe_date(year, month, int(match.group(1)))

    match = _ISO_RE.match(text)
    if match:
        year, month, day = (int(part) for part in match.groups())
        return _safe_date(year, month, day)

    match = _HYPHENATED_RE.match(text)
    if match:
        day, month, year = (int(part) for part in match.groups())
        return _safe_date(year, month, day)

    return None


def format_sale_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def standardise_sale_date(value: str | None) -> str | None:
    parsed = parse_sale_date(value)
    if parsed is None:
        return None
    return format_sale_date(parsed)


def days_since(value: str | None, reference: date) -> int | None:
    parsed = parse_sale_date(value)
    if parsed is None:
        return None
    return (reference - parsed).days
