"""UK postcode detection, extraction and normalisation."""

from __future__ import annotations

import re
from dataclasses import dataclass

UK_UNIT_POSTCODE_RE = re.compile(r"^([A-Z]{1,2}\d[A-Z\d]?)\s(\d[A-Z]{2})$")
# 1-2 letters, 1-2 digits, optional letter, optional space, digit, 2 letters.
EMBEDDED_POSTCODE_RE = re.compile(r"\b([A-Z]{1,2}\d{1,2}[A-Z]?\s?\d[A-Z]{2})\b", re.IGNORECASE)
_WHOLE_POSTCODE_RE = re.compile(r"^[A-Z]{1,2}\d{1,2}[A-Z]?\s?\d[A-Z]{2}$", re.IGNORECASE)

_WHITESPACE_RE = re.compile(r"\s+")
_TRAILING_SEPARATORS_RE = re.compile(r"[,\s]+$")
_REPEATED_COMMA_RE = re.compile(r",\s*,")


@dataclass(frozen=True)
class PostcodeMatch:
    postcode: str
    start: int
    end: int


def is_valid_uk_unit_postcode(value: str) -> bool:
    return bool(UK_UNIT_POSTCODE_RE.match(value))


def looks_like_postcode(value: str) -> bool:
    return bool(_WHOLE_POSTCODE_RE.match(value.strip()))


def clean_postcode(raw: str | None) -> str:
    if not raw:
        return ""
    return _WHITESPACE_RE.sub(" ", raw.strip().upper())


def postcode_key(raw: str | None) -> str:
    if not raw:
        return ""
    return _WHITESPACE_RE.sub("", raw.strip().lower())


def find_postcode(text: str | None) -> PostcodeMatch | None:
    if not text:
        return None
    match = EMBEDDED_POSTCODE_RE.search(text)
    if match is None:
        return None
    return PostcodeMatch(postcode=clean_postcode(match.group(1)), start=match.start(), end=match.end())


def extract_postcode(address: str | None) -> tuple[str | None, str]:
    """Split a postcode out of free address text.

    Returns ``(postcode, address_without_postcode)``; the postcode is None when
    the text holds no UK-shaped postcode, in which case the address is returned
    unchanged apart from trimming.
    """
    if not address:
        return None, ""
    found = find_postcode(address)
    if found is None:
        return None, address.strip()
    remainder = address[: found.start] + address[found.end :]
    remainder = _REPEATED_COMMA_RE.sub(",", remainder)
    remainder = _TRAILING_SEPARATORS_RE.sub("", remainder)
    remainder = _WHITESPACE_RE.sub(" ", remainder).strip()
    return found.postcode, remainder


def normalise_postcode(raw: str | None) -> str | None:
    """Return ``OUTWARD INWARD`` for a valid unit postcode, else None."""
    cleaned = clean_postcode(raw).replace(" ", "")
    if len(cleaned) < 5 or len(cleaned) > 8:
        return None
    cleaned = f"{cleaned[:-3]} {cleaned[-3:]}"
    if not is_valid_uk_unit_postcode(cleaned):
        return None
    return cleaned
