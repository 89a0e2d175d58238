"""Scrub pasted HTML/JS out of text fields and range-check numeric ones."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from soldcomp.common.constants import SQFT_PER_SQM
from soldcomp.common.models import (
    FIELD_ADDRESS,
    FIELD_BEDROOMS,
    FIELD_PRICE,
    FIELD_PROPERTY_TYPE,
    FIELD_SQFT,
    FIELD_TENURE,
    CanonicalRecord,
)

TEXT_FIELDS = (FIELD_ADDRESS, FIELD_PROPERTY_TYPE, FIELD_TENURE)


@dataclass(frozen=True)
class ValueRange:
    minimum: float
    maximum: float
    label: str

    def contains(self, value: float) -> bool:
        return self.minimum <= value <= self.maximum


NUMERIC_RANGES = {
    FIELD_PRICE: ValueRange(10_000, 10_000_000, "Price"),
    FIELD_SQFT: ValueRange(50, 10_000, "Sq. ft"),
    FIELD_BEDROOMS: ValueRange(0, 15, "Bedrooms"),
}

JAVASCRIPT_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"function\s*\(",
        r"=>\s*\{",
        r"window\.",
        r"document\.",
        r"console\.",
        r"\bvar\s+\w+\s*=",
        r"\blet\s+\w+\s*=",
        r"\bconst\s+\w+\s*=",
        r"sessionStorage",
        r"localStorage",
        r"addEventListener",
        r"\breturn\s+",
        r"\bif\s*\(",
        r"\.innerHTML",
        r"\.querySelector",
    )
)
HTML_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"<\s*script[^>]*>",
        r"<\s*div[^>]*>",
        r"<\s*span[^>]*>",
        r"<\s*p[^>]*>",
        r"<\s*a\s+href",
        r"<\s*img[^>]*>",
        r"&lt;",
        r"&gt;",
        r"&quot;",
        r"&amp;",
    )
)

_TAG_RE = re.compile(r"<[^>]*>")
_ENTITY_RE = re.compile(r"&[a-z]+;", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")


def contains_javascript(text: str | None) -> bool:
    if not text:
        return False
    return any(pattern.search(text) for pattern in JAVASCRIPT_PATTERNS)


def contains_html(text: str | None) -> bool:
    if not text:
        return False
    return any(pattern.search(text) for pattern in HTML_PATTERNS)


def strip_markup(text: str | None) -> str:
    """Tags and entities removed; "" if what is left still reads as script."""
    if not text:
        return ""
    cleaned = _ENTITY_RE.sub("", _TAG_RE.sub("", text))
    if contains_javascript(cleaned):
        return ""
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def _is_derived(derived: float | None, expected: float) -> bool:
    return derived is not None and abs(derived - expected) < 0.51


def sanitize_record(record: CanonicalRecord) -> list[dict]:
    """Sanitise ``record`` in place and return warnings for what was dropped."""
    warnings: list[dict] = []

    for name in TEXT_FIELDS:
        original = getattr(record, name)
        if not original or not (contains_html(original) or contains_javascript(original)):
            continue
        cleaned = strip_markup(original)
        if cleaned != original:
            setattr(record, name, cleaned)
            warnings.append(
                {
                    "error_code": "SANITIZED_TEXT",
                    "field": name,
                    "record": record.meta.source_row,
                    "message": f"removed markup from {name}",
                }
            )

    for name, allowed in NUMERIC_RANGES.items():
        value = getattr(record, name)
        if value is None or allowed.contains(value):
            continue
        setattr(record, name, None)
        if name == FIELD_SQFT:
            if _is_derived(record.floor_area_sqm, value / SQFT_PER_SQM):
                record.floor_area_sqm = None
            if record.price and _is_derived(record.price_per_sqft, record.price / value):
                record.price_per_sqft = None
        elif name == FIELD_PRICE and record.floor_area_sqft:
            if _is_derived(record.price_per_sqft, value / record.floor_area_sqft):
                record.price_per_sqft = None
        record.flag_review(f"Invalid {allowed.label}: {value:g}")
        warnings.append(
            {
                "error_code": "OUT_OF_RANGE",
                "field": name,
                "record": record.meta.source_row,
                "message": f"{allowed.label} {value:g} outside {allowed.minimum:g}-{allowed.maximum:g}",
            }
        )

    if record.bedrooms is not None:
        record.bedrooms = float(int(record.bedrooms))

    return warnings


def sanitize_records(records: Iterable[CanonicalRecord]) -> list[dict]:
    warnings: list[dict] = []
    for record in records:
        if record.meta.is_synthetic:
            continue
        warnings.extend(sanitize_record(record))
    return warnings
