"""Identity keys, completeness scoring and conflict-aware merging of duplicates.

The same property often appears more than once in a sheet: typed in by hand,
pasted from a Rightmove listing and again from PropertyData, each with a
slightly different address. Records are keyed on a normalised address plus
postcode and on their URL; colliding records are merged into the more
complete one, with explicit rules for fields that disagree.
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from soldcomp.common.constants import SQFT_PER_SQM
from soldcomp.common.models import (
    FIELD_ADDRESS,
    FIELD_AGE,
    FIELD_BEDROOMS,
    FIELD_DISTANCE,
    FIELD_EPC_RATING,
    FIELD_POSTCODE,
    FIELD_PRICE,
    FIELD_PRICE_PER_SQFT,
    FIELD_PROPERTY_TYPE,
    FIELD_SALE_DATE,
    FIELD_SQFT,
    FIELD_SQM,
    FIELD_STREETVIEW_URL,
    FIELD_TENURE,
    FIELD_URL,
    RECORD_FIELD_NAMES,
    CanonicalRecord,
    FloorAreaConflict,
    has_value,
)
from soldcomp.common.postcode import EMBEDDED_POSTCODE_RE, postcode_key
from soldcomp.pipeline.urls import SOURCE_PROPERTYDATA, SOURCE_RIGHTMOVE, url_source

COMPLETENESS_WEIGHTS = {
    FIELD_ADDRESS: 2,
    FIELD_POSTCODE: 2,
    FIELD_PRICE: 3,
    FIELD_PROPERTY_TYPE: 1,
    FIELD_BEDROOMS: 2,
    FIELD_SQFT: 3,
    FIELD_SQM: 2,
    FIELD_PRICE_PER_SQFT: 2,
    FIELD_SALE_DATE: 1,
    FIELD_TENURE: 1,
    FIELD_AGE: 1,
    FIELD_DISTANCE: 1,
    FIELD_EPC_RATING: 1,
    FIELD_STREETVIEW_URL: 1,
}
IMAGE_BONUS = 5
URL_BONUS = 2
SCRAPE_ERROR_PENALTY = 10

PRICE_REVIEW_THRESHOLD = 10000
FLOOR_AREA_CONFLICT_PERCENT = 10.0

# Longest first, so "north lincolnshire" goes before "lincolnshire".
KNOWN_PLACE_NAMES = (
    "north lincolnshire",
    "united kingdom",
    "lincolnshire",
    "scunthorpe",
    "doncaster",
    "sheffield",
    "blaxton",
    "grimsby",
    "england",
    "lincs",
    "leeds",
    "hull",
    "york",
    "uk",
)

_PLACE_NAME_RES = tuple(
    (re.compile(rf",\s*{re.escape(name)}\s*$"), re.compile(rf"\s+{re.escape(name)}\s*$"))
    for name in KNOWN_PLACE_NAMES
)
_WHITESPACE_RE = re.compile(r"\s+")
_TRAILING_SEPARATORS_RE = re.compile(r"[,\s]+$")
_LEADING_SEPARATORS_RE = re.compile(r"^[,\s]+")
_HOUSE_NUMBER_COMMA_RE = re.compile(r"^(\d+[a-z]?),\s*")
_COMMA_RUN_RE = re.compile(r",+")
_COMMA_SPACING_RE = re.compile(r",\s*")
_URL_SCHEME_RE = re.compile(r"^https?://")

_MAX_NORMALISE_PASSES = 5


def _normalise_address_once(text: str, postcode: str) -> str:
    text = _WHITESPACE_RE.sub(" ", text.lower()).strip()

    if postcode:
        lowered = postcode.lower()
        for variant in (_WHITESPACE_RE.sub("", lowered), _WHITESPACE_RE.sub(" ", lowered).strip(), lowered):
            if variant:
                text = text.replace(variant, "")
    text = EMBEDDED_POSTCODE_RE.sub("", text)
    text = _TRAILING_SEPARATORS_RE.sub("", text)

    for with_comma, with_space in _PLACE_NAME_RES:
        text = with_comma.sub("", text)
        text = with_space.sub("", text)

    text = _LEADING_SEPARATORS_RE.sub("", text)
    text = _TRAILING_SEPARATORS_RE.sub("", text)
    text = _HOUSE_NUMBER_COMMA_RE.sub(r"\1 ", text)
    text = _COMMA_RUN_RE.sub(",", text)
    text = _COMMA_SPACING_RE.sub(", ", text)
    text = _TRAILING_SEPARATORS_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_address(address: str | None, postcode: str | None = "") -> str:
    """Case-folded address with postcodes, trailing place names and comma noise removed.

    The individual rewrites are applied until nothing changes, so the result
    is a fixed point: ``normalize_address(normalize_address(a)) == normalize_address(a)``.
    """
    if not address:
        return ""
    text = address
    for _ in range(_MAX_NORMALISE_PASSES):
        updated = _normalise_address_once(text, postcode or "")
        if updated == text:
            break
        text = updated
    return text


def address_key(record: CanonicalRecord) -> str | None:
    pc = postcode_key(record.postcode)
    key = f"{normalize_address(record.address, pc)}|{pc}"
    if key == "|":
        return None
    return key


def url_key(url: str | None) -> str | None:
    if not url or not url.strip():
        return None
    text = _URL_SCHEME_RE.sub("", url.strip().lower())
    return text.rstrip("/") or None


def completeness_score(record: CanonicalRecord) -> int:
    score = 0
    for name, weight in COMPLETENESS_WEIGHTS.items():
        if has_value(getattr(record, name)):
            score += weight
    if has_value(record.image_url):
        score += IMAGE_BONUS
    if has_value(record.url):
        score += URL_BONUS
    if record.meta.scrape_error:
        score -= SCRAPE_ERROR_PENALTY
    return score


def has_floor_area_conflict(value1: float | None, value2: float | None, *, percent: float) -> bool:
    if not value1 or not value2 or value1 == value2:
        return False
    mean = (value1 + value2) / 2
    return abs(value1 - value2) / mean * 100 > percent


@dataclass
class MergeOutcome:
    record: CanonicalRecord
    conflicts: list[str] = field(default_factory=list)


def _format_number(value: float) -> str:
    return f"{value:g}" if value != int(value) else str(int(value))


def _merge_urls(merged: CanonicalRecord, first: CanonicalRecord, second: CanonicalRecord) -> bool:
    """Keep both listing URLs when they come from two different sources."""
    url1, url2 = first.url, second.url
    if not url1 or not url2 or url_key(url1) == url_key(url2):
        return False
    sources = {url_source(url1): url1, url_source(url2): url2}
    if set(sources) != {SOURCE_RIGHTMOVE, SOURCE_PROPERTYDATA}:
        return False
    merged.secondary_urls[SOURCE_RIGHTMOVE] = sources[SOURCE_RIGHTMOVE]
    merged.secondary_urls[SOURCE_PROPERTYDATA] = sources[SOURCE_PROPERTYDATA]
    merged.url = sources[SOURCE_PROPERTYDATA]
    return True


def merge_records(
    existing: CanonicalRecord,
    incoming: CanonicalRecord,
    *,
    price_review_threshold: float = PRICE_REVIEW_THRESHOLD,
    floor_area_conflict_percent: float = FLOOR_AREA_CONFLICT_PERCENT,
) -> MergeOutcome:
    """Merge two records describing the same property.

    The more complete record is the base (``existing`` on a tie); the other
    one only fills gaps, except that prices and floor areas take the larger
    value, image URLs and the target flag are unioned, and fields either side
    marked as manually edited keep that side's value.
    """
    if completeness_score(existing) >= completeness_score(incoming):
        base, lesser = existing, incoming
    else:
        base, lesser = incoming, existing

    merged = copy.deepcopy(base)
    conflicts: list[str] = []
    protected = base.meta.manually_edited | lesser.meta.manually_edited
    had_identity = has_value(base.address) and has_value(base.price)

    urls_kept = _merge_urls(merged, existing, incoming)
    for source, url in lesser.secondary_urls.items():
        merged.secondary_urls.setdefault(source, url)

    for name in RECORD_FIELD_NAMES:
        if name in ("secondary_urls", "is_target", "needs_review", "ranking"):
            continue
        if name == FIELD_URL and urls_kept:
            continue
        if name in base.meta.manually_edited:
            continue

        mine = getattr(merged, name)
        theirs = getattr(lesser, name)
        if not has_value(theirs):
            continue
        if not has_value(mine):
            setattr(merged, name, copy.deepcopy(theirs))
            continue
        if name in lesser.meta.manually_edited:
            setattr(merged, name, copy.deepcopy(theirs))
            continue

        if name == FIELD_PRICE and mine != theirs:
            merged.price = max(mine, theirs)
            if abs(mine - theirs) > price_review_threshold:
                conflicts.append(f"Price conflict: {_format_number(mine)} vs {_format_number(theirs)}")
        elif name in (FIELD_SQFT, FIELD_SQM) and mine != theirs:
            # Square metres only arbitrate when square feet were not on both sides.
            if name == FIELD_SQM and has_value(base.floor_area_sqft) and has_value(lesser.floor_area_sqft):
                continue
            if has_floor_area_conflict(mine, theirs, percent=floor_area_conflict_percent):
                label = "Sq. ft" if name == FIELD_SQFT else "Sqm"
                conflicts.append(f"{label} conflict: {_format_number(mine)} vs {_format_number(theirs)}")
                if merged.meta.floor_area_conflict is None:
                    merged.meta.floor_area_conflict = FloorAreaConflict(value1=mine, value2=theirs, field=name)
            setattr(merged, name, max(mine, theirs))
            if name == FIELD_SQFT and FIELD_SQM not in protected:
                merged.floor_area_sqm = round(merged.floor_area_sqft / SQFT_PER_SQM, 1)

    if has_value(lesser.image_url) and not has_value(merged.image_url):
        merged.image_url = lesser.image_url
    merged.is_target = existing.is_target or incoming.is_target
    merged.meta.manually_edited = set(protected)
    merged.meta.url_only = base.meta.url_only and lesser.meta.url_only

    if conflicts:
        for reason in conflicts:
            merged.flag_review(reason)
    elif not had_identity and has_value(merged.address) and has_value(merged.price) and not merged.meta.scrape_error:
        merged.needs_review = ""
    else:
        merged.flag_review(lesser.needs_review)

    return MergeOutcome(record=merged, conflicts=conflicts)


@dataclass
class ReconcileResult:
    records: list[CanonicalRecord]
    merged_count: int = 0
    warnings: list[dict] = field(default_factory=list)


def reconcile(
    records: Sequence[CanonicalRecord],
    *,
    price_review_threshold: float = PRICE_REVIEW_THRESHOLD,
    floor_area_conflict_percent: float = FLOOR_AREA_CONFLICT_PERCENT,
) -> ReconcileResult:
    """Single left-to-right pass; output keeps first-occurrence order.

    Synthetic rows keep their position and never take part in matching.
    """
    output: list[CanonicalRecord] = []
    seen_addresses: dict[str, int] = {}
    seen_urls: dict[str, int] = {}
    merged_count = 0
    warnings: list[dict] = []

    for record in records:
        if record.meta.is_synthetic:
            output.append(record)
            continue

        a_key = address_key(record)
        u_key = url_key(record.url)
        slot = None
        if a_key is not None and a_key in seen_addresses:
            slot = seen_addresses[a_key]
        elif u_key is not None and u_key in seen_urls:
            slot = seen_urls[u_key]

        if slot is None:
            slot = len(output)
            output.append(record)
        else:
            outcome = merge_records(
                output[slot],
                record,
                price_review_threshold=price_review_threshold,
                floor_area_conflict_percent=floor_area_conflict_percent,
            )
            output[slot] = outcome.record
            merged_count += 1
            for reason in outcome.conflicts:
                warnings.append(
                    {"error_code": "MERGE_CONFLICT", "record": outcome.record.label(), "message": reason}
                )

        _register(output[slot], slot, seen_addresses, seen_urls)
        _register(record, slot, seen_addresses, seen_urls)

    return ReconcileResult(records=output, merged_count=merged_count, warnings=warnings)


def _register(
    record: CanonicalRecord,
    slot: int,
    seen_addresses: dict[str, int],
    seen_urls: dict[str, int],
) -> None:
    a_key = address_key(record)
    if a_key is not None:
        seen_addresses.setdefault(a_key, slot)
    for url in _record_urls(record):
        u_key = url_key(url)
        if u_key is not None:
            seen_urls.setdefault(u_key, slot)


def _record_urls(record: CanonicalRecord) -> Iterable[str]:
    yield record.url
    yield from record.secondary_urls.values()
