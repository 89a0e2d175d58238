"""Recognise values a person has corrected by hand in a previously processed sheet.

A sheet that already went through the pipeline once carries derived columns
(distance, street view, £/sqft, certificate). When such a sheet comes back,
values that disagree with what enrichment would produce now are treated as
manual corrections and protected from being overwritten.
"""

from __future__ import annotations

import re

from soldcomp.common.models import (
    FIELD_ADDRESS,
    FIELD_BEDROOMS,
    FIELD_EPC_CERTIFICATE,
    FIELD_POSTCODE,
    FIELD_PRICE,
    FIELD_PROPERTY_TYPE,
    FIELD_SALE_DATE,
    FIELD_SQFT,
    FIELD_SQM,
    FIELD_TENURE,
    CanonicalRecord,
    has_value,
)
from soldcomp.common.postcode import postcode_key

PROTECTED_FIELDS = frozenset(
    {
        FIELD_EPC_CERTIFICATE,
        FIELD_SQFT,
        FIELD_SQM,
        FIELD_PRICE,
        FIELD_ADDRESS,
        FIELD_POSTCODE,
        FIELD_PROPERTY_TYPE,
        FIELD_TENURE,
        FIELD_BEDROOMS,
        FIELD_SALE_DATE,
    }
)
FLOOR_AREA_EDIT_RATIO = 0.05

_WHITESPACE_RE = re.compile(r"\s+")


def has_been_processed(record: CanonicalRecord) -> bool:
    return bool(
        has_value(record.epc_certificate_url)
        or has_value(record.streetview_url)
        or has_value(record.distance)
        or has_value(record.price_per_sqft)
        or (has_value(record.latitude) and has_value(record.longitude))
    )


def mark_manually_edited(record: CanonicalRecord, field_name: str) -> bool:
    if field_name not in PROTECTED_FIELDS:
        return False
    record.meta.manually_edited.add(field_name)
    return True


def is_manually_edited(record: CanonicalRecord, field_name: str) -> bool:
    return field_name in record.meta.manually_edited


def can_update_field(record: CanonicalRecord, field_name: str) -> bool:
    return not is_manually_edited(record, field_name)


def compare_and_mark_certificate(record: CanonicalRecord, fresh_url: str | None) -> bool:
    existing = record.epc_certificate_url
    if not existing or not fresh_url:
        return False
    if existing.strip().lower() == fresh_url.strip().lower():
        return False
    return mark_manually_edited(record, FIELD_EPC_CERTIFICATE)


def compare_and_mark_floor_area(record: CanonicalRecord, fresh_sqft: float | None) -> bool:
    existing = record.floor_area_sqft
    if not existing or not fresh_sqft:
        return False
    if abs(existing - fresh_sqft) / fresh_sqft <= FLOOR_AREA_EDIT_RATIO:
        return False
    mark_manually_edited(record, FIELD_SQFT)
    if has_value(record.floor_area_sqm):
        mark_manually_edited(record, FIELD_SQM)
    return True


def _normalised_text(value: str) -> str:
    return _WHITESPACE_RE.sub(" ", value.lower()).strip()


def detect_manual_edits(record: CanonicalRecord, fresh: CanonicalRecord | None) -> set[str]:
    """Mark fields of a processed ``record`` that disagree with ``fresh`` data.

    Nothing is marked for a record that was never processed, or when there is
    no fresh data to compare with. Returns the fields newly marked.
    """
    if fresh is None or not has_been_processed(record):
        return set()
    before = set(record.meta.manually_edited)

    compare_and_mark_certificate(record, fresh.epc_certificate_url)
    compare_and_mark_floor_area(record, fresh.floor_area_sqft)

    if record.price and fresh.price and record.price != fresh.price:
        mark_manually_edited(record, FIELD_PRICE)
    if record.address and fresh.address:
        if _normalised_text(record.address) != _normalised_text(fresh.address):
            mark_manually_edited(record, FIELD_ADDRESS)
    if record.postcode and fresh.postcode:
        if postcode_key(record.postcode) != postcode_key(fresh.postcode):
            mark_manually_edited(record, FIELD_POSTCODE)

    return record.meta.manually_edited - before
