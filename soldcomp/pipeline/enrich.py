"""Apply geocoding and certificate lookups to records, honouring manual edits."""

from __future__ import annotations

import re

from soldcomp.common.constants import SQFT_PER_SQM
from soldcomp.common.geometry import format_distance, haversine_miles, streetview_url
from soldcomp.common.models import (
    FIELD_EPC_CERTIFICATE,
    FIELD_SALE_DATE,
    FIELD_SQFT,
    FIELD_SQM,
    CanonicalRecord,
    has_value,
)
from soldcomp.pipeline.dates import standardise_sale_date
from soldcomp.pipeline.disambiguate import (
    STATUS_AMBIGUOUS,
    STATUS_NO_CANDIDATES,
    STATUS_NO_HOUSE_NUMBER,
    STATUS_NO_MATCH,
    CandidateMatch,
)
from soldcomp.pipeline.manual_edits import can_update_field, detect_manual_edits

EPC_LOOKUP_ADDRESS = "EPC Lookup"
EPC_LOOKUP_SOURCE = "epc_lookup"

MATCH_REVIEW_NOTES = {
    STATUS_AMBIGUOUS: "EPC match ambiguous",
    STATUS_NO_MATCH: "No EPC match for house number",
    STATUS_NO_HOUSE_NUMBER: "No house number for EPC match",
    STATUS_NO_CANDIDATES: "No EPC certificates for postcode",
}

_FLOOR_AREA_CONFLICT_NOTE_RE = re.compile(r"^(Sq\. ft|Sqm) conflict:")


def is_epc_lookup_row(record: CanonicalRecord) -> bool:
    return record.address.strip().lower() == EPC_LOOKUP_ADDRESS.lower()


def epc_lookup_record(postcode: str, search_url: str) -> CanonicalRecord:
    record = CanonicalRecord(address=EPC_LOOKUP_ADDRESS, postcode=postcode, url=search_url)
    record.meta.is_synthetic = True
    record.meta.source = EPC_LOOKUP_SOURCE
    return record


def apply_geocode(record: CanonicalRecord, lat: float, lng: float) -> None:
    record.latitude = lat
    record.longitude = lng
    if not record.streetview_url:
        record.streetview_url = streetview_url(lat, lng)


def apply_distance(record: CanonicalRecord, target: CanonicalRecord | None) -> float | None:
    if target is None or record is target:
        return None
    if None in (record.latitude, record.longitude, target.latitude, target.longitude):
        return None
    miles = haversine_miles(target.latitude, target.longitude, record.latitude, record.longitude)
    record.meta.distance_miles = miles
    record.distance = format_distance(miles)
    return miles


def sqm_to_sqft(sqm: float) -> float:
    return float(round(sqm * SQFT_PER_SQM))


def _replace_conflict_note(record: CanonicalRecord, note: str) -> None:
    reasons = [
        reason
        for reason in record.needs_review.split("; ")
        if reason and not _FLOOR_AREA_CONFLICT_NOTE_RE.match(reason)
    ]
    record.needs_review = "; ".join(reasons)
    record.flag_review(note)


def arbitrate_floor_area(record: CanonicalRecord, epc_sqft: float) -> bool:
    """Settle a merge-time floor-area conflict using the certificate's area.

    The disputed value closest to the certificate wins. Returns True when a
    conflict was resolved. A hand-edited square footage is never replaced, so
    its conflict and review note stay in place for a person to settle.
    """
    conflict = record.meta.floor_area_conflict
    if conflict is None or not can_update_field(record, FIELD_SQFT):
        return False

    if conflict.field == FIELD_SQM:
        candidates = (sqm_to_sqft(conflict.value1), sqm_to_sqft(conflict.value2))
    else:
        candidates = (conflict.value1, conflict.value2)
    chosen = min(candidates, key=lambda value: abs(value - epc_sqft))

    record.floor_area_sqft = chosen
    if can_update_field(record, FIELD_SQM):
        record.floor_area_sqm = round(chosen / SQFT_PER_SQM, 1)
    record.price_per_sqft = None
    record.meta.floor_area_conflict = None
    _replace_conflict_note(
        record,
        f"Floor area conflict resolved by EPC ({epc_sqft:g} sq ft): kept {chosen:g}",
    )
    return True


def apply_epc_match(record: CanonicalRecord, match: CandidateMatch) -> str | None:
    """Attach a certificate to ``record``; returns the review note written, if any."""
    candidate = match.matched
    if candidate is None:
        note = MATCH_REVIEW_NOTES.get(match.status)
        if note and match.status == STATUS_AMBIGUOUS:
            note = f"{note}: {len(match.tied)} certificates scored equally"
        if note:
            record.flag_review(note)
        return note

    epc_sqft = sqm_to_sqft(candidate.floor_area) if candidate.floor_area else None
    fresh = CanonicalRecord(
        address=record.address,
        postcode=record.postcode,
        epc_certificate_url=candidate.certificate_url or "",
        # A pending merge conflict is an automated disagreement, not a hand edit.
        floor_area_sqft=None if record.meta.floor_area_conflict is not None else epc_sqft,
    )
    detect_manual_edits(record, fresh)

    if candidate.rating:
        record.epc_rating = candidate.rating
    if candidate.certificate_url and can_update_field(record, FIELD_EPC_CERTIFICATE):
        record.epc_certificate_url = candidate.certificate_url

    if epc_sqft is not None:
        if record.meta.floor_area_conflict is not None:
            arbitrate_floor_area(record, epc_sqft)
        elif not has_value(record.floor_area_sqft) and can_update_field(record, FIELD_SQFT):
            record.floor_area_sqft = epc_sqft
            if can_update_field(record, FIELD_SQM):
                record.floor_area_sqm = round(candidate.floor_area, 1)
    return None


def finalize_record(record: CanonicalRecord) -> None:
    """Fill derived columns and put the sale date in DD/MM/YYYY form."""
    if record.meta.is_synthetic:
        return
    if record.floor_area_sqft and not record.floor_area_sqm and can_update_field(record, FIELD_SQM):
        record.floor_area_sqm = round(record.floor_area_sqft / SQFT_PER_SQM, 1)
    if record.price and record.floor_area_sqft and not record.price_per_sqft:
        record.price_per_sqft = float(round(record.price / record.floor_area_sqft))
    if record.sale_date and can_update_field(record, FIELD_SALE_DATE):
        standard = standardise_sale_date(record.sale_date)
        if standard:
            record.sale_date = standard
