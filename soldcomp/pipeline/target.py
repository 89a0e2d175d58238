"""Find the single target property among the ingested records."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from soldcomp.common.models import (
    FIELD_ADDRESS,
    FIELD_POSTCODE,
    RECORD_FIELD_NAMES,
    CanonicalRecord,
    HeaderMapping,
    RawRow,
    has_value,
)
from soldcomp.common.postcode import extract_postcode
from soldcomp.pipeline.markers import TargetMarker, find_target_marker
from soldcomp.pipeline.normalise import clean_record, recover_pre_header_record

MARKER_FIELDS = ("sale_date", "address", "postcode", "property_type", "tenure", "distance", "epc_rating")
EXTRA_TARGET_REVIEW = "Marked as target but another row is the target"
INCOMPLETE_TARGET_REVIEW = "Target needs address and postcode, or a URL"


@dataclass
class TargetResolution:
    records: list[CanonicalRecord]
    target: CanonicalRecord | None
    warnings: list[dict] = field(default_factory=list)


def find_marker_field(record: CanonicalRecord) -> tuple[str, TargetMarker] | None:
    for name in MARKER_FIELDS:
        marker = find_target_marker(getattr(record, name))
        if marker is not None:
            return name, marker
    return None


def apply_marker_text(record: CanonicalRecord, field_name: str, marker: TargetMarker) -> None:
    """Move the address written after a marker into address/postcode."""
    if marker.remainder:
        postcode, address = extract_postcode(marker.remainder)
        if address:
            record.address = address
        if postcode and not record.postcode:
            record.postcode = postcode
        if field_name not in (FIELD_ADDRESS, FIELD_POSTCODE):
            setattr(record, field_name, "")
    else:
        setattr(record, field_name, "")
    clean_record(record)


def is_marked(record: CanonicalRecord) -> bool:
    return record.is_target or find_marker_field(record) is not None


def _fill_gaps(target: CanonicalRecord, extra: CanonicalRecord) -> None:
    for name in RECORD_FIELD_NAMES:
        if name in ("is_target", "ranking", "needs_review"):
            continue
        if not has_value(getattr(target, name)) and has_value(getattr(extra, name)):
            setattr(target, name, getattr(extra, name))


def _recover_from_pre_header(rows: Sequence[RawRow], mapping: HeaderMapping | None) -> CanonicalRecord | None:
    for row in rows:
        recovered = recover_pre_header_record(row, mapping)
        if recovered is not None and recovered.is_target:
            return recovered
    return None


def resolve_target(
    records: Sequence[CanonicalRecord],
    pre_header_rows: Sequence[RawRow] = (),
    mapping: HeaderMapping | None = None,
) -> TargetResolution:
    """Mark exactly one record as the target.

    Data rows are searched first; the first marked row wins and any other
    marked rows are demoted to comparables and flagged. When no data row is
    marked, the rows above the header are tried. Finding no target at all is
    a warning, not an error.
    """
    out = list(records)
    warnings: list[dict] = []
    marked = [record for record in out if not record.meta.is_synthetic and is_marked(record)]

    recovered = _recover_from_pre_header(pre_header_rows, mapping)
    target: CanonicalRecord | None = None
    if marked:
        target = marked[0]
        for extra in marked[1:]:
            extra.is_target = False
            found = find_marker_field(extra)
            if found is not None:
                apply_marker_text(extra, *found)
            extra.flag_review(EXTRA_TARGET_REVIEW)
            warnings.append(
                {
                    "error_code": "MULTIPLE_TARGETS",
                    "record": extra.label(),
                    "message": f"extra target marker ignored; target is {target.label()}",
                }
            )
        if recovered is not None:
            _fill_gaps(target, recovered)
    elif recovered is not None:
        target = recovered
        out.insert(0, target)

    if target is None:
        warnings.append({"error_code": "NO_TARGET", "message": "no row is marked as the target property"})
        return TargetResolution(records=out, target=None, warnings=warnings)

    found = find_marker_field(target)
    if found is not None:
        apply_marker_text(target, *found)
    target.is_target = True

    if not ((target.address and target.postcode) or target.url):
        target.flag_review(INCOMPLETE_TARGET_REVIEW)
        warnings.append(
            {"error_code": "TARGET_INCOMPLETE", "record": target.label(), "message": INCOMPLETE_TARGET_REVIEW}
        )
    return TargetResolution(records=out, target=target, warnings=warnings)
