"""Turn raw sheet rows into canonical records using a detected header mapping."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Sequence

from soldcomp.common.constants import SQFT_PER_SQM
from soldcomp.common.models import (
    FIELD_AGE,
    FIELD_BEDROOMS,
    FIELD_EPC_CERTIFICATE,
    FIELD_IMAGE_URL,
    FIELD_IS_TARGET,
    FIELD_LATITUDE,
    FIELD_LONGITUDE,
    FIELD_NEEDS_REVIEW,
    FIELD_PRICE,
    FIELD_PRICE_PER_SQFT,
    FIELD_RANKING,
    FIELD_SQFT,
    FIELD_SQM,
    FIELD_STREETVIEW_URL,
    FIELD_URL,
    NUMERIC_FIELDS,
    RECORD_FIELD_NAMES,
    CanonicalRecord,
    HeaderMapping,
    RawRow,
    has_value,
)
from soldcomp.common.postcode import clean_postcode, extract_postcode, looks_like_postcode
from soldcomp.pipeline.headers import FIELD_URL_PROPERTYDATA, FIELD_URL_RIGHTMOVE, HeaderDetection
from soldcomp.pipeline.markers import find_target_marker
from soldcomp.pipeline.urls import SOURCE_PROPERTYDATA, SOURCE_RIGHTMOVE, is_certificate_url, is_url

URL_ONLY_REVIEW = "Insufficient data: URL only"

URL_BEARING_FIELDS = frozenset(
    {
        FIELD_URL,
        FIELD_IMAGE_URL,
        FIELD_EPC_CERTIFICATE,
        FIELD_STREETVIEW_URL,
        FIELD_URL_RIGHTMOVE,
        FIELD_URL_PROPERTYDATA,
    }
)
SECONDARY_URL_SOURCES = {
    FIELD_URL_RIGHTMOVE: SOURCE_RIGHTMOVE,
    FIELD_URL_PROPERTYDATA: SOURCE_PROPERTYDATA,
}
PRICE_LIKE_FIELDS = frozenset({FIELD_PRICE, FIELD_PRICE_PER_SQFT})
TRUTHY_FLAGS = frozenset({"1", "true", "yes", "y", "x"})
FALSY_REVIEW_FLAGS = frozenset({"0", "false", "no", "n"})

_HYPERLINK_FORMULA_RE = re.compile(r'^=HYPERLINK\(\s*"((?:[^"]|"")*)"', re.IGNORECASE)
_CURRENCY_RE = re.compile(r"[£$€,\s]")
_NUMERIC_TOKEN_RE = re.compile(r"-?\d+(?:\.\d+)?")
_WHITESPACE_RE = re.compile(r"\s+")
_EPC_LABEL_RE = re.compile(r"^epc(\s+(cert(ificate)?|link|url))?\s*:?$", re.IGNORECASE)


@dataclass
class NormalisedTable:
    records: list[CanonicalRecord]
    pre_header_rows: list[RawRow]
    warnings: list[dict] = field(default_factory=list)


def unwrap_hyperlink(value: str) -> str:
    """``=HYPERLINK("url", "View")`` -> ``url``; anything else unchanged."""
    match = _HYPERLINK_FORMULA_RE.match(value.strip())
    if match is None:
        return value
    return match.group(1).replace('""', '"')


def parse_number(field_name: str, value: str) -> float | None:
    if field_name in PRICE_LIKE_FIELDS:
        text = _CURRENCY_RE.sub("", value)
    else:
        # First numeric token only.
        match = _NUMERIC_TOKEN_RE.search(value.replace(",", ""))
        text = match.group(0) if match else ""
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def is_url_only_row(row: RawRow) -> bool:
    cells = row.non_empty_cells()
    return len(cells) == 1 and is_url(unwrap_hyperlink(cells[0][1]))


def assign_cell(
    record: CanonicalRecord,
    field_name: str,
    raw_value: str,
    *,
    warnings: list[dict] | None = None,
    row_index: int | None = None,
) -> bool:
    """Write one mapped cell into ``record``. Returns True if a field was set."""
    value = unwrap_hyperlink(raw_value.strip())
    if not value:
        return False

    if is_url(value) and field_name not in URL_BEARING_FIELDS:
        field_name = FIELD_URL

    if field_name in SECONDARY_URL_SOURCES:
        if not is_url(value):
            return False
        record.secondary_urls[SECONDARY_URL_SOURCES[field_name]] = value
        if not is_url(record.url):
            record.url = value
        return True

    if field_name == FIELD_URL:
        # A "link text" column must not clobber a real URL.
        if is_url(record.url) and not is_url(value):
            return False
        record.url = value
        return True

    if field_name in NUMERIC_FIELDS:
        if has_value(getattr(record, field_name)):
            return False
        number = parse_number(field_name, value)
        if number is None:
            if warnings is not None:
                warnings.append(
                    {
                        "error_code": "FIELD_PARSE",
                        "field": field_name,
                        "record": row_index,
                        "message": f"could not parse {value!r} as a number",
                    }
                )
            return False
        setattr(record, field_name, number)
        return True

    if field_name == FIELD_IS_TARGET:
        if value.lower() in TRUTHY_FLAGS or find_target_marker(value) is not None:
            record.is_target = True
            return True
        return False

    if field_name == FIELD_RANKING:
        return False

    if field_name == FIELD_NEEDS_REVIEW:
        if value.lower() in FALSY_REVIEW_FLAGS:
            return False
        record.flag_review("Flagged for review" if value.lower() in TRUTHY_FLAGS else value)
        return True

    if field_name not in RECORD_FIELD_NAMES:
        return False
    if has_value(getattr(record, field_name)):
        return False
    setattr(record, field_name, _WHITESPACE_RE.sub(" ", value))
    return True


def clean_record(record: CanonicalRecord) -> CanonicalRecord:
    """Postcode split-out, postcode casing and derived area and price fields."""
    if record.address and not record.postcode:
        postcode, remainder = extract_postcode(record.address)
        if postcode:
            record.postcode = postcode
            record.address = remainder

    record.postcode = clean_postcode(record.postcode)
    record.address = _WHITESPACE_RE.sub(" ", record.address).strip()

    if record.floor_area_sqft and not record.floor_area_sqm:
        record.floor_area_sqm = round(record.floor_area_sqft / SQFT_PER_SQM, 1)
    elif record.floor_area_sqm and not record.floor_area_sqft:
        record.floor_area_sqft = float(round(record.floor_area_sqm * SQFT_PER_SQM))

    if record.price and record.floor_area_sqft and not record.price_per_sqft:
        record.price_per_sqft = float(round(record.price / record.floor_area_sqft))

    return record


def _record_has_content(record: CanonicalRecord) -> bool:
    if record.is_target:
        return True
    for name in RECORD_FIELD_NAMES:
        if name in (FIELD_IS_TARGET, FIELD_RANKING):
            continue
        if has_value(getattr(record, name)):
            return True
    return False


def _url_only_record(row: RawRow) -> CanonicalRecord:
    url = unwrap_hyperlink(row.non_empty_cells()[0][1].strip())
    record = CanonicalRecord(url=url)
    record.meta.url_only = True
    record.meta.source_row = row.index
    record.flag_review(URL_ONLY_REVIEW)
    return record


def normalise_row(row: RawRow, mapping: HeaderMapping, warnings: list[dict]) -> CanonicalRecord | None:
    if not row.non_empty_cells():
        return None
    if is_url_only_row(row):
        return _url_only_record(row)

    record = CanonicalRecord()
    record.meta.source_row = row.index
    for col in sorted(mapping):
        assign_cell(record, mapping[col], row.cell(col), warnings=warnings, row_index=row.index)

    if not _record_has_content(record):
        warnings.append(
            {
                "error_code": "UNMAPPED_ROW",
                "record": row.index,
                "message": "row has values but none fell in a mapped column",
            }
        )
        return None
    return clean_record(record)


def normalise_rows(rows: Sequence[RawRow], detection: HeaderDetection) -> NormalisedTable:
    """Normalise every row after the header; earlier rows are returned untouched."""
    pre_header = [row for row in rows if row.index < detection.header_row_index]
    records: list[CanonicalRecord] = []
    warnings: list[dict] = []
    for row in rows:
        if row.index <= detection.header_row_index:
            continue
        record = normalise_row(row, detection.mapping, warnings)
        if record is not None:
            records.append(record)
    return NormalisedTable(records=records, pre_header_rows=pre_header, warnings=warnings)


# Pre-header recovery: metadata rows above the header sometimes carry the
# target property itself, typed freehand by whoever prepared the sheet.


@dataclass(frozen=True)
class CertificateCapture:
    label_col: int
    url_col: int
    url: str


def find_certificate_capture(row: RawRow) -> CertificateCapture | None:
    """An ``EPC`` label cell followed by a certificate URL."""
    cells = row.non_empty_cells()
    for pos, (col, cell) in enumerate(cells):
        if not _EPC_LABEL_RE.match(cell.strip()):
            continue
        if pos + 1 >= len(cells):
            continue
        url_col, url_cell = cells[pos + 1]
        url = unwrap_hyperlink(url_cell.strip())
        if is_certificate_url(url):
            return CertificateCapture(label_col=col, url_col=url_col, url=url)
    return None


def is_late_target_flag(row: RawRow, col: int, cell: str) -> bool:
    return cell.strip() == "1" and col >= len(row.cells) / 2


def looks_like_address(cell: str) -> bool:
    text = cell.strip()
    return "," in text or len(text.split()) > 2


def _trailing_text(row: RawRow, marker_col: int, remainder: str, used: set[int]) -> str:
    if remainder:
        return remainder
    parts = []
    for col, cell in row.non_empty_cells():
        if col <= marker_col or col in used:
            continue
        text = cell.strip()
        if is_url(unwrap_hyperlink(text)) or text == "1":
            continue
        parts.append(text)
    return ", ".join(parts)


def _apply_marker(record: CanonicalRecord, text: str) -> None:
    postcode, address = extract_postcode(text)
    if address:
        record.address = address
    if postcode and not record.postcode:
        record.postcode = postcode
    record.is_target = True


def _apply_shapes(record: CanonicalRecord, row: RawRow, used: set[int]) -> None:
    for col, cell in row.non_empty_cells():
        if col in used:
            continue
        text = cell.strip()
        url = unwrap_hyperlink(text)
        if looks_like_postcode(text):
            if not record.postcode:
                record.postcode = clean_postcode(text)
        elif is_url(url):
            if not is_certificate_url(url) and not record.url:
                record.url = url
        elif is_late_target_flag(row, col, text):
            record.is_target = True
        elif looks_like_address(text) and not record.address:
            record.address = text


def recover_pre_header_record(row: RawRow, mapping: HeaderMapping | None = None) -> CanonicalRecord | None:
    """Best-effort record from a row that sits above the header.

    Phase one always captures an EPC label and certificate URL pair. Phase two
    applies the header mapping (if any), then either short-circuits on an
    explicit target marker, taking the address from the text that follows
    it, or falls back to classifying the remaining cells by their shape.
    Returns None when nothing usable was found.
    """
    record = CanonicalRecord()
    record.meta.source_row = row.index
    used: set[int] = set()

    capture = find_certificate_capture(row)
    if capture is not None:
        record.epc_certificate_url = capture.url
        used.update((capture.label_col, capture.url_col))

    marker_col: int | None = None
    marker = None
    for col, cell in row.non_empty_cells():
        if col in used:
            continue
        marker = find_target_marker(cell)
        if marker is not None:
            marker_col = col
            break

    if mapping:
        for col in sorted(mapping):
            if col in used or col == marker_col:
                continue
            cell = row.cell(col).strip()
            if not cell:
                continue
            # A bare "1" is left for the late-column target heuristic.
            if cell == "1" and mapping[col] != FIELD_IS_TARGET:
                continue
            if assign_cell(record, mapping[col], cell):
                used.add(col)

    if marker is not None and marker_col is not None:
        used.add(marker_col)
        _apply_marker(record, _trailing_text(row, marker_col, marker.remainder, used))
        return clean_record(record)

    _apply_shapes(record, row, used)
    if not _record_has_content(record):
        return None
    return clean_record(record)
