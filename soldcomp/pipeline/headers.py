"""Locate the header row of a human-edited sheet and map its columns.

Sheets arrive with title rows, notes and target markers above the real header,
and with column names that vary from file to file. Every cell in the first
rows is compared against a fixed synonym table; the row that maps the most
core columns (date, address, postcode, price) is taken as the header.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from soldcomp.common.constants import HEADER_SCAN_ROWS
from soldcomp.common.fuzzy import similarity
from soldcomp.common.models import (
    CORE_FIELDS,
    FIELD_ADDRESS,
    FIELD_AGE,
    FIELD_BEDROOMS,
    FIELD_DISTANCE,
    FIELD_EPC_CERTIFICATE,
    FIELD_EPC_RATING,
    FIELD_IMAGE_URL,
    FIELD_IS_TARGET,
    FIELD_LATITUDE,
    FIELD_LONGITUDE,
    FIELD_NEEDS_REVIEW,
    FIELD_POSTCODE,
    FIELD_PRICE,
    FIELD_PRICE_PER_SQFT,
    FIELD_PROPERTY_TYPE,
    FIELD_RANKING,
    FIELD_SALE_DATE,
    FIELD_SQFT,
    FIELD_SQM,
    FIELD_STREETVIEW_URL,
    FIELD_TENURE,
    FIELD_URL,
    HeaderMapping,
    RawRow,
)

FIELD_URL_RIGHTMOVE = "url_rightmove"
FIELD_URL_PROPERTYDATA = "url_propertydata"

FUZZY_ACCEPT_THRESHOLD = 70
MIN_CORE_MATCHES = 2

# Order matters: a synonym that is a substring of a more specific one must come
# after it, so "£/sqft" is tried before "sqft" and "url_rightmove" before "url".
HEADER_SYNONYMS: tuple[tuple[str, tuple[str, ...]], ...] = (
    (FIELD_PRICE_PER_SQFT, ("£/sqft", "£ per sqft", "price per sqft", "per sqft", "price/sqft")),
    (FIELD_SALE_DATE, ("date of sale", "sale date", "sold date", "transaction date", "date")),
    (FIELD_ADDRESS, ("address", "full address", "property address", "street address")),
    (FIELD_POSTCODE, ("postcode", "post code", "postal code", "zip")),
    (FIELD_PROPERTY_TYPE, ("type", "property type", "house type")),
    (FIELD_TENURE, ("tenure", "freehold", "leasehold")),
    (FIELD_AGE, ("age at sale", "age", "property age", "years old")),
    (FIELD_PRICE, ("price", "sale price", "sold price", "amount")),
    (FIELD_SQFT, ("sq. ft", "sq ft", "sqft", "sq.ft", "square feet", "square ft")),
    (FIELD_SQM, ("sqm", "sq m", "sq. m", "square meters", "square metres")),
    (FIELD_BEDROOMS, ("bedrooms", "beds", "bedroom", "bed")),
    (FIELD_DISTANCE, ("distance", "distance from target")),
    (FIELD_LATITUDE, ("latitude", "lat")),
    (FIELD_LONGITUDE, ("longitude", "lng", "long")),
    (FIELD_URL_RIGHTMOVE, ("url_rightmove", "rightmove url")),
    (FIELD_URL_PROPERTYDATA, ("url_propertydata", "propertydata url")),
    (FIELD_EPC_CERTIFICATE, ("epc certificate", "epc cert", "epc link", "epc url", "energy certificate")),
    (FIELD_EPC_RATING, ("epc rating", "epc", "energy rating", "energy performance")),
    (FIELD_STREETVIEW_URL, ("google streetview url", "google streetview", "streetview", "street view")),
    (FIELD_IMAGE_URL, ("image_url", "image url", "image", "photo", "picture")),
    (FIELD_URL, ("url", "link", "web link", "listing url")),
    (FIELD_IS_TARGET, ("istarget", "is target", "target")),
    (FIELD_RANKING, ("ranking", "rank", "score")),
    (FIELD_NEEDS_REVIEW, ("needs_review", "needs review", "review", "flag")),
)


@dataclass(frozen=True)
class CellMatch:
    field: str
    synonym: str
    score: int


@dataclass
class RowAssessment:
    row_index: int
    mapping: HeaderMapping
    matches: dict[int, CellMatch]
    core_matches: int

    @property
    def score(self) -> int:
        return len(self.mapping) + 2 * self.core_matches

    @property
    def eligible(self) -> bool:
        return self.core_matches >= MIN_CORE_MATCHES


@dataclass
class HeaderDetection:
    mapping: HeaderMapping
    header_row_index: int
    score: int
    core_matches: int
    fallback: bool = False
    warnings: list[dict] = field(default_factory=list)


def match_header_cell(cell: str) -> CellMatch | None:
    """Best synonym for one header cell, or None below the fuzzy threshold."""
    value = cell.strip().lower()
    if not value:
        return None

    best: CellMatch | None = None
    for canonical, synonyms in HEADER_SYNONYMS:
        for synonym in synonyms:
            if value == synonym:
                return CellMatch(field=canonical, synonym=synonym, score=100)
            score = similarity(value, synonym)
            if score > FUZZY_ACCEPT_THRESHOLD and (best is None or score > best.score):
                best = CellMatch(field=canonical, synonym=synonym, score=score)
    return best


def assess_row(row: RawRow) -> RowAssessment:
    mapping: HeaderMapping = {}
    matches: dict[int, CellMatch] = {}
    core_matches = 0
    for col, cell in row.non_empty_cells():
        match = match_header_cell(cell)
        if match is None:
            continue
        mapping[col] = match.field
        matches[col] = match
        if match.field in CORE_FIELDS:
            core_matches += 1
    return RowAssessment(row_index=row.index, mapping=mapping, matches=matches, core_matches=core_matches)


def detect_header(rows: Sequence[RawRow], *, scan_rows: int = HEADER_SCAN_ROWS) -> HeaderDetection:
    """Pick the header row among the first ``scan_rows`` rows.

    Only rows with at least two core-column matches are eligible; the highest
    score wins and earlier rows win ties. When nothing is eligible the first
    row is used with whatever partial mapping it yields.
    """
    window = list(rows[:scan_rows])
    if not window:
        return HeaderDetection(
            mapping={},
            header_row_index=0,
            score=0,
            core_matches=0,
            fallback=True,
            warnings=[{"error_code": "HEADER_AMBIGUITY", "message": "no rows to scan for a header"}],
        )

    best: RowAssessment | None = None
    for row in window:
        assessment = assess_row(row)
        if not assessment.eligible:
            continue
        if best is None or assessment.score > best.score:
            best = assessment

    if best is not None:
        return HeaderDetection(
            mapping=best.mapping,
            header_row_index=best.row_index,
            score=best.score,
            core_matches=best.core_matches,
        )

    first = assess_row(window[0])
    return HeaderDetection(
        mapping=first.mapping,
        header_row_index=window[0].index,
        score=first.score,
        core_matches=first.core_matches,
        fallback=True,
        warnings=[
            {
                "error_code": "HEADER_AMBIGUITY",
                "message": (
                    f"no row in the first {len(window)} reached {MIN_CORE_MATCHES} core columns; "
                    f"using row {window[0].index} with {len(first.mapping)} mapped columns"
                ),
            }
        ],
    )
