"""Data models used across the pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any

NON_INFORMATIVE_TEXT = {"", "nan", "-"}

# Canonical field identifiers; header synonyms, merges and the output
# contract all key on these names.
FIELD_SALE_DATE = "sale_date"
FIELD_ADDRESS = "address"
FIELD_POSTCODE = "postcode"
FIELD_PROPERTY_TYPE = "property_type"
FIELD_TENURE = "tenure"
FIELD_AGE = "age_at_sale"
FIELD_PRICE = "price"
FIELD_SQFT = "floor_area_sqft"
FIELD_SQM = "floor_area_sqm"
FIELD_PRICE_PER_SQFT = "price_per_sqft"
FIELD_BEDROOMS = "bedrooms"
FIELD_DISTANCE = "distance"
FIELD_LATITUDE = "latitude"
FIELD_LONGITUDE = "longitude"
FIELD_URL = "url"
FIELD_IMAGE_URL = "image_url"
FIELD_EPC_RATING = "epc_rating"
FIELD_EPC_CERTIFICATE = "epc_certificate_url"
FIELD_STREETVIEW_URL = "streetview_url"
FIELD_IS_TARGET = "is_target"
FIELD_RANKING = "ranking"
FIELD_NEEDS_REVIEW = "needs_review"

CORE_FIELDS = frozenset({FIELD_SALE_DATE, FIELD_ADDRESS, FIELD_POSTCODE, FIELD_PRICE})
URL_FIELDS = frozenset({FIELD_URL, FIELD_IMAGE_URL, FIELD_EPC_CERTIFICATE, FIELD_STREETVIEW_URL})
NUMERIC_FIELDS = frozenset(
    {
        FIELD_AGE,
        FIELD_PRICE,
        FIELD_SQFT,
        FIELD_SQM,
        FIELD_PRICE_PER_SQFT,
        FIELD_BEDROOMS,
        FIELD_LATITUDE,
        FIELD_LONGITUDE,
    }
)


def has_value(value: Any) -> bool:
    """True when a field value carries information ("", "nan", "-", 0 do not)."""
    if value is None or value is False:
        return False
    if isinstance(value, str):
        return value.strip().lower() not in NON_INFORMATIVE_TEXT
    if isinstance(value, (int, float)):
        return value == value and value != 0
    if isinstance(value, (dict, list, set, tuple)):
        return bool(value)
    return True


@dataclass(frozen=True)
class RawRow:
    index: int
    cells: tuple[str, ...]

    def non_empty_cells(self) -> list[tuple[int, str]]:
        return [(col, cell) for col, cell in enumerate(self.cells) if cell.strip()]

    def cell(self, col: int) -> str:
        if col < len(self.cells):
            return self.cells[col]
        return ""


HeaderMapping = dict[int, str]


@dataclass(frozen=True)
class FloorAreaConflict:
    value1: float
    value2: float
    field: str


@dataclass
class RecordMeta:
    scrape_error: str | None = None
    manually_edited: set[str] = field(default_factory=set)
    floor_area_conflict: FloorAreaConflict | None = None
    is_synthetic: bool = False
    source: str | None = None
    url_only: bool = False
    distance_miles: float | None = None
    days_since_sale: int | None = None
    source_row: int | None = None


@dataclass
class CanonicalRecord:
    address: str = ""
    postcode: str = ""
    sale_date: str = ""
    property_type: str = ""
    tenure: str = ""
    age_at_sale: float | None = None
    price: float | None = None
    floor_area_sqft: float | None = None
    floor_area_sqm: float | None = None
    price_per_sqft: float | None = None
    bedrooms: float | None = None
    distance: str = ""
    latitude: float | None = None
    longitude: float | None = None
    url: str = ""
    secondary_urls: dict[str, str] = field(default_factory=dict)
    image_url: str = ""
    epc_rating: str = ""
    epc_certificate_url: str = ""
    streetview_url: str = ""
    is_target: bool = False
    ranking: int | None = None
    needs_review: str = ""
    meta: RecordMeta = field(default_factory=RecordMeta)

    def label(self) -> str:
        if self.address:
            return f"{self.address}, {self.postcode}".rstrip(", ")
        return self.url or "<no address>"

    def flag_review(self, reason: str) -> None:
        if not reason:
            return
        reasons = [part for part in self.needs_review.split("; ") if part]
        if reason not in reasons:
            reasons.append(reason)
        self.needs_review = "; ".join(reasons)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["meta"]["manually_edited"] = sorted(self.meta.manually_edited)
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "CanonicalRecord":
        data = dict(payload)
        meta_payload = dict(data.pop("meta", None) or {})
        conflict = meta_payload.pop("floor_area_conflict", None)
        meta_payload["manually_edited"] = set(meta_payload.get("manually_edited") or [])
        meta = RecordMeta(
            floor_area_conflict=FloorAreaConflict(**conflict) if conflict else None,
            **{key: value for key, value in meta_payload.items() if key in _META_FIELD_NAMES},
        )
        known = {key: value for key, value in data.items() if key in RECORD_FIELD_NAMES}
        return cls(meta=meta, **known)


RECORD_FIELD_NAMES = tuple(f.name for f in fields(CanonicalRecord) if f.name != "meta")
_META_FIELD_NAMES = frozenset(f.name for f in fields(RecordMeta)) - {"floor_area_conflict"}


@dataclass(frozen=True)
class CandidateRecord:
    """One registry entry returned by a certificate lookup."""

    address: str
    rating: str | None = None
    floor_area: float | None = None
    identifier: str | None = None
    postcode: str | None = None
    certificate_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
