"""Ordered comparables CSV export."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from soldcomp.common.constants import OUTPUT_HEADERS
from soldcomp.common.fs import write_csv
from soldcomp.common.models import CanonicalRecord
from soldcomp.pipeline.enrich import EPC_LOOKUP_SOURCE
from soldcomp.pipeline.urls import (
    SOURCE_PROPERTYDATA,
    SOURCE_RIGHTMOVE,
    TAG_POSTCODE_SEARCH,
    TAG_PROPERTYDATA_LISTING,
    TAG_RIGHTMOVE_LISTING,
    hyperlink,
)


def _number(value: float | int | None) -> str | float | int:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _serialize_record(record: CanonicalRecord) -> dict:
    link_text = "EPC Search" if record.meta.source == EPC_LOOKUP_SOURCE else "View"
    row = {
        "Date of sale": record.sale_date,
        "Address": record.address,
        "Postcode": record.postcode,
        "Type": record.property_type,
        "Tenure": record.tenure,
        "Age at sale": _number(record.age_at_sale),
        "Price": _number(record.price),
        "Sq. ft": _number(record.floor_area_sqft),
        "Sqm": _number(record.floor_area_sqm),
        "£/sqft": _number(record.price_per_sqft),
        "Bedrooms": _number(record.bedrooms),
        "Distance": record.distance,
        "Latitude": _number(record.latitude),
        "Longitude": _number(record.longitude),
        "URL": record.url,
        "Link": hyperlink(record.url, link_text),
        "URL_Rightmove": record.secondary_urls.get(SOURCE_RIGHTMOVE, ""),
        "URL_PropertyData": record.secondary_urls.get(SOURCE_PROPERTYDATA, ""),
        "Image_URL": record.image_url,
        "EPC rating": record.epc_rating,
        "EPC Certificate": record.epc_certificate_url,
        "Google Streetview URL": record.streetview_url,
        "Google Streetview Link": hyperlink(record.streetview_url),
        "isTarget": 1 if record.is_target else "",
        "Ranking": "" if record.ranking is None else record.ranking,
        "needs_review": record.needs_review,
    }
    return {key: row[key] for key in OUTPUT_HEADERS}


def order_for_output(records: Sequence[CanonicalRecord]) -> list[CanonicalRecord]:
    """Search links, EPC lookup, target, link-only listings, then comparables by rank."""
    sections: dict[str, list[CanonicalRecord]] = {
        TAG_POSTCODE_SEARCH: [],
        EPC_LOOKUP_SOURCE: [],
        "target": [],
        TAG_RIGHTMOVE_LISTING: [],
        TAG_PROPERTYDATA_LISTING: [],
    }
    comparables: list[CanonicalRecord] = []
    for record in records:
        if record.is_target:
            sections["target"].append(record)
        elif record.meta.source in sections:
            sections[record.meta.source].append(record)
        else:
            comparables.append(record)

    comparables.sort(key=lambda r: r.ranking if r.ranking is not None else -1, reverse=True)
    ordered: list[CanonicalRecord] = []
    for section in sections.values():
        ordered.extend(section)
    ordered.extend(comparables)
    return ordered


def write_output_csv(path: Path, records: Sequence[CanonicalRecord]) -> Path:
    rows = [_serialize_record(record) for record in order_for_output(records)]
    write_csv(path, OUTPUT_HEADERS, rows)
    return path
