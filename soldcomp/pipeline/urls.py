"""URL recognition, source classification and spreadsheet hyperlinks."""

from __future__ import annotations

from typing import Iterable
from urllib.parse import urlparse

from soldcomp.common.models import CanonicalRecord, has_value

URL_TYPE_RIGHTMOVE_POSTCODE_SEARCH = "rightmove_postcode_search"
URL_TYPE_RIGHTMOVE_SOLD_LISTING = "rightmove_sold_listing"
URL_TYPE_RIGHTMOVE_FORSALE_LISTING = "rightmove_forsale_listing"
URL_TYPE_PROPERTYDATA = "propertydata"
URL_TYPE_UNKNOWN = "unknown"

SOURCE_RIGHTMOVE = "rightmove"
SOURCE_PROPERTYDATA = "propertydata"

TAG_POSTCODE_SEARCH = "rightmove_postcode_search"
TAG_RIGHTMOVE_LISTING = "rightmove_individual_listing"
TAG_PROPERTYDATA_LISTING = "propertydata_listing"

CERTIFICATE_HOST_MARKERS = ("find-energy-certificate", "epc.opendatacommunities")


def is_url(value: object) -> bool:
    if not isinstance(value, str):
        return False
    text = value.strip()
    if not text or " " in text:
        return False
    parsed = urlparse(text)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_certificate_url(value: str) -> bool:
    lowered = value.lower()
    return is_url(value) and any(marker in lowered for marker in CERTIFICATE_HOST_MARKERS)


def classify_url(url: str) -> str:
    lowered = url.lower()

    if "rightmove.co.uk" in lowered:
        if "house-prices" in lowered:
            if "/details/" in lowered:
                return URL_TYPE_RIGHTMOVE_SOLD_LISTING
            if "radius" in lowered or "soldin" in lowered:
                return URL_TYPE_RIGHTMOVE_POSTCODE_SEARCH
        if "properties/" in lowered:
            if "sold" in lowered or "property-for-sale" in lowered:
                return URL_TYPE_RIGHTMOVE_SOLD_LISTING
            return URL_TYPE_RIGHTMOVE_FORSALE_LISTING

    if "propertydata.co.uk" in lowered:
        return URL_TYPE_PROPERTYDATA

    return URL_TYPE_UNKNOWN


def url_source(url: str | None) -> str | None:
    """Which distinguishable data source a listing URL belongs to."""
    if not url:
        return None
    lowered = url.lower()
    if "rightmove.co.uk" in lowered:
        return SOURCE_RIGHTMOVE
    if "propertydata.co.uk" in lowered:
        return SOURCE_PROPERTYDATA
    return None


def is_url_only(record: CanonicalRecord) -> bool:
    """Fewer than two descriptive fields filled: the row is mostly a link."""
    essentials = (record.postcode, record.price, record.property_type, record.tenure)
    filled = sum(1 for value in essentials if has_value(value))
    if has_value(record.address) and not is_url(record.address):
        filled += 1
    return filled < 2


_TAG_BY_TYPE = {
    URL_TYPE_RIGHTMOVE_POSTCODE_SEARCH: TAG_POSTCODE_SEARCH,
    URL_TYPE_RIGHTMOVE_SOLD_LISTING: TAG_RIGHTMOVE_LISTING,
    URL_TYPE_RIGHTMOVE_FORSALE_LISTING: TAG_RIGHTMOVE_LISTING,
    URL_TYPE_PROPERTYDATA: TAG_PROPERTYDATA_LISTING,
}


def tag_url_only_records(records: Iterable[CanonicalRecord]) -> list[dict]:
    """Tag link-only rows with the listing source they point at.

    The tag drives output ordering. Returns one warning per link-only row
    whose URL type is not recognised.
    """
    warnings: list[dict] = []
    for record in records:
        if record.meta.source or record.meta.is_synthetic:
            continue
        if not is_url(record.url) or not is_url_only(record):
            continue
        url_type = classify_url(record.url)
        tag = _TAG_BY_TYPE.get(url_type)
        if tag is None:
            warnings.append({"error_code": "UNKNOWN_URL_TYPE", "message": f"unknown URL type: {record.url}"})
            continue
        record.meta.source = tag
        record.meta.url_only = True
    return warnings


def hyperlink(url: str | None, text: str = "View") -> str:
    if not url:
        return ""
    escaped = url.replace('"', '""')
    return f'=HYPERLINK("{escaped}", "{text}")'
