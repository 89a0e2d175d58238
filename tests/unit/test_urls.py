import pytest

from soldcomp.common.models import CanonicalRecord
from soldcomp.pipeline.urls import (
    TAG_POSTCODE_SEARCH,
    TAG_PROPERTYDATA_LISTING,
    TAG_RIGHTMOVE_LISTING,
    URL_TYPE_PROPERTYDATA,
    URL_TYPE_RIGHTMOVE_FORSALE_LISTING,
    URL_TYPE_RIGHTMOVE_POSTCODE_SEARCH,
    URL_TYPE_RIGHTMOVE_SOLD_LISTING,
    URL_TYPE_UNKNOWN,
    classify_url,
    hyperlink,
    is_certificate_url,
    is_url,
    tag_url_only_records,
    url_source,
)


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://www.rightmove.co.uk/house-prices/dn9-3pt.html?radius=0.5", URL_TYPE_RIGHTMOVE_POSTCODE_SEARCH),
        ("https://www.rightmove.co.uk/house-prices/details/abc-123", URL_TYPE_RIGHTMOVE_SOLD_LISTING),
        ("https://www.rightmove.co.uk/properties/123456#/?channel=RES_BUY", URL_TYPE_RIGHTMOVE_FORSALE_LISTING),
        ("https://www.rightmove.co.uk/properties/123456?sold=1", URL_TYPE_RIGHTMOVE_SOLD_LISTING),
        ("https://propertydata.co.uk/transaction/abc123", URL_TYPE_PROPERTYDATA),
        ("https://example.com/listing/1", URL_TYPE_UNKNOWN),
    ],
)
def test_classify_url(url, expected):
    assert classify_url(url) == expected


def test_is_url_requires_scheme_and_host():
    assert is_url("https://example.com")
    assert is_url(" http://example.com/a ")
    assert not is_url("www.example.com")
    assert not is_url("not a url")
    assert not is_url(None)


def test_certificate_and_source_detection():
    assert is_certificate_url("https://find-energy-certificate.service.gov.uk/energy-certificate/1234")
    assert not is_certificate_url("https://www.rightmove.co.uk/properties/1")
    assert url_source("https://www.rightmove.co.uk/properties/1") == "rightmove"
    assert url_source("https://propertydata.co.uk/x") == "propertydata"
    assert url_source("https://example.com") is None
    assert url_source(None) is None


def test_hyperlink_formula_escapes_quotes():
    assert hyperlink("https://a.test/x") == '=HYPERLINK("https://a.test/x", "View")'
    assert hyperlink('https://a.test/?q="x"', "EPC Search") == '=HYPERLINK("https://a.test/?q=""x""", "EPC Search")'
    assert hyperlink("") == ""


def test_tag_url_only_records():
    search = CanonicalRecord(url="https://www.rightmove.co.uk/house-prices/dn9-3pt.html?radius=0.5")
    listing = CanonicalRecord(url="https://www.rightmove.co.uk/properties/123456", postcode="DN9 3PT")
    pd_listing = CanonicalRecord(url="https://propertydata.co.uk/transaction/abc123")
    unknown = CanonicalRecord(url="https://example.com/listing/1")
    full = CanonicalRecord(
        address="14 Oak Road",
        postcode="DN9 3PT",
        price=180000.0,
        url="https://www.rightmove.co.uk/properties/999",
    )

    warnings = tag_url_only_records([search, listing, pd_listing, unknown, full])

    assert search.meta.source == TAG_POSTCODE_SEARCH
    assert listing.meta.source == TAG_RIGHTMOVE_LISTING
    assert listing.meta.url_only is True
    assert pd_listing.meta.source == TAG_PROPERTYDATA_LISTING
    assert unknown.meta.source is None
    assert full.meta.source is None
    assert [w["error_code"] for w in warnings] == ["UNKNOWN_URL_TYPE"]
