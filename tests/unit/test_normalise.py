from soldcomp.common.models import CanonicalRecord, RawRow
from soldcomp.pipeline.headers import detect_header
from soldcomp.pipeline.normalise import (
    URL_ONLY_REVIEW,
    assign_cell,
    clean_record,
    normalise_rows,
    parse_number,
    recover_pre_header_record,
    unwrap_hyperlink,
)

CERT_URL = "https://find-energy-certificate.service.gov.uk/energy-certificate/1234-5678-9012-3456-7890"


def _rows(*cells_per_row):
    return [RawRow(index=i, cells=tuple(cells)) for i, cells in enumerate(cells_per_row)]


def test_normalise_rows_keeps_pre_header_rows_and_skips_empty_rows():
    rows = _rows(
        ("Comparables", "", "", ""),
        ("Address", "Postcode", "Price", "URL"),
        ("14 Oak Road", "DN9 3PT", "£180,000", ""),
        ("", "", "", ""),
    )

    table = normalise_rows(rows, detect_header(rows))

    assert [row.index for row in table.pre_header_rows] == [0]
    assert len(table.records) == 1
    record = table.records[0]
    assert record.address == "14 Oak Road"
    assert record.price == 180000.0
    assert record.meta.source_row == 2


def test_url_only_row_becomes_flagged_url_record():
    rows = _rows(
        ("Address", "Postcode", "Price", "URL"),
        ("https://www.rightmove.co.uk/properties/123456", "", "", ""),
    )

    table = normalise_rows(rows, detect_header(rows))

    record = table.records[0]
    assert record.url == "https://www.rightmove.co.uk/properties/123456"
    assert record.address == ""
    assert record.meta.url_only is True
    assert record.needs_review == URL_ONLY_REVIEW


def test_row_with_values_only_in_unmapped_columns_is_reported():
    rows = _rows(
        ("Address", "Postcode", "Price", ""),
        ("", "", "", "stray note"),
    )

    table = normalise_rows(rows, detect_header(rows))

    assert table.records == []
    assert [w["error_code"] for w in table.warnings] == ["UNMAPPED_ROW"]


def test_url_in_non_url_field_is_redirected():
    record = CanonicalRecord()
    assert assign_cell(record, "address", "https://example.com/listing/1") is True
    assert record.url == "https://example.com/listing/1"
    assert record.address == ""


def test_link_text_never_overwrites_a_real_url():
    record = CanonicalRecord()
    assign_cell(record, "url", "https://example.com/listing/1")
    assert assign_cell(record, "url", "View") is False
    assert record.url == "https://example.com/listing/1"


def test_first_non_empty_value_wins_for_ordinary_fields():
    record = CanonicalRecord()
    assign_cell(record, "tenure", "Freehold")
    assign_cell(record, "tenure", "Leasehold")
    assert record.tenure == "Freehold"


def test_numeric_parse_failure_leaves_field_unset_with_warning():
    record = CanonicalRecord()
    warnings = []

    assign_cell(record, "price", "n/a", warnings=warnings, row_index=4)

    assert record.price is None
    assert warnings[0]["error_code"] == "FIELD_PARSE"
    assert warnings[0]["field"] == "price"
    assert warnings[0]["record"] == 4


def test_parse_number_strips_currency_and_punctuation():
    assert parse_number("price", "£250,000") == 250000.0
    assert parse_number("floor_area_sqft", "1,200 sq ft") == 1200.0
    assert parse_number("bedrooms", "3 beds") == 3.0
    assert parse_number("price", "") is None


def test_parse_number_takes_first_numeric_token():
    assert parse_number("floor_area_sqft", "Approx. 1200") == 1200.0
    assert parse_number("bedrooms", "approx. 3") == 3.0
    assert parse_number("floor_area_sqm", "c. 92.9 sqm") == 92.9
    assert parse_number("bedrooms", "unknown") is None


def test_unparseable_area_warns_instead_of_guessing():
    record = CanonicalRecord()
    warnings = []

    assign_cell(record, "floor_area_sqft", "approx.", warnings=warnings, row_index=5)

    assert record.floor_area_sqft is None
    assert warnings[0]["error_code"] == "FIELD_PARSE"


def test_secondary_url_columns_fill_secondary_urls():
    record = CanonicalRecord()
    assign_cell(record, "url_rightmove", "https://www.rightmove.co.uk/properties/1")
    assign_cell(record, "url_propertydata", "https://propertydata.co.uk/transaction/2")

    assert record.secondary_urls == {
        "rightmove": "https://www.rightmove.co.uk/properties/1",
        "propertydata": "https://propertydata.co.uk/transaction/2",
    }
    assert record.url == "https://www.rightmove.co.uk/properties/1"


def test_unwrap_hyperlink_formula():
    assert unwrap_hyperlink('=HYPERLINK("https://a.test/x", "View")') == "https://a.test/x"
    assert unwrap_hyperlink("plain text") == "plain text"


def test_clean_record_extracts_postcode_and_derives_areas():
    record = CanonicalRecord(
        address="12 High Street, Doncaster DN4 5AB",
        price=200000.0,
        floor_area_sqft=1000.0,
    )

    clean_record(record)

    assert record.postcode == "DN4 5AB"
    assert record.address == "12 High Street, Doncaster"
    assert record.floor_area_sqm == 92.9
    assert record.price_per_sqft == 200.0


def test_clean_record_derives_sqft_from_sqm():
    record = clean_record(CanonicalRecord(postcode=" dn4  5ab ", floor_area_sqm=100.0))
    assert record.postcode == "DN4 5AB"
    assert record.floor_area_sqft == 1076.0


def test_pre_header_row_with_late_flag_is_recovered_as_target():
    row = RawRow(index=0, cells=("", "7 Fernbank Close", "DN9 3PT", "", "", "", "", "1", ""))

    record = recover_pre_header_record(row)

    assert record is not None
    assert record.address == "7 Fernbank Close"
    assert record.postcode == "DN9 3PT"
    assert record.is_target is True


def test_pre_header_marker_takes_address_from_trailing_text():
    row = RawRow(index=0, cells=("TARGET = 7 Fernbank Close, DN9 3PT", "", ""))

    record = recover_pre_header_record(row)

    assert record.is_target is True
    assert record.address == "7 Fernbank Close"
    assert record.postcode == "DN9 3PT"


def test_pre_header_certificate_survives_marker_short_circuit():
    row = RawRow(index=0, cells=("EPC", CERT_URL, "Target", "9 Oak Road", "DN9 3PT"))

    record = recover_pre_header_record(row)

    assert record.epc_certificate_url == CERT_URL
    assert record.is_target is True
    assert record.address == "9 Oak Road"
    assert record.postcode == "DN9 3PT"
    assert record.url == ""


def test_pre_header_row_with_nothing_usable_returns_none():
    assert recover_pre_header_record(RawRow(index=0, cells=("Notes", ""))) is None


def test_pre_header_mapping_leaves_bare_one_for_target_heuristic():
    mapping = {1: "address", 2: "postcode", 7: "bedrooms"}
    row = RawRow(index=1, cells=("", "7 Fernbank Close", "DN9 3PT", "", "", "", "", "1", ""))

    record = recover_pre_header_record(row, mapping)

    assert record.bedrooms is None
    assert record.is_target is True
