from soldcomp.common.models import CanonicalRecord
from soldcomp.pipeline.manual_edits import (
    can_update_field,
    detect_manual_edits,
    has_been_processed,
    mark_manually_edited,
)

OLD_CERT = "https://find-energy-certificate.service.gov.uk/energy-certificate/0000-1111"
NEW_CERT = "https://find-energy-certificate.service.gov.uk/energy-certificate/2222-3333"


def _processed(**fields):
    return CanonicalRecord(distance="0.4mi", **fields)


def test_fresh_sheet_is_not_processed():
    assert has_been_processed(CanonicalRecord(address="1 Elm Close")) is False
    assert has_been_processed(_processed()) is True
    assert has_been_processed(CanonicalRecord(latitude=53.5, longitude=-1.0)) is True


def test_nothing_is_marked_on_unprocessed_record():
    record = CanonicalRecord(epc_certificate_url=OLD_CERT)
    fresh = CanonicalRecord(epc_certificate_url=NEW_CERT)

    assert detect_manual_edits(record, fresh) == set()
    assert can_update_field(record, "epc_certificate_url") is True


def test_differing_certificate_is_protected():
    record = _processed(epc_certificate_url=OLD_CERT)

    marked = detect_manual_edits(record, CanonicalRecord(epc_certificate_url=NEW_CERT))

    assert marked == {"epc_certificate_url"}
    assert can_update_field(record, "epc_certificate_url") is False


def test_same_certificate_ignoring_case_is_not_an_edit():
    record = _processed(epc_certificate_url=OLD_CERT.upper())
    assert detect_manual_edits(record, CanonicalRecord(epc_certificate_url=OLD_CERT)) == set()


def test_floor_area_beyond_five_percent_marks_sqft_and_sqm():
    record = _processed(floor_area_sqft=1200.0, floor_area_sqm=111.5)

    marked = detect_manual_edits(record, CanonicalRecord(floor_area_sqft=1000.0))

    assert marked == {"floor_area_sqft", "floor_area_sqm"}


def test_floor_area_within_five_percent_is_not_an_edit():
    record = _processed(floor_area_sqft=1040.0)
    assert detect_manual_edits(record, CanonicalRecord(floor_area_sqft=1000.0)) == set()


def test_text_fields_compared_after_normalising():
    record = _processed(address="1  Elm Close", postcode="dn9 3pt")
    fresh = CanonicalRecord(address="1 elm close", postcode="DN93PT")
    assert detect_manual_edits(record, fresh) == set()

    record = _processed(address="1 Elm Close", price=150000.0)
    marked = detect_manual_edits(record, CanonicalRecord(address="3 Elm Close", price=155000.0))
    assert marked == {"address", "price"}


def test_only_protected_fields_can_be_marked():
    record = CanonicalRecord()
    assert mark_manually_edited(record, "distance") is False
    assert mark_manually_edited(record, "tenure") is True
    assert record.meta.manually_edited == {"tenure"}


def test_no_fresh_data_marks_nothing():
    assert detect_manual_edits(_processed(price=1.0), None) == set()
