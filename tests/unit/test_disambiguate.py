from soldcomp.common.models import CandidateRecord
from soldcomp.pipeline.disambiguate import (
    PATTERN_FLAT,
    PATTERN_PROPERTY_NAME,
    PATTERN_RANGE,
    STATUS_AMBIGUOUS,
    STATUS_MATCHED,
    STATUS_NO_CANDIDATES,
    STATUS_NO_HOUSE_NUMBER,
    STATUS_NO_MATCH,
    choose_candidate,
    extract_house_number,
    floor_area_bonus,
    street_portion,
)


def test_letter_suffix_is_read_as_flat():
    number = extract_house_number("32a Summerfields Drive")
    assert (number.primary, number.flat) == ("32", "a")


def test_flat_prefix():
    number = extract_house_number("Flat 1, 32 Summerfields Drive")
    assert (number.primary, number.flat) == ("32", "1")
    assert number.pattern == PATTERN_FLAT


def test_named_house_without_number_has_no_primary():
    assert extract_house_number("Pembroke House, Blakewood Drive").primary is None


def test_property_name_before_number():
    number = extract_house_number("Spen Lea, 317 Wharf Road")
    assert number.primary == "317"
    assert number.pattern == PATTERN_PROPERTY_NAME


def test_number_range():
    number = extract_house_number("12-14 High Street")
    assert number.primary == "12"
    assert number.has_range is True
    assert number.range_to == "14"
    assert number.pattern == PATTERN_RANGE


def test_street_portion_drops_house_number():
    assert street_portion("32 Summerfields Drive, Blaxton") == "summerfields drive"


def test_floor_area_bonus_bands():
    assert floor_area_bonus(226.0, 226.0) == 3.0
    assert floor_area_bonus(226.0, 228.0) == 2.0
    assert floor_area_bonus(226.0, 231.0) == 1.0
    assert floor_area_bonus(226.0, 232.0) == 0.0
    assert floor_area_bonus(None, 232.0) == 0.0


def test_floor_area_breaks_tie_between_same_address_certificates():
    older = CandidateRecord(address="317 Wharf Road", rating="F", floor_area=228.0)
    newer = CandidateRecord(address="317 Wharf Road", rating="E", floor_area=226.0)

    match = choose_candidate("317 Wharf Road", [older, newer], known_floor_area=226.0)

    assert match.status == STATUS_MATCHED
    assert match.matched is newer
    assert match.score == 4.1


def test_no_candidate_with_same_house_number():
    candidates = [
        CandidateRecord(address="315 Wharf Road", rating="D"),
        CandidateRecord(address="319 Wharf Road", rating="C"),
    ]

    match = choose_candidate("317 Wharf Road", candidates)

    assert match.status == STATUS_NO_MATCH
    assert match.matched is None


def test_equal_scores_are_ambiguous():
    first = CandidateRecord(address="317 Wharf Road", rating="F")
    second = CandidateRecord(address="317 Wharf Road", rating="E")

    match = choose_candidate("317 Wharf Road", [first, second])

    assert match.status == STATUS_AMBIGUOUS
    assert match.candidate is first
    assert match.tied == (first, second)
    assert match.matched is None


def test_flat_designators_must_agree():
    flat_one = CandidateRecord(address="Flat 1, 10 Oak Road", rating="C")
    flat_two = CandidateRecord(address="Flat 2, 10 Oak Road", rating="B")

    match = choose_candidate("Flat 2, 10 Oak Road", [flat_one, flat_two])

    assert match.status == STATUS_MATCHED
    assert match.matched is flat_two


def test_street_must_be_similar_enough():
    match = choose_candidate("10 Oak Road", [CandidateRecord(address="10 Zyxwvut Mews")])
    assert match.status == STATUS_NO_MATCH


def test_empty_candidates_and_missing_house_number():
    assert choose_candidate("10 Oak Road", []).status == STATUS_NO_CANDIDATES
    candidates = [CandidateRecord(address="10 Oak Road")]
    assert choose_candidate("Pembroke House, Oak Road", candidates).status == STATUS_NO_HOUSE_NUMBER


def test_flat_without_street_number_has_no_primary():
    number = extract_house_number("Flat 12, Pembroke House")
    assert number.primary is None

    unit = extract_house_number("Apartment 3B 40 Quay Street")
    assert (unit.primary, unit.flat) == ("40", "3b")

    candidates = [CandidateRecord(address="2 Pembroke House")]
    assert choose_candidate("Flat 12, Pembroke House", candidates).status == STATUS_NO_HOUSE_NUMBER
