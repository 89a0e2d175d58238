from datetime import date

import pytest

from soldcomp.common.models import CanonicalRecord
from soldcomp.pipeline.dates import days_since, parse_sale_date, standardise_sale_date
from soldcomp.pipeline.ranking import bedrooms_score, floor_area_score, rank_comparables

PROFILE = {
    "weights": {"floor_area": 0.40, "proximity": 0.30, "bedrooms": 0.20, "recency": 0.10},
    "clamp": {"min": 0, "max": 100},
}


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("05/03/2024", date(2024, 3, 5)),
        ("5-Mar-24", date(2024, 3, 5)),
        ("12 March 1999", date(1999, 3, 12)),
        ("1-Jan-75", date(1975, 1, 1)),
        ("2024-03-05", date(2024, 3, 5)),
        ("2024-03-05T00:00:00", date(2024, 3, 5)),
        ("05-03-2024", date(2024, 3, 5)),
        ("31/02/2024", None),
        ("soon", None),
        ("", None),
    ],
)
def test_parse_sale_date(text, expected):
    assert parse_sale_date(text) == expected


def test_standardise_and_days_since():
    assert standardise_sale_date("2024-03-05") == "05/03/2024"
    assert standardise_sale_date("unknown") is None
    assert days_since("01/03/2024", date(2024, 3, 11)) == 10
    assert days_since(None, date(2024, 3, 11)) is None


def test_component_scores():
    target = CanonicalRecord(floor_area_sqft=1000.0, bedrooms=3.0)
    assert floor_area_score(CanonicalRecord(floor_area_sqft=1100.0), target) == pytest.approx(90.0)
    assert bedrooms_score(CanonicalRecord(bedrooms=4.0), target) == 50.0
    assert bedrooms_score(CanonicalRecord(bedrooms=5.0), target) == 0.0
    assert floor_area_score(CanonicalRecord(floor_area_sqft=1100.0), None) is None


def test_rank_comparables_orders_closest_match_first():
    target = CanonicalRecord(address="7 Fernbank Close", floor_area_sqft=1000.0, bedrooms=3.0, is_target=True)
    near = CanonicalRecord(address="1 Elm Close", floor_area_sqft=1000.0, bedrooms=3.0, sale_date="01/01/2024")
    near.meta.distance_miles = 0.5
    far = CanonicalRecord(address="9 Oak Road", floor_area_sqft=1500.0, bedrooms=5.0, sale_date="01/01/2020")
    far.meta.distance_miles = 2.0

    result = rank_comparables([far, near], target, PROFILE, reference_date=date(2024, 6, 1))

    assert result.records == [near, far]
    assert near.ranking == 92
    assert far.ranking == 20
    assert near.meta.days_since_sale == 152
    assert len(result.explanations) == 2


def test_rank_without_target_reports_missing_components():
    record = CanonicalRecord(address="1 Elm Close", sale_date="01/01/2024")

    result = rank_comparables([record], None, PROFILE, reference_date=date(2024, 6, 1))

    explanation = result.explanations[0]
    assert set(explanation["missing_components"]) == {"floor_area", "proximity", "bedrooms"}
    assert record.ranking == 0


def test_rank_is_stable_on_ties():
    first = CanonicalRecord(address="1 Elm Close")
    second = CanonicalRecord(address="2 Elm Close")

    result = rank_comparables([first, second], None, PROFILE, reference_date=date(2024, 6, 1))

    assert result.records == [first, second]
