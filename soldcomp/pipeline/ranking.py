"""Rank comparables by how closely they resemble the target property."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Sequence

from soldcomp.common.models import CanonicalRecord
from soldcomp.common.scoring import apply_weighting_profile
from soldcomp.pipeline.dates import days_since


def floor_area_score(record: CanonicalRecord, target: CanonicalRecord | None) -> float | None:
    if target is None or not record.floor_area_sqft or not target.floor_area_sqft:
        return None
    percent_diff = abs(record.floor_area_sqft - target.floor_area_sqft) / target.floor_area_sqft * 100
    return max(0.0, 100 - percent_diff)


def proximity_score(record: CanonicalRecord, max_distance: float) -> float | None:
    distance = record.meta.distance_miles
    if distance is None:
        return None
    if max_distance == 0:
        return 100.0
    return max(0.0, 100 - distance / max_distance * 100)


def bedrooms_score(record: CanonicalRecord, target: CanonicalRecord | None) -> float | None:
    if target is None or record.bedrooms is None or target.bedrooms is None:
        return None
    difference = abs(int(record.bedrooms) - int(target.bedrooms))
    if difference == 0:
        return 100.0
    if difference == 1:
        return 50.0
    return 0.0


def recency_score(record: CanonicalRecord, max_days: int) -> float | None:
    days = record.meta.days_since_sale
    if days is None:
        return None
    if max_days == 0:
        return 100.0
    return max(0.0, 100 - days / max_days * 100)


@dataclass
class RankResult:
    records: list[CanonicalRecord]
    explanations: list[dict] = field(default_factory=list)


def rank_comparables(
    comparables: Sequence[CanonicalRecord],
    target: CanonicalRecord | None,
    profile: dict,
    *,
    reference_date: date,
) -> RankResult:
    """Score every comparable 0-100 and sort best first (stable on ties).

    Distance and recency are scaled against the furthest and oldest sale in
    the set, so scores are only comparable within one run.
    """
    for record in comparables:
        record.meta.days_since_sale = days_since(record.sale_date, reference_date)

    distances = [r.meta.distance_miles for r in comparables if r.meta.distance_miles is not None]
    ages = [r.meta.days_since_sale for r in comparables if r.meta.days_since_sale is not None]
    max_distance = max(distances, default=0.0)
    max_days = max(ages, default=0)

    explanations = []
    for record in comparables:
        components = {
            "floor_area": floor_area_score(record, target),
            "proximity": proximity_score(record, max_distance),
            "bedrooms": bedrooms_score(record, target),
            "recency": recency_score(record, max_days),
        }
        score, explanation = apply_weighting_profile(profile, components)
        record.ranking = score
        explanation["record"] = record.label()
        explanations.append(explanation)

    ordered = sorted(comparables, key=lambda r: r.ranking or 0, reverse=True)
    return RankResult(records=ordered, explanations=explanations)
