"""Enrichment orchestration with fail-soft semantics."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from soldcomp.common.models import CandidateRecord, CanonicalRecord
from soldcomp.enrich.epc_client import EpcCandidateSource, epc_search_url
from soldcomp.enrich.geocoder import Geocoder
from soldcomp.pipeline.disambiguate import choose_candidate
from soldcomp.pipeline.enrich import (
    apply_distance,
    apply_epc_match,
    apply_geocode,
    epc_lookup_record,
    finalize_record,
    is_epc_lookup_row,
)


@dataclass
class EnrichmentResult:
    records: list[CanonicalRecord]
    warnings: list[dict] = field(default_factory=list)
    failed_sources: list[str] = field(default_factory=list)
    stats: dict = field(default_factory=dict)


def _failure_warning(source: str, record: CanonicalRecord, exc: Exception) -> dict:
    return {
        "error_code": getattr(exc, "error_code", "ENRICH_ERROR"),
        "record": record.label(),
        "message": f"{source} failed: {exc}",
    }


def _geocode_all(records: list[CanonicalRecord], geocoder: Geocoder, result: EnrichmentResult) -> None:
    attempts = failures = 0
    for record in records:
        if not record.address or not record.postcode:
            continue
        attempts += 1
        try:
            point = geocoder.geocode(record.address, record.postcode)
        except Exception as exc:
            failures += 1
            result.warnings.append(_failure_warning("geocoding", record, exc))
            continue
        if point is None:
            result.warnings.append(
                {
                    "error_code": "GEOCODE_MISS",
                    "record": record.label(),
                    "message": f"no coordinates ({geocoder.last_status or 'no status'})",
                }
            )
            continue
        apply_geocode(record, point.lat, point.lng)
    result.stats["geocode_attempts"] = attempts
    if attempts and failures == attempts:
        result.failed_sources.append("geocoding")


def _match_certificates(
    records: list[CanonicalRecord],
    epc_source: EpcCandidateSource,
    result: EnrichmentResult,
) -> None:
    cache: dict[str, list[CandidateRecord] | None] = {}
    attempts = failures = matched = 0
    for record in records:
        if not record.address or not record.postcode:
            continue
        if record.postcode not in cache:
            attempts += 1
            try:
                candidates = epc_source.candidates_for_postcode(record.postcode)
            except Exception as exc:
                failures += 1
                result.warnings.append(_failure_warning("EPC lookup", record, exc))
                candidates = None
            else:
                if epc_source.last_error:
                    failures += 1
                    result.warnings.append(
                        {"error_code": "HTTP_ERROR", "record": record.label(), "message": epc_source.last_error}
                    )
                    candidates = None
            cache[record.postcode] = candidates

        candidates = cache[record.postcode]
        if candidates is None:
            continue
        match = choose_candidate(record.address, candidates, record.floor_area_sqm)
        note = apply_epc_match(record, match)
        if note:
            result.warnings.append({"error_code": f"EPC_{match.status}", "record": record.label(), "message": note})
        else:
            matched += 1
    result.stats["epc_lookups"] = attempts
    result.stats["epc_matched"] = matched
    if attempts and failures == attempts:
        result.failed_sources.append("epc")


def run_enrichment(
    records: Sequence[CanonicalRecord],
    *,
    geocoder: Geocoder | None,
    epc_source: EpcCandidateSource | None,
    epc_search_base_url: str,
) -> EnrichmentResult:
    """Geocode, measure distances, attach certificates and add the lookup row.

    A collaborator that is missing or unconfigured is skipped; one that fails
    only costs the affected records their enrichment.
    """
    kept = [r for r in records if not (r.meta.is_synthetic or is_epc_lookup_row(r))]
    result = EnrichmentResult(records=kept)
    target = next((r for r in kept if r.is_target), None)
    properties = [r for r in kept if not r.meta.url_only]

    if geocoder is not None and geocoder.configured:
        _geocode_all(properties, geocoder, result)
        for record in properties:
            apply_distance(record, target)
    else:
        result.stats["geocode_attempts"] = 0

    if epc_source is not None and epc_source.configured:
        _match_certificates(properties, epc_source, result)
    else:
        result.stats["epc_lookups"] = 0

    for record in kept:
        finalize_record(record)

    if target is not None and target.postcode:
        kept.insert(0, epc_lookup_record(target.postcode, epc_search_url(epc_search_base_url, target.postcode)))
    return result
