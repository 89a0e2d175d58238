"""Run report aggregation."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from soldcomp.common.fs import write_json
from soldcomp.common.models import CanonicalRecord


def summarise_records(records: Sequence[CanonicalRecord]) -> dict:
    properties = [r for r in records if not r.meta.is_synthetic]
    return {
        "records": len(properties),
        "synthetic_rows": len(records) - len(properties),
        "targets": sum(1 for r in properties if r.is_target),
        "needs_review": sum(1 for r in properties if r.needs_review),
        "url_only": sum(1 for r in properties if r.meta.url_only),
        "with_coordinates": sum(1 for r in properties if r.latitude is not None and r.longitude is not None),
        "with_epc_certificate": sum(1 for r in properties if r.epc_certificate_url),
        "ranked": sum(1 for r in properties if r.ranking is not None),
    }


def write_run_summary(
    path: Path,
    *,
    run_id: str,
    run_date: str,
    records: Sequence[CanonicalRecord],
    stage_reports: dict[str, dict],
    errors: list[str] | None = None,
) -> dict:
    warnings: list[dict] = []
    for stage, report in stage_reports.items():
        for warning in report.get("warnings", []):
            warnings.append({"stage": stage, **warning})
    errors = errors or []

    status = "success"
    if errors:
        status = "error"
    elif warnings or any(report.get("failed_sources") for report in stage_reports.values()):
        status = "partial"

    payload = {
        "run_id": run_id,
        "run_date": run_date,
        "status": status,
        "counts": summarise_records(records),
        "stages": {
            stage: {key: value for key, value in report.items() if key != "warnings"}
            for stage, report in stage_reports.items()
        },
        "warning_count": len(warnings),
        "warnings": warnings,
        "errors": errors,
    }
    write_json(path, payload)
    return payload
