"""Ingest stage: raw sheet rows to sanitised canonical records with one target."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from soldcomp.common.errors import StructuralError
from soldcomp.common.fs import read_csv_cells
from soldcomp.common.models import CanonicalRecord, RawRow
from soldcomp.pipeline.enrich import is_epc_lookup_row
from soldcomp.pipeline.headers import HeaderDetection, detect_header
from soldcomp.pipeline.normalise import normalise_rows
from soldcomp.pipeline.sanitize import sanitize_records
from soldcomp.pipeline.target import resolve_target


def read_raw_rows(path: Path) -> list[RawRow]:
    return [RawRow(index=i, cells=tuple(cells)) for i, cells in enumerate(read_csv_cells(path))]


@dataclass
class IngestResult:
    records: list[CanonicalRecord]
    detection: HeaderDetection
    warnings: list[dict] = field(default_factory=list)

    @property
    def target(self) -> CanonicalRecord | None:
        return next((r for r in self.records if r.is_target), None)


def ingest_rows(rows: Sequence[RawRow]) -> IngestResult:
    """Header detection, normalisation, sanitising and target resolution.

    Raises StructuralError when there are no rows at all; every other problem
    ends up as a warning or a review note on the affected record.
    """
    if not rows or not any(row.non_empty_cells() for row in rows):
        raise StructuralError("Input has no rows")

    detection = detect_header(rows)
    table = normalise_rows(rows, detection)
    warnings = list(detection.warnings) + table.warnings

    for record in table.records:
        if is_epc_lookup_row(record):
            record.meta.is_synthetic = True

    warnings.extend(sanitize_records(table.records))
    resolution = resolve_target(table.records, table.pre_header_rows, detection.mapping)
    warnings.extend(resolution.warnings)
    return IngestResult(records=resolution.records, detection=detection, warnings=warnings)
