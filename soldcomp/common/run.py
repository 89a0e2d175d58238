"""Run identity, dates, and on-disk layout for a single pipeline run."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path


def generate_run_id() -> str:
    now = datetime.now(tz=timezone.utc)
    return now.strftime("run-%Y%m%dT%H%M%S%fZ")


def parse_run_date(value: str | None) -> str:
    if not value:
        return datetime.now(tz=timezone.utc).date().isoformat()
    return date.fromisoformat(value).isoformat()


def utc_timestamp_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds")


@dataclass(frozen=True)
class RunContext:
    run_id: str
    run_date: str
    data_dir: Path

    @property
    def reference_date(self) -> date:
        return date.fromisoformat(self.run_date)

    def input_path(self, filename: str) -> Path:
        return self.data_dir / "in" / filename

    def intermediate_path(self, stage: str) -> Path:
        return self.data_dir / "intermediate" / f"{stage}.json"

    def output_path(self, filename: str) -> Path:
        return self.data_dir / "out" / filename

    def log_path(self) -> Path:
        return self.data_dir / "run_meta" / f"{self.run_id}.log.jsonl"
