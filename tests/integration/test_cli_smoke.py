import csv
import json
import shutil
from pathlib import Path

import pytest

from soldcomp.cli import main, parse_args, run_command
from soldcomp.common.constants import OUTPUT_HEADERS

REPO_ROOT = Path(__file__).resolve().parents[2]
CONFIG_DIR = REPO_ROOT / "config"
FIXTURE = REPO_ROOT / "tests" / "fixtures" / "comparables_sheet.csv"


def _offline_overlay(tmp_path: Path) -> Path:
    overlay = tmp_path / "overlay"
    overlay.mkdir()
    (overlay / "pipeline.yml").write_text("epc:\n  enabled: false\ngeocoding:\n  enabled: false\n", encoding="utf-8")
    return overlay


def _args(command: str, data_dir: Path, overlay: Path, run_id: str = "run-test") -> list[str]:
    return [
        command,
        "--config-dir",
        str(CONFIG_DIR),
        "--overlay-config-dir",
        str(overlay),
        "--data-dir",
        str(data_dir),
        "--run-date",
        "2024-06-01",
        "--run-id",
        run_id,
    ]


def _read_output(path: Path) -> list[dict]:
    with path.open("r", encoding="utf-8", newline="") as f:
        return list(csv.DictReader(f))


def test_parse_args_defaults():
    args = parse_args(["ingest"])
    assert args.command == "ingest"
    assert args.config_dir == "./config"
    assert args.overlay_config_dir is None
    assert args.strict is False


@pytest.mark.integration
def test_cli_all_writes_ordered_output_and_summary(tmp_path: Path):
    data_dir = tmp_path / "data"
    (data_dir / "in").mkdir(parents=True)
    shutil.copy(FIXTURE, data_dir / "in" / "data.csv")

    exit_code = run_command(parse_args(_args("all", data_dir, _offline_overlay(tmp_path))))

    assert exit_code == 0
    for stage in ("ingest", "reconcile", "enrich", "rank", "export"):
        assert (data_dir / "intermediate" / f"{stage}.json").exists()
    assert (data_dir / "run_meta" / "run-test.log.jsonl").exists()

    output_path = data_dir / "out" / "output.csv"
    with output_path.open("r", encoding="utf-8", newline="") as f:
        assert tuple(next(csv.reader(f))) == OUTPUT_HEADERS

    rows = _read_output(output_path)
    assert [row["Address"] for row in rows] == [
        "",
        "EPC Lookup",
        "7 Fernbank Close",
        "32 Summerfields Drive",
        "14 Oak Road",
    ]

    search, lookup, target, summerfields, oak = rows
    assert search["URL"].startswith("https://www.rightmove.co.uk/house-prices/")
    assert lookup["URL"].endswith("search-by-postcode?postcode=DN9+3PT")
    assert lookup["Link"].endswith('"EPC Search")')
    assert target["isTarget"] == "1"
    assert target["Ranking"] == ""

    assert summerfields["Price"] == "250000"
    assert summerfields["Sq. ft"] == "1200"
    assert summerfields["URL"] == "https://propertydata.co.uk/transaction/abc123"
    assert summerfields["URL_Rightmove"] == "https://www.rightmove.co.uk/properties/123456"
    assert "Sq. ft conflict: 1200 vs 1000" in summerfields["needs_review"]
    assert summerfields["Ranking"] == "8"

    assert oak["Date of sale"] == "12/06/2023"
    assert oak["Ranking"] == "0"

    summary = json.loads((data_dir / "out" / "run_summary.json").read_text(encoding="utf-8"))
    assert summary["run_id"] == "run-test"
    assert summary["status"] == "partial"
    assert summary["counts"]["targets"] == 1
    assert summary["counts"]["synthetic_rows"] == 1
    assert any(w["error_code"] == "MERGE_CONFLICT" for w in summary["warnings"])


@pytest.mark.integration
def test_cli_missing_input_is_hard_failure(tmp_path: Path):
    data_dir = tmp_path / "data"

    assert main(_args("all", data_dir, _offline_overlay(tmp_path))) == 20
    assert not (data_dir / "out" / "output.csv").exists()


@pytest.mark.integration
def test_cli_stage_without_upstream_intermediate_is_hard_failure(tmp_path: Path):
    assert main(_args("rank", tmp_path / "data", _offline_overlay(tmp_path))) == 20
