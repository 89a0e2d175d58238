import json
import logging
from datetime import date
from pathlib import Path

import pytest

from soldcomp.common.fs import read_csv_cells, write_csv
from soldcomp.common.fuzzy import similarity
from soldcomp.common.geometry import format_distance, haversine_miles
from soldcomp.common.logging import build_logger, log_event, log_warnings
from soldcomp.common.models import CanonicalRecord, FloorAreaConflict, has_value
from soldcomp.common.postcode import clean_postcode, extract_postcode, normalise_postcode, postcode_key
from soldcomp.common.run import RunContext, generate_run_id, parse_run_date
from soldcomp.common.scoring import apply_weighting_profile, clamp


def test_similarity_is_symmetric_and_bounded():
    assert similarity("Address", "  address ") == 100
    assert similarity("", "address") == 0
    assert similarity(None, "address") == 0
    assert similarity("adress", "address") == similarity("address", "adress")
    assert 0 <= similarity("price", "postcode") < 100


def test_near_identical_text_never_scores_as_exact():
    left = "x" * 199 + "a"
    right = "x" * 199 + "b"
    assert similarity(left, right) == 99
    assert similarity(left, left.upper()) == 100


def test_postcode_helpers():
    assert clean_postcode(" dn9   3pt ") == "DN9 3PT"
    assert postcode_key("DN9 3PT") == "dn93pt"
    assert normalise_postcode("dn93pt") == "DN9 3PT"
    assert normalise_postcode("not a postcode") is None
    assert extract_postcode("7 Fernbank Close, Blaxton, DN9 3PT") == ("DN9 3PT", "7 Fernbank Close, Blaxton")
    assert extract_postcode("7 Fernbank Close") == (None, "7 Fernbank Close")


def test_haversine_and_distance_format():
    assert haversine_miles(53.5, -1.0, 53.5, -1.0) == 0.0
    assert haversine_miles(53.5, -1.0, 53.6, -1.0) == pytest.approx(6.91, abs=0.01)
    assert format_distance(0.444) == "0.4mi"


def test_has_value():
    assert not has_value("")
    assert not has_value(" NaN ")
    assert not has_value("-")
    assert not has_value(0)
    assert not has_value(None)
    assert not has_value(float("nan"))
    assert has_value("x")
    assert has_value(1.5)


def test_record_round_trips_through_dict_with_meta():
    record = CanonicalRecord(address="1 Elm Close", price=100000.0, secondary_urls={"rightmove": "https://r.test"})
    record.meta.manually_edited = {"price", "address"}
    record.meta.floor_area_conflict = FloorAreaConflict(value1=1200.0, value2=1000.0, field="floor_area_sqft")

    payload = json.loads(json.dumps(record.to_dict()))
    restored = CanonicalRecord.from_dict(payload)

    assert payload["meta"]["manually_edited"] == ["address", "price"]
    assert restored == record


def test_flag_review_appends_without_duplicates():
    record = CanonicalRecord()
    record.flag_review("A")
    record.flag_review("B")
    record.flag_review("A")
    record.flag_review("")
    assert record.needs_review == "A; B"


def test_clamp_and_weighting_profile():
    assert clamp(-5, minimum=0, maximum=100) == 0
    assert clamp(150, minimum=0, maximum=100) == 100

    score, explanation = apply_weighting_profile(
        {"weights": {"a": 0.5, "b": 0.5}, "clamp": {"min": 0, "max": 100}},
        {"a": 100.0, "b": None},
    )
    assert score == 50
    assert explanation["missing_components"] == ["b"]


def test_run_identity_and_layout(tmp_path: Path):
    assert generate_run_id().startswith("run-")
    assert parse_run_date("2026-02-17") == "2026-02-17"
    assert len(parse_run_date(None)) == 10

    ctx = RunContext(run_id="run-1", run_date="2026-02-17", data_dir=tmp_path)
    assert ctx.reference_date == date(2026, 2, 17)
    assert ctx.input_path("data.csv") == tmp_path / "in" / "data.csv"
    assert ctx.intermediate_path("ingest") == tmp_path / "intermediate" / "ingest.json"
    assert ctx.log_path() == tmp_path / "run_meta" / "run-1.log.jsonl"


def test_csv_helpers_strip_bom_and_write_headers(tmp_path: Path):
    path = tmp_path / "in.csv"
    path.write_bytes("﻿Address,Price\n 1 Elm Close ,100\n".encode("utf-8"))
    assert read_csv_cells(path) == [["Address", "Price"], ["1 Elm Close", "100"]]

    out = tmp_path / "out" / "rows.csv"
    write_csv(out, ["a", "b"], [{"a": 1, "b": "x", "c": "ignored"}])
    assert out.read_text(encoding="utf-8").splitlines() == ["a,b", "1,x"]


def test_json_log_lines_carry_event_fields(tmp_path: Path):
    log_path = tmp_path / "run_meta" / "run-log.log.jsonl"
    logger = build_logger("run-log", log_path)

    log_event(logger, "stage start", run_id="run-log", stage="ingest", event="STAGE_START", status="ok")
    log_warnings(logger, [{"error_code": "NO_TARGET", "message": "no target"}], run_id="run-log", stage="ingest")
    for handler in logger.handlers:
        handler.close()

    lines = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines()]
    assert lines[0]["event"] == "STAGE_START"
    assert lines[0]["stage"] == "ingest"
    assert lines[0]["level"] == "INFO"
    assert lines[1]["level"] == "WARNING"
    assert lines[1]["error_code"] == "NO_TARGET"
    assert lines[1]["status"] == "warning"
    assert lines[1]["message"] == "no target"
    assert lines[1]["rows_in"] is None
    assert logging.getLogger("soldcomp.run-log").propagate is False
