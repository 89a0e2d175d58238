"""CLI entrypoint for the sold-comparables pipeline."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from soldcomp.common.config_loader import ConfigBundle, load_all_configs, resolve_secret
from soldcomp.common.constants import EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS, STAGES
from soldcomp.common.errors import ContractError, PipelineError
from soldcomp.common.fs import read_json, write_json
from soldcomp.common.http import HttpClient, MinIntervalRateLimiter
from soldcomp.common.logging import build_logger, log_event, log_warnings
from soldcomp.common.models import CanonicalRecord
from soldcomp.common.run import RunContext, generate_run_id, parse_run_date
from soldcomp.enrich.epc_client import EpcCandidateSource
from soldcomp.enrich.geocoder import Geocoder
from soldcomp.enrich.runner import run_enrichment
from soldcomp.pipeline.dedupe import reconcile
from soldcomp.pipeline.export import write_output_csv
from soldcomp.pipeline.ingest import ingest_rows, read_raw_rows
from soldcomp.pipeline.ranking import rank_comparables
from soldcomp.pipeline.reports import write_run_summary
from soldcomp.pipeline.urls import tag_url_only_records

HARD_FAIL_CODES = {"CONTRACT_ERROR", "CONFIG_ERROR", "STRUCTURAL_ERROR"}


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=[*STAGES, "all"])
    parser.add_argument("--run-date", default=None)
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--strict", action="store_true")
    return parser.parse_args(argv)


def _write_stage(ctx: RunContext, stage: str, records: list[CanonicalRecord], report: dict) -> None:
    write_json(
        ctx.intermediate_path(stage),
        {
            "stage": stage,
            "run_id": ctx.run_id,
            "report": report,
            "records": [record.to_dict() for record in records],
        },
    )


def _read_stage(ctx: RunContext, stage: str) -> tuple[list[CanonicalRecord], dict]:
    path = ctx.intermediate_path(stage)
    if not path.exists():
        raise ContractError(f"Missing intermediate from stage {stage}: {path}")
    payload = read_json(path)
    return [CanonicalRecord.from_dict(item) for item in payload.get("records", [])], payload.get("report", {})


def run_ingest(ctx: RunContext, bundle: ConfigBundle) -> tuple[list[CanonicalRecord], dict]:
    input_path = ctx.input_path(bundle.pipeline["input"]["filename"])
    if not input_path.exists():
        raise ContractError(f"Missing input file: {input_path}")
    rows = read_raw_rows(input_path)
    result = ingest_rows(rows)
    target = result.target
    report = {
        "rows_in": len(rows),
        "rows_out": len(result.records),
        "header_row_index": result.detection.header_row_index,
        "header_fallback": result.detection.fallback,
        "mapped_columns": {str(col): name for col, name in sorted(result.detection.mapping.items())},
        "target": target.label() if target is not None else None,
        "warnings": result.warnings,
    }
    return result.records, report


def run_reconcile(ctx: RunContext, bundle: ConfigBundle) -> tuple[list[CanonicalRecord], dict]:
    records, _ = _read_stage(ctx, "ingest")
    cfg = bundle.pipeline["reconcile"]
    result = reconcile(
        records,
        price_review_threshold=float(cfg["price_review_threshold"]),
        floor_area_conflict_percent=float(cfg["floor_area_conflict_percent"]),
    )
    warnings = result.warnings + tag_url_only_records(result.records)
    report = {
        "rows_in": len(records),
        "rows_out": len(result.records),
        "merged_count": result.merged_count,
        "warnings": warnings,
    }
    return result.records, report


def _http_client(section: dict) -> HttpClient:
    return HttpClient(rate_limiter=MinIntervalRateLimiter(float(section["min_interval_seconds"])))


def run_enrich(ctx: RunContext, bundle: ConfigBundle) -> tuple[list[CanonicalRecord], dict]:
    records, _ = _read_stage(ctx, "reconcile")
    epc_cfg = bundle.pipeline["epc"]
    geo_cfg = bundle.pipeline["geocoding"]
    warnings: list[dict] = []

    geo_client = _http_client(geo_cfg) if geo_cfg["enabled"] else None
    epc_client = _http_client(epc_cfg) if epc_cfg["enabled"] else None
    try:
        geocoder = None
        if geo_client is not None:
            geocoder = Geocoder(geo_client, endpoint=geo_cfg["endpoint"], api_key=resolve_secret(geo_cfg, "api_key_env"))
            if not geocoder.configured:
                warnings.append({"error_code": "MISSING_SECRET", "message": "geocoding API key not set; skipped"})
        epc_source = None
        if epc_client is not None:
            epc_source = EpcCandidateSource(
                epc_client,
                endpoint=epc_cfg["endpoint"],
                certificate_base_url=epc_cfg["certificate_base_url"],
                email=resolve_secret(epc_cfg, "email_env"),
                api_key=resolve_secret(epc_cfg, "api_key_env"),
            )
            if not epc_source.configured:
                warnings.append({"error_code": "MISSING_SECRET", "message": "EPC API credentials not set; skipped"})

        result = run_enrichment(
            records,
            geocoder=geocoder,
            epc_source=epc_source,
            epc_search_base_url=epc_cfg["search_base_url"],
        )
    finally:
        for client in (geo_client, epc_client):
            if client is not None:
                client.close()

    report = {
        "rows_in": len(records),
        "rows_out": len(result.records),
        "failed_sources": result.failed_sources,
        "stats": result.stats,
        "warnings": warnings + result.warnings,
    }
    return result.records, report


def run_rank(ctx: RunContext, bundle: ConfigBundle) -> tuple[list[CanonicalRecord], dict]:
    records, _ = _read_stage(ctx, "enrich")
    target = next((r for r in records if r.is_target), None)
    comparables = [r for r in records if not r.is_target and not r.meta.is_synthetic and not r.meta.source]
    result = rank_comparables(comparables, target, bundle.ranking_profile(), reference_date=ctx.reference_date)
    warnings = []
    if target is None:
        warnings.append({"error_code": "NO_TARGET", "message": "ranking without a target; size and bedroom scores are empty"})
    report = {
        "rows_in": len(records),
        "rows_out": len(records),
        "ranked": len(result.records),
        "explanations": result.explanations,
        "warnings": warnings,
    }
    return records, report


def run_export(ctx: RunContext, bundle: ConfigBundle) -> tuple[list[CanonicalRecord], dict]:
    records, _ = _read_stage(ctx, "rank")
    out_path = write_output_csv(ctx.output_path(bundle.pipeline["output"]["filename"]), records)
    report = {"rows_in": len(records), "rows_out": len(records), "output": str(out_path), "warnings": []}
    return records, report


STAGE_RUNNERS = {
    "ingest": run_ingest,
    "reconcile": run_reconcile,
    "enrich": run_enrich,
    "rank": run_rank,
    "export": run_export,
}


def _stage_reports(ctx: RunContext) -> dict[str, dict]:
    reports = {}
    for stage in STAGES:
        path = ctx.intermediate_path(stage)
        if path.exists():
            reports[stage] = read_json(path).get("report", {})
    return reports


def execute_stage(stage: str, ctx: RunContext, bundle: ConfigBundle, logger: logging.Logger) -> dict:
    try:
        runner = STAGE_RUNNERS[stage]
    except KeyError as exc:
        raise ValueError(f"Unknown stage: {stage}") from exc

    records, report = runner(ctx, bundle)
    _write_stage(ctx, stage, records, report)
    log_warnings(logger, report.get("warnings", []), run_id=ctx.run_id, stage=stage)

    if stage == "export":
        summary = write_run_summary(
            ctx.output_path(bundle.pipeline["output"]["report_filename"]),
            run_id=ctx.run_id,
            run_date=ctx.run_date,
            records=records,
            stage_reports=_stage_reports(ctx),
        )
        log_event(
            logger,
            "run summary written",
            run_id=ctx.run_id,
            stage=stage,
            event="RUN_SUMMARY",
            status=summary["status"],
        )
    return report


def run_command(args: argparse.Namespace) -> int:
    run_id = args.run_id or generate_run_id()
    ctx = RunContext(run_id=run_id, run_date=parse_run_date(args.run_date), data_dir=Path(args.data_dir))
    config_dir = Path(args.config_dir)
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None

    logger = build_logger(run_id, ctx.log_path(), level=args.log_level)
    bundle = load_all_configs(config_dir, overlay_config_dir=overlay_config_dir)
    stages = STAGES if args.command == "all" else (args.command,)

    had_partial_failure = False

    for stage in stages:
        log_event(logger, "stage start", run_id=run_id, stage=stage, event="STAGE_START", status="ok")
        try:
            report = execute_stage(stage, ctx, bundle, logger)
        except PipelineError as exc:
            had_partial_failure = True
            log_event(
                logger,
                f"stage failed: {exc}",
                level=logging.ERROR,
                run_id=run_id,
                stage=stage,
                event="STAGE_FAIL",
                status="error",
                error_code=exc.error_code,
            )
            if exc.error_code in HARD_FAIL_CODES or args.strict:
                return EXIT_HARD_FAIL
            continue
        except Exception as exc:
            had_partial_failure = True
            log_event(
                logger,
                f"unexpected failure: {exc}",
                level=logging.ERROR,
                run_id=run_id,
                stage=stage,
                event="STAGE_FAIL",
                status="error",
                error_code="UNEXPECTED_ERROR",
            )
            if args.strict:
                return EXIT_HARD_FAIL
            continue

        if report.get("failed_sources"):
            had_partial_failure = True
        log_event(
            logger,
            "stage end",
            run_id=run_id,
            stage=stage,
            event="STAGE_END",
            status="ok",
            rows_in=report.get("rows_in"),
            rows_out=report.get("rows_out"),
        )

    if had_partial_failure:
        return EXIT_PARTIAL
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        return run_command(args)
    except PipelineError:
        return EXIT_HARD_FAIL
    except Exception:
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
