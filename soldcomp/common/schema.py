"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from soldcomp.common.errors import ConfigError


def _assert_mapping(obj: object, ctx: str) -> dict:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    return obj


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def validate_pipeline_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    top_required = {"input", "output", "reconcile", "epc", "geocoding", "ranking_profile"}
    _assert_mapping(cfg, "pipeline config")
    _assert_required_keys(cfg, top_required, "pipeline config")
    _assert_no_unknown_keys(cfg, top_required, "pipeline config", allow_unknown)

    _assert_required_keys(_assert_mapping(cfg["input"], "input"), {"filename"}, "input")
    _assert_required_keys(
        _assert_mapping(cfg["output"], "output"),
        {"filename", "report_filename"},
        "output",
    )
    _assert_required_keys(
        _assert_mapping(cfg["reconcile"], "reconcile"),
        {"price_review_threshold", "floor_area_conflict_percent"},
        "reconcile",
    )
    _assert_required_keys(
        _assert_mapping(cfg["epc"], "epc"),
        {"enabled", "endpoint", "certificate_base_url", "search_base_url", "min_interval_seconds"},
        "epc",
    )
    _assert_required_keys(
        _assert_mapping(cfg["geocoding"], "geocoding"),
        {"enabled", "endpoint", "min_interval_seconds"},
        "geocoding",
    )

    for section in ("epc", "geocoding"):
        if float(cfg[section]["min_interval_seconds"]) < 0:
            raise ConfigError(f"{section}.min_interval_seconds must not be negative")

    return cfg


def validate_ranking_config(cfg: dict) -> dict:
    _assert_mapping(cfg, "ranking config")
    _assert_required_keys(cfg, {"profiles"}, "ranking config")
    if not isinstance(cfg["profiles"], dict) or not cfg["profiles"]:
        raise ConfigError("ranking.profiles must be a non-empty mapping")

    for name, profile in cfg["profiles"].items():
        _assert_required_keys(_assert_mapping(profile, f"profiles.{name}"), {"weights"}, f"profiles.{name}")
        weights = profile["weights"]
        if not isinstance(weights, dict) or not weights:
            raise ConfigError(f"profiles.{name}.weights must be a non-empty mapping")
        unknown = set(weights) - {"floor_area", "proximity", "bedrooms", "recency"}
        if unknown:
            raise ConfigError(f"Unknown ranking components in profiles.{name}: {', '.join(sorted(unknown))}")
    return cfg
