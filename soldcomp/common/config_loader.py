"""Configuration loading and validation."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from soldcomp.common.errors import ConfigError
from soldcomp.common.fs import read_yaml
from soldcomp.common.schema import validate_pipeline_config, validate_ranking_config


@dataclass(frozen=True)
class ConfigBundle:
    pipeline: dict
    ranking: dict

    def ranking_profile(self) -> dict:
        name = self.pipeline["ranking_profile"]
        try:
            return self.ranking["profiles"][name]
        except KeyError as exc:
            raise ConfigError(f"Unknown ranking profile: {name}") from exc


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    base = read_yaml(path) or {}
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path) or {}
    return _deep_merge(base, overlay)


def load_all_configs(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
) -> ConfigBundle:
    def _overlay(name: str) -> Path | None:
        return (overlay_config_dir / name) if overlay_config_dir is not None else None

    pipeline = validate_pipeline_config(
        _load_yaml_with_overlay(config_dir / "pipeline.yml", _overlay("pipeline.yml")),
        allow_unknown=allow_unknown,
    )
    ranking = validate_ranking_config(
        _load_yaml_with_overlay(config_dir / "ranking.yml", _overlay("ranking.yml")),
    )
    bundle = ConfigBundle(pipeline=pipeline, ranking=ranking)
    bundle.ranking_profile()
    return bundle


def resolve_secret(section: dict, key: str) -> str | None:
    """Read the environment variable a config section names under ``key``."""
    env_name = section.get(key)
    if not env_name:
        return None
    value = os.environ.get(env_name, "").strip()
    return value or None
