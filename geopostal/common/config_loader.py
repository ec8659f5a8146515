"""Configuration loading and validation."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from geopostal.common.errors import ConfigError
from geopostal.common.fs import read_yaml
from geopostal.common.schema import validate_settings_config

SETTINGS_FILENAME = "default.yml"


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    multiplier: float = 0.5
    max_wait: float = 5.0


@dataclass(frozen=True)
class Settings:
    store_url: str
    batch_size: int
    max_in_flight: int | None
    encoding: str
    retry: RetryConfig
    log_level: str


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
        raise ConfigError(f"Config file not found: {path}")
    base = read_yaml(path)
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    if overlay is None:
        return base
    if not isinstance(overlay, dict):
        raise ConfigError(f"Overlay config must be a mapping: {overlay_path}")
    return _deep_merge(base, overlay)


def load_settings(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
) -> Settings:
    overlay_path = None
    if overlay_config_dir is not None:
        overlay_path = overlay_config_dir / SETTINGS_FILENAME
    cfg = validate_settings_config(
        _load_yaml_with_overlay(config_dir / SETTINGS_FILENAME, overlay_path),
        allow_unknown=allow_unknown,
    )
    retry = cfg["retry"]
    return Settings(
        store_url=cfg["store"]["url"],
        batch_size=cfg["ingest"]["batch_size"],
        max_in_flight=cfg["ingest"]["max_in_flight"],
        encoding=cfg["ingest"]["encoding"],
        retry=RetryConfig(
            max_attempts=retry["max_attempts"],
            multiplier=float(retry["multiplier"]),
            max_wait=float(retry["max_wait"]),
        ),
        log_level=str(cfg["logging"]["level"]).upper(),
    )
