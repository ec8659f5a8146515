"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from geopostal.common.errors import ConfigError

_SECTIONS = {
    "store": {"url"},
    "ingest": {"batch_size", "max_in_flight", "encoding"},
    "retry": {"max_attempts", "multiplier", "max_wait"},
    "logging": {"level"},
}
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "WARN", "ERROR"}


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


def _is_positive_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _is_positive_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


def validate_batch_size(value: object, ctx: str = "ingest.batch_size") -> int:
    if not _is_positive_int(value):
        raise ConfigError(f"{ctx} must be a positive integer, got {value!r}")
    return value


def validate_max_in_flight(value: object, ctx: str = "ingest.max_in_flight") -> int | None:
    if value is None:
        return None
    if not _is_positive_int(value):
        raise ConfigError(f"{ctx} must be a positive integer or null, got {value!r}")
    return value


def validate_settings_config(cfg: object, *, allow_unknown: bool = False) -> dict:
    if not isinstance(cfg, dict):
        raise ConfigError("settings must be a mapping")

    _assert_required_keys(cfg, set(_SECTIONS), "settings")
    _assert_no_unknown_keys(cfg, set(_SECTIONS), "settings", allow_unknown)
    for section, keys in _SECTIONS.items():
        if not isinstance(cfg[section], dict):
            raise ConfigError(f"{section} must be a mapping")
        _assert_required_keys(cfg[section], keys, section)
        _assert_no_unknown_keys(cfg[section], keys, section, allow_unknown)

    if not isinstance(cfg["store"]["url"], str) or not cfg["store"]["url"].strip():
        raise ConfigError("store.url must be a non-empty string")

    validate_batch_size(cfg["ingest"]["batch_size"])
    validate_max_in_flight(cfg["ingest"]["max_in_flight"])
    if not isinstance(cfg["ingest"]["encoding"], str):
        raise ConfigError("ingest.encoding must be a string")

    if not _is_positive_int(cfg["retry"]["max_attempts"]):
        raise ConfigError("retry.max_attempts must be a positive integer")
    if not _is_positive_number(cfg["retry"]["multiplier"]):
        raise ConfigError("retry.multiplier must be a positive number")
    if not _is_positive_number(cfg["retry"]["max_wait"]):
        raise ConfigError("retry.max_wait must be a positive number")

    if str(cfg["logging"]["level"]).upper() not in _LOG_LEVELS:
        raise ConfigError(f"logging.level must be one of {', '.join(sorted(_LOG_LEVELS))}")

    return cfg
