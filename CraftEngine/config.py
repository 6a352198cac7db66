"""Load, normalise, and save engine configuration from DefaultEngineConfig.yaml."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .engine_logging import LogLevel
from .errors import ConfigError

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "DefaultEngineConfig.yaml"

DEFAULT_BASE_URL = "http://localhost:8000"


@dataclass
class ApiSettings:
    base_url: str = DEFAULT_BASE_URL
    token: Optional[str] = None
    timeout_seconds: float = 30.0
    max_retries: int = 3
    cache_expire_seconds: Optional[int] = 300  # None disables the recipe memo

    @property
    def cache_expire(self) -> Optional[timedelta]:
        if self.cache_expire_seconds is None:
            return None
        return timedelta(seconds=self.cache_expire_seconds)


@dataclass
class ExpansionSettings:
    fetch_concurrency: int = 8  # max in-flight sub-recipe fetches during expand-all


@dataclass
class StalenessSettings:
    recipe_max_age_hours: float = 24.0
    bank_max_age_hours: float = 168.0

    @property
    def recipe_max_age(self) -> timedelta:
        return timedelta(hours=self.recipe_max_age_hours)

    @property
    def bank_max_age(self) -> timedelta:
        return timedelta(hours=self.bank_max_age_hours)


@dataclass
class EngineConfig:
    api: ApiSettings = field(default_factory=ApiSettings)
    expansion: ExpansionSettings = field(default_factory=ExpansionSettings)
    staleness: StalenessSettings = field(default_factory=StalenessSettings)
    log_level: str = "SUMMARY"


def _coerce_float(value: Any, *, key: str, minimum: float = 0.0) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"Invalid number for '{key}': {value!r}")
    try:
        result = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid number for '{key}': {value!r}") from exc
    if result < minimum:
        raise ConfigError(f"'{key}' must be >= {minimum}, got {result}")
    return result


def _coerce_int(value: Any, *, key: str, minimum: int = 0) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"Invalid integer for '{key}': {value!r}")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, str):
        value = value.strip()
    try:
        result = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid integer for '{key}': {value!r}") from exc
    if result < minimum:
        raise ConfigError(f"'{key}' must be >= {minimum}, got {result}")
    return result


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    block = raw.get(name) or {}
    if not isinstance(block, dict):
        raise ConfigError(f"Section '{name}' must be a mapping, got {type(block).__name__}")
    return block


def load_config(path: Optional[Path] = None) -> EngineConfig:
    """Load and normalise configuration YAML into EngineConfig dataclass."""
    cfg_path = path or DEFAULT_CONFIG_PATH
    if not cfg_path.exists():
        return EngineConfig()

    try:
        with cfg_path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {cfg_path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Top level of {cfg_path} must be a mapping")

    # API
    api_raw = _section(raw, "api")
    cache_expire = api_raw.get("cacheExpireSeconds", 300)
    api = ApiSettings(
        base_url=str(api_raw.get("baseUrl", DEFAULT_BASE_URL)).rstrip("/"),
        token=api_raw.get("token") or None,
        timeout_seconds=_coerce_float(api_raw.get("timeoutSeconds", 30.0), key="timeoutSeconds"),
        max_retries=_coerce_int(api_raw.get("maxRetries", 3), key="maxRetries"),
        cache_expire_seconds=(
            None if cache_expire is None
            else _coerce_int(cache_expire, key="cacheExpireSeconds")
        ),
    )

    # Expansion
    expansion_raw = _section(raw, "expansion")
    expansion = ExpansionSettings(
        fetch_concurrency=_coerce_int(
            expansion_raw.get("fetchConcurrency", 8), key="fetchConcurrency", minimum=1
        ),
    )

    # Staleness thresholds
    staleness_raw = _section(raw, "staleness")
    staleness = StalenessSettings(
        recipe_max_age_hours=_coerce_float(
            staleness_raw.get("recipeMaxAgeHours", 24.0), key="recipeMaxAgeHours"
        ),
        bank_max_age_hours=_coerce_float(
            staleness_raw.get("bankMaxAgeHours", 168.0), key="bankMaxAgeHours"
        ),
    )

    log_level = str(_section(raw, "logging").get("level", "SUMMARY")).upper()
    if log_level not in LogLevel.__members__:
        raise ConfigError(
            f"Unknown logging level {log_level!r}; expected one of {', '.join(LogLevel.__members__)}"
        )

    return EngineConfig(
        api=api,
        expansion=expansion,
        staleness=staleness,
        log_level=log_level,
    )


def save_config(config: EngineConfig, path: Optional[Path] = None) -> None:
    """
    Save EngineConfig back to YAML file.

    Parameters
    ----------
    config : EngineConfig
        The configuration to save
    path : Path, optional
        Path to save to. Defaults to DefaultEngineConfig.yaml
    """
    cfg_path = path or DEFAULT_CONFIG_PATH

    data: Dict[str, Any] = {
        "api": {
            "baseUrl": config.api.base_url,
            "token": config.api.token,
            "timeoutSeconds": config.api.timeout_seconds,
            "maxRetries": config.api.max_retries,
            "cacheExpireSeconds": config.api.cache_expire_seconds,
        },
        "expansion": {
            "fetchConcurrency": config.expansion.fetch_concurrency,
        },
        "staleness": {
            "recipeMaxAgeHours": config.staleness.recipe_max_age_hours,
            "bankMaxAgeHours": config.staleness.bank_max_age_hours,
        },
        "logging": {
            "level": config.log_level,
        },
    }

    with cfg_path.open("w", encoding="utf-8") as fh:
        yaml.dump(data, fh, default_flow_style=False, allow_unicode=True, sort_keys=False)
