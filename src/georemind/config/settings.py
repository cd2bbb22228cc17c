# src/georemind/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/georemind/config/defaults.yaml`, then optionally overridden by:
- an external YAML file via `GEOREMIND_CONFIG_PATH` (replaces the packaged defaults)
- environment variables (e.g., `PROXIMITY_THRESHOLD`, `GOOGLE_MAPS_API_KEY`)

Design rule:
- Radii, thresholds and limits live in YAML, not hard-coded in the geo core.
  Core functions take them as explicit parameters; only the API/CLI read settings.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field

from georemind.core.env import load_dotenv_if_present


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `georemind.config`."""
    text = resources.files("georemind.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    name: str = "GeoRemind"
    timezone: str = "UTC"
    http_timeout_seconds: float = 15
    log_level: str = "INFO"


class StorageSettings(BaseModel):
    backend: Literal["memory", "json"] = "json"
    path: str = ".data/georemind.json"


class CacheSettings(BaseModel):
    enabled: bool = True
    dir: str = ".cache/georemind"
    default_ttl_seconds: int = 60 * 60 * 24


class ProximitySettings(BaseModel):
    # Two observations closer than this are "the same place".
    match_radius_m: float = Field(50, gt=0)
    match_policy: Literal["first", "nearest"] = "first"
    # None disables eviction of live geofence state.
    state_ttl_seconds: float | None = Field(6 * 60 * 60, gt=0)
    emit_within: bool = True


class SuggestionSettings(BaseModel):
    general_limit: int = Field(5, ge=1)
    time_based_limit: int = Field(5, ge=1)
    now_limit: int = Field(3, ge=1)
    min_cluster_frequency: int = Field(3, ge=0)
    cluster_radius_m: float = Field(100, gt=0)
    time_window_minutes: int = Field(30, ge=0, le=12 * 60)
    default_radius_m: float = Field(100, gt=0)


class MapsSettings(BaseModel):
    base_url: str = "https://maps.googleapis.com/maps/api"
    api_key: str | None = None
    search_radius_m: int = 1500
    geocode_cache_ttl_seconds: int = 60 * 60 * 24 * 7


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    proximity: ProximitySettings = Field(default_factory=ProximitySettings)
    suggestions: SuggestionSettings = Field(default_factory=SuggestionSettings)
    maps: MapsSettings = Field(default_factory=MapsSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Note: We intentionally keep this whitelist small.
    """
    load_dotenv_if_present()
    data = dict(data)

    log_level = os.getenv("GEOREMIND_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    store_path = os.getenv("GEOREMIND_STORE_PATH")
    if store_path:
        data.setdefault("storage", {})["path"] = store_path

    cache_dir = os.getenv("GEOREMIND_CACHE_DIR")
    if cache_dir:
        data.setdefault("cache", {})["dir"] = cache_dir

    threshold = os.getenv("PROXIMITY_THRESHOLD")
    if threshold:
        data.setdefault("proximity", {})["match_radius_m"] = float(threshold)

    maps_key = os.getenv("GOOGLE_MAPS_API_KEY")
    if maps_key:
        data.setdefault("maps", {})["api_key"] = maps_key

    search_radius = os.getenv("SEARCH_RADIUS")
    if search_radius:
        data.setdefault("maps", {})["search_radius_m"] = int(search_radius)

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("GEOREMIND_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
