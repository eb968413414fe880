# src/motofinder/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/motofinder/config/defaults.yaml`, then optionally
overridden by:
- an external YAML file via `MOTOFINDER_CONFIG_PATH` (replaces the defaults),
- a small whitelist of environment variables (see `_apply_env_overrides`).

Design rule:
- Tuning knobs (radii, limits, timeouts) live in YAML, not in business logic.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any
from motofinder.core.env import load_dotenv_if_present

import yaml
from pydantic import BaseModel, Field, model_validator


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `motofinder.config`."""
    text = resources.files("motofinder.config").joinpath(filename).read_text(encoding="utf-8")
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
    name: str = "MotoFinder"
    log_level: str = "INFO"


class CacheSettings(BaseModel):
    enabled: bool = True
    dir: str = ".cache/motofinder"
    default_ttl_seconds: int = 60 * 60 * 24


class CatalogSettings(BaseModel):
    path: str = "data/catalogs/shops.json"


class DatabaseSettings(BaseModel):
    url: str = "sqlite:///data/motofinder.db"
    echo: bool = False


class GeolocationSettings(BaseModel):
    timeout_seconds: float = Field(10.0, gt=0)
    # Reported fixes older than this are treated as unavailable.
    max_age_seconds: float = Field(60.0, ge=0)
    ip_lookup_url: str = "https://ipapi.co/json/"


class GeocodingSettings(BaseModel):
    enabled: bool = True
    base_url: str = "https://nominatim.openstreetmap.org/reverse"
    user_agent: str = "MotorcycleServiceDirectory/1.0"
    zoom: int = Field(10, ge=0, le=18)
    timeout_seconds: float = Field(5.0, gt=0)
    cache_ttl_seconds: int = 60 * 60 * 24 * 30
    # Cache key precision; 3 decimals is roughly a 100 m grid.
    coordinate_precision: int = Field(3, ge=0, le=6)
    max_per_minute: float = Field(60.0, gt=0)
    burst: float = Field(1.0, gt=0)


class SearchSettings(BaseModel):
    default_radius_km: float = Field(50.0, gt=0)
    default_limit: int = Field(20, ge=1)
    max_limit: int = Field(100, ge=1)
    repository_default_limit: int = Field(100, ge=1)
    user_requests_limit: int = Field(50, ge=1)

    @model_validator(mode="after")
    def _validate_limits(self) -> "SearchSettings":
        if self.default_limit > self.max_limit:
            raise ValueError("search.default_limit must not exceed search.max_limit")
        if self.repository_default_limit > self.max_limit:
            raise ValueError("search.repository_default_limit must not exceed search.max_limit")
        return self


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    geolocation: GeolocationSettings = Field(default_factory=GeolocationSettings)
    geocoding: GeocodingSettings = Field(default_factory=GeocodingSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload."""
    data = dict(data)

    def _set(section: str, key: str, env_name: str) -> None:
        value = os.getenv(env_name)
        if value:
            data.setdefault(section, {})[key] = value

    _set("app", "log_level", "MOTOFINDER_LOG_LEVEL")
    _set("cache", "dir", "MOTOFINDER_CACHE_DIR")
    _set("catalog", "path", "MOTOFINDER_CATALOG_PATH")
    _set("database", "url", "MOTOFINDER_DATABASE_URL")
    _set("geocoding", "user_agent", "MOTOFINDER_GEOCODING_USER_AGENT")
    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("MOTOFINDER_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
