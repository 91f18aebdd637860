"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (PKGMETA__NPM__MAX_AGE_SECONDS=600)
  2. pkgmeta.yaml           (searched in cwd, then platform config dir)
  3. Hardcoded defaults

The config file is optional; every field has a default.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("pkgmeta")
_DEFAULT_DB_PATH = str(Path(_DEFAULT_DATA_DIR) / "cache.db")
_DEFAULT_STATS_DB_PATH = str(Path(_DEFAULT_DATA_DIR) / "stats.db")


def _find_config_file() -> str | None:
    """Return the path of the first pkgmeta.yaml found, or None."""
    candidates = [
        Path("pkgmeta.yaml"),
        Path(platformdirs.user_config_dir("pkgmeta")) / "pkgmeta.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8080


class NpmSettings(BaseModel):
    # More than one URL races the mirrors and keeps the first success.
    source_urls: list[str] = ["https://registry.npmjs.org"]
    max_age_seconds: int = 300

    @field_validator("source_urls", mode="before")
    @classmethod
    def coerce_single_url(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [v]
        return v

    @field_validator("source_urls")
    @classmethod
    def require_one_url(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("At least one npm source URL is required")
        return [url.rstrip("/") for url in v]


class GitHubSettings(BaseModel):
    source_url: str = "https://api.github.com"
    api_token: str | None = None
    max_age_seconds: int = 300


class CdnSettings(BaseModel):
    source_url: str = "https://cdn.jsdelivr.net"


class HttpSettings(BaseModel):
    timeout_seconds: float = 30.0
    max_age_static_seconds: int = 365 * 24 * 60 * 60


class CacheSettings(BaseModel):
    db_path: str = _DEFAULT_DB_PATH
    negative_ttl_seconds: int = 60
    cleanup_interval_hours: int = 6


class StatsSettings(BaseModel):
    db_path: str = _DEFAULT_STATS_DB_PATH
    max_age_seconds: int = 6 * 60 * 60
    default_period: Literal["day", "week", "month", "year"] = "month"


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: PKGMETA__SERVER__PORT=9090
        env_prefix="PKGMETA__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    server: ServerSettings = ServerSettings()
    npm: NpmSettings = NpmSettings()
    gh: GitHubSettings = GitHubSettings()
    cdn: CdnSettings = CdnSettings()
    http: HttpSettings = HttpSettings()
    cache: CacheSettings = CacheSettings()
    stats: StatsSettings = StatsSettings()
    logging: LoggingSettings = LoggingSettings()

    def metadata_max_age(self, package_type: str) -> int:
        """Metadata cache TTL for a source type, in seconds."""
        if package_type == "gh":
            return self.gh.max_age_seconds
        return self.npm.max_age_seconds

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets are not read
        )
